from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import time
import structlog
from contextlib import asynccontextmanager

from .core.config import settings
from .core.responses import ApiError, error_details, error_response, first_error_message
from .routers import auth, blood_requests, facilities, health, profile
from .models.database import init_database
from .utils.monitoring import setup_prometheus_metrics, track_api_error, track_request_metrics

# Configure structured logging
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

NGO_PREFIX = f"{settings.API_V1_STR}/ngo"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting NGO Service", version=settings.APP_VERSION)

    await init_database()

    if settings.ENABLE_METRICS:
        setup_prometheus_metrics()

    logger.info("Service startup completed")

    yield

    # Shutdown
    logger.info("Shutting down NGO Service")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="NGO account service for the blood donation platform",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add trusted host middleware
app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=["*"]  # Configure appropriately for production
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests."""
    start_time = time.time()

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(method=request.method, path=request.url.path)

    logger.info(
        "Request started",
        client=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent")
    )

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error("Request failed", error=str(e), process_time=time.time() - start_time)
        raise

    process_time = time.time() - start_time
    logger.info("Request completed", status_code=response.status_code, process_time=process_time)

    if settings.ENABLE_METRICS:
        track_request_metrics(request, response, process_time)

    response.headers["X-Process-Time"] = str(process_time)
    return response


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    """Handle errors raised by the account, facility and request services."""
    logger.warning("API error", status_code=exc.status_code, message=exc.message)
    track_api_error(request.url.path, exc.status_code)
    return error_response(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    logger.error("HTTP exception", status_code=exc.status_code, detail=exc.detail)
    track_api_error(request.url.path, exc.status_code)
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc):
    """Invalid input is a 400 carrying the first problem as the message."""
    errors = exc.errors()
    logger.warning("Validation failed", errors=error_details(errors))
    track_api_error(request.url.path, 400)
    return error_response(400, first_error_message(errors), error_details(errors))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error(
        "Unhandled exception",
        error=str(exc),
        error_type=type(exc).__name__
    )
    track_api_error(request.url.path, 500)
    return error_response(500, "Internal server error")


# Include routers
app.include_router(health.router, prefix=settings.API_V1_STR)
app.include_router(auth.router, prefix=NGO_PREFIX)
app.include_router(profile.router, prefix=NGO_PREFIX)
app.include_router(facilities.router, prefix=NGO_PREFIX)
app.include_router(blood_requests.router, prefix=NGO_PREFIX)


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with service information."""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/docs",
        "health": f"{settings.API_V1_STR}/health",
        "timestamp": time.time()
    }


# API information endpoint
@app.get(f"{settings.API_V1_STR}/info")
async def api_info():
    """API information endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "api_version": settings.API_V1_STR,
        "environment": "development" if settings.DEBUG else "production",
        "features": {
            "health_checks": True,
            "facility_management": True,
            "blood_requests": True,
            "monitoring": settings.ENABLE_METRICS
        },
        "endpoints": {
            "health": f"{settings.API_V1_STR}/health",
            "auth": NGO_PREFIX,
            "profile": f"{NGO_PREFIX}/profile",
            "facilities": f"{NGO_PREFIX}/facilities",
            "blood_requests": f"{NGO_PREFIX}/blood-requests"
        }
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ngo_service.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
