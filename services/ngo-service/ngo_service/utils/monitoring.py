from prometheus_client import Counter, Histogram, generate_latest
from fastapi import Request, Response
import structlog

logger = structlog.get_logger()

# Prometheus metrics
REQUEST_COUNT = Counter(
    'ngo_http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code']
)

REQUEST_DURATION = Histogram(
    'ngo_http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint']
)

FACILITY_OPERATIONS = Counter(
    'ngo_facility_operations_total',
    'Facility operations applied, by action',
    ['action']
)

BLOOD_REQUEST_TRANSITIONS = Counter(
    'ngo_blood_request_transitions_total',
    'Blood request status transitions applied by NGOs',
    ['to_status']
)

NOTIFICATIONS = Counter(
    'ngo_notifications_total',
    'Notification dispatch outcomes',
    ['kind', 'status']
)

API_ERRORS = Counter(
    'ngo_api_errors_total',
    'Total API errors',
    ['endpoint', 'status_code']
)


def setup_prometheus_metrics():
    """Setup Prometheus metrics collection."""
    logger.info("Prometheus metrics enabled")


def track_request_metrics(request: Request, response: Response, process_time: float):
    """Track request metrics for Prometheus."""
    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)

    REQUEST_COUNT.labels(
        method=request.method,
        endpoint=endpoint,
        status_code=response.status_code
    ).inc()

    REQUEST_DURATION.labels(
        method=request.method,
        endpoint=endpoint
    ).observe(process_time)


def track_facility_operation(action: str):
    FACILITY_OPERATIONS.labels(action=action).inc()


def track_blood_request_transition(to_status: str):
    BLOOD_REQUEST_TRANSITIONS.labels(to_status=to_status).inc()


def track_notification(kind: str, status: str):
    NOTIFICATIONS.labels(kind=kind, status=status).inc()


def track_api_error(endpoint: str, status_code: int):
    """Track API errors."""
    API_ERRORS.labels(
        endpoint=endpoint,
        status_code=status_code
    ).inc()


def get_prometheus_metrics():
    """Get Prometheus metrics in text format."""
    return generate_latest()
