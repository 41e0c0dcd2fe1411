from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from ..core.responses import api_response
from ..core.security import get_current_ngo
from ..models.database import NGO, get_db
from ..models.ngo_models import (
    ChangePasswordRequest,
    LoginRequest,
    NGOProfile,
    NGORegistration,
    NGOSummary,
    RefreshTokenRequest
)
from ..services import accounts
from ..services.notifications import NotificationDispatcher, get_notification_dispatcher
from ..services.storage import FileStorage, get_file_storage
from .payload import read_payload

logger = structlog.get_logger()
router = APIRouter(tags=["auth"])


@router.post("/register")
async def register_ngo(
    request: Request,
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage)
):
    """
    Register a new NGO.

    Accepts JSON, or a multipart form carrying the same fields plus the
    registrationCert, licenseCert and taxExemptionCert documents. The account
    starts PENDING until it is verified.
    """
    payload, files = await read_payload(request)
    registration = NGORegistration.parse_obj(payload)

    ngo = await accounts.register_ngo(
        db,
        registration,
        files,
        storage,
        registration_ip=request.client.host if request.client else None,
        device_info=request.headers.get("user-agent")
    )

    return api_response(
        201,
        {"ngo": NGOSummary.from_orm(ngo).dict(by_alias=True)},
        "NGO registration submitted for verification"
    )


@router.post("/login")
async def login_ngo(data: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Exchange email and password for an access/refresh token pair."""
    ngo, tokens = await accounts.login_ngo(db, data.email, data.password)
    return api_response(
        200,
        {"ngo": NGOProfile.from_orm(ngo).dict(by_alias=True), **tokens},
        "Login successful"
    )


@router.post("/refresh-token")
async def refresh_token(data: RefreshTokenRequest, db: AsyncSession = Depends(get_db)):
    """Rotate the token pair using the current refresh token."""
    ngo, tokens = await accounts.refresh_session(db, data.refresh_token)
    return api_response(200, tokens, "Access token refreshed")


@router.post("/logout")
async def logout_ngo(
    ngo: NGO = Depends(get_current_ngo),
    db: AsyncSession = Depends(get_db)
):
    await accounts.logout_ngo(db, ngo)
    return api_response(200, {}, "Logout successful")


@router.post("/change-password")
async def change_password(
    data: ChangePasswordRequest,
    ngo: NGO = Depends(get_current_ngo),
    db: AsyncSession = Depends(get_db)
):
    await accounts.change_password(db, ngo, data.old_password, data.new_password)
    return api_response(200, {}, "Password updated successfully")


@router.post("/resend-verification-otp")
async def resend_verification_otp(
    background_tasks: BackgroundTasks,
    ngo: NGO = Depends(get_current_ngo),
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher)
):
    """Send a fresh verification code to a PENDING NGO."""
    await accounts.resend_verification_otp(db, ngo, dispatcher, background_tasks)
    return api_response(200, {}, "Verification OTP resent successfully")
