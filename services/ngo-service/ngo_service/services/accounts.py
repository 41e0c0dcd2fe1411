from datetime import datetime, timedelta
from typing import Dict, Iterable, Optional, Tuple

from fastapi import BackgroundTasks, UploadFile
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from ..core.config import settings
from ..core.responses import ApiError
from ..core.security import (
    REFRESH_TOKEN,
    create_access_token,
    create_refresh_token,
    generate_otp,
    get_password_hash,
    verify_password,
    verify_token
)
from ..models.database import NGO
from ..models.ngo_models import (
    MIN_PASSWORD_LENGTH,
    NGOProfileUpdate,
    NGORegistration,
    NGOStatus
)
from .audit import record_activity
from .notifications import NotificationDispatcher
from .storage import FileStorage

logger = structlog.get_logger()

REGISTRATION_DOCUMENTS = ("registrationCert", "licenseCert", "taxExemptionCert")
PROFILE_DOCUMENTS = REGISTRATION_DOCUMENTS + ("logo",)
DOCUMENT_FOLDER = "ngo-documents"


async def store_documents(
    storage: FileStorage,
    files: Dict[str, UploadFile],
    allowed: Iterable[str]
) -> Dict[str, str]:
    """Upload the allowed documents present in ``files``; unknown keys are ignored."""
    stored = {}
    for doc_type in allowed:
        upload = files.get(doc_type)
        if upload is not None:
            stored[doc_type] = await storage.upload(upload, f"{DOCUMENT_FOLDER}/{doc_type}")
    return stored


async def ensure_unique(db: AsyncSession, registration: NGORegistration):
    """409 when the email or registration number is already taken."""
    result = await db.execute(
        select(NGO).where(
            or_(NGO.email == registration.email, NGO.reg_number == registration.reg_number)
        )
    )
    existing = result.scalars().first()
    if existing:
        raise ApiError(
            409,
            "Email already registered" if existing.email == registration.email
            else "Registration number already exists"
        )


async def register_ngo(
    db: AsyncSession,
    registration: NGORegistration,
    files: Dict[str, UploadFile],
    storage: FileStorage,
    registration_ip: Optional[str] = None,
    device_info: Optional[str] = None
) -> NGO:
    """
    Create a PENDING NGO account.

    Uniqueness of email and registration number is checked up front for a
    precise message, and enforced again by the unique indexes on insert.
    Documents are stored only once the insert has succeeded.
    """
    await ensure_unique(db, registration)

    ngo = NGO(
        name=registration.name,
        email=registration.email,
        password_hash=get_password_hash(registration.password),
        contact_person=registration.contact_person.dict(exclude_none=True),
        address=registration.address.dict(exclude_none=True) if registration.address else None,
        reg_number=registration.reg_number,
        organization_type=registration.organization_type,
        operating_hours=registration.operating_hours,
        documents={},
        status=NGOStatus.PENDING,
        registration_ip=registration_ip,
        device_info=device_info
    )
    db.add(ngo)

    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        logger.warning("NGO registration lost a uniqueness race", email=registration.email)
        raise ApiError(409, "Email or registration number already registered")

    documents = await store_documents(storage, files, REGISTRATION_DOCUMENTS)
    ngo.documents = documents

    record_activity(db, "NGO_REGISTERED", ngo.id, {
        "ngoId": ngo.id,
        "name": ngo.name,
        "registrationIP": registration_ip,
        "timestamp": datetime.utcnow().isoformat()
    })
    await db.commit()

    logger.info("NGO registered", ngo_id=ngo.id, documents=list(documents))
    return ngo


async def issue_tokens(db: AsyncSession, ngo: NGO) -> Dict[str, str]:
    """Issue a fresh token pair and remember the refresh token."""
    access_token = create_access_token(ngo.id, {"email": ngo.email, "name": ngo.name})
    refresh_token = create_refresh_token(ngo.id)

    ngo.refresh_token = refresh_token
    ngo.last_login = datetime.utcnow()
    await db.commit()

    return {"accessToken": access_token, "refreshToken": refresh_token}


async def login_ngo(db: AsyncSession, email: Optional[str], password: Optional[str]) -> Tuple[NGO, Dict[str, str]]:
    if not email or not password:
        raise ApiError(400, "Email and password are required")

    result = await db.execute(select(NGO).where(NGO.email == email.strip().lower()))
    ngo = result.scalars().first()
    if ngo is None or not verify_password(password, ngo.password_hash):
        logger.warning("NGO login rejected", email=email)
        raise ApiError(401, "Invalid credentials")

    tokens = await issue_tokens(db, ngo)
    logger.info("NGO logged in", ngo_id=ngo.id)
    return ngo, tokens


async def refresh_session(db: AsyncSession, refresh_token: Optional[str]) -> Tuple[NGO, Dict[str, str]]:
    """Rotate the token pair; only the currently stored refresh token is accepted."""
    if not refresh_token:
        raise ApiError(401, "Refresh token is required")

    payload = verify_token(refresh_token, REFRESH_TOKEN)
    ngo = await db.get(NGO, payload["sub"])
    if ngo is None or not ngo.refresh_token or ngo.refresh_token != refresh_token:
        raise ApiError(401, "Refresh token is expired or used")

    return ngo, await issue_tokens(db, ngo)


async def logout_ngo(db: AsyncSession, ngo: NGO):
    ngo.refresh_token = None
    await db.commit()
    logger.info("NGO logged out", ngo_id=ngo.id)


async def change_password(db: AsyncSession, ngo: NGO, old_password: Optional[str], new_password: Optional[str]):
    if not old_password or not new_password:
        raise ApiError(400, "Old and new passwords are required")
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise ApiError(400, "Password must be at least 8 characters")
    if not verify_password(old_password, ngo.password_hash):
        raise ApiError(401, "Old password is incorrect")

    ngo.password_hash = get_password_hash(new_password)
    record_activity(db, "NGO_PASSWORD_CHANGED", ngo.id, {"timestamp": datetime.utcnow().isoformat()})
    await db.commit()
    logger.info("NGO password changed", ngo_id=ngo.id)


async def resend_verification_otp(
    db: AsyncSession,
    ngo: NGO,
    dispatcher: NotificationDispatcher,
    background_tasks: BackgroundTasks
):
    """Issue a new verification code while the account is still PENDING."""
    if ngo.status != NGOStatus.PENDING:
        raise ApiError(400, "Verification already completed or not pending")

    otp = generate_otp()
    ngo.verification_otp_hash = get_password_hash(otp)
    ngo.verification_otp_expires_at = datetime.utcnow() + timedelta(minutes=settings.OTP_EXPIRE_MINUTES)

    await dispatcher.dispatch_single(
        db,
        background_tasks,
        ngo.email,
        "Verification OTP",
        f"Your OTP is {otp}"
    )
    await db.commit()
    logger.info("Verification OTP issued", ngo_id=ngo.id)


async def update_profile(
    db: AsyncSession,
    ngo: NGO,
    update: NGOProfileUpdate,
    files: Dict[str, UploadFile],
    storage: FileStorage
) -> NGO:
    changes = update.dict(exclude_unset=True, exclude_none=True)

    for field in ("contact_person", "address", "operating_hours"):
        if field in changes:
            changes[field] = {**(getattr(ngo, field) or {}), **changes[field]}

    for field, value in changes.items():
        setattr(ngo, field, value)

    documents = await store_documents(storage, files, PROFILE_DOCUMENTS)
    if documents:
        ngo.documents = {**(ngo.documents or {}), **documents}

    await db.commit()
    logger.info("NGO profile updated", ngo_id=ngo.id, fields=sorted(changes), documents=sorted(documents))
    return ngo
