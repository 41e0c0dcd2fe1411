from datetime import datetime, timedelta
from typing import Any, Union, Optional
import secrets
import uuid

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from .config import settings
from .responses import ApiError
from ..models.database import NGO, get_db

logger = structlog.get_logger()

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

bearer_scheme = HTTPBearer(auto_error=False)

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"


def create_access_token(
    subject: Union[str, Any],
    claims: Optional[dict] = None,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a JWT access token.

    Args:
        subject: The subject (the NGO id) to encode in the token
        claims: Extra public claims, such as email and name
        expires_delta: Token expiration time delta

    Returns:
        str: The encoded JWT token
    """
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = dict(claims or {})
    to_encode.update({
        "exp": expire,
        "sub": str(subject),
        "iat": datetime.utcnow(),
        "type": ACCESS_TOKEN
    })
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_refresh_token(subject: Union[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT refresh token.

    Every refresh token carries a random ``jti`` so two tokens issued in the
    same second for the same NGO never compare equal.
    """
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

    to_encode = {
        "exp": expire,
        "sub": str(subject),
        "iat": datetime.utcnow(),
        "jti": uuid.uuid4().hex,
        "type": REFRESH_TOKEN
    }
    return jwt.encode(to_encode, settings.REFRESH_SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_token(token: str, token_type: str = ACCESS_TOKEN) -> dict:
    """
    Verify and decode a JWT token.

    Args:
        token: The JWT token to verify
        token_type: Expected ``type`` claim, access or refresh

    Returns:
        dict: The decoded token payload

    Raises:
        ApiError: 401 if the token is invalid, expired or of the wrong type
    """
    secret = settings.SECRET_KEY if token_type == ACCESS_TOKEN else settings.REFRESH_SECRET_KEY
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.warning("JWT verification failed", error=str(e), token_type=token_type)
        raise ApiError(401, "Invalid or expired token")

    if payload.get("type") != token_type or not payload.get("sub"):
        raise ApiError(401, "Invalid or expired token")

    return payload


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """
    Verify a plain password against its hash.

    Args:
        plain_password: The plain text password
        hashed_password: The hashed password to verify against

    Returns:
        bool: True if password matches, False otherwise
    """
    if not plain_password or not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError as e:
        logger.error("Password verification failed", error=str(e))
        return False


def get_password_hash(password: str) -> str:
    """Hash a plain text password."""
    return pwd_context.hash(password)


def generate_otp(length: int = 6) -> str:
    """Generate a numeric one-time code."""
    return "".join(secrets.choice("0123456789") for _ in range(length))


async def get_current_ngo(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db)
) -> NGO:
    """Resolve the NGO behind the bearer access token."""
    if credentials is None or not credentials.credentials:
        raise ApiError(401, "Unauthorized request")

    payload = verify_token(credentials.credentials, ACCESS_TOKEN)
    ngo = await db.get(NGO, payload["sub"])
    if ngo is None:
        raise ApiError(401, "Invalid access token")

    structlog.contextvars.bind_contextvars(ngo_id=ngo.id)
    return ngo
