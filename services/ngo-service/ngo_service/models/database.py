from sqlalchemy import (
    Column, String, Integer, Float, DateTime, Boolean, Text, ForeignKey, Enum, JSON, UniqueConstraint
)
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import declarative_base, sessionmaker, relationship
from datetime import datetime
import uuid
from contextlib import asynccontextmanager

from ..core.config import settings
from .ngo_models import (
    NGOStatus,
    FacilityType,
    FacilityStatus,
    BloodRequestStatus,
    DonorStatus,
    NotificationStatus
)

Base = declarative_base()

# Create async engine
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    future=True
)

# Create async session factory
AsyncSessionLocal = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


async def init_database():
    """Initialize database tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def get_db_session(session_factory=None) -> AsyncSession:
    """Get database session context manager."""
    factory = session_factory or AsyncSessionLocal
    async with factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# Dependency for FastAPI
async def get_db() -> AsyncSession:
    """Database dependency for FastAPI."""
    async with get_db_session() as session:
        yield session


def generate_id() -> str:
    return str(uuid.uuid4())


class NGO(Base):
    """NGO account database model."""
    __tablename__ = "ngos"

    id = Column(String, primary_key=True, index=True, default=generate_id)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    contact_person = Column(JSON, nullable=False)
    address = Column(JSON, nullable=True)
    reg_number = Column(String, nullable=False, unique=True, index=True)
    organization_type = Column(String, nullable=True)
    operating_hours = Column(JSON, nullable=True)
    documents = Column(JSON, nullable=False, default=dict)
    status = Column(Enum(NGOStatus), nullable=False, default=NGOStatus.PENDING)
    refresh_token = Column(Text, nullable=True)
    last_login = Column(DateTime, nullable=True)
    verification_otp_hash = Column(String, nullable=True)
    verification_otp_expires_at = Column(DateTime, nullable=True)
    registration_ip = Column(String, nullable=True)
    device_info = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    facilities = relationship("Facility", back_populates="ngo", cascade="all, delete-orphan")


class Facility(Base):
    """Donation camp or center owned by an NGO."""
    __tablename__ = "facilities"

    id = Column(String, primary_key=True, index=True, default=generate_id)
    ngo_id = Column(String, ForeignKey("ngos.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    facility_type = Column(Enum(FacilityType), nullable=False)
    status = Column(Enum(FacilityStatus), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    address = Column(JSON, nullable=True)
    contact_phone = Column(String, nullable=True)
    capacity = Column(Integer, nullable=True)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    ngo = relationship("NGO", back_populates="facilities")

    @property
    def location(self) -> dict:
        """GeoJSON point, longitude first."""
        return {"type": "Point", "coordinates": [self.longitude, self.latitude]}

    @property
    def schedule(self) -> dict:
        return {"start_date": self.start_date, "end_date": self.end_date}


class Hospital(Base):
    """Hospital that raises blood requests."""
    __tablename__ = "hospitals"

    id = Column(String, primary_key=True, index=True, default=generate_id)
    name = Column(String, nullable=False)
    address = Column(JSON, nullable=True)
    contact_info = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    blood_requests = relationship("BloodRequest", back_populates="hospital")


class BloodRequest(Base):
    """Blood request raised by a hospital and handled by NGOs."""
    __tablename__ = "blood_requests"

    id = Column(String, primary_key=True, index=True, default=generate_id)
    hospital_id = Column(String, ForeignKey("hospitals.id"), nullable=False, index=True)
    blood_group = Column(String, nullable=False)
    units_required = Column(Integer, nullable=False, default=1)
    urgency = Column(String, nullable=True)
    status = Column(Enum(BloodRequestStatus), nullable=False, default=BloodRequestStatus.PENDING)
    assigned_donors = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    hospital = relationship("Hospital", back_populates="blood_requests")
    history = relationship(
        "BloodRequestEvent",
        back_populates="request",
        order_by="BloodRequestEvent.created_at",
        cascade="all, delete-orphan"
    )


class BloodRequestEvent(Base):
    """One status change of a blood request."""
    __tablename__ = "blood_request_events"

    id = Column(String, primary_key=True, index=True, default=generate_id)
    request_id = Column(String, ForeignKey("blood_requests.id"), nullable=False, index=True)
    from_status = Column(Enum(BloodRequestStatus), nullable=False)
    to_status = Column(Enum(BloodRequestStatus), nullable=False)
    action = Column(String, nullable=False)
    actor_id = Column(String, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    request = relationship("BloodRequest", back_populates="history")


class Donor(Base):
    """Donor account, as far as announcements need it."""
    __tablename__ = "donors"

    id = Column(String, primary_key=True, index=True, default=generate_id)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    donor_status = Column(Enum(DonorStatus), nullable=False, default=DonorStatus.ACTIVE)
    latitude = Column(Float, nullable=True, index=True)
    longitude = Column(Float, nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    notification_preferences = relationship(
        "DonorNotificationPreference",
        back_populates="donor",
        cascade="all, delete-orphan"
    )


class DonorNotificationPreference(Base):
    """Per-donor opt in for one kind of notification."""
    __tablename__ = "donor_notification_preferences"
    __table_args__ = (UniqueConstraint("donor_id", "type", name="uq_donor_preference_type"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    donor_id = Column(String, ForeignKey("donors.id"), nullable=False, index=True)
    type = Column(String, nullable=False)
    enabled = Column(Boolean, nullable=False, default=True)

    # Relationships
    donor = relationship("Donor", back_populates="notification_preferences")


class Activity(Base):
    """Append-only audit trail."""
    __tablename__ = "activities"

    id = Column(String, primary_key=True, index=True, default=generate_id)
    type = Column(String, nullable=False, index=True)
    actor_id = Column(String, nullable=False, index=True)
    actor_model = Column(String, nullable=False, default="NGO")
    details = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)


class NotificationLog(Base):
    """Outcome of one notification dispatch."""
    __tablename__ = "notification_logs"

    id = Column(String, primary_key=True, index=True, default=generate_id)
    kind = Column(String, nullable=False)  # SINGLE, BULK
    template_key = Column(String, nullable=False)
    recipient_count = Column(Integer, nullable=False, default=0)
    status = Column(Enum(NotificationStatus), nullable=False, default=NotificationStatus.QUEUED)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)
