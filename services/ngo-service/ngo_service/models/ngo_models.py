from pydantic import BaseModel, Field, validator
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from enum import Enum
import re

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

MIN_PASSWORD_LENGTH = 8


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Schedule columns hold naive UTC; offset-aware input is converted."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class NGOStatus(str, Enum):
    """NGO verification status enumeration."""
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    BLACKLISTED = "BLACKLISTED"


class FacilityType(str, Enum):
    """Facility type enumeration."""
    CAMP = "CAMP"
    CENTER = "CENTER"


class FacilityStatus(str, Enum):
    """Facility status enumeration."""
    PLANNED = "PLANNED"
    INACTIVE = "INACTIVE"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"


class FacilityOperation(str, Enum):
    """Operations accepted by the facility manager."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    SUSPEND = "suspend"
    ACTIVATE = "activate"
    LIST = "LIST"


class BloodRequestStatus(str, Enum):
    """Blood request status enumeration."""
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class DonorStatus(str, Enum):
    """Donor status enumeration."""
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    DEFERRED = "DEFERRED"


class NotificationStatus(str, Enum):
    """Notification delivery status enumeration."""
    QUEUED = "QUEUED"
    SENT = "SENT"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class ApiModel(BaseModel):
    """Base schema speaking camelCase on the wire."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class ContactPerson(ApiModel):
    name: Optional[str] = Field(None, description="Contact person name")
    phone: Optional[str] = Field(None, description="Contact person phone")
    email: Optional[str] = Field(None, description="Contact person email")


class Address(ApiModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pin_code: Optional[str] = None
    country: Optional[str] = None


class NGORegistration(ApiModel):
    """NGO registration request.

    Fields are optional at the type level so each missing field is reported
    with its own message, in the order below.
    """
    name: Optional[str] = Field(None, description="NGO name")
    email: Optional[str] = Field(None, description="Login email")
    password: Optional[str] = Field(None, description="Plain password, hashed before storage")
    contact_person: Optional[ContactPerson] = Field(None, description="Primary contact")
    reg_number: Optional[str] = Field(None, description="Government registration number")
    address: Optional[Address] = Field(None, description="Postal address")
    organization_type: Optional[str] = Field(None, description="Trust, society, section 8 company...")
    operating_hours: Optional[Dict[str, Any]] = Field(None, description="Opening hours by day")

    @validator('name', always=True)
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError('NGO name is required')
        return v.strip()

    @validator('email', always=True)
    def validate_email(cls, v):
        if not v or not v.strip():
            raise ValueError('Email is required')
        v = v.strip().lower()
        if not EMAIL_PATTERN.match(v):
            raise ValueError('Email is invalid')
        return v

    @validator('password', always=True)
    def validate_password(cls, v):
        if not v or not v.strip() or len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError('Password must be at least 8 characters')
        return v

    @validator('contact_person', always=True)
    def validate_contact_person(cls, v):
        if v is None or not v.name or not v.phone:
            raise ValueError('Contact person details required')
        return v

    @validator('reg_number', always=True)
    def validate_reg_number(cls, v):
        if not v or not v.strip():
            raise ValueError('Registration number required')
        return v.strip()


class LoginRequest(ApiModel):
    email: Optional[str] = None
    password: Optional[str] = None


class RefreshTokenRequest(ApiModel):
    refresh_token: Optional[str] = None


class ChangePasswordRequest(ApiModel):
    old_password: Optional[str] = None
    new_password: Optional[str] = None


class NGOProfileUpdate(ApiModel):
    """Fields an NGO may change on its own profile."""
    name: Optional[str] = None
    contact_person: Optional[ContactPerson] = None
    address: Optional[Address] = None
    organization_type: Optional[str] = None
    operating_hours: Optional[Dict[str, Any]] = None

    @validator('name')
    def validate_name(cls, v):
        if v is not None and not v.strip():
            raise ValueError('NGO name cannot be empty')
        return v.strip() if v else v

    @validator('contact_person')
    def validate_contact_person(cls, v):
        # Partial updates are merged into the stored contact; supplied keys must not be blank.
        if v is None:
            return v
        for key in ('name', 'phone'):
            if key in v.model_fields_set and not (getattr(v, key) or '').strip():
                raise ValueError('Contact person details required')
        return v


class NGOSummary(ApiModel):
    """Redacted NGO returned after registration."""
    id: str
    name: str
    email: str
    status: NGOStatus


class NGOProfile(ApiModel):
    """NGO without credentials, tokens or one-time codes."""
    id: str
    name: str
    email: str
    contact_person: Optional[ContactPerson] = None
    address: Optional[Address] = None
    reg_number: str
    organization_type: Optional[str] = None
    operating_hours: Optional[Dict[str, Any]] = None
    documents: Dict[str, str] = Field(default_factory=dict)
    status: NGOStatus
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class FacilitySchedule(ApiModel):
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @validator('start_date')
    def normalize_start_date(cls, v):
        return to_naive_utc(v)

    @validator('end_date')
    def validate_end_date(cls, v, values):
        v = to_naive_utc(v)
        start = values.get('start_date')
        if v and start and v < start:
            raise ValueError('Schedule end date must be after start date')
        return v


class FacilityCreate(ApiModel):
    """Facility creation request."""
    name: str = Field(..., min_length=1, description="Facility name")
    requested_type: Optional[str] = Field(None, alias="type", description="CAMP for a camp, anything else is a center")
    latitude: float = Field(..., ge=-90, le=90, description="Latitude in degrees")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude in degrees")
    description: Optional[str] = None
    address: Optional[Address] = None
    contact_phone: Optional[str] = None
    capacity: Optional[int] = Field(None, gt=0)
    schedule: Optional[FacilitySchedule] = None


class FacilityUpdate(ApiModel):
    """Facility fields merged on update."""
    name: Optional[str] = Field(None, min_length=1)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    description: Optional[str] = None
    address: Optional[Address] = None
    contact_phone: Optional[str] = None
    capacity: Optional[int] = Field(None, gt=0)
    schedule: Optional[FacilitySchedule] = None


class GeoPoint(ApiModel):
    type: str = "Point"
    coordinates: List[float]


class FacilityOut(ApiModel):
    id: str
    ngo_id: str
    name: str
    description: Optional[str] = None
    facility_type: FacilityType
    status: FacilityStatus
    location: GeoPoint
    address: Optional[Address] = None
    contact_phone: Optional[str] = None
    capacity: Optional[int] = None
    schedule: FacilitySchedule
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BloodRequestActionRequest(ApiModel):
    action: BloodRequestStatus = Field(..., description="Target status of the request")
    notes: Optional[str] = Field(None, max_length=2000)
    assigned_donors: Optional[List[str]] = Field(None, description="Donor ids, honoured on ACCEPTED")


class HospitalSummary(ApiModel):
    id: str
    name: str
    address: Optional[Dict[str, Any]] = None
    contact_info: Optional[Dict[str, Any]] = None


class BloodRequestEventOut(ApiModel):
    from_status: BloodRequestStatus
    to_status: BloodRequestStatus
    action: str
    actor_id: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class BloodRequestOut(ApiModel):
    id: str
    hospital: Optional[HospitalSummary] = None
    blood_group: str
    units_required: int
    urgency: Optional[str] = None
    status: BloodRequestStatus
    assigned_donors: List[str] = Field(default_factory=list)
    history: List[BloodRequestEventOut] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class HealthCheckResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Health status")
    timestamp: datetime = Field(default_factory=datetime.now, description="Check timestamp")
    version: str = Field(..., description="Service version")
    database_status: str = Field(..., description="Database connection status")
    notification_status: str = Field(..., description="Notification service status")
    uptime_seconds: float = Field(..., description="Service uptime in seconds")
