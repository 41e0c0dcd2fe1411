"""
Database models and Pydantic schemas for the NGO Service.
"""

from .database import (
    Base,
    get_db,
    get_db_session,
    init_database,
    NGO,
    Facility,
    Hospital,
    BloodRequest,
    BloodRequestEvent,
    Donor,
    DonorNotificationPreference,
    Activity,
    NotificationLog
)
from .ngo_models import (
    NGOStatus,
    FacilityType,
    FacilityStatus,
    FacilityOperation,
    BloodRequestStatus,
    DonorStatus,
    NotificationStatus
)

__all__ = [
    "Base",
    "get_db",
    "get_db_session",
    "init_database",
    "NGO",
    "Facility",
    "Hospital",
    "BloodRequest",
    "BloodRequestEvent",
    "Donor",
    "DonorNotificationPreference",
    "Activity",
    "NotificationLog",
    "NGOStatus",
    "FacilityType",
    "FacilityStatus",
    "FacilityOperation",
    "BloodRequestStatus",
    "DonorStatus",
    "NotificationStatus"
]
