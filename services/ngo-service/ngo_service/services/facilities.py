from typing import Any, Dict, List, Optional, Tuple

from fastapi import BackgroundTasks
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from ..core.responses import ApiError
from ..models.database import Facility, NGO
from ..models.ngo_models import (
    FacilityCreate,
    FacilityOperation,
    FacilityStatus,
    FacilityType,
    FacilityUpdate,
    NGOStatus,
    NotificationStatus
)
from ..utils.monitoring import track_facility_operation
from .audit import record_activity
from .donor_locator import find_camp_announcement_recipients
from .notifications import NotificationDispatcher

logger = structlog.get_logger()

NEW_FACILITY_ANNOUNCEMENT = "NEW_FACILITY_ANNOUNCEMENT"

PAST_TENSE = {
    FacilityOperation.CREATE: "created",
    FacilityOperation.UPDATE: "updated",
    FacilityOperation.DELETE: "deleted",
    FacilityOperation.SUSPEND: "suspended",
    FacilityOperation.ACTIVATE: "activated",
}

STATUS_FOR_ACTION = {
    FacilityOperation.SUSPEND: FacilityStatus.SUSPENDED,
    FacilityOperation.ACTIVATE: FacilityStatus.ACTIVE,
}


def parse_operation(action: str) -> FacilityOperation:
    try:
        return FacilityOperation(action)
    except ValueError:
        raise ApiError(400, "Invalid operation")


def require_active(ngo: NGO):
    if ngo.status != NGOStatus.ACTIVE:
        raise ApiError(403, "NGO must be active to manage facilities")


def derive_type_and_status(requested_type: Optional[str]) -> Tuple[FacilityType, FacilityStatus]:
    """Camps start PLANNED; anything that is not a camp is an INACTIVE center."""
    if requested_type == FacilityType.CAMP.value:
        return FacilityType.CAMP, FacilityStatus.PLANNED
    return FacilityType.CENTER, FacilityStatus.INACTIVE


def _schedule_fields(schedule) -> Dict[str, Any]:
    if schedule is None:
        return {}
    return schedule.dict(exclude_unset=True)


async def create_facility(db: AsyncSession, ngo: NGO, data: FacilityCreate) -> Facility:
    facility_type, status = derive_type_and_status(data.requested_type)
    schedule = _schedule_fields(data.schedule)

    facility = Facility(
        ngo_id=ngo.id,
        name=data.name,
        description=data.description,
        facility_type=facility_type,
        status=status,
        latitude=data.latitude,
        longitude=data.longitude,
        address=data.address.dict(exclude_none=True) if data.address else None,
        contact_phone=data.contact_phone,
        capacity=data.capacity,
        start_date=schedule.get("start_date"),
        end_date=schedule.get("end_date")
    )
    db.add(facility)
    await db.flush()

    record_activity(db, "FACILITY_CREATED", ngo.id, {
        "facilityId": facility.id,
        "facilityType": facility_type.value
    })
    await db.commit()

    logger.info("Facility created", facility_id=facility.id, facility_type=facility_type.value)
    return facility


async def announce_camp(
    db: AsyncSession,
    facility: Facility,
    dispatcher: NotificationDispatcher,
    background_tasks: BackgroundTasks
) -> Dict[str, Any]:
    """
    Queue the new-camp announcement for nearby donors.

    Runs after the facility is committed. A failure here is logged and
    reported in the returned summary; it never undoes the facility.
    """
    facility_id = facility.id
    try:
        recipients = await find_camp_announcement_recipients(db, facility)
        log = await dispatcher.dispatch_bulk(
            db,
            background_tasks,
            recipients,
            NEW_FACILITY_ANNOUNCEMENT,
            {
                "facilityId": facility.id,
                "facilityName": facility.name,
                "facilityType": facility.facility_type.value,
                "startDate": facility.start_date,
                "location": facility.address
            }
        )
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error("Camp announcement could not be queued", facility_id=facility_id, error=str(e))
        return {"status": NotificationStatus.FAILED.value, "recipientCount": 0}

    return {"id": log.id, "status": log.status.value, "recipientCount": log.recipient_count}


async def list_facilities(db: AsyncSession, ngo: NGO) -> List[Facility]:
    result = await db.execute(
        select(Facility).where(Facility.ngo_id == ngo.id).order_by(Facility.created_at)
    )
    return list(result.scalars().all())


async def get_owned_facility(db: AsyncSession, ngo: NGO, facility_id: Optional[str]) -> Facility:
    """Facility with ``facility_id`` owned by ``ngo``; other owners' facilities are not found."""
    if not facility_id:
        raise ApiError(404, "Facility not found")

    result = await db.execute(
        select(Facility).where(Facility.id == facility_id, Facility.ngo_id == ngo.id)
    )
    facility = result.scalars().first()
    if facility is None:
        raise ApiError(404, "Facility not found")
    return facility


async def update_facility(db: AsyncSession, facility: Facility, data: FacilityUpdate):
    changes = data.dict(exclude_unset=True)
    schedule = changes.pop("schedule", None) or {}

    if "address" in changes and changes["address"] is not None:
        changes["address"] = {**(facility.address or {}), **{k: v for k, v in changes["address"].items() if v is not None}}

    for field, value in changes.items():
        if field in ("name", "latitude", "longitude") and value is None:
            continue
        setattr(facility, field, value)

    for field in ("start_date", "end_date"):
        if field in schedule:
            setattr(facility, field, schedule[field])

    if facility.start_date and facility.end_date and facility.end_date < facility.start_date:
        raise ApiError(400, "Schedule end date must be after start date")


async def manage_facility(
    db: AsyncSession,
    ngo: NGO,
    action: str,
    facility_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None
):
    """
    Single entrypoint for facility operations.

    Returns the created facility, the list of facilities, or the affected
    facility, depending on the action.
    """
    operation = parse_operation(action)
    require_active(ngo)
    payload = payload or {}

    if operation == FacilityOperation.CREATE:
        facility = await create_facility(db, ngo, FacilityCreate.parse_obj(payload))
        track_facility_operation(operation.value)
        return facility

    if operation == FacilityOperation.LIST:
        return await list_facilities(db, ngo)

    facility = await get_owned_facility(db, ngo, facility_id)

    if operation == FacilityOperation.UPDATE:
        await update_facility(db, facility, FacilityUpdate.parse_obj(payload))
    elif operation == FacilityOperation.DELETE:
        await db.delete(facility)
    else:
        facility.status = STATUS_FOR_ACTION[operation]

    record_activity(db, f"FACILITY_{PAST_TENSE[operation].upper()}", ngo.id, {"facilityId": facility.id})
    await db.commit()

    track_facility_operation(operation.value)
    logger.info("Facility operation applied", facility_id=facility.id, action=operation.value)
    return facility
