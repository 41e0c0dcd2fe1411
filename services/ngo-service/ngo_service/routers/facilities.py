from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from ..core.responses import api_response
from ..core.security import get_current_ngo
from ..models.database import Facility, NGO, get_db
from ..models.ngo_models import FacilityOperation, FacilityOut, FacilityType, NotificationStatus
from ..services.facilities import PAST_TENSE, announce_camp, manage_facility
from ..services.notifications import NotificationDispatcher, get_notification_dispatcher
from .payload import read_payload

logger = structlog.get_logger()
router = APIRouter(prefix="/facilities", tags=["facilities"])


def facility_data(facility: Facility) -> dict:
    return FacilityOut.from_orm(facility).dict(by_alias=True)


@router.get("")
async def list_facilities(
    ngo: NGO = Depends(get_current_ngo),
    db: AsyncSession = Depends(get_db)
):
    facilities = await manage_facility(db, ngo, FacilityOperation.LIST.value)
    return api_response(200, [facility_data(f) for f in facilities], "Facilities fetched successfully")


@router.post("/{action}")
@router.post("/{action}/{facility_id}")
async def handle_facility(
    action: str,
    request: Request,
    background_tasks: BackgroundTasks,
    facility_id: Optional[str] = None,
    ngo: NGO = Depends(get_current_ngo),
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher)
):
    """
    Run a facility operation: create, update, delete, suspend, activate or LIST.

    Creating a CAMP also announces it to nearby donors. The facility is kept
    even when the announcement cannot be queued.
    """
    payload, _ = await read_payload(request)
    result = await manage_facility(db, ngo, action, facility_id, payload)
    operation = FacilityOperation(action)

    if operation == FacilityOperation.LIST:
        return api_response(200, [facility_data(f) for f in result], "Facilities fetched successfully")

    # Serialized before the announcement, which may roll the session back.
    data = facility_data(result)

    if operation != FacilityOperation.CREATE:
        return api_response(200, data, f"Facility {PAST_TENSE[operation]} successfully")

    message = "Facility created successfully"
    if result.facility_type == FacilityType.CAMP:
        notification = await announce_camp(db, result, dispatcher, background_tasks)
        data["notification"] = notification
        if notification["status"] == NotificationStatus.FAILED.value:
            message = "Facility created successfully, but nearby donors could not be notified"

    return api_response(201, data, message)
