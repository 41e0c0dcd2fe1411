from datetime import datetime
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
import structlog

from ..core.responses import ApiError
from ..models.database import BloodRequest, BloodRequestEvent, Donor, NGO
from ..models.ngo_models import BloodRequestActionRequest, BloodRequestStatus
from ..utils.monitoring import track_blood_request_transition
from .audit import record_activity
from .request_workflow import TransitionError, transition

logger = structlog.get_logger()


async def load_blood_request(db: AsyncSession, request_id: str) -> BloodRequest:
    """Blood request with its hospital and history loaded."""
    result = await db.execute(
        select(BloodRequest)
        .where(BloodRequest.id == request_id)
        .options(selectinload(BloodRequest.hospital), selectinload(BloodRequest.history))
    )
    blood_request = result.scalars().first()
    if blood_request is None:
        raise ApiError(404, "Blood request not found")
    return blood_request


async def resolve_donors(db: AsyncSession, donor_ids: List[str]) -> List[str]:
    """De-duplicate ``donor_ids``, keeping order, and check every donor exists."""
    unique_ids = list(dict.fromkeys(donor_ids))
    if not unique_ids:
        return []

    result = await db.execute(select(Donor.id).where(Donor.id.in_(unique_ids)))
    known = set(result.scalars().all())
    missing = [donor_id for donor_id in unique_ids if donor_id not in known]
    if missing:
        raise ApiError(400, f"Unknown donors: {', '.join(missing)}")
    return unique_ids


async def handle_blood_request(
    db: AsyncSession,
    ngo: NGO,
    request_id: str,
    data: BloodRequestActionRequest
) -> BloodRequest:
    """
    Move a blood request to the status named by ``data.action``.

    The transition table decides legality; an illegal pair is a 409 and
    nothing is written.
    """
    blood_request = await load_blood_request(db, request_id)
    current = blood_request.status

    try:
        new_status = transition(current, data.action)
    except TransitionError as e:
        logger.warning(
            "Blood request transition rejected",
            request_id=request_id,
            current=current.value,
            action=data.action.value
        )
        raise ApiError(409, str(e))

    if new_status == BloodRequestStatus.ACCEPTED and data.assigned_donors:
        blood_request.assigned_donors = await resolve_donors(db, data.assigned_donors)

    blood_request.history.append(BloodRequestEvent(
        from_status=current,
        to_status=new_status,
        action=data.action.value,
        actor_id=ngo.id,
        notes=data.notes,
        created_at=datetime.utcnow()
    ))
    blood_request.status = new_status

    record_activity(db, f"BLOOD_REQUEST_{new_status.value}", ngo.id, {
        "requestId": blood_request.id,
        "hospitalId": blood_request.hospital_id,
        "fromStatus": current.value,
        "toStatus": new_status.value
    })
    await db.commit()

    track_blood_request_transition(new_status.value)
    logger.info(
        "Blood request handled",
        request_id=request_id,
        from_status=current.value,
        to_status=new_status.value
    )
    return blood_request

