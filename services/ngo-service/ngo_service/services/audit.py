from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from ..models.database import Activity

logger = structlog.get_logger()


def record_activity(
    db: AsyncSession,
    activity_type: str,
    actor_id: str,
    details: Optional[Dict[str, Any]] = None,
    actor_model: str = "NGO"
) -> Activity:
    """
    Append an activity record to the caller's unit of work.

    The record is committed together with the change it describes.
    """
    activity = Activity(
        type=activity_type,
        actor_id=actor_id,
        actor_model=actor_model,
        details=details or {}
    )
    db.add(activity)
    logger.info("Activity recorded", activity_type=activity_type, actor_id=actor_id)
    return activity
