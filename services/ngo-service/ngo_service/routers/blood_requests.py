from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.responses import api_response
from ..core.security import get_current_ngo
from ..models.database import NGO, get_db
from ..models.ngo_models import BloodRequestActionRequest, BloodRequestOut
from ..services.blood_requests import handle_blood_request

router = APIRouter(prefix="/blood-requests", tags=["blood-requests"])


@router.post("/{request_id}")
async def handle_request(
    request_id: str,
    data: BloodRequestActionRequest,
    ngo: NGO = Depends(get_current_ngo),
    db: AsyncSession = Depends(get_db)
):
    """
    Apply an action to a hospital blood request.

    The action names the target status. Accepting may assign donors.
    """
    blood_request = await handle_blood_request(db, ngo, request_id, data)
    return api_response(
        200,
        BloodRequestOut.from_orm(blood_request).dict(by_alias=True),
        "Request handled successfully"
    )
