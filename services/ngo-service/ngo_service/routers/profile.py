from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.responses import api_response
from ..core.security import get_current_ngo
from ..models.database import NGO, get_db
from ..models.ngo_models import NGOProfile, NGOProfileUpdate
from ..services import accounts
from ..services.storage import FileStorage, get_file_storage
from .payload import read_payload

router = APIRouter(prefix="/profile", tags=["profile"])


def profile_data(ngo: NGO) -> dict:
    return NGOProfile.from_orm(ngo).dict(by_alias=True)


@router.get("")
async def get_profile(ngo: NGO = Depends(get_current_ngo)):
    return api_response(200, profile_data(ngo), "NGO profile fetched successfully")


@router.patch("")
async def update_profile(
    request: Request,
    ngo: NGO = Depends(get_current_ngo),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage)
):
    """
    Update the caller's profile.

    Nested objects are merged into the stored ones. A multipart request may
    also replace any of the stored documents or the logo.
    """
    payload, files = await read_payload(request)
    update = NGOProfileUpdate.parse_obj(payload)

    ngo = await accounts.update_profile(db, ngo, update, files, storage)
    return api_response(200, profile_data(ngo), "NGO profile updated successfully")
