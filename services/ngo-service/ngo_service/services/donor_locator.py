import math
from typing import Any, Dict, List

from geopy.distance import geodesic
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from ..models.database import Donor, DonorNotificationPreference, Facility
from ..models.ngo_models import DonorStatus

logger = structlog.get_logger()

CAMP_ANNOUNCEMENT_RADIUS_KM = 10.0
CAMP_ANNOUNCEMENTS = "CAMP_ANNOUNCEMENTS"

KM_PER_DEGREE_LATITUDE = 111.32


def bounding_box(latitude: float, longitude: float, radius_km: float):
    """
    Latitude/longitude ranges enclosing a circle of ``radius_km``.

    The longitude range is None when the box would cross a pole or the
    antimeridian; callers then filter on latitude only.
    """
    lat_delta = radius_km / KM_PER_DEGREE_LATITUDE
    min_lat, max_lat = latitude - lat_delta, latitude + lat_delta

    cos_lat = math.cos(math.radians(latitude))
    if min_lat <= -90 or max_lat >= 90 or cos_lat <= 0:
        return (max(min_lat, -90.0), min(max_lat, 90.0)), None

    lon_delta = radius_km / (KM_PER_DEGREE_LATITUDE * cos_lat)
    min_lon, max_lon = longitude - lon_delta, longitude + lon_delta
    if min_lon < -180 or max_lon > 180:
        return (min_lat, max_lat), None

    return (min_lat, max_lat), (min_lon, max_lon)


async def find_donors_near(
    db: AsyncSession,
    latitude: float,
    longitude: float,
    radius_km: float,
    preference_type: str
) -> List[Dict[str, Any]]:
    """
    Active donors opted in to ``preference_type`` within ``radius_km``.

    Returns recipient dicts (id, email, phone, distanceKm) nearest first.
    """
    (min_lat, max_lat), lon_range = bounding_box(latitude, longitude, radius_km)

    query = (
        select(Donor)
        .join(DonorNotificationPreference, DonorNotificationPreference.donor_id == Donor.id)
        .where(
            Donor.donor_status == DonorStatus.ACTIVE,
            DonorNotificationPreference.type == preference_type,
            DonorNotificationPreference.enabled.is_(True),
            Donor.latitude.is_not(None),
            Donor.longitude.is_not(None),
            Donor.latitude.between(min_lat, max_lat)
        )
    )
    if lon_range is not None:
        query = query.where(Donor.longitude.between(*lon_range))

    result = await db.execute(query)
    candidates = result.scalars().unique().all()

    nearby = []
    for donor in candidates:
        distance = geodesic((latitude, longitude), (donor.latitude, donor.longitude)).km
        if distance <= radius_km:
            nearby.append((distance, donor))

    nearby.sort(key=lambda item: item[0])
    logger.info(
        "Nearby donors located",
        candidates=len(candidates),
        matched=len(nearby),
        radius_km=radius_km,
        preference_type=preference_type
    )
    return [
        {
            "id": donor.id,
            "email": donor.email,
            "phone": donor.phone,
            "distanceKm": round(distance, 3)
        }
        for distance, donor in nearby
    ]


async def find_camp_announcement_recipients(db: AsyncSession, facility: Facility) -> List[Dict[str, Any]]:
    """Donors to tell about a new camp."""
    return await find_donors_near(
        db,
        facility.latitude,
        facility.longitude,
        CAMP_ANNOUNCEMENT_RADIUS_KM,
        CAMP_ANNOUNCEMENTS
    )
