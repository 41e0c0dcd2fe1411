import pytest

from ngo_service.models.ngo_models import DonorStatus
from ngo_service.services.donor_locator import (
    CAMP_ANNOUNCEMENTS,
    CAMP_ANNOUNCEMENT_RADIUS_KM,
    bounding_box,
    find_donors_near
)

from conftest import CAMP_LATITUDE, CAMP_LONGITUDE


def test_bounding_box_contains_radius():
    (min_lat, max_lat), (min_lon, max_lon) = bounding_box(CAMP_LATITUDE, CAMP_LONGITUDE, 10)

    assert min_lat < CAMP_LATITUDE < max_lat
    assert min_lon < CAMP_LONGITUDE < max_lon
    assert max_lat - min_lat == pytest.approx(20 / 111.32)
    # Degrees of longitude shrink away from the equator.
    assert (max_lon - min_lon) > (max_lat - min_lat)


@pytest.mark.parametrize("latitude,longitude", [
    (89.99, 0.0),
    (0.0, 179.99),
])
def test_bounding_box_drops_longitude_near_pole_and_antimeridian(latitude, longitude):
    _, lon_range = bounding_box(latitude, longitude, 10)

    assert lon_range is None


@pytest.mark.asyncio
async def test_find_donors_near_filters_and_orders(test_session, create_donor):
    inside = await create_donor(CAMP_LATITUDE + 0.05, CAMP_LONGITUDE, name="Inside")
    closest = await create_donor(CAMP_LATITUDE, CAMP_LONGITUDE, name="Closest")
    # About 11 km north-east, inside the bounding box but outside the circle.
    await create_donor(CAMP_LATITUDE + 0.07, CAMP_LONGITUDE + 0.07, name="Corner")
    await create_donor(CAMP_LATITUDE, CAMP_LONGITUDE, status=DonorStatus.DEFERRED, name="Deferred")
    await create_donor(CAMP_LATITUDE, CAMP_LONGITUDE, opted_in=False, name="Opted Out")

    recipients = await find_donors_near(
        test_session,
        CAMP_LATITUDE,
        CAMP_LONGITUDE,
        CAMP_ANNOUNCEMENT_RADIUS_KM,
        CAMP_ANNOUNCEMENTS
    )

    assert [r["id"] for r in recipients] == [closest.id, inside.id]
    assert recipients[0]["distanceKm"] == 0
    assert recipients[1]["distanceKm"] == pytest.approx(5.53, abs=0.05)
    assert recipients[1]["email"] == "inside@example.org"


@pytest.mark.asyncio
async def test_find_donors_near_other_preference(test_session, create_donor):
    await create_donor(CAMP_LATITUDE, CAMP_LONGITUDE)

    recipients = await find_donors_near(test_session, CAMP_LATITUDE, CAMP_LONGITUDE, 10, "URGENT_REQUESTS")

    assert recipients == []
