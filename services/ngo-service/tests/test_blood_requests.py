import pytest
from sqlalchemy import select

from ngo_service.models.database import Activity, BloodRequest, BloodRequestEvent
from ngo_service.models.ngo_models import BloodRequestStatus

API = "/api/v1/ngo/blood-requests"


@pytest.mark.asyncio
async def test_accept_request_assigns_donors(
    client, create_ngo, create_donor, create_blood_request, auth_headers, fetch, count_rows
):
    ngo = await create_ngo()
    donor = await create_donor(18.52, 73.85)
    blood_request = await create_blood_request()

    response = await client.post(
        f"{API}/{blood_request.id}",
        json={"action": "ACCEPTED", "notes": "Two donors on the way", "assignedDonors": [donor.id, donor.id]},
        headers=auth_headers(ngo)
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Request handled successfully"
    data = body["data"]
    assert data["status"] == "ACCEPTED"
    assert data["assignedDonors"] == [donor.id]
    assert data["hospital"]["name"] == "City Hospital"
    assert data["hospital"]["contactInfo"] == {"phone": "+912000000000"}
    assert len(data["history"]) == 1
    event = data["history"][0]
    assert event["fromStatus"] == "PENDING"
    assert event["toStatus"] == "ACCEPTED"
    assert event["actorId"] == ngo.id
    assert event["notes"] == "Two donors on the way"

    stored = await fetch(BloodRequest, blood_request.id)
    assert stored.status == BloodRequestStatus.ACCEPTED
    assert await count_rows(Activity, Activity.type == "BLOOD_REQUEST_ACCEPTED") == 1


@pytest.mark.asyncio
async def test_request_moves_through_workflow(client, create_ngo, create_blood_request, auth_headers, session_factory):
    ngo = await create_ngo()
    blood_request = await create_blood_request()

    for action in ("ACCEPTED", "IN_PROGRESS", "COMPLETED"):
        response = await client.post(f"{API}/{blood_request.id}", json={"action": action}, headers=auth_headers(ngo))
        assert response.status_code == 200
        assert response.json()["data"]["status"] == action

    async with session_factory() as session:
        result = await session.execute(
            select(BloodRequestEvent.to_status)
            .where(BloodRequestEvent.request_id == blood_request.id)
            .order_by(BloodRequestEvent.created_at)
        )
        assert list(result.scalars().all()) == [
            BloodRequestStatus.ACCEPTED,
            BloodRequestStatus.IN_PROGRESS,
            BloodRequestStatus.COMPLETED
        ]


@pytest.mark.asyncio
@pytest.mark.parametrize("current,action", [
    (BloodRequestStatus.PENDING, "COMPLETED"),
    (BloodRequestStatus.REJECTED, "ACCEPTED"),
    (BloodRequestStatus.COMPLETED, "CANCELLED"),
])
async def test_illegal_transition_conflicts(
    client, create_ngo, create_blood_request, auth_headers, fetch, count_rows, current, action
):
    ngo = await create_ngo()
    blood_request = await create_blood_request(status=current)

    response = await client.post(f"{API}/{blood_request.id}", json={"action": action}, headers=auth_headers(ngo))

    assert response.status_code == 409
    assert (await fetch(BloodRequest, blood_request.id)).status == current
    assert await count_rows(BloodRequestEvent) == 0
    assert await count_rows(Activity) == 0


@pytest.mark.asyncio
async def test_unknown_action_is_bad_request(client, create_ngo, create_blood_request, auth_headers):
    ngo = await create_ngo()
    blood_request = await create_blood_request()

    response = await client.post(f"{API}/{blood_request.id}", json={"action": "ESCALATE"}, headers=auth_headers(ngo))

    assert response.status_code == 400
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_unknown_donor_is_bad_request(client, create_ngo, create_blood_request, auth_headers, fetch):
    ngo = await create_ngo()
    blood_request = await create_blood_request()

    response = await client.post(
        f"{API}/{blood_request.id}",
        json={"action": "ACCEPTED", "assignedDonors": ["no-such-donor"]},
        headers=auth_headers(ngo)
    )

    assert response.status_code == 400
    assert "no-such-donor" in response.json()["message"]
    assert (await fetch(BloodRequest, blood_request.id)).status == BloodRequestStatus.PENDING


@pytest.mark.asyncio
async def test_missing_request_not_found(client, create_ngo, auth_headers):
    ngo = await create_ngo()

    response = await client.post(f"{API}/does-not-exist", json={"action": "ACCEPTED"}, headers=auth_headers(ngo))

    assert response.status_code == 404
    assert response.json()["message"] == "Blood request not found"
