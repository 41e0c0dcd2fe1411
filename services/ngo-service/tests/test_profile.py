import json

import pytest

from ngo_service.models.database import NGO

API = "/api/v1/ngo/profile"


@pytest.mark.asyncio
async def test_get_profile_is_redacted(client, create_ngo, auth_headers):
    ngo = await create_ngo(email="profile@example.org")

    response = await client.get(API, headers=auth_headers(ngo))

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "NGO profile fetched successfully"
    data = body["data"]
    assert data["id"] == ngo.id
    assert data["email"] == "profile@example.org"
    assert data["contactPerson"]["name"] == "Asha Rao"
    for secret in ("passwordHash", "refreshToken", "verificationOtpHash"):
        assert secret not in data


@pytest.mark.asyncio
async def test_update_profile_merges_nested_fields(client, create_ngo, auth_headers, fetch):
    ngo = await create_ngo()

    response = await client.patch(
        API,
        json={
            "name": "Helping Hands Foundation",
            "contactPerson": {"name": "Ravi Kumar", "phone": "+919822222222", "email": "ravi@example.org"},
            "address": {"city": "Mumbai"},
            "operatingHours": {"monday": "09:00-17:00"}
        },
        headers=auth_headers(ngo)
    )

    assert response.status_code == 200
    assert response.json()["message"] == "NGO profile updated successfully"
    stored = await fetch(NGO, ngo.id)
    assert stored.name == "Helping Hands Foundation"
    assert stored.contact_person == {"name": "Ravi Kumar", "phone": "+919822222222", "email": "ravi@example.org"}
    assert stored.address == {"city": "Mumbai"}
    assert stored.operating_hours == {"monday": "09:00-17:00"}


@pytest.mark.asyncio
async def test_update_profile_ignores_protected_fields(client, create_ngo, auth_headers, fetch):
    ngo = await create_ngo(email="fixed@example.org")

    response = await client.patch(
        API,
        json={"email": "changed@example.org", "status": "BLACKLISTED", "password": "new-password-1"},
        headers=auth_headers(ngo)
    )

    assert response.status_code == 200
    stored = await fetch(NGO, ngo.id)
    assert stored.email == "fixed@example.org"
    assert stored.status == ngo.status
    assert stored.password_hash == ngo.password_hash


@pytest.mark.asyncio
async def test_update_profile_replaces_logo(client, create_ngo, auth_headers, fetch):
    ngo = await create_ngo()

    response = await client.patch(
        API,
        data={"organizationType": "Society", "address": json.dumps({"city": "Nagpur"})},
        files={"logo": ("logo.png", b"\x89PNG", "image/png")},
        headers=auth_headers(ngo)
    )

    assert response.status_code == 200
    stored = await fetch(NGO, ngo.id)
    assert stored.organization_type == "Society"
    assert stored.address == {"city": "Nagpur"}
    assert stored.documents["logo"].startswith("http://files.test/ngo-documents/logo/")
    assert response.json()["data"]["documents"]["logo"] == stored.documents["logo"]


@pytest.mark.asyncio
async def test_update_profile_rejects_blank_name(client, create_ngo, auth_headers):
    ngo = await create_ngo()

    response = await client.patch(API, json={"name": "   "}, headers=auth_headers(ngo))

    assert response.status_code == 400
    assert response.json()["message"] == "NGO name cannot be empty"


@pytest.mark.asyncio
async def test_update_profile_merges_partial_contact_person(client, create_ngo, auth_headers, fetch):
    ngo = await create_ngo()

    response = await client.patch(
        API,
        json={"contactPerson": {"phone": "+919822222222"}},
        headers=auth_headers(ngo)
    )

    assert response.status_code == 200
    assert response.json()["data"]["contactPerson"] == {"name": "Asha Rao", "phone": "+919822222222"}
    stored = await fetch(NGO, ngo.id)
    assert stored.contact_person == {"name": "Asha Rao", "phone": "+919822222222"}


@pytest.mark.asyncio
async def test_update_profile_rejects_blank_contact_name(client, create_ngo, auth_headers, fetch):
    ngo = await create_ngo()

    response = await client.patch(API, json={"contactPerson": {"name": " "}}, headers=auth_headers(ngo))

    assert response.status_code == 400
    assert response.json()["message"] == "Contact person details required"
    stored = await fetch(NGO, ngo.id)
    assert stored.contact_person["name"] == "Asha Rao"
