import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
import os
import sys

# Add the service directory to the Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from ngo_service.core.config import settings
from ngo_service.core.security import create_access_token, get_password_hash
from ngo_service.main import app
from ngo_service.models.database import (
    Base,
    BloodRequest,
    Donor,
    DonorNotificationPreference,
    Hospital,
    NGO,
    get_db
)
from ngo_service.models.ngo_models import BloodRequestStatus, DonorStatus, NGOStatus
from ngo_service.services.donor_locator import CAMP_ANNOUNCEMENTS
from ngo_service.services.notifications import NotificationDispatcher, get_notification_dispatcher
from ngo_service.services.storage import FileStorage, get_file_storage

TEST_PASSWORD = "password123"

# Central Pune
CAMP_LATITUDE = 18.5204
CAMP_LONGITUDE = 73.8567


class FakeNotificationClient:
    """Stands in for NotificationClient and records what would have been sent."""

    def __init__(self):
        self.single_calls = []
        self.bulk_calls = []
        self.error = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False

    async def send_notification(self, recipient, subject, body):
        if self.error:
            raise self.error
        self.single_calls.append({"recipient": recipient, "subject": subject, "body": body})
        return {}

    async def send_bulk_notifications(self, recipients, template_key, payload):
        if self.error:
            raise self.error
        self.bulk_calls.append({"recipients": recipients, "template_key": template_key, "payload": payload})
        return {}


@pytest.fixture
async def test_engine(tmp_path):
    """Create a fresh test database per test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        future=True
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


@pytest.fixture
async def test_session(session_factory):
    """Create test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def notification_client():
    return FakeNotificationClient()


@pytest.fixture
def dispatcher(session_factory, notification_client):
    return NotificationDispatcher(
        session_factory=session_factory,
        client_factory=lambda: notification_client
    )


@pytest.fixture
def storage(tmp_path):
    return FileStorage(root=str(tmp_path / "uploads"), base_url="http://files.test")


@pytest.fixture(autouse=True)
def override_settings():
    """Override settings for testing."""
    settings.SECRET_KEY = "test_secret_key"
    settings.REFRESH_SECRET_KEY = "test_refresh_secret_key"
    settings.NOTIFICATION_SERVICE_URL = "http://notifications.test"
    settings.DEBUG = True


@pytest.fixture
async def client(session_factory, dispatcher, storage):
    """HTTP client against the app, wired to the test database."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_file_storage] = lambda: storage

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http_client:
        yield http_client

    app.dependency_overrides.clear()


@pytest.fixture
def create_ngo(test_session):
    """Factory inserting an NGO straight into the database."""
    counter = {"n": 0}

    async def _create(status=NGOStatus.ACTIVE, email=None, password=TEST_PASSWORD, name="Helping Hands"):
        counter["n"] += 1
        ngo = NGO(
            name=name,
            email=email or f"ngo{counter['n']}@example.org",
            password_hash=get_password_hash(password),
            contact_person={"name": "Asha Rao", "phone": "+919800000000"},
            reg_number=f"REG-{counter['n']:04d}",
            status=status,
            documents={}
        )
        test_session.add(ngo)
        await test_session.commit()
        return ngo

    return _create


@pytest.fixture
def auth_headers():
    def _headers(ngo):
        return {"Authorization": f"Bearer {create_access_token(ngo.id)}"}
    return _headers


@pytest.fixture
def create_donor(test_session):
    """Factory inserting a donor, opted in to camp announcements by default."""

    async def _create(latitude, longitude, status=DonorStatus.ACTIVE, opted_in=True, name="Donor"):
        donor = Donor(
            name=name,
            email=f"{name.lower().replace(' ', '.')}@example.org",
            phone="+919811111111",
            donor_status=status,
            latitude=latitude,
            longitude=longitude
        )
        donor.notification_preferences.append(
            DonorNotificationPreference(type=CAMP_ANNOUNCEMENTS, enabled=opted_in)
        )
        test_session.add(donor)
        await test_session.commit()
        return donor

    return _create


@pytest.fixture
def create_blood_request(test_session):
    """Factory inserting a hospital blood request."""

    async def _create(status=BloodRequestStatus.PENDING):
        hospital = Hospital(
            name="City Hospital",
            address={"city": "Pune"},
            contact_info={"phone": "+912000000000"}
        )
        blood_request = BloodRequest(
            hospital=hospital,
            blood_group="O+",
            units_required=3,
            urgency="HIGH",
            status=status
        )
        test_session.add(blood_request)
        await test_session.commit()
        return blood_request

    return _create


@pytest.fixture
def count_rows(session_factory):
    """Count rows of a model in a fresh session, optionally filtered."""

    async def _count(model, *criteria):
        async with session_factory() as session:
            result = await session.execute(select(func.count()).select_from(model).where(*criteria))
            return result.scalar()

    return _count


@pytest.fixture
def fetch(session_factory):
    """Load one row by primary key in a fresh session."""

    async def _fetch(model, ident):
        async with session_factory() as session:
            return await session.get(model, ident)

    return _fetch
