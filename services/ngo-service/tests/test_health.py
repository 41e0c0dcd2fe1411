import pytest
from httpx import ASGITransport, AsyncClient
from unittest.mock import AsyncMock, patch

from ngo_service.main import app
from ngo_service.models.database import get_db


@pytest.fixture
def mock_session():
    """Database session whose queries succeed unless told otherwise."""
    session = AsyncMock()
    session.execute = AsyncMock()

    async def override_get_db():
        yield session

    app.dependency_overrides[get_db] = override_get_db
    yield session
    app.dependency_overrides.clear()


@pytest.fixture
async def health_client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


def mock_notification_client(mock_client_class, healthy=True):
    mock_client = AsyncMock()
    mock_client_class.return_value.__aenter__.return_value = mock_client
    mock_client.test_connection.return_value = healthy
    return mock_client


@pytest.mark.asyncio
async def test_health_check_success(health_client, mock_session):
    """Test successful health check."""
    with patch('ngo_service.routers.health.NotificationClient') as mock_notifications:
        mock_notification_client(mock_notifications)

        response = await health_client.get("/api/v1/health/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database_status"] == "healthy"
        assert data["notification_status"] == "healthy"
        assert data["uptime_seconds"] >= 0
        assert "version" in data


@pytest.mark.asyncio
async def test_health_check_database_failure(health_client, mock_session):
    """Test health check with database failure."""
    mock_session.execute.side_effect = Exception("Database connection failed")

    with patch('ngo_service.routers.health.NotificationClient') as mock_notifications:
        mock_notification_client(mock_notifications)

        response = await health_client.get("/api/v1/health/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "degraded"
        assert "unhealthy" in data["database_status"]
        assert data["notification_status"] == "healthy"


@pytest.mark.asyncio
async def test_health_check_notification_failure(health_client, mock_session):
    """Test health check with the notification service down."""
    with patch('ngo_service.routers.health.NotificationClient') as mock_notifications:
        mock_notification_client(mock_notifications, healthy=False)

        response = await health_client.get("/api/v1/health/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "degraded"
        assert data["database_status"] == "healthy"
        assert "unhealthy" in data["notification_status"]


@pytest.mark.asyncio
async def test_liveness_check(health_client):
    """Test liveness endpoint."""
    response = await health_client.get("/api/v1/health/live")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "alive"
    assert "timestamp" in data


@pytest.mark.asyncio
async def test_readiness_check_success(health_client, mock_session):
    """Test successful readiness check."""
    response = await health_client.get("/api/v1/health/ready")

    assert response.status_code == 200
    assert response.json()["status"] == "ready"


@pytest.mark.asyncio
async def test_readiness_check_failure(health_client, mock_session):
    """Test readiness check with database failure."""
    mock_session.execute.side_effect = Exception("Database not ready")

    response = await health_client.get("/api/v1/health/ready")

    assert response.status_code == 503
    data = response.json()
    assert data["message"] == "Service not ready"
    assert data["success"] is False


@pytest.mark.asyncio
async def test_get_version(health_client):
    """Test version endpoint."""
    response = await health_client.get("/api/v1/health/version")

    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "NGO Service"
    assert "version" in data
    assert "api_version" in data
    assert "build_time" in data


@pytest.mark.asyncio
async def test_prometheus_exposition(health_client):
    """Request counters show up in the text exposition."""
    await health_client.get("/api/v1/health/live")

    response = await health_client.get("/api/v1/health/prometheus")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "ngo_http_requests_total" in response.text
