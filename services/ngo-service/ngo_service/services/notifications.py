import httpx
from typing import Dict, List, Any, Optional
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential
from fastapi import BackgroundTasks
from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession
import structlog
from datetime import datetime

from ..core.config import settings
from ..models.database import NotificationLog, get_db_session
from ..models.ngo_models import NotificationStatus
from ..utils.monitoring import track_notification

logger = structlog.get_logger()

SINGLE = "SINGLE"
BULK = "BULK"


class NotificationClient:
    """Client for the platform notification service."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = settings.NOTIFICATION_SERVICE_URL
        self.api_key = settings.NOTIFICATION_API_KEY
        self.transport = transport
        self.session: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        """Async context manager entry."""
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json"
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        self.session = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=settings.NOTIFICATION_TIMEOUT,
            headers=headers,
            transport=self.transport
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self.session:
            await self.session.aclose()

    async def test_connection(self) -> bool:
        """Test connection to the notification service."""
        try:
            response = await self.session.get("/health")
            if response.status_code == 200:
                return True
            logger.error("Notification service unhealthy", status_code=response.status_code)
            return False
        except httpx.HTTPError as e:
            logger.error("Notification service connection error", error=str(e))
            return False

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(settings.MAX_RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=settings.RETRY_DELAY, max=10),
        reraise=True
    )
    async def send_notification(self, recipient: str, subject: str, body: str) -> Dict[str, Any]:
        """Send one notification to a single recipient."""
        response = await self.session.post(
            "/notifications",
            json={"recipient": recipient, "subject": subject, "body": body}
        )
        response.raise_for_status()
        return response.json() if response.content else {}

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(settings.MAX_RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=settings.RETRY_DELAY, max=10),
        reraise=True
    )
    async def send_bulk_notifications(
        self,
        recipients: List[Dict[str, Any]],
        template_key: str,
        payload: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Send one templated notification to many recipients."""
        response = await self.session.post(
            "/notifications/bulk",
            json=jsonable_encoder({
                "recipients": recipients,
                "templateKey": template_key,
                "payload": payload
            })
        )
        response.raise_for_status()
        return response.json() if response.content else {}


class NotificationDispatcher:
    """
    Queues notifications and delivers them after the response is sent.

    Every dispatch gets a ``notification_logs`` row. The row is written as
    QUEUED inside the caller's transaction and updated to SENT, FAILED or
    SKIPPED by the background delivery, which is where delivery failures are
    recorded and logged.
    """

    def __init__(self, session_factory=None, client_factory=NotificationClient):
        self.session_factory = session_factory
        self.client_factory = client_factory

    async def dispatch_bulk(
        self,
        db: AsyncSession,
        background_tasks: BackgroundTasks,
        recipients: List[Dict[str, Any]],
        template_key: str,
        payload: Dict[str, Any]
    ) -> NotificationLog:
        log = await self._queue(db, BULK, template_key, len(recipients))
        background_tasks.add_task(self.deliver_bulk, log.id, recipients, template_key, payload)
        return log

    async def dispatch_single(
        self,
        db: AsyncSession,
        background_tasks: BackgroundTasks,
        recipient: str,
        subject: str,
        body: str
    ) -> NotificationLog:
        log = await self._queue(db, SINGLE, subject, 1)
        background_tasks.add_task(self.deliver_single, log.id, recipient, subject, body)
        return log

    async def deliver_bulk(
        self,
        log_id: str,
        recipients: List[Dict[str, Any]],
        template_key: str,
        payload: Dict[str, Any]
    ) -> NotificationStatus:
        """Background task delivering a bulk notification."""
        if not recipients:
            return await self._finish(log_id, BULK, NotificationStatus.SKIPPED)

        try:
            async with self.client_factory() as client:
                await client.send_bulk_notifications(recipients, template_key, payload)
        except Exception as e:
            logger.error(
                "Bulk notification failed",
                log_id=log_id,
                template_key=template_key,
                recipients=len(recipients),
                error=str(e)
            )
            return await self._finish(log_id, BULK, NotificationStatus.FAILED, str(e))

        logger.info("Bulk notification sent", log_id=log_id, template_key=template_key, recipients=len(recipients))
        return await self._finish(log_id, BULK, NotificationStatus.SENT)

    async def deliver_single(self, log_id: str, recipient: str, subject: str, body: str) -> NotificationStatus:
        """Background task delivering a single notification."""
        try:
            async with self.client_factory() as client:
                await client.send_notification(recipient, subject, body)
        except Exception as e:
            logger.error("Notification failed", log_id=log_id, subject=subject, error=str(e))
            return await self._finish(log_id, SINGLE, NotificationStatus.FAILED, str(e))

        logger.info("Notification sent", log_id=log_id, subject=subject)
        return await self._finish(log_id, SINGLE, NotificationStatus.SENT)

    async def _queue(self, db: AsyncSession, kind: str, template_key: str, recipient_count: int) -> NotificationLog:
        log = NotificationLog(
            kind=kind,
            template_key=template_key,
            recipient_count=recipient_count,
            status=NotificationStatus.QUEUED
        )
        db.add(log)
        await db.flush()
        return log

    async def _finish(
        self,
        log_id: str,
        kind: str,
        status: NotificationStatus,
        error_message: Optional[str] = None
    ) -> NotificationStatus:
        track_notification(kind, status.value)

        async with get_db_session(self.session_factory) as db:
            log = await db.get(NotificationLog, log_id)
            if log is None:
                logger.warning("Notification log missing", log_id=log_id, status=status.value)
                return status

            log.status = status
            log.error_message = error_message
            log.completed_at = datetime.utcnow()
            await db.commit()

        return status


def get_notification_dispatcher() -> NotificationDispatcher:
    """Notification dispatcher dependency for FastAPI."""
    return NotificationDispatcher()
