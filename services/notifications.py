"""
Notifications: a queue table plus a WhatsApp Business API client.

Services queue rows in ``notification_logs``; the scheduler dispatches
pending WhatsApp rows in batches. Push rows are read by the guide app and
are only marked, never sent from here.
"""

import httpx
import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import ExternalServiceError
from models.base import NotificationChannel, NotificationStatus
from models.organization import NotificationLog

logger = logging.getLogger(__name__)


class WhatsAppClient:
    """
    Minimal client for a WhatsApp Business messages endpoint.

    Attributes:
        base_url: API root; messages are posted to ``{base_url}/messages``
        token: Bearer token
        timeout: Request timeout in seconds
        max_retries: Attempts for server errors and timeouts (default: 3)
        retry_delay: Initial retry delay in seconds, doubled per attempt
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: float = 1.0,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.base_url = (base_url or settings.WHATSAPP_API_URL or "").rstrip("/")
        self.token = token or settings.WHATSAPP_API_TOKEN
        self.timeout = timeout or settings.WHATSAPP_TIMEOUT_SECONDS
        self.max_retries = max_retries or settings.MAX_RETRIES
        self.retry_delay = retry_delay
        self._client = http_client

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.token)

    async def send_message(self, phone: str, text: str) -> Dict[str, Any]:
        """
        Send a text message, returning the decoded response body.

        Raises:
            ExternalServiceError: Auth failure, client error, or retries exhausted
        """
        if not self.configured:
            raise ExternalServiceError(
                "WhatsApp API is not configured",
                context={"service": "whatsapp"},
            )

        url = f"{self.base_url}/messages"
        headers = {"Authorization": f"Bearer {self.token}"}
        payload = {
            "messaging_product": "whatsapp",
            "to": phone,
            "type": "text",
            "text": {"body": text},
        }

        if self._client is not None:
            return await self._post_with_retry(self._client, url, headers, payload)
        async with httpx.AsyncClient() as client:
            return await self._post_with_retry(client, url, headers, payload)

    async def _post_with_retry(
        self,
        client: httpx.AsyncClient,
        url: str,
        headers: Dict[str, str],
        payload: Dict[str, Any]
    ) -> Dict[str, Any]:
        last_exception: Optional[Exception] = None

        for attempt in range(self.max_retries):
            try:
                logger.debug(f"WhatsApp send attempt {attempt + 1}/{self.max_retries}")
                response = await client.post(url, headers=headers, json=payload, timeout=self.timeout)
            except (httpx.TimeoutException, httpx.NetworkError) as e:
                last_exception = e
                if attempt < self.max_retries - 1:
                    delay = self.retry_delay * (2 ** attempt)
                    logger.warning(f"WhatsApp request failed ({type(e).__name__}). Retrying in {delay} seconds")
                    await asyncio.sleep(delay)
                    continue
                raise ExternalServiceError(
                    f"WhatsApp request failed after {self.max_retries} retries",
                    context={"service": "whatsapp", "retry_count": attempt + 1},
                    original_exception=e,
                ) from e

            if response.status_code in (401, 403):
                raise ExternalServiceError(
                    "WhatsApp authentication failed",
                    context={"service": "whatsapp", "status_code": response.status_code},
                )

            if response.status_code >= 500:
                if attempt < self.max_retries - 1:
                    delay = self.retry_delay * (2 ** attempt)
                    logger.warning(
                        f"WhatsApp server error {response.status_code}. "
                        f"Retrying in {delay} seconds (attempt {attempt + 1}/{self.max_retries})"
                    )
                    await asyncio.sleep(delay)
                    continue
                raise ExternalServiceError(
                    f"WhatsApp server error after {self.max_retries} retries",
                    context={
                        "service": "whatsapp",
                        "status_code": response.status_code,
                        "retry_count": attempt + 1,
                        "response_body": response.text[:500],
                    },
                )

            if response.status_code >= 400:
                raise ExternalServiceError(
                    f"WhatsApp rejected message: {response.status_code}",
                    context={
                        "service": "whatsapp",
                        "status_code": response.status_code,
                        "response_body": response.text[:500],
                    },
                )

            return response.json() if response.content else {}

        raise ExternalServiceError(
            "Max retries exceeded",
            context={"service": "whatsapp"},
            original_exception=last_exception,
        )


async def queue_notification(
    db: AsyncSession,
    user_id: str,
    body: str,
    subject: Optional[str] = None,
    channel: NotificationChannel = NotificationChannel.PUSH,
    recipient: Optional[str] = None,
    entity_type: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    commit: bool = True
) -> NotificationLog:
    """Insert a pending notification row."""
    log = NotificationLog(
        user_id=user_id,
        channel=NotificationChannel(channel).value,
        recipient=recipient,
        subject=subject,
        body=body,
        status=NotificationStatus.PENDING.value,
        entity_type=entity_type,
        extra_metadata=metadata or {},
    )
    db.add(log)
    if commit:
        await db.commit()
    else:
        await db.flush()
    return log


async def dispatch_pending(
    db: AsyncSession,
    client: WhatsAppClient,
    limit: Optional[int] = None
) -> Dict[str, int]:
    """
    Send pending WhatsApp notifications, oldest first.

    Returns:
        Counts of ``sent`` and ``failed`` rows
    """
    limit = limit or settings.NOTIFICATION_BATCH_SIZE
    stmt = (
        select(NotificationLog)
        .where(
            NotificationLog.status == NotificationStatus.PENDING.value,
            NotificationLog.channel == NotificationChannel.WHATSAPP.value,
        )
        .order_by(NotificationLog.created_at.asc())
        .limit(limit)
    )
    rows = (await db.execute(stmt)).scalars().all()

    counts = {"sent": 0, "failed": 0}
    for log in rows:
        log.attempts = (log.attempts or 0) + 1
        if not log.recipient:
            log.status = NotificationStatus.FAILED.value
            log.error_message = "No recipient"
            counts["failed"] += 1
            continue

        text = f"*{log.subject}*\n{log.body}" if log.subject else log.body
        try:
            await client.send_message(log.recipient, text)
        except ExternalServiceError as e:
            logger.error(f"Notification {log.id} failed: {e}")
            log.status = NotificationStatus.FAILED.value
            log.error_message = e.message
            counts["failed"] += 1
        else:
            log.status = NotificationStatus.SENT.value
            log.sent_at = datetime.utcnow()
            log.error_message = None
            counts["sent"] += 1

    await db.commit()
    if rows:
        logger.info(f"Dispatched notifications: sent={counts['sent']}, failed={counts['failed']}")
    return counts
