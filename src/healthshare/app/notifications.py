"""Share notification delivery.

``HttpNotifier`` posts ``{to, subject, body}`` to an outbound mail relay.
``LoggingNotifier`` is used when no relay is configured: it records that a
notification would have been sent, without the body (it contains the
share link).
"""

from __future__ import annotations

import httpx

from healthshare.observability import get_logger

from .sharing.audit import redact_string

logger = get_logger(__name__)


class NotificationError(Exception):
    """The relay refused or could not be reached."""


class HttpNotifier:
    def __init__(
        self,
        url: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 5.0,
    ) -> None:
        if not url:
            raise ValueError("url is required")
        self._url = url
        self._client = http_client or httpx.AsyncClient()
        self._timeout_seconds = timeout_seconds

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send(self, recipient: str, subject: str, body: str) -> None:
        try:
            resp = await self._client.post(
                self._url,
                json={"to": recipient, "subject": subject, "body": body},
                timeout=self._timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise NotificationError(f"relay unreachable: {type(exc).__name__}") from exc
        if resp.status_code >= 400:
            raise NotificationError(f"relay returned {resp.status_code}")
        logger.info("share_notification_sent", subject=redact_string(subject))


class LoggingNotifier:
    async def send(self, recipient: str, subject: str, body: str) -> None:
        logger.info(
            "share_notification_skipped",
            recipient_domain=recipient.rpartition("@")[2] or "unknown",
            subject=redact_string(subject),
        )
