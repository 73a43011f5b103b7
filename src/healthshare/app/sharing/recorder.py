"""Atomic view counting and access audit.

The recorder runs only after a complete, successful projection. It asks
the grant store for one conditional increment: the store bumps
``view_count`` only if the grant is still active, unexpired and under its
view cap at the instant of the write. Two requests that both passed
validation with a single view left therefore cannot both be counted; the
loser gets ``granted=False`` and its projection must be thrown away.

Audit append happens after the counter is won. Append failures are
retried and then logged; they never take back a view that was granted.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from healthshare.observability import get_logger
from healthshare.observability.metrics import (
    AUDIT_APPEND_FAILURES_TOTAL,
    VIEW_RACE_LOST_TOTAL,
)

from .audit import RequestMetadata
from .errors import StorageError
from .model import AccessAction, ShareAccessEvent, ShareGrant, utcnow

if TYPE_CHECKING:
    from ..protocols import GrantStore

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RecordOutcome:
    granted: bool
    grant: ShareGrant | None = None
    event: ShareAccessEvent | None = None


class AccessRecorder:
    def __init__(
        self,
        grant_store: GrantStore,
        *,
        retry_backoff_seconds: float = 0.05,
        audit_attempts: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._grants = grant_store
        self._backoff = retry_backoff_seconds
        self._audit_attempts = max(1, audit_attempts)
        self._clock = clock

    async def record(
        self,
        grant: ShareGrant,
        metadata: RequestMetadata,
        action: AccessAction = AccessAction.VIEWED,
    ) -> RecordOutcome:
        """Count one view and append its audit event.

        Raises:
            StorageError: The increment failed twice.
        """
        now = self._clock()
        updated = await self._increment(grant.id, now)
        if updated is None:
            VIEW_RACE_LOST_TOTAL.inc()
            logger.info('share_view_not_counted', grant_id=grant.id)
            return RecordOutcome(granted=False)

        event = await self._append_event(ShareAccessEvent(
            grant_id=grant.id,
            action=action,
            ip_address=metadata.ip_address,
            user_agent=metadata.user_agent,
            accessed_at=now,
        ))
        return RecordOutcome(granted=True, grant=updated, event=event)

    async def _increment(self, grant_id: str, now: datetime) -> ShareGrant | None:
        try:
            return await self._grants.conditional_increment(grant_id, now=now)
        except StorageError:
            logger.warning('share_increment_retry', grant_id=grant_id)
            await asyncio.sleep(self._backoff)
        return await self._grants.conditional_increment(grant_id, now=now)

    async def _append_event(self, event: ShareAccessEvent) -> ShareAccessEvent | None:
        for attempt in range(1, self._audit_attempts + 1):
            try:
                return await self._grants.append_event(event)
            except Exception:
                if attempt == self._audit_attempts:
                    AUDIT_APPEND_FAILURES_TOTAL.inc()
                    logger.exception(
                        'share_audit_append_failed',
                        grant_id=event.grant_id,
                        attempts=attempt,
                    )
                    return None
                await asyncio.sleep(self._backoff * attempt)
        return None
