"""Side-effect-free share token validation.

Checks run in a fixed order and the first failure decides the reason:

  1. token unknown        -> NotFound
  2. is_active is False   -> Deactivated
  3. now > expires_at     -> Expired
  4. view cap reached     -> ViewLimitReached

Expiry is evaluated lazily on every call; no background sweep is needed.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from .errors import (
    AccessDenied,
    DeactivatedError,
    ExpiredError,
    NotFoundError,
    ViewLimitError,
)
from .model import GrantState, ShareGrant, grant_state, utcnow

if TYPE_CHECKING:
    from ..protocols import GrantStore


class DenialReason(str, Enum):
    NOT_FOUND = 'not_found'
    DEACTIVATED = 'deactivated'
    EXPIRED = 'expired'
    VIEW_LIMIT_REACHED = 'view_limit_reached'

    def to_error(self) -> AccessDenied:
        return _ERRORS[self]()


_ERRORS: dict[DenialReason, type[AccessDenied]] = {
    DenialReason.NOT_FOUND: NotFoundError,
    DenialReason.DEACTIVATED: DeactivatedError,
    DenialReason.EXPIRED: ExpiredError,
    DenialReason.VIEW_LIMIT_REACHED: ViewLimitError,
}

_STATE_REASONS: dict[GrantState, DenialReason] = {
    GrantState.DEACTIVATED: DenialReason.DEACTIVATED,
    GrantState.EXPIRED: DenialReason.EXPIRED,
    GrantState.LIMIT_REACHED: DenialReason.VIEW_LIMIT_REACHED,
}


@dataclass(frozen=True, slots=True)
class ValidatedGrant:
    grant: ShareGrant
    checked_at: datetime


@dataclass(frozen=True, slots=True)
class Denial:
    reason: DenialReason

    def to_error(self) -> AccessDenied:
        return self.reason.to_error()


class LinkValidator:
    """Decides whether a token currently permits access. Never writes."""

    def __init__(
        self,
        grant_store: GrantStore,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._grants = grant_store
        self._clock = clock

    async def validate(self, token: str) -> ValidatedGrant | Denial:
        if not token:
            return Denial(DenialReason.NOT_FOUND)

        grant = await self._grants.get(token)
        if grant is None:
            return Denial(DenialReason.NOT_FOUND)

        now = self._clock()
        state = grant_state(grant, now)
        if state is not GrantState.ACTIVE:
            return Denial(_STATE_REASONS[state])
        return ValidatedGrant(grant=grant, checked_at=now)
