"""Repository and collaborator protocol interfaces for dependency injection.

These protocols define the contracts that concrete implementations
(InMemory for local dev, Supabase for non-local) must satisfy. Each share
component receives only the narrow interfaces it needs; there is no
shared, all-powerful data client.

Health records are plain dict rows. Every record row carries ``id`` and
``profile_id``.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from .sharing.model import ShareAccessEvent, ShareGrant


# ── Health-record collaborators (read-only) ──────────────────────────


@runtime_checkable
class ProfileStore(Protocol):
    async def get(self, profile_id: str) -> dict[str, Any] | None: ...


@runtime_checkable
class DocumentStore(Protocol):
    async def get_by_ids(self, ids: Iterable[str]) -> list[dict[str, Any]]: ...
    async def by_profile(self, profile_id: str, limit: int) -> list[dict[str, Any]]: ...


@runtime_checkable
class VitalStore(Protocol):
    async def get_by_ids(self, ids: Iterable[str]) -> list[dict[str, Any]]: ...
    async def recent(self, profile_id: str, limit: int) -> list[dict[str, Any]]: ...


@runtime_checkable
class MedicationStore(Protocol):
    async def active(self, profile_id: str) -> list[dict[str, Any]]: ...


@runtime_checkable
class LabStore(Protocol):
    async def get_by_ids(self, ids: Iterable[str]) -> list[dict[str, Any]]: ...
    async def by_profile(self, profile_id: str, limit: int) -> list[dict[str, Any]]: ...


# ── Ownership / notification ─────────────────────────────────────────


@runtime_checkable
class ProfileOwnership(Protocol):
    """Delegated check that a user may share a profile."""

    async def owns_profile(self, user_id: str, profile_id: str) -> bool: ...


@runtime_checkable
class Notifier(Protocol):
    """Fire-and-forget message delivery. Callers log and swallow failures."""

    async def send(self, recipient: str, subject: str, body: str) -> None: ...


# ── Grant storage (read/write, owned by the share core) ──────────────


@runtime_checkable
class GrantStore(Protocol):
    """Durable share-grant and access-event storage.

    ``conditional_increment`` must be a single atomic operation: it bumps
    ``view_count`` and sets ``last_accessed_at`` only if the grant is still
    active, unexpired at ``now``, and under ``max_views``. It returns the
    updated grant, or None when the guard no longer holds.
    """

    async def get(self, token: str) -> ShareGrant | None: ...
    async def get_by_id(self, grant_id: str) -> ShareGrant | None: ...
    async def create(self, grant: ShareGrant) -> ShareGrant: ...
    async def conditional_increment(
        self, grant_id: str, *, now: datetime,
    ) -> ShareGrant | None: ...
    async def deactivate(self, grant_id: str) -> ShareGrant | None: ...
    async def append_event(self, event: ShareAccessEvent) -> ShareAccessEvent: ...
    async def list_for_profile(self, profile_id: str) -> list[ShareGrant]: ...
    async def list_events(
        self, grant_id: str, limit: int = 100,
    ) -> list[ShareAccessEvent]: ...
