"""In-memory repository implementations for local development and tests.

These are used when ENVIRONMENT=local. They satisfy the protocol interfaces
but store everything in dicts (no persistence across restarts).
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime
from typing import Any

from .sharing.model import ShareAccessEvent, ShareGrant, hash_token


class _InMemoryRecords:
    """Dict-backed record table sorted newest-first on ``order_field``."""

    order_field = 'created_at'

    def __init__(self, records: Iterable[dict[str, Any]] = ()) -> None:
        self._records: dict[str, dict[str, Any]] = {}
        for record in records:
            self.add(record)

    def add(self, record: dict[str, Any]) -> dict[str, Any]:
        self._records[record['id']] = dict(record)
        return record

    async def get_by_ids(self, ids: Iterable[str]) -> list[dict[str, Any]]:
        rows = [dict(self._records[i]) for i in set(ids) if i in self._records]
        rows.sort(key=lambda r: str(r.get(self.order_field, '')), reverse=True)
        return rows

    def _for_profile(self, profile_id: str) -> list[dict[str, Any]]:
        rows = [
            dict(r) for r in self._records.values()
            if r.get('profile_id') == profile_id
        ]
        rows.sort(key=lambda r: str(r.get(self.order_field, '')), reverse=True)
        return rows

    async def by_profile(self, profile_id: str, limit: int) -> list[dict[str, Any]]:
        return self._for_profile(profile_id)[:limit]


class InMemoryDocumentStore(_InMemoryRecords):
    order_field = 'created_at'


class InMemoryLabStore(_InMemoryRecords):
    order_field = 'test_date'


class InMemoryVitalStore(_InMemoryRecords):
    order_field = 'measured_at'

    async def recent(self, profile_id: str, limit: int) -> list[dict[str, Any]]:
        return await self.by_profile(profile_id, limit)


class InMemoryMedicationStore(_InMemoryRecords):
    order_field = 'start_date'

    async def active(self, profile_id: str) -> list[dict[str, Any]]:
        return [r for r in self._for_profile(profile_id) if r.get('is_active', True)]


class InMemoryProfileStore:
    def __init__(self, profiles: Iterable[dict[str, Any]] = ()) -> None:
        self._profiles = {p['id']: dict(p) for p in profiles}

    def add(self, profile: dict[str, Any]) -> dict[str, Any]:
        self._profiles[profile['id']] = dict(profile)
        return profile

    async def get(self, profile_id: str) -> dict[str, Any] | None:
        profile = self._profiles.get(profile_id)
        return dict(profile) if profile else None


class InMemoryProfileOwnership:
    def __init__(self, owners: dict[str, str] | None = None) -> None:
        # profile_id -> owner user_id
        self._owners: dict[str, str] = dict(owners or {})

    def grant(self, user_id: str, profile_id: str) -> None:
        self._owners[profile_id] = user_id

    async def owns_profile(self, user_id: str, profile_id: str) -> bool:
        return self._owners.get(profile_id) == user_id


class InMemoryNotifier:
    def __init__(self) -> None:
        self.sent: list[dict[str, str]] = []

    async def send(self, recipient: str, subject: str, body: str) -> None:
        self.sent.append({'recipient': recipient, 'subject': subject, 'body': body})


class InMemoryGrantStore:
    """Grant store keyed by id and token hash.

    Reads return copies so callers never hold a live reference to stored
    state. Every mutation runs under one lock, which makes
    ``conditional_increment`` atomic with respect to other coroutines.
    """

    def __init__(self) -> None:
        self._grants: dict[str, ShareGrant] = {}
        self._by_hash: dict[str, str] = {}
        self._events: list[ShareAccessEvent] = []
        self._lock = asyncio.Lock()

    async def get(self, token: str) -> ShareGrant | None:
        grant_id = self._by_hash.get(hash_token(token))
        if grant_id is None:
            return None
        return replace(self._grants[grant_id])

    async def get_by_id(self, grant_id: str) -> ShareGrant | None:
        grant = self._grants.get(grant_id)
        return replace(grant) if grant else None

    async def create(self, grant: ShareGrant) -> ShareGrant:
        async with self._lock:
            if grant.token_hash in self._by_hash:
                raise ValueError('token hash collision')
            self._grants[grant.id] = replace(grant)
            self._by_hash[grant.token_hash] = grant.id
        return replace(grant)

    async def conditional_increment(
        self, grant_id: str, *, now: datetime,
    ) -> ShareGrant | None:
        async with self._lock:
            grant = self._grants.get(grant_id)
            if grant is None or not grant.is_active or grant.is_expired(now):
                return None
            if grant.is_exhausted:
                return None
            grant.view_count += 1
            grant.last_accessed_at = now
            return replace(grant)

    async def deactivate(self, grant_id: str) -> ShareGrant | None:
        async with self._lock:
            grant = self._grants.get(grant_id)
            if grant is None:
                return None
            grant.is_active = False
            return replace(grant)

    async def append_event(self, event: ShareAccessEvent) -> ShareAccessEvent:
        stored = replace(event, id=event.id or f'evt_{uuid.uuid4().hex[:12]}')
        self._events.append(stored)
        return stored

    async def list_for_profile(self, profile_id: str) -> list[ShareGrant]:
        grants = [
            replace(g) for g in self._grants.values()
            if g.owner_profile_id == profile_id
        ]
        return sorted(grants, key=lambda g: g.created_at, reverse=True)

    async def list_events(
        self, grant_id: str, limit: int = 100,
    ) -> list[ShareAccessEvent]:
        matching = [e for e in self._events if e.grant_id == grant_id]
        matching.sort(key=lambda e: e.accessed_at, reverse=True)
        return matching[:limit]

    @property
    def events(self) -> list[ShareAccessEvent]:
        """Access all events (for testing assertions)."""
        return list(self._events)
