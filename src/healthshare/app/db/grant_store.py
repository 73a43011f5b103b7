"""Supabase-backed GrantStore implementation.

Persists share grants in ``health.share_grants`` and access events in
``health.share_access_events`` via PostgREST. Schema and functions live
in ``migrations/001_share_links.sql``.

Security invariants:
  - The plaintext token is NEVER stored; only its SHA-256 hash.
  - Access events are insert-only; this store has no update/delete path
    for them.

View counting calls ``health.increment_share_view``, a single guarded
UPDATE ... RETURNING. Postgres serializes concurrent callers on the row
lock, so there is no client-side retry loop: an empty result always means
the guard failed (revoked, expired, exhausted or unknown).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import httpx

from healthshare.app.sharing.errors import StorageError
from healthshare.app.sharing.model import (
    AccessAction,
    AccessLevel,
    Scope,
    ShareAccessEvent,
    ShareGrant,
    hash_token,
)

from .errors import SupabaseError
from .supabase_client import SupabaseClient

INCREMENT_FUNCTION = "health.increment_share_view"


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def grant_to_row(grant: ShareGrant) -> dict[str, Any]:
    return {
        "id": grant.id,
        "token_hash": grant.token_hash,
        "owner_profile_id": grant.owner_profile_id,
        "allowed_scopes": sorted(s.value for s in grant.allowed_scopes),
        "resource_filter": sorted(grant.resource_filter) if grant.resource_filter is not None else None,
        "recipient_name": grant.recipient_name,
        "recipient_email": grant.recipient_email,
        "purpose": grant.purpose,
        "shared_by_name": grant.shared_by_name,
        "access_level": grant.access_level.value,
        "created_by": grant.created_by,
        "created_at": grant.created_at.isoformat(),
        "expires_at": grant.expires_at.isoformat(),
        "max_views": grant.max_views,
        "view_count": grant.view_count,
        "is_active": grant.is_active,
        "last_accessed_at": grant.last_accessed_at.isoformat() if grant.last_accessed_at else None,
    }


def row_to_grant(row: dict[str, Any]) -> ShareGrant:
    resource_filter = row.get("resource_filter")
    return ShareGrant(
        id=row["id"],
        token_hash=row["token_hash"],
        owner_profile_id=row["owner_profile_id"],
        allowed_scopes=frozenset(Scope(s) for s in row.get("allowed_scopes") or ()),
        resource_filter=frozenset(resource_filter) if resource_filter is not None else None,
        recipient_name=row.get("recipient_name"),
        recipient_email=row.get("recipient_email"),
        purpose=row.get("purpose"),
        shared_by_name=row.get("shared_by_name"),
        access_level=AccessLevel(row.get("access_level") or AccessLevel.VIEW_ONLY.value),
        created_by=row.get("created_by", ""),
        created_at=_parse_ts(row.get("created_at")),
        expires_at=_parse_ts(row["expires_at"]),
        max_views=row.get("max_views"),
        view_count=int(row.get("view_count") or 0),
        is_active=bool(row.get("is_active", True)),
        last_accessed_at=_parse_ts(row.get("last_accessed_at")),
    )


def row_to_event(row: dict[str, Any]) -> ShareAccessEvent:
    return ShareAccessEvent(
        id=str(row["id"]) if row.get("id") is not None else None,
        grant_id=row["grant_id"],
        action=AccessAction(row.get("action", "viewed")),
        ip_address=row.get("ip_address") or "unknown",
        user_agent=row.get("user_agent") or "unknown",
        accessed_at=_parse_ts(row["accessed_at"]),
    )


class SupabaseGrantStore:
    """GrantStore backed by health.share_grants via PostgREST."""

    TABLE = "health.share_grants"
    EVENTS_TABLE = "health.share_access_events"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def _select_grants(self, filters: dict[str, Any], **kwargs: Any) -> list[ShareGrant]:
        try:
            rows = await self._client.select(self.TABLE, filters=filters, **kwargs)
        except (SupabaseError, httpx.HTTPError) as exc:
            raise StorageError(f"grant lookup failed: {type(exc).__name__}") from exc
        return [row_to_grant(r) for r in rows]

    async def get(self, token: str) -> ShareGrant | None:
        # Unique index on token_hash keeps this a single keyed lookup.
        grants = await self._select_grants(
            {"token_hash": ("eq", hash_token(token))}, limit=1,
        )
        return grants[0] if grants else None

    async def get_by_id(self, grant_id: str) -> ShareGrant | None:
        grants = await self._select_grants({"id": ("eq", grant_id)}, limit=1)
        return grants[0] if grants else None

    async def create(self, grant: ShareGrant) -> ShareGrant:
        try:
            rows = await self._client.insert(self.TABLE, grant_to_row(grant))
        except (SupabaseError, httpx.HTTPError) as exc:
            raise StorageError(f"grant insert failed: {type(exc).__name__}") from exc
        return row_to_grant(rows[0]) if rows else grant

    async def _update(self, filters: dict[str, Any], data: dict[str, Any]) -> list[ShareGrant]:
        try:
            rows = await self._client.update(self.TABLE, filters=filters, data=data)
        except (SupabaseError, httpx.HTTPError) as exc:
            raise StorageError(f"grant update failed: {type(exc).__name__}") from exc
        return [row_to_grant(r) for r in rows]

    async def conditional_increment(
        self, grant_id: str, *, now: datetime,
    ) -> ShareGrant | None:
        try:
            rows = await self._client.rpc(
                INCREMENT_FUNCTION,
                {"p_grant_id": grant_id, "p_now": now.isoformat()},
            )
        except (SupabaseError, httpx.HTTPError) as exc:
            raise StorageError(f"view increment failed: {type(exc).__name__}") from exc
        if isinstance(rows, dict):
            rows = [rows]
        return row_to_grant(rows[0]) if rows else None

    async def deactivate(self, grant_id: str) -> ShareGrant | None:
        updated = await self._update({"id": ("eq", grant_id)}, {"is_active": False})
        return updated[0] if updated else None

    async def append_event(self, event: ShareAccessEvent) -> ShareAccessEvent:
        row = {
            "grant_id": event.grant_id,
            "action": event.action.value,
            "ip_address": event.ip_address,
            "user_agent": event.user_agent,
            "accessed_at": event.accessed_at.isoformat(),
        }
        try:
            rows = await self._client.insert(self.EVENTS_TABLE, row)
        except (SupabaseError, httpx.HTTPError) as exc:
            raise StorageError(f"event insert failed: {type(exc).__name__}") from exc
        return row_to_event(rows[0]) if rows else event

    async def list_for_profile(self, profile_id: str) -> list[ShareGrant]:
        return await self._select_grants(
            {"owner_profile_id": ("eq", profile_id)}, order="created_at.desc",
        )

    async def list_events(
        self, grant_id: str, limit: int = 100,
    ) -> list[ShareAccessEvent]:
        try:
            rows = await self._client.select(
                self.EVENTS_TABLE,
                filters={"grant_id": ("eq", grant_id)},
                order="accessed_at.desc",
                limit=limit,
            )
        except (SupabaseError, httpx.HTTPError) as exc:
            raise StorageError(f"event lookup failed: {type(exc).__name__}") from exc
        return [row_to_event(r) for r in rows]
