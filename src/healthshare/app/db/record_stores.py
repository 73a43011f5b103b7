"""Supabase-backed read-only health-record stores.

These implement the narrow collaborator protocols the share core reads
through (profiles, documents, lab results, vitals, medications) plus the
profile ownership check used at issuance, revocation and listing.

Rows are returned as PostgREST gives them. The projector is responsible
for dropping anything that does not belong to the grant's profile.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import httpx

from healthshare.app.sharing.errors import StorageError

from .errors import SupabaseError
from .supabase_client import Filters, SupabaseClient


class _SupabaseRecords:
    """Shared select helper that translates client errors to StorageError."""

    TABLE = ""
    ORDER = "created_at.desc"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def _select(
        self,
        filters: Filters,
        *,
        limit: int | None = None,
        order: str | None = None,
    ) -> list[dict[str, Any]]:
        try:
            return await self._client.select(
                self.TABLE, filters=filters, limit=limit, order=order,
            )
        except (SupabaseError, httpx.HTTPError) as exc:
            raise StorageError(f"{self.TABLE} read failed: {type(exc).__name__}") from exc

    async def get_by_ids(self, ids: Iterable[str]) -> list[dict[str, Any]]:
        wanted = sorted(set(ids))
        if not wanted:
            return []
        return await self._select({"id": ("in", wanted)}, order=self.ORDER)

    async def by_profile(self, profile_id: str, limit: int) -> list[dict[str, Any]]:
        return await self._select(
            {"profile_id": ("eq", profile_id)}, limit=limit, order=self.ORDER,
        )


class SupabaseDocumentStore(_SupabaseRecords):
    TABLE = "health.medical_documents"


class SupabaseLabStore(_SupabaseRecords):
    TABLE = "health.lab_results"
    ORDER = "test_date.desc"


class SupabaseVitalStore(_SupabaseRecords):
    TABLE = "health.vital_measurements"
    ORDER = "measured_at.desc"

    async def recent(self, profile_id: str, limit: int) -> list[dict[str, Any]]:
        return await self.by_profile(profile_id, limit)


class SupabaseMedicationStore(_SupabaseRecords):
    TABLE = "health.medications"
    ORDER = "start_date.desc"

    async def active(self, profile_id: str) -> list[dict[str, Any]]:
        return await self._select(
            {"profile_id": ("eq", profile_id), "is_active": ("is", True)},
            order=self.ORDER,
        )


class SupabaseProfileStore(_SupabaseRecords):
    TABLE = "health.profiles"

    async def get(self, profile_id: str) -> dict[str, Any] | None:
        rows = await self._select({"id": ("eq", profile_id)}, limit=1)
        return rows[0] if rows else None


class SupabaseProfileOwnership(_SupabaseRecords):
    """A user owns a profile when ``profiles.owner_user_id`` is their id."""

    TABLE = "health.profiles"

    async def owns_profile(self, user_id: str, profile_id: str) -> bool:
        if not user_id or not profile_id:
            return False
        rows = await self._select(
            {"id": ("eq", profile_id), "owner_user_id": ("eq", user_id)},
            limit=1,
        )
        return bool(rows)
