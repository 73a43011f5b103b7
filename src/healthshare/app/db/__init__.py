"""Supabase (PostgREST) storage for the share service."""

from .errors import (
    SupabaseAuthError,
    SupabaseConflictError,
    SupabaseError,
    SupabaseNotFoundError,
)
from .grant_store import SupabaseGrantStore
from .record_stores import (
    SupabaseDocumentStore,
    SupabaseLabStore,
    SupabaseMedicationStore,
    SupabaseProfileOwnership,
    SupabaseProfileStore,
    SupabaseVitalStore,
)
from .supabase_client import SupabaseClient, filters_to_params

__all__ = [
    "SupabaseAuthError",
    "SupabaseClient",
    "SupabaseConflictError",
    "SupabaseDocumentStore",
    "SupabaseError",
    "SupabaseGrantStore",
    "SupabaseLabStore",
    "SupabaseMedicationStore",
    "SupabaseNotFoundError",
    "SupabaseProfileOwnership",
    "SupabaseProfileStore",
    "SupabaseVitalStore",
    "filters_to_params",
]
