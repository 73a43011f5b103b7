"""Share-grant domain model with token-hash persistence.

Implements the share-grant data model:

  - Only the token hash is persisted; the plaintext token is returned to
    the owner exactly once and never stored or logged.
  - A grant exposes a non-empty set of scopes of one owner profile,
    optionally narrowed to an explicit set of resource ids.
  - ``is_active`` only ever moves True -> False.
  - ``view_count`` only ever grows and never passes ``max_views``.

Security invariant:
  Tokens carry 256 bits of entropy from ``secrets`` and are unrelated to
  the profile id. Validation hashes the presented token and looks the hash
  up; nothing about the grant is encoded in the token itself.

This module provides:
  1. ``Scope`` / ``AccessAction`` / ``AccessLevel`` / ``GrantState`` enums.
  2. ``ShareGrant`` and ``ShareAccessEvent`` domain objects.
  3. ``generate_share_token`` / ``hash_token`` token helpers.
  4. ``grant_state`` for the per-grant state machine.
"""

from __future__ import annotations

import hashlib
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

# ── Constants ─────────────────────────────────────────────────────────

TOKEN_BYTES = 32  # 256-bit tokens.


class Scope(str, Enum):
    """Category of health data a grant may expose."""

    DOCUMENTS = 'documents'
    LAB_RESULTS = 'lab_results'
    VITALS = 'vitals'
    MEDICATIONS = 'medications'
    TRENDS = 'trends'
    PROFILE_SUMMARY = 'profile_summary'


class AccessAction(str, Enum):
    VIEWED = 'viewed'
    DOWNLOADED = 'downloaded'


class AccessLevel(str, Enum):
    """What a recipient may do with shared records. ``download`` implies view."""

    VIEW_ONLY = 'view_only'
    DOWNLOAD = 'download'

    def permits(self, action: AccessAction) -> bool:
        return action is AccessAction.VIEWED or self is AccessLevel.DOWNLOAD


class GrantState(str, Enum):
    """Per-grant lifecycle state. Every state but ACTIVE is absorbing."""

    ACTIVE = 'active'
    DEACTIVATED = 'deactivated'
    EXPIRED = 'expired'
    LIMIT_REACHED = 'limit_reached'


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Token operations ──────────────────────────────────────────────────


def generate_share_token() -> str:
    """Generate a cryptographically random URL-safe share token.

    The returned plaintext token is returned to the owner exactly once.
    Only the hash should be persisted.
    """
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_token(plaintext: str) -> str:
    """Compute the SHA-256 hash of a plaintext share token."""
    return hashlib.sha256(plaintext.encode('utf-8')).hexdigest()


def new_grant_id() -> str:
    return f'shr_{uuid.uuid4().hex}'


# ── Domain model ──────────────────────────────────────────────────────


@dataclass
class ShareGrant:
    """Capability metadata bound to one share token.

    Attributes:
        id: Grant identity.
        token_hash: SHA-256 hash of the plaintext token.
        owner_profile_id: Patient profile whose data the grant exposes.
        allowed_scopes: Non-empty set of scopes the grant authorizes.
        resource_filter: Optional explicit resource ids; None means every
            record in scope.
        access_level: Whether the recipient may download or only view.
        created_by: Owner user id that issued the grant.
        expires_at: When the grant stops working. Always after created_at.
        max_views: View cap, None for unlimited.
        view_count: Successful accesses so far.
        is_active: False once the owner revokes the grant.
        last_accessed_at: Time of the latest successful access.
    """

    id: str
    token_hash: str
    owner_profile_id: str
    allowed_scopes: frozenset[Scope]
    created_by: str
    expires_at: datetime
    resource_filter: frozenset[str] | None = None
    recipient_name: str | None = None
    recipient_email: str | None = None
    purpose: str | None = None
    shared_by_name: str | None = None
    access_level: AccessLevel = AccessLevel.VIEW_ONLY
    max_views: int | None = None
    view_count: int = 0
    is_active: bool = True
    last_accessed_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) > self.expires_at

    @property
    def is_exhausted(self) -> bool:
        return self.max_views is not None and self.view_count >= self.max_views

    @property
    def views_remaining(self) -> int | None:
        if self.max_views is None:
            return None
        return max(self.max_views - self.view_count, 0)

    def to_dict(self, now: datetime | None = None) -> dict:
        """Owner-facing representation. Never includes the token hash."""
        return {
            'grant_id': self.id,
            'profile_id': self.owner_profile_id,
            'allowed_scopes': sorted(s.value for s in self.allowed_scopes),
            'resource_ids': sorted(self.resource_filter) if self.resource_filter is not None else None,
            'recipient_name': self.recipient_name,
            'recipient_email': self.recipient_email,
            'purpose': self.purpose,
            'shared_by_name': self.shared_by_name,
            'access_level': self.access_level.value,
            'created_at': self.created_at.isoformat(),
            'expires_at': self.expires_at.isoformat(),
            'max_views': self.max_views,
            'view_count': self.view_count,
            'is_active': self.is_active,
            'last_accessed_at': self.last_accessed_at.isoformat() if self.last_accessed_at else None,
            'state': grant_state(self, now).value,
        }


@dataclass(frozen=True, slots=True)
class ShareAccessEvent:
    """Append-only audit record of one successful access."""

    grant_id: str
    action: AccessAction
    ip_address: str = 'unknown'
    user_agent: str = 'unknown'
    accessed_at: datetime = field(default_factory=utcnow)
    id: str | None = None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'grant_id': self.grant_id,
            'action': self.action.value,
            'ip_address': self.ip_address,
            'user_agent': self.user_agent,
            'accessed_at': self.accessed_at.isoformat(),
        }


def grant_state(grant: ShareGrant, now: datetime | None = None) -> GrantState:
    """Return the lifecycle state, checked in validator order."""
    if not grant.is_active:
        return GrantState.DEACTIVATED
    if grant.is_expired(now):
        return GrantState.EXPIRED
    if grant.is_exhausted:
        return GrantState.LIMIT_REACHED
    return GrantState.ACTIVE
