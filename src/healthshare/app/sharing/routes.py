"""Share-link create/revoke/list API endpoints (owner-authenticated).

  POST   /api/v1/shares                         → issue share link
  DELETE /api/v1/shares/{grant_id}              → revoke (idempotent, 204)
  GET    /api/v1/profiles/{profile_id}/shares   → list a profile's shares
  GET    /api/v1/shares/{grant_id}/events       → access audit trail

Auth contract:
  - All endpoints require an authenticated owner (AuthIdentity).
  - The owner must own the profile the share belongs to; otherwise 403.

Token security:
  - The plaintext token is returned exactly once in the create response.
  - Only the SHA-256 hash is persisted.

This module provides:
  ``create_share_router``: FastAPI router factory with injected deps.
"""

from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from healthshare.app.security.auth_guard import get_auth_identity
from healthshare.app.security.token_verify import AuthIdentity

from .errors import (
    ActionNotPermittedError,
    AuthorizationError,
    NotFoundError,
    ShareError,
    ValidationError,
)
from .issuer import LinkIssuer, Recipient
from .orchestrator import OwnerQueries
from .revocation import RevocationHandler


# ── Request schemas ──────────────────────────────────────────────────


class CreateShareRequest(BaseModel):
    """Request body for share link creation.

    Scope, lifetime and view-cap policy is enforced by LinkIssuer so that
    violations surface as 400 validation errors with actionable messages.
    """

    profile_id: str = Field(..., min_length=1)
    allowed_scopes: list[str] = Field(default_factory=list)
    resource_ids: list[str] | None = None
    recipient_name: str | None = None
    recipient_email: str | None = None
    purpose: str | None = None
    ttl_hours: int | None = Field(default=None, description='Link lifetime in hours')
    max_views: int | None = None
    access_level: str = Field(default='view_only', description='view_only or download')
    notify: bool = False


# ── Shared helpers ───────────────────────────────────────────────────


def share_error_response(exc: ShareError) -> JSONResponse:
    """Map an owner-facing share error to a JSON response."""
    if isinstance(exc, ValidationError):
        status = 400
    elif isinstance(exc, (AuthorizationError, ActionNotPermittedError)):
        status = 403
    elif isinstance(exc, NotFoundError):
        status = 404
    else:
        return JSONResponse(
            status_code=500,
            content={'error': 'internal_error', 'detail': 'Unexpected server error.'},
        )
    return JSONResponse(
        status_code=status,
        content={'error': exc.code, 'detail': exc.detail or str(exc)},
    )


# ── Route factory ────────────────────────────────────────────────────


def create_share_router(
    issuer: LinkIssuer,
    revocation: RevocationHandler,
    queries: OwnerQueries,
) -> APIRouter:
    """Create the owner share-management router.

    Args:
        issuer: Issues new grants.
        revocation: Deactivates grants.
        queries: Lists grants and access events.
    """
    router = APIRouter(tags=['share-links'])

    @router.post('/api/v1/shares', status_code=201)
    async def create_share(
        body: CreateShareRequest,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        """Issue a share link. Returns the plaintext token once."""
        try:
            issued = await issuer.create(
                identity,
                body.profile_id,
                body.allowed_scopes,
                resource_filter=body.resource_ids,
                recipient=Recipient(
                    name=body.recipient_name,
                    email=body.recipient_email,
                    purpose=body.purpose,
                ),
                ttl=timedelta(hours=body.ttl_hours) if body.ttl_hours is not None else None,
                max_views=body.max_views,
                access_level=body.access_level,
                notify=body.notify,
            )
        except (ValidationError, AuthorizationError) as exc:
            return share_error_response(exc)

        return {
            'grant_id': issued.grant.id,
            'token': issued.token,
            'share_url': issued.share_url,
            'expires_at': issued.grant.expires_at.isoformat(),
            'access_level': issued.grant.access_level.value,
        }

    @router.delete('/api/v1/shares/{grant_id}', status_code=204)
    async def revoke_share(
        grant_id: str,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        """Revoke a share link. Idempotent."""
        try:
            await revocation.deactivate(grant_id, identity)
        except (NotFoundError, AuthorizationError) as exc:
            return share_error_response(exc)
        return Response(status_code=204)

    @router.get('/api/v1/profiles/{profile_id}/shares')
    async def list_shares(
        profile_id: str,
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        try:
            grants = await queries.list_grants(identity, profile_id)
        except AuthorizationError as exc:
            return share_error_response(exc)
        return {'shares': [g.to_dict() for g in grants]}

    @router.get('/api/v1/shares/{grant_id}/events')
    async def list_share_events(
        grant_id: str,
        limit: int = Query(default=100, ge=1, le=500),
        identity: AuthIdentity = Depends(get_auth_identity),
    ):
        try:
            events = await queries.list_access_events(identity, grant_id, limit)
        except (NotFoundError, AuthorizationError) as exc:
            return share_error_response(exc)
        return {'events': [e.to_dict() for e in events]}

    return router
