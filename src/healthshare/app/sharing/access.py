"""Public share-link access endpoint.

  POST /api/v1/share/access   body ``{token, action?}``

The token is the only credential. Every denial (unknown, revoked,
expired, view limit reached) gets the same 410 response so callers cannot
tell a dead link from one that never existed. A live view-only link
refuses ``action: downloaded`` with 403 and counts nothing. Storage
failures return a generic 500 without internal detail.

This module provides:
  ``create_share_access_router``: FastAPI router factory.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .audit import RequestMetadata
from .errors import AccessDenied, ActionNotPermittedError, StorageError
from .model import AccessAction
from .orchestrator import AccessOrchestrator

UNAVAILABLE_DETAIL = 'This link is no longer available.'


# ── Request schemas ──────────────────────────────────────────────────


class ShareAccessRequest(BaseModel):
    # No upper bound: any unknown token, however long, is a plain NotFound.
    token: str = Field(..., min_length=1)
    action: AccessAction = AccessAction.VIEWED


def link_unavailable_response() -> JSONResponse:
    return JSONResponse(
        status_code=410,
        content={
            'success': False,
            'error': 'link_unavailable',
            'detail': UNAVAILABLE_DETAIL,
        },
    )


# ── Route factory ────────────────────────────────────────────────────


def create_share_access_router(orchestrator: AccessOrchestrator) -> APIRouter:
    router = APIRouter(tags=['share-access'])

    @router.post('/api/v1/share/access')
    async def access_share(body: ShareAccessRequest, request: Request):
        """Redeem a share token and return the scoped data.

        Error responses:
          - 410: Link unavailable (any denial reason).
          - 403: Download requested on a view-only link.
          - 500: Storage failure.
        """
        metadata = RequestMetadata.from_headers(
            request.headers,
            peer_host=request.client.host if request.client else None,
        )
        try:
            result = await orchestrator.access(body.token, metadata, body.action)
        except AccessDenied:
            return link_unavailable_response()
        except ActionNotPermittedError as exc:
            return JSONResponse(
                status_code=403,
                content={'success': False, 'error': exc.code, 'detail': exc.detail},
            )
        except StorageError:
            return JSONResponse(
                status_code=500,
                content={'success': False, 'error': 'internal_error'},
            )

        grant = result.grant
        return {
            'success': True,
            'allowed_scopes': sorted(s.value for s in grant.allowed_scopes),
            'access_level': grant.access_level.value,
            'data': result.payload.to_dict(),
            'expires_at': grant.expires_at.isoformat(),
            'views_remaining': grant.views_remaining,
            'shared_by': {'name': grant.shared_by_name},
        }

    return router
