"""Auth guard middleware for owner endpoints.

Extracts and verifies the owner's bearer token, setting
``request.state.auth_identity`` on success. Protected routes receive a
401 response when no valid credentials are present.

Exempt paths (never require auth):
  - ``/api/v1/share/access``: public, authenticated by share token only
  - ``/health``, ``/metrics``: operations
  - ``/docs``, ``/openapi.json``: API docs
"""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from .token_verify import (
    AuthIdentity,
    TokenVerificationError,
    TokenVerifier,
    extract_bearer_token,
)

# ── Constants ─────────────────────────────────────────────────────────

DEFAULT_EXEMPT_PREFIXES: tuple[str, ...] = (
    '/api/v1/share/access',
    '/health',
    '/metrics',
    '/docs',
    '/openapi.json',
)


def _unauthorized(code: str, detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={
            'error': 'unauthorized',
            'code': code,
            'detail': detail,
        },
        headers={'WWW-Authenticate': 'Bearer'},
    )


# ── Middleware ────────────────────────────────────────────────────────


class AuthGuardMiddleware(BaseHTTPMiddleware):
    """Starlette middleware that enforces owner authentication.

    For each request:
    1. If the path is exempt, pass through without auth.
    2. Extract and verify the Bearer token.
    3. On success set ``request.state.auth_identity``; otherwise 401.
    """

    def __init__(
        self,
        app,
        token_verifier: TokenVerifier,
        exempt_prefixes: tuple[str, ...] = DEFAULT_EXEMPT_PREFIXES,
    ) -> None:
        super().__init__(app)
        self._verifier = token_verifier
        self._exempt_prefixes = exempt_prefixes

    def _is_exempt(self, path: str) -> bool:
        for prefix in self._exempt_prefixes:
            if path == prefix or path.startswith(prefix):
                return True
        return False

    async def dispatch(
        self, request: Request, call_next
    ) -> Response:
        request.state.auth_identity = None

        if request.method == 'OPTIONS' or self._is_exempt(request.url.path):
            return await call_next(request)

        token = extract_bearer_token(request)
        if not token:
            return _unauthorized('no_credentials', 'Authentication required')

        try:
            request.state.auth_identity = self._verifier.verify(token)
        except TokenVerificationError as exc:
            return _unauthorized(exc.code, exc.detail)
        return await call_next(request)


# ── Dependency helper ────────────────────────────────────────────────


def get_auth_identity(request: Request) -> AuthIdentity:
    """FastAPI dependency that returns the authenticated owner.

    Raises:
        HTTPException: 401 if no authenticated identity on the request.
    """
    from fastapi import HTTPException

    identity: AuthIdentity | None = getattr(
        request.state, 'auth_identity', None
    )
    if identity is None:
        raise HTTPException(
            status_code=401,
            detail={
                'error': 'unauthorized',
                'code': 'no_credentials',
                'detail': 'Authentication required',
            },
            headers={'WWW-Authenticate': 'Bearer'},
        )
    return identity
