"""Owner JWT verification.

Validates owner access tokens by:
  1. Resolving the signing key (Supabase JWKS for RS256, or a static
     HS256 secret for local development).
  2. Verifying signature, audience, and expiry.
  3. Extracting the authenticated identity.

The share core trusts this identity as the "owner"; whether that owner
may share a given profile is decided separately by ProfileOwnership.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

import jwt
from jwt import PyJWKClient, PyJWKClientError
from starlette.requests import Request

# ── Constants ─────────────────────────────────────────────────────────

DEFAULT_AUDIENCE = 'authenticated'
JWKS_CACHE_TTL_SECONDS = 300  # 5-minute cache
BEARER_PREFIX = 'Bearer '

# ── Types ─────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class AuthIdentity:
    """Verified identity extracted from a valid JWT.

    Attributes:
        user_id: Subject of the token (``sub`` claim).
        email: Normalized email address.
        name: Human-readable name used in share notifications.
        raw_claims: Full decoded JWT payload for downstream use.
    """

    user_id: str
    email: str = ''
    name: str = ''
    raw_claims: dict[str, Any] = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        return self.name or self.email


class TokenVerificationError(Exception):
    """Raised when token verification fails."""

    def __init__(self, code: str, detail: str = '') -> None:
        self.code = code
        self.detail = detail
        super().__init__(f'{code}: {detail}' if detail else code)


# ── Key providers ─────────────────────────────────────────────────────


class KeyProvider(Protocol):
    def get_signing_key(self, token: str) -> Any: ...


class JWKSKeyProvider:
    """Fetches signing keys from a JWKS endpoint with caching."""

    def __init__(
        self,
        jwks_url: str,
        cache_ttl: int = JWKS_CACHE_TTL_SECONDS,
    ) -> None:
        self._client = PyJWKClient(
            jwks_url,
            cache_jwk_set=True,
            lifespan=cache_ttl,
        )

    def get_signing_key(self, token: str) -> Any:
        try:
            return self._client.get_signing_key_from_jwt(token).key
        except PyJWKClientError as exc:
            raise TokenVerificationError('jwks_fetch_error', str(exc)) from exc


class StaticKeyProvider:
    """Uses a static secret for HS256 verification (local dev only)."""

    def __init__(self, secret: str) -> None:
        self._secret = secret

    def get_signing_key(self, token: str) -> str:
        return self._secret


# ── Token Verifier ───────────────────────────────────────────────────


class TokenVerifier:
    """Verifies owner JWTs and extracts identity claims."""

    def __init__(
        self,
        key_provider: KeyProvider,
        audience: str = DEFAULT_AUDIENCE,
        algorithms: list[str] | None = None,
    ) -> None:
        self._key_provider = key_provider
        self._audience = audience
        self._algorithms = algorithms or ['RS256']

    def verify(self, token: str) -> AuthIdentity:
        """Verify a JWT and return the authenticated identity.

        Raises:
            TokenVerificationError: On any verification failure.
        """
        if not token or not token.strip():
            raise TokenVerificationError('empty_token')

        key = self._key_provider.get_signing_key(token)

        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=self._algorithms,
                audience=self._audience,
                options={
                    'require': ['sub', 'exp', 'aud'],
                    'verify_exp': True,
                    'verify_aud': True,
                },
            )
        except jwt.ExpiredSignatureError:
            raise TokenVerificationError('token_expired')
        except jwt.InvalidAudienceError:
            raise TokenVerificationError(
                'invalid_audience',
                f'expected {self._audience}',
            )
        except jwt.InvalidTokenError as exc:
            raise TokenVerificationError('invalid_token', str(exc))

        user_id = claims.get('sub')
        if not user_id:
            raise TokenVerificationError('missing_sub_claim')

        email = claims.get('email', '') or ''
        metadata = claims.get('user_metadata') or {}
        name = claims.get('name') or metadata.get('full_name', '') or ''

        return AuthIdentity(
            user_id=user_id,
            email=email.lower(),
            name=name,
            raw_claims=claims,
        )


# ── Request helpers ──────────────────────────────────────────────────


def extract_bearer_token(request: Request) -> str | None:
    """Extract a Bearer token from the Authorization header."""
    auth_header = request.headers.get('authorization', '')
    if auth_header.startswith(BEARER_PREFIX):
        return auth_header[len(BEARER_PREFIX):].strip()
    return None


# ── Factory ──────────────────────────────────────────────────────────


def create_token_verifier(
    supabase_url: str | None = None,
    jwt_secret: str | None = None,
    audience: str = DEFAULT_AUDIENCE,
) -> TokenVerifier:
    """Create a TokenVerifier with the appropriate key provider.

    Prefers JWKS (RS256) when ``supabase_url`` is provided.
    Falls back to static secret (HS256) when only ``jwt_secret`` is given.

    Raises:
        ValueError: If neither URL nor secret is provided.
    """
    if supabase_url:
        jwks_url = f'{supabase_url.rstrip("/")}/auth/v1/.well-known/jwks.json'
        return TokenVerifier(
            key_provider=JWKSKeyProvider(jwks_url),
            audience=audience,
            algorithms=['RS256'],
        )

    if jwt_secret:
        return TokenVerifier(
            key_provider=StaticKeyProvider(jwt_secret),
            audience=audience,
            algorithms=['HS256'],
        )

    raise ValueError(
        'Either supabase_url (for JWKS) or jwt_secret (for HS256) is required'
    )
