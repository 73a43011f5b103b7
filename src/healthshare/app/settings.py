"""Share service configuration settings.

ShareSettings is the single configuration object accepted by create_app().
It is a plain dataclass (not env-coupled) so tests can inject config
without touching os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from urllib.parse import urlparse

_VALID_ENVIRONMENTS = ("local", "staging", "production")
_DEFAULT_CORS_ORIGINS = (
    "http://localhost:5173",
    "http://localhost:3000",
)


@dataclass(frozen=True, slots=True)
class ShareSettings:
    """Configuration for the share-link FastAPI application.

    All fields have sensible defaults for local development.
    Non-local environments must supply real values for supabase_url,
    supabase_service_role_key, jwt_secret, and an HTTPS public_url.
    """

    # ── Environment ────────────────────────────────────────────────
    environment: str = "local"
    """One of: local, staging, production."""

    public_url: str = "http://localhost:8000"
    """Externally-reachable base URL used to build share URLs."""

    # ── Supabase ───────────────────────────────────────────────────
    supabase_url: str = ""
    """Supabase project URL (e.g. https://xyz.supabase.co)."""

    supabase_service_role_key: str = ""
    """Supabase service-role key for PostgREST calls. Never log this."""

    # ── Owner auth ─────────────────────────────────────────────────
    jwt_secret: str = ""
    """HS256 secret for owner bearer tokens (local/dev)."""

    jwt_audience: str = "authenticated"

    # ── CORS ───────────────────────────────────────────────────────
    cors_origins: tuple[str, ...] = _DEFAULT_CORS_ORIGINS

    # ── Share policy ───────────────────────────────────────────────
    default_ttl_hours: int = 168
    """Link lifetime when the owner does not pick one (one week)."""

    max_ttl_hours: int = 2160
    """Upper bound on link lifetime (90 days)."""

    # ── Storage resilience ─────────────────────────────────────────
    storage_retry_backoff_seconds: float = 0.05
    audit_append_attempts: int = 3

    # ── Notifications ──────────────────────────────────────────────
    notifier_url: str = ""
    """HTTP endpoint that accepts share notification emails. Empty logs only."""

    # ── Logging ────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"
    """Either json or console."""

    @property
    def is_local(self) -> bool:
        return self.environment == "local"

    @property
    def default_ttl(self) -> timedelta:
        return timedelta(hours=self.default_ttl_hours)

    @property
    def max_ttl(self) -> timedelta:
        return timedelta(hours=self.max_ttl_hours)

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if self.environment not in _VALID_ENVIRONMENTS:
            errors.append(
                f"environment must be one of {_VALID_ENVIRONMENTS}, "
                f"got {self.environment!r}"
            )
        if self.max_ttl_hours <= 0:
            errors.append("max_ttl_hours must be positive")
        if not 0 < self.default_ttl_hours <= self.max_ttl_hours:
            errors.append("default_ttl_hours must be within (0, max_ttl_hours]")
        if self.audit_append_attempts < 1:
            errors.append("audit_append_attempts must be >= 1")
        if self.log_format not in ("json", "console"):
            errors.append(f"log_format must be json or console, got {self.log_format!r}")

        parsed = urlparse(self.public_url)
        if not parsed.scheme or not parsed.netloc:
            errors.append(f"public_url must include scheme and host, got {self.public_url!r}")

        if not self.is_local:
            if not self.supabase_url:
                errors.append(f"{self.environment}: supabase_url is required")
            if not self.supabase_service_role_key:
                errors.append(
                    f"{self.environment}: supabase_service_role_key is required"
                )
            if not self.jwt_secret or len(self.jwt_secret) < 32:
                errors.append(
                    f"{self.environment}: jwt_secret must be >= 32 characters"
                )
            if parsed.scheme != "https":
                errors.append(f"{self.environment}: public_url must use https")
        return errors

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> ShareSettings:
        """Build settings from environment variables.

        Tests should construct ShareSettings directly.
        """
        if env is None:
            env = dict(os.environ)

        cors_raw = env.get("CORS_ORIGINS", "")
        cors = tuple(o.strip() for o in cors_raw.split(",") if o.strip()) if cors_raw else _DEFAULT_CORS_ORIGINS

        return cls(
            environment=env.get("ENVIRONMENT", "local"),
            public_url=env.get("PUBLIC_URL", "http://localhost:8000").strip().rstrip("/"),
            supabase_url=env.get("SUPABASE_URL", ""),
            supabase_service_role_key=env.get("SUPABASE_SERVICE_ROLE_KEY", ""),
            jwt_secret=env.get("JWT_SECRET", ""),
            jwt_audience=env.get("JWT_AUDIENCE", "authenticated"),
            cors_origins=cors,
            default_ttl_hours=int(env.get("SHARE_DEFAULT_TTL_HOURS", "168")),
            max_ttl_hours=int(env.get("SHARE_MAX_TTL_HOURS", "2160")),
            storage_retry_backoff_seconds=float(
                env.get("SHARE_STORAGE_RETRY_BACKOFF_SECONDS", "0.05")
            ),
            audit_append_attempts=int(env.get("SHARE_AUDIT_APPEND_ATTEMPTS", "3")),
            notifier_url=env.get("NOTIFIER_URL", ""),
            log_level=env.get("LOG_LEVEL", "INFO"),
            log_format=env.get("LOG_FORMAT", "json"),
        )
