"""Share audit helpers: token redaction and request metadata.

Security invariant:
  Plaintext tokens must NEVER appear in logs or stored audit data.
  Only token prefixes (first 8 chars) are included for correlation.

This module provides:
  1. ``redact_token``: safely truncate tokens for logging.
  2. ``redact_string``: scrub token-like substrings from free text.
  3. ``RequestMetadata``: caller IP / user agent captured per access.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass

# ── Constants ─────────────────────────────────────────────────────────

TOKEN_PREFIX_LENGTH = 8  # Characters to keep for correlation.
UNKNOWN = 'unknown'
MAX_USER_AGENT_LENGTH = 512

# Pattern for URL-safe base64 tokens (43 chars from token_urlsafe(32)).
_TOKEN_PATTERN = re.compile(r'[A-Za-z0-9_-]{20,}')


# ── Token redaction ──────────────────────────────────────────────────


def redact_token(token: str | None) -> str:
    """Safely truncate a token to a prefix for logging.

    Returns ``<prefix>...`` or ``<redacted>`` for missing/short tokens.
    """
    if not token or len(token) < TOKEN_PREFIX_LENGTH:
        return '<redacted>'
    return f'{token[:TOKEN_PREFIX_LENGTH]}...'


def redact_string(text: str) -> str:
    """Replace any token-like strings in text with redacted versions."""
    def _replace(match: re.Match) -> str:
        return redact_token(match.group(0))

    return _TOKEN_PATTERN.sub(_replace, text)


# ── Request metadata ─────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class RequestMetadata:
    """Who accessed a share link, as far as the request tells us."""

    ip_address: str = UNKNOWN
    user_agent: str = UNKNOWN

    @classmethod
    def from_headers(
        cls,
        headers: Mapping[str, str],
        peer_host: str | None = None,
    ) -> RequestMetadata:
        """Resolve client IP: X-Forwarded-For (first hop), X-Real-IP, then peer."""
        ip = ''
        forwarded = headers.get('x-forwarded-for', '')
        if forwarded:
            ip = forwarded.split(',')[0].strip()
        if not ip:
            ip = headers.get('x-real-ip', '').strip()
        if not ip:
            ip = peer_host or UNKNOWN

        user_agent = headers.get('user-agent', '').strip() or UNKNOWN
        return cls(
            ip_address=ip,
            user_agent=user_agent[:MAX_USER_AGENT_LENGTH],
        )
