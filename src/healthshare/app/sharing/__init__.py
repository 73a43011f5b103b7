"""Scoped, expiring, view-limited share links for health records."""

from .access import ShareAccessRequest, create_share_access_router
from .audit import RequestMetadata, redact_string, redact_token
from .errors import (
    AccessDenied,
    ActionNotPermittedError,
    AuthorizationError,
    DeactivatedError,
    ExpiredError,
    InternalError,
    NotFoundError,
    ShareError,
    StorageError,
    ValidationError,
    ViewLimitError,
)
from .issuer import IssuedLink, LinkIssuer, Recipient, parse_scopes
from .model import (
    AccessAction,
    AccessLevel,
    GrantState,
    Scope,
    ShareAccessEvent,
    ShareGrant,
    generate_share_token,
    grant_state,
    hash_token,
)
from .orchestrator import AccessOrchestrator, AccessResult, OwnerQueries
from .projector import ScopedDataProjector, ScopedPayload
from .recorder import AccessRecorder, RecordOutcome
from .revocation import RevocationHandler
from .routes import CreateShareRequest, create_share_router
from .validator import Denial, DenialReason, LinkValidator, ValidatedGrant

__all__ = [
    'AccessAction',
    'AccessDenied',
    'AccessLevel',
    'AccessOrchestrator',
    'AccessRecorder',
    'AccessResult',
    'ActionNotPermittedError',
    'AuthorizationError',
    'CreateShareRequest',
    'DeactivatedError',
    'Denial',
    'DenialReason',
    'ExpiredError',
    'GrantState',
    'InternalError',
    'IssuedLink',
    'LinkIssuer',
    'LinkValidator',
    'NotFoundError',
    'OwnerQueries',
    'Recipient',
    'RecordOutcome',
    'RequestMetadata',
    'RevocationHandler',
    'Scope',
    'ScopedDataProjector',
    'ScopedPayload',
    'ShareAccessEvent',
    'ShareAccessRequest',
    'ShareError',
    'ShareGrant',
    'StorageError',
    'ValidatedGrant',
    'ValidationError',
    'ViewLimitError',
    'create_share_access_router',
    'create_share_router',
    'generate_share_token',
    'grant_state',
    'hash_token',
    'parse_scopes',
    'redact_string',
    'redact_token',
]
