"""Share error hierarchy.

Every error carries a stable machine-readable ``code``. The four denial
errors share a base so the access endpoint can collapse them into one
uniform response.
"""

from __future__ import annotations


class ShareError(Exception):
    """Base class for share-link errors."""

    code = 'share_error'

    def __init__(self, detail: str = '') -> None:
        self.detail = detail
        super().__init__(detail or self.code)


class ValidationError(ShareError):
    """Issuance input is malformed or outside policy."""

    code = 'validation_error'


class AuthorizationError(ShareError):
    """Caller does not own the profile or grant."""

    code = 'forbidden'


class AccessDenied(ShareError):
    """Base for the four access-time denial categories."""

    code = 'access_denied'


class NotFoundError(AccessDenied):
    code = 'not_found'


class DeactivatedError(AccessDenied):
    code = 'deactivated'


class ExpiredError(AccessDenied):
    code = 'expired'


class ViewLimitError(AccessDenied):
    code = 'view_limit_reached'


class ActionNotPermittedError(ShareError):
    """The grant is usable but its access level forbids the action."""

    code = 'action_not_permitted'


class StorageError(ShareError):
    """Transient failure in a store or data collaborator."""

    code = 'storage_error'


class InternalError(ShareError):
    code = 'internal_error'
