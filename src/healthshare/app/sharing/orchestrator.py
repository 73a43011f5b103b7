"""Request-level share access: Validate -> Project -> Record.

The order is fixed. A live link whose access level forbids the requested
action is refused before projection. Nothing is counted until a
projection has fully succeeded, so a failed or timed-out projection
never consumes a view.
When the recorder loses the view-limit race, the projection that was
already built is discarded and the caller sees ``ViewLimitError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from healthshare.observability import get_logger
from healthshare.observability.metrics import SHARE_ACCESS_TOTAL

from .audit import RequestMetadata, redact_token
from .errors import (
    ActionNotPermittedError,
    AuthorizationError,
    StorageError,
    ViewLimitError,
)
from .model import AccessAction, ShareAccessEvent, ShareGrant
from .projector import ScopedDataProjector, ScopedPayload
from .recorder import AccessRecorder
from .revocation import load_owned_grant
from .validator import Denial, LinkValidator

if TYPE_CHECKING:
    from ..protocols import GrantStore, ProfileOwnership
    from ..security.token_verify import AuthIdentity

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class AccessResult:
    grant: ShareGrant
    payload: ScopedPayload

    @property
    def view_count(self) -> int:
        return self.grant.view_count


class AccessOrchestrator:
    def __init__(
        self,
        validator: LinkValidator,
        projector: ScopedDataProjector,
        recorder: AccessRecorder,
    ) -> None:
        self._validator = validator
        self._projector = projector
        self._recorder = recorder

    async def access(
        self,
        token: str,
        metadata: RequestMetadata | None = None,
        action: AccessAction = AccessAction.VIEWED,
    ) -> AccessResult:
        """Redeem a token once.

        Raises:
            NotFoundError, DeactivatedError, ExpiredError, ViewLimitError:
                The link is not usable.
            ActionNotPermittedError: A download was requested on a
                view-only grant; no view was consumed.
            StorageError: A store failed; no view was consumed unless the
                failure happened after the counter was won.
        """
        metadata = metadata or RequestMetadata()
        token_prefix = redact_token(token)

        verdict = await self._validator.validate(token)
        if isinstance(verdict, Denial):
            SHARE_ACCESS_TOTAL.labels(result=verdict.reason.value).inc()
            logger.info('share_access_denied', token_prefix=token_prefix, reason=verdict.reason.value)
            raise verdict.to_error()

        grant = verdict.grant
        if not grant.access_level.permits(action):
            SHARE_ACCESS_TOTAL.labels(result=ActionNotPermittedError.code).inc()
            logger.info(
                'share_action_not_permitted',
                token_prefix=token_prefix,
                grant_id=grant.id,
                action=action.value,
                access_level=grant.access_level.value,
            )
            raise ActionNotPermittedError(
                f'This link does not allow the {action.value} action.'
            )

        try:
            payload = await self._projector.project(grant)
            outcome = await self._recorder.record(grant, metadata, action)
        except StorageError:
            SHARE_ACCESS_TOTAL.labels(result='storage_error').inc()
            logger.exception('share_access_failed', token_prefix=token_prefix, grant_id=grant.id)
            raise

        if not outcome.granted:
            SHARE_ACCESS_TOTAL.labels(result=ViewLimitError.code).inc()
            logger.info('share_access_race_lost', token_prefix=token_prefix, grant_id=grant.id)
            raise ViewLimitError()

        SHARE_ACCESS_TOTAL.labels(result='granted').inc()
        logger.info(
            'share_accessed',
            token_prefix=token_prefix,
            grant_id=grant.id,
            action=action.value,
            view_count=outcome.grant.view_count,
            scopes=sorted(s.value for s in grant.allowed_scopes),
        )
        return AccessResult(grant=outcome.grant, payload=payload)


class OwnerQueries:
    """Owner-facing listings of grants and their audit trail."""

    def __init__(
        self,
        grant_store: GrantStore,
        ownership: ProfileOwnership,
    ) -> None:
        self._grants = grant_store
        self._ownership = ownership

    async def list_grants(self, owner: AuthIdentity, profile_id: str) -> list[ShareGrant]:
        if not await self._ownership.owns_profile(owner.user_id, profile_id):
            raise AuthorizationError('You are not allowed to view shares of this profile.')
        return await self._grants.list_for_profile(profile_id)

    async def list_access_events(
        self, owner: AuthIdentity, grant_id: str, limit: int = 100,
    ) -> list[ShareAccessEvent]:
        grant = await load_owned_grant(self._grants, self._ownership, grant_id, owner)
        return await self._grants.list_events(grant.id, limit)
