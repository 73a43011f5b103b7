"""One-way share revocation. Grants are never reactivated."""

from __future__ import annotations

from typing import TYPE_CHECKING

from healthshare.observability import get_logger
from healthshare.observability.metrics import SHARE_REVOKED_TOTAL

from .errors import AuthorizationError, NotFoundError
from .model import ShareGrant

if TYPE_CHECKING:
    from ..protocols import GrantStore, ProfileOwnership
    from ..security.token_verify import AuthIdentity

logger = get_logger(__name__)


async def load_owned_grant(
    grant_store: GrantStore,
    ownership: ProfileOwnership,
    grant_id: str,
    owner: AuthIdentity,
) -> ShareGrant:
    """Fetch a grant the caller owns.

    Raises:
        NotFoundError: No grant with this id.
        AuthorizationError: The caller does not own the grant's profile.
    """
    grant = await grant_store.get_by_id(grant_id)
    if grant is None:
        raise NotFoundError(f'Share {grant_id} not found.')
    if not await ownership.owns_profile(owner.user_id, grant.owner_profile_id):
        raise AuthorizationError('You are not allowed to manage this share.')
    return grant


class RevocationHandler:
    def __init__(
        self,
        grant_store: GrantStore,
        ownership: ProfileOwnership,
    ) -> None:
        self._grants = grant_store
        self._ownership = ownership

    async def deactivate(self, grant_id: str, owner: AuthIdentity) -> ShareGrant:
        """Set ``is_active`` to False. Idempotent."""
        grant = await load_owned_grant(self._grants, self._ownership, grant_id, owner)
        if grant.is_active:
            updated = await self._grants.deactivate(grant_id)
            if updated is None:
                raise NotFoundError(f'Share {grant_id} not found.')
            grant = updated
            SHARE_REVOKED_TOTAL.inc()
            logger.info('share_revoked', grant_id=grant_id, user_id=owner.user_id)
        return grant
