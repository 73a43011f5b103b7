"""Share-link issuance.

An owner creates a grant for one of their profiles with explicit scopes,
an optional resource filter, a lifetime, and an optional view cap. All
input is validated before anything is persisted; resource ids are checked
against the record stores at issuance time rather than at access time.

The returned share URL carries only the opaque token. Scopes, profile and
limits stay server-side.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from healthshare.observability import get_logger
from healthshare.observability.metrics import SHARE_ISSUED_TOTAL

from .audit import redact_token
from .errors import AuthorizationError, ValidationError
from .model import (
    AccessLevel,
    Scope,
    ShareGrant,
    generate_share_token,
    hash_token,
    new_grant_id,
    utcnow,
)

if TYPE_CHECKING:
    from ..protocols import (
        DocumentStore,
        GrantStore,
        LabStore,
        MedicationStore,
        Notifier,
        ProfileOwnership,
        VitalStore,
    )
    from ..security.token_verify import AuthIdentity

logger = get_logger(__name__)

MAX_RECIPIENT_FIELD_LENGTH = 256
MAX_RESOURCE_FILTER_SIZE = 100


@dataclass(frozen=True, slots=True)
class Recipient:
    """Descriptive recipient info. Never enforced."""

    name: str | None = None
    email: str | None = None
    purpose: str | None = None


@dataclass(frozen=True, slots=True)
class IssuedLink:
    grant: ShareGrant
    token: str
    share_url: str


def parse_scopes(raw: Iterable[str | Scope]) -> frozenset[Scope]:
    """Parse scope names into a non-empty set of known scopes."""
    scopes: set[Scope] = set()
    unknown: list[str] = []
    for item in raw:
        try:
            scopes.add(Scope(item))
        except ValueError:
            unknown.append(str(item))
    if unknown:
        raise ValidationError(
            f'Unknown scopes: {sorted(unknown)}; '
            f'allowed: {sorted(s.value for s in Scope)}'
        )
    if not scopes:
        raise ValidationError('At least one scope is required.')
    return frozenset(scopes)


def compose_share_email(
    *,
    owner_name: str,
    recipient: Recipient,
    share_url: str,
    expires_at: datetime,
) -> tuple[str, str]:
    """Build the subject and body of a share notification email."""
    sender = owner_name or 'A patient'
    subject = f'{sender} shared health records with you'
    greeting = f'Hello {recipient.name},' if recipient.name else 'Hello,'
    lines = [
        greeting,
        '',
        f'{sender} has shared health information with you through a secure link.',
        '',
    ]
    if recipient.purpose:
        lines += [f'Purpose: {recipient.purpose}', '']
    lines += [
        'Open the shared records here:',
        share_url,
        '',
        f'The link expires on {expires_at.strftime("%Y-%m-%d at %H:%M UTC")}.',
        'It is time-limited and meant only for you; please do not forward it.',
    ]
    return subject, '\n'.join(lines)


class LinkIssuer:
    """Creates share grants for owner-authorized profiles."""

    def __init__(
        self,
        *,
        grant_store: GrantStore,
        ownership: ProfileOwnership,
        documents: DocumentStore,
        labs: LabStore,
        vitals: VitalStore,
        medications: MedicationStore,
        notifier: Notifier | None = None,
        public_url: str = 'http://localhost:8000',
        default_ttl: timedelta = timedelta(days=7),
        max_ttl: timedelta = timedelta(days=90),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._grants = grant_store
        self._ownership = ownership
        self._documents = documents
        self._labs = labs
        self._vitals = vitals
        self._medications = medications
        self._notifier = notifier
        self._public_url = public_url.rstrip('/')
        self._default_ttl = default_ttl
        self._max_ttl = max_ttl
        self._clock = clock

    def share_url(self, token: str) -> str:
        return f'{self._public_url}/share/{token}'

    async def create(
        self,
        owner: AuthIdentity,
        profile_id: str,
        allowed_scopes: Iterable[str | Scope],
        *,
        resource_filter: Iterable[str] | None = None,
        recipient: Recipient | None = None,
        ttl: timedelta | None = None,
        max_views: int | None = None,
        access_level: str | AccessLevel = AccessLevel.VIEW_ONLY,
        notify: bool = False,
    ) -> IssuedLink:
        """Validate and persist a new grant.

        Raises:
            AuthorizationError: The owner cannot share this profile.
            ValidationError: Bad scopes, lifetime, view cap, access level,
                recipient fields, or resource ids.
        """
        try:
            issued = await self._create(
                owner,
                profile_id,
                allowed_scopes,
                resource_filter=resource_filter,
                recipient=recipient or Recipient(),
                ttl=self._default_ttl if ttl is None else ttl,
                max_views=max_views,
                access_level=access_level,
            )
        except AuthorizationError:
            SHARE_ISSUED_TOTAL.labels(result='forbidden').inc()
            raise
        except ValidationError:
            SHARE_ISSUED_TOTAL.labels(result='invalid').inc()
            raise

        SHARE_ISSUED_TOTAL.labels(result='created').inc()
        logger.info(
            'share_issued',
            grant_id=issued.grant.id,
            profile_id=profile_id,
            scopes=sorted(s.value for s in issued.grant.allowed_scopes),
            token_prefix=redact_token(issued.token),
            max_views=max_views,
            access_level=issued.grant.access_level.value,
            expires_at=issued.grant.expires_at.isoformat(),
        )

        if notify and issued.grant.recipient_email:
            await self._notify(owner, issued, recipient or Recipient())
        return issued

    async def _create(
        self,
        owner: AuthIdentity,
        profile_id: str,
        allowed_scopes: Iterable[str | Scope],
        *,
        resource_filter: Iterable[str] | None,
        recipient: Recipient,
        ttl: timedelta,
        max_views: int | None,
        access_level: str | AccessLevel,
    ) -> IssuedLink:
        if not profile_id:
            raise ValidationError('profile_id is required.')
        if not await self._ownership.owns_profile(owner.user_id, profile_id):
            raise AuthorizationError('You are not allowed to share this profile.')

        scopes = parse_scopes(allowed_scopes)

        if ttl <= timedelta(0):
            raise ValidationError('Link lifetime must be positive.')
        if ttl > self._max_ttl:
            raise ValidationError(
                f'Link lifetime may not exceed {int(self._max_ttl.total_seconds() // 3600)} hours.'
            )

        if max_views is not None and (isinstance(max_views, bool) or max_views < 1):
            raise ValidationError('max_views must be a positive integer.')

        try:
            level = AccessLevel(access_level)
        except ValueError:
            raise ValidationError(
                f'Unknown access_level {access_level!r}; '
                f'allowed: {sorted(a.value for a in AccessLevel)}'
            ) from None

        for label, value in (
            ('recipient_name', recipient.name),
            ('recipient_email', recipient.email),
            ('purpose', recipient.purpose),
        ):
            if value is not None and len(value) > MAX_RECIPIENT_FIELD_LENGTH:
                raise ValidationError(f'{label} is too long.')

        filter_ids = await self._validate_resource_filter(profile_id, resource_filter)

        token = generate_share_token()
        now = self._clock()
        grant = ShareGrant(
            id=new_grant_id(),
            token_hash=hash_token(token),
            owner_profile_id=profile_id,
            allowed_scopes=scopes,
            resource_filter=filter_ids,
            recipient_name=recipient.name,
            recipient_email=recipient.email,
            purpose=recipient.purpose,
            shared_by_name=owner.display_name or None,
            created_by=owner.user_id,
            created_at=now,
            expires_at=now + ttl,
            max_views=max_views,
            access_level=level,
        )
        grant = await self._grants.create(grant)
        return IssuedLink(grant=grant, token=token, share_url=self.share_url(token))

    async def _validate_resource_filter(
        self,
        profile_id: str,
        resource_filter: Iterable[str] | None,
    ) -> frozenset[str] | None:
        """Every id must name a record of ``profile_id``. Empty means no filter."""
        if resource_filter is None:
            return None
        ids = frozenset(str(i) for i in resource_filter if str(i).strip())
        if not ids:
            return None
        if len(ids) > MAX_RESOURCE_FILTER_SIZE:
            raise ValidationError(
                f'At most {MAX_RESOURCE_FILTER_SIZE} resources can be shared in one link.'
            )

        owners: dict[str, str | None] = {}
        for store in (self._documents, self._labs, self._vitals):
            for row in await store.get_by_ids(sorted(ids)):
                owners.setdefault(row['id'], row.get('profile_id'))
        for row in await self._medications.active(profile_id):
            if row['id'] in ids:
                owners.setdefault(row['id'], row.get('profile_id'))

        bad = sorted(i for i in ids if owners.get(i) != profile_id)
        if bad:
            raise ValidationError(
                f'Resources not found for this profile: {bad}'
            )
        return ids

    async def _notify(
        self,
        owner: AuthIdentity,
        issued: IssuedLink,
        recipient: Recipient,
    ) -> None:
        if self._notifier is None:
            logger.warning('share_notify_skipped', grant_id=issued.grant.id, reason='no_notifier')
            return
        subject, body = compose_share_email(
            owner_name=owner.display_name,
            recipient=recipient,
            share_url=issued.share_url,
            expires_at=issued.grant.expires_at,
        )
        try:
            await self._notifier.send(issued.grant.recipient_email, subject, body)
        except Exception:
            logger.exception('share_notify_failed', grant_id=issued.grant.id)
