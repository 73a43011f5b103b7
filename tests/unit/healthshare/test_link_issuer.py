"""Tests for LinkIssuer.

Validates:
  - A valid request persists one grant and returns the token once.
  - The share URL carries only the token.
  - Only the token hash is stored.
  - Ownership, scope, lifetime, view-cap, access-level and resource checks
    reject bad input before anything is persisted.
  - Notification is sent when asked and its failure is not fatal.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from healthshare.app.sharing.errors import AuthorizationError, ValidationError
from healthshare.app.sharing.issuer import (
    MAX_RESOURCE_FILTER_SIZE,
    LinkIssuer,
    Recipient,
    compose_share_email,
    parse_scopes,
)
from healthshare.app.sharing.model import AccessLevel, Scope, hash_token

from share_fixtures import OWNER_A, OWNER_B

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _issuer(stores, **kwargs) -> LinkIssuer:
    return LinkIssuer(
        grant_store=stores.grants,
        ownership=stores.ownership,
        documents=stores.documents,
        labs=stores.labs,
        vitals=stores.vitals,
        medications=stores.medications,
        notifier=kwargs.pop('notifier', stores.notifier),
        public_url='https://share.example.com/',
        clock=lambda: NOW,
        **kwargs,
    )


async def _stored(stores, profile_id='prof_a'):
    return await stores.grants.list_for_profile(profile_id)


class TestCreate:
    @pytest.mark.asyncio
    async def test_creates_grant_with_defaults(self, stores):
        issued = await _issuer(stores).create(OWNER_A, 'prof_a', ['vitals', 'documents'])

        grant = issued.grant
        assert grant.allowed_scopes == frozenset({Scope.VITALS, Scope.DOCUMENTS})
        assert grant.view_count == 0
        assert grant.is_active
        assert grant.created_by == 'user-a'
        assert grant.shared_by_name == 'Alice Doe'
        assert grant.expires_at == NOW + timedelta(days=7)
        assert grant.resource_filter is None
        assert grant.max_views is None
        assert grant.access_level is AccessLevel.VIEW_ONLY

    @pytest.mark.asyncio
    async def test_share_url_contains_only_the_token(self, stores):
        issued = await _issuer(stores).create(OWNER_A, 'prof_a', ['vitals'])
        assert issued.share_url == f'https://share.example.com/share/{issued.token}'

    @pytest.mark.asyncio
    async def test_only_hash_is_stored(self, stores):
        issued = await _issuer(stores).create(OWNER_A, 'prof_a', ['vitals'])
        stored = await stores.grants.get_by_id(issued.grant.id)
        assert stored.token_hash == hash_token(issued.token)
        assert issued.token not in repr(stored)

    @pytest.mark.asyncio
    async def test_token_resolves_to_grant(self, stores):
        issued = await _issuer(stores).create(OWNER_A, 'prof_a', ['lab_results'])
        assert (await stores.grants.get(issued.token)).id == issued.grant.id

    @pytest.mark.asyncio
    async def test_duplicate_scopes_collapse(self, stores):
        issued = await _issuer(stores).create(OWNER_A, 'prof_a', ['vitals', 'vitals', Scope.VITALS])
        assert issued.grant.allowed_scopes == frozenset({Scope.VITALS})

    @pytest.mark.asyncio
    async def test_custom_ttl_and_max_views(self, stores):
        issued = await _issuer(stores).create(
            OWNER_A, 'prof_a', ['vitals'], ttl=timedelta(hours=2), max_views=3,
        )
        assert issued.grant.expires_at == NOW + timedelta(hours=2)
        assert issued.grant.max_views == 3

    @pytest.mark.asyncio
    async def test_max_ttl_is_accepted(self, stores):
        issued = await _issuer(stores).create(OWNER_A, 'prof_a', ['vitals'], ttl=timedelta(days=90))
        assert issued.grant.expires_at == NOW + timedelta(days=90)

    @pytest.mark.asyncio
    async def test_recipient_fields_are_stored(self, stores):
        issued = await _issuer(stores).create(
            OWNER_A,
            'prof_a',
            ['vitals'],
            recipient=Recipient(name='Dr. Smith', email='smith@clinic.example', purpose='Follow-up'),
        )
        assert issued.grant.recipient_name == 'Dr. Smith'
        assert issued.grant.recipient_email == 'smith@clinic.example'
        assert issued.grant.purpose == 'Follow-up'

    @pytest.mark.asyncio
    async def test_download_access_level(self, stores):
        issued = await _issuer(stores).create(OWNER_A, 'prof_a', ['documents'], access_level='download')
        stored = await stores.grants.get_by_id(issued.grant.id)
        assert stored.access_level is AccessLevel.DOWNLOAD


class TestRejections:
    @pytest.mark.asyncio
    async def test_empty_scopes_rejected_before_persisting(self, stores):
        with pytest.raises(ValidationError):
            await _issuer(stores).create(OWNER_A, 'prof_a', [])
        assert await _stored(stores) == []

    @pytest.mark.asyncio
    async def test_unknown_scope_rejected(self, stores):
        with pytest.raises(ValidationError, match='Unknown scopes'):
            await _issuer(stores).create(OWNER_A, 'prof_a', ['vitals', 'genome'])
        assert await _stored(stores) == []

    @pytest.mark.asyncio
    async def test_foreign_profile_is_forbidden(self, stores):
        with pytest.raises(AuthorizationError):
            await _issuer(stores).create(OWNER_B, 'prof_a', ['vitals'])
        assert await _stored(stores) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize('ttl', [timedelta(0), timedelta(seconds=-1), timedelta(days=90, seconds=1)])
    async def test_ttl_out_of_range(self, stores, ttl):
        with pytest.raises(ValidationError):
            await _issuer(stores).create(OWNER_A, 'prof_a', ['vitals'], ttl=ttl)
        assert await _stored(stores) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize('max_views', [0, -1, True])
    async def test_bad_max_views(self, stores, max_views):
        with pytest.raises(ValidationError):
            await _issuer(stores).create(OWNER_A, 'prof_a', ['vitals'], max_views=max_views)

    @pytest.mark.asyncio
    async def test_unknown_access_level_rejected(self, stores):
        with pytest.raises(ValidationError, match='access_level'):
            await _issuer(stores).create(OWNER_A, 'prof_a', ['vitals'], access_level='edit')
        assert await _stored(stores) == []

    @pytest.mark.asyncio
    async def test_overlong_recipient_field(self, stores):
        with pytest.raises(ValidationError, match='purpose'):
            await _issuer(stores).create(
                OWNER_A, 'prof_a', ['vitals'], recipient=Recipient(purpose='x' * 257),
            )

    @pytest.mark.asyncio
    async def test_foreign_resource_id_rejected(self, stores):
        with pytest.raises(ValidationError, match='doc_b1'):
            await _issuer(stores).create(
                OWNER_A, 'prof_a', ['documents'], resource_filter=['doc_a1', 'doc_b1'],
            )
        assert await _stored(stores) == []

    @pytest.mark.asyncio
    async def test_unknown_resource_id_rejected(self, stores):
        with pytest.raises(ValidationError, match='nope'):
            await _issuer(stores).create(
                OWNER_A, 'prof_a', ['documents'], resource_filter=['nope'],
            )


class TestResourceFilter:
    @pytest.mark.asyncio
    async def test_ids_across_record_types_accepted(self, stores):
        issued = await _issuer(stores).create(
            OWNER_A,
            'prof_a',
            ['documents', 'lab_results', 'vitals', 'medications'],
            resource_filter=['doc_a1', 'lab_a1', 'vit_a2', 'med_a1'],
        )
        assert issued.grant.resource_filter == frozenset({'doc_a1', 'lab_a1', 'vit_a2', 'med_a1'})

    @pytest.mark.asyncio
    async def test_empty_filter_means_no_filter(self, stores):
        issued = await _issuer(stores).create(OWNER_A, 'prof_a', ['documents'], resource_filter=[])
        assert issued.grant.resource_filter is None

    @pytest.mark.asyncio
    async def test_oversized_filter_rejected(self, stores):
        ids = [f'doc_n{i:03d}' for i in range(MAX_RESOURCE_FILTER_SIZE + 1)]
        for doc_id in ids:
            stores.documents.add({'id': doc_id, 'profile_id': 'prof_a', 'created_at': '2026-02-01'})
        with pytest.raises(ValidationError, match=str(MAX_RESOURCE_FILTER_SIZE)):
            await _issuer(stores).create(OWNER_A, 'prof_a', ['documents'], resource_filter=ids)
        assert await _stored(stores) == []


class TestNotification:
    @pytest.mark.asyncio
    async def test_notifies_recipient(self, stores):
        issued = await _issuer(stores).create(
            OWNER_A,
            'prof_a',
            ['vitals'],
            recipient=Recipient(name='Dr. Smith', email='smith@clinic.example', purpose='Follow-up'),
            notify=True,
        )
        assert len(stores.notifier.sent) == 1
        sent = stores.notifier.sent[0]
        assert sent['recipient'] == 'smith@clinic.example'
        assert 'Alice Doe' in sent['subject']
        assert issued.share_url in sent['body']
        assert 'Follow-up' in sent['body']

    @pytest.mark.asyncio
    async def test_no_notification_without_email(self, stores):
        await _issuer(stores).create(OWNER_A, 'prof_a', ['vitals'], notify=True)
        assert stores.notifier.sent == []

    @pytest.mark.asyncio
    async def test_notifier_failure_is_not_fatal(self, stores):
        class BrokenNotifier:
            async def send(self, recipient, subject, body):
                raise RuntimeError('smtp down')

        issued = await _issuer(stores, notifier=BrokenNotifier()).create(
            OWNER_A,
            'prof_a',
            ['vitals'],
            recipient=Recipient(email='smith@clinic.example'),
            notify=True,
        )
        assert await stores.grants.get_by_id(issued.grant.id) is not None


def test_parse_scopes_lists_allowed_values():
    with pytest.raises(ValidationError) as exc_info:
        parse_scopes(['x'])
    assert 'profile_summary' in str(exc_info.value)


def test_compose_share_email_without_purpose():
    subject, body = compose_share_email(
        owner_name='',
        recipient=Recipient(),
        share_url='https://share.example.com/share/abc',
        expires_at=NOW,
    )
    assert subject == 'A patient shared health records with you'
    assert body.startswith('Hello,')
    assert 'Purpose' not in body
    assert '2026-03-01 at 12:00 UTC' in body
