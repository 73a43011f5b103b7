"""Shared builders for share-link tests.

Two profiles with disjoint owners:
  - ``prof_a`` owned by ``user-a`` (the sharer in most tests)
  - ``prof_b`` owned by ``user-b`` (the "someone else" whose records must
    never leak through a ``prof_a`` grant)
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from healthshare.app.inmemory import (
    InMemoryDocumentStore,
    InMemoryGrantStore,
    InMemoryLabStore,
    InMemoryMedicationStore,
    InMemoryNotifier,
    InMemoryProfileOwnership,
    InMemoryProfileStore,
    InMemoryVitalStore,
)
from healthshare.app.security.token_verify import AuthIdentity
from healthshare.app.sharing.model import (
    AccessLevel,
    Scope,
    ShareGrant,
    generate_share_token,
    hash_token,
    new_grant_id,
)

TEST_JWT_SECRET = 'test-jwt-secret-for-unit-tests-only-0123456789'
TEST_AUDIENCE = 'authenticated'

OWNER_A = AuthIdentity(user_id='user-a', email='alice@example.com', name='Alice Doe')
OWNER_B = AuthIdentity(user_id='user-b', email='bob@example.com', name='Bob Roe')


@dataclass
class Stores:
    profiles: InMemoryProfileStore
    documents: InMemoryDocumentStore
    labs: InMemoryLabStore
    vitals: InMemoryVitalStore
    medications: InMemoryMedicationStore
    ownership: InMemoryProfileOwnership
    grants: InMemoryGrantStore
    notifier: InMemoryNotifier

    def as_overrides(self) -> dict:
        return {
            'grant_store': self.grants,
            'profiles': self.profiles,
            'documents': self.documents,
            'labs': self.labs,
            'vitals': self.vitals,
            'medications': self.medications,
            'ownership': self.ownership,
            'notifier': self.notifier,
        }


def _vital(vid: str, profile_id: str, vital_type: str, value: float, day: int) -> dict:
    return {
        'id': vid,
        'profile_id': profile_id,
        'vital_type': vital_type,
        'value': value,
        'unit': 'bpm' if vital_type == 'heart_rate' else 'kg',
        'measured_at': f'2026-01-{day:02d}T08:00:00+00:00',
    }


def build_stores() -> Stores:
    profiles = InMemoryProfileStore([
        {
            'id': 'prof_a',
            'full_name': 'Alice Doe',
            'date_of_birth': '1980-04-02',
            'gender': 'female',
            'blood_group': 'A+',
            'allergies': ['penicillin'],
            'chronic_conditions': ['asthma'],
            'phone': '+1-555-0100',
            'address': '1 Main St',
        },
        {'id': 'prof_b', 'full_name': 'Bob Roe'},
    ])
    documents = InMemoryDocumentStore([
        {'id': 'doc_a1', 'profile_id': 'prof_a', 'title': 'Discharge summary', 'created_at': '2026-01-03'},
        {'id': 'doc_a2', 'profile_id': 'prof_a', 'title': 'MRI report', 'created_at': '2026-01-05'},
        {'id': 'doc_a3', 'profile_id': 'prof_a', 'title': 'Referral letter', 'created_at': '2026-01-07'},
        {'id': 'doc_b1', 'profile_id': 'prof_b', 'title': 'Private', 'created_at': '2026-01-04'},
    ])
    labs = InMemoryLabStore([
        {'id': 'lab_a1', 'profile_id': 'prof_a', 'test_name': 'HbA1c', 'test_date': '2026-01-02'},
        {'id': 'lab_b1', 'profile_id': 'prof_b', 'test_name': 'Lipids', 'test_date': '2026-01-02'},
    ])
    vitals = InMemoryVitalStore([
        _vital('vit_a1', 'prof_a', 'heart_rate', 72, 1),
        _vital('vit_a2', 'prof_a', 'heart_rate', 80, 2),
        _vital('vit_a3', 'prof_a', 'weight', 61.5, 3),
        _vital('vit_b1', 'prof_b', 'heart_rate', 99, 1),
    ])
    medications = InMemoryMedicationStore([
        {'id': 'med_a1', 'profile_id': 'prof_a', 'name': 'Salbutamol', 'is_active': True, 'start_date': '2025-12-01'},
        {'id': 'med_a2', 'profile_id': 'prof_a', 'name': 'Amoxicillin', 'is_active': False, 'start_date': '2025-06-01'},
        {'id': 'med_b1', 'profile_id': 'prof_b', 'name': 'Statin', 'is_active': True, 'start_date': '2025-12-01'},
    ])
    ownership = InMemoryProfileOwnership({'prof_a': 'user-a', 'prof_b': 'user-b'})
    return Stores(
        profiles=profiles,
        documents=documents,
        labs=labs,
        vitals=vitals,
        medications=medications,
        ownership=ownership,
        grants=InMemoryGrantStore(),
        notifier=InMemoryNotifier(),
    )


async def seed_grant(
    grants: InMemoryGrantStore,
    *,
    scopes=(Scope.DOCUMENTS,),
    profile_id: str = 'prof_a',
    resource_filter=None,
    max_views: int | None = None,
    view_count: int = 0,
    is_active: bool = True,
    expires_in: timedelta = timedelta(days=7),
    access_level: AccessLevel = AccessLevel.VIEW_ONLY,
) -> tuple[str, ShareGrant]:
    """Persist a grant directly and return (plaintext_token, grant)."""
    token = generate_share_token()
    now = datetime.now(timezone.utc)
    grant = ShareGrant(
        id=new_grant_id(),
        token_hash=hash_token(token),
        owner_profile_id=profile_id,
        allowed_scopes=frozenset(scopes),
        resource_filter=frozenset(resource_filter) if resource_filter is not None else None,
        created_by='user-a',
        created_at=now - timedelta(minutes=1),
        expires_at=now + expires_in,
        max_views=max_views,
        view_count=view_count,
        is_active=is_active,
        shared_by_name='Alice Doe',
        access_level=access_level,
    )
    return token, await grants.create(grant)


def make_owner_token(sub: str = 'user-a', **claims) -> str:
    """Create an HS256 owner JWT signed with the test secret."""
    payload = {
        'sub': sub,
        'email': f'{sub}@example.com',
        'aud': TEST_AUDIENCE,
        'exp': int(time.time()) + 3600,
        'iat': int(time.time()),
    }
    payload.update(claims)
    return jwt.encode(payload, TEST_JWT_SECRET, algorithm='HS256')
