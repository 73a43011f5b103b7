"""Tests for owner JWT verification.

Validates:
  - HS256 tokens signed with the configured secret verify.
  - Expired, wrong-audience, forged and malformed tokens are rejected.
  - sub is required.
  - Display name falls back from name to user_metadata to email.
  - Bearer extraction and verifier factory selection.
"""

from __future__ import annotations

import time
from unittest.mock import MagicMock

import jwt
import pytest

from healthshare.app.security.token_verify import (
    JWKSKeyProvider,
    StaticKeyProvider,
    TokenVerificationError,
    TokenVerifier,
    create_token_verifier,
    extract_bearer_token,
)

from share_fixtures import TEST_AUDIENCE, TEST_JWT_SECRET, make_owner_token


@pytest.fixture
def verifier() -> TokenVerifier:
    return TokenVerifier(
        key_provider=StaticKeyProvider(TEST_JWT_SECRET),
        audience=TEST_AUDIENCE,
        algorithms=['HS256'],
    )


class TestVerify:
    def test_valid_token(self, verifier):
        identity = verifier.verify(make_owner_token('user-a', email='Alice@Example.com', name='Alice'))
        assert identity.user_id == 'user-a'
        assert identity.email == 'alice@example.com'
        assert identity.display_name == 'Alice'
        assert identity.raw_claims['sub'] == 'user-a'

    def test_name_from_user_metadata(self, verifier):
        identity = verifier.verify(make_owner_token(user_metadata={'full_name': 'Alice Doe'}))
        assert identity.display_name == 'Alice Doe'

    def test_display_name_falls_back_to_email(self, verifier):
        assert verifier.verify(make_owner_token('user-a')).display_name == 'user-a@example.com'

    def test_expired(self, verifier):
        with pytest.raises(TokenVerificationError) as exc_info:
            verifier.verify(make_owner_token(exp=int(time.time()) - 10))
        assert exc_info.value.code == 'token_expired'

    def test_wrong_audience(self, verifier):
        with pytest.raises(TokenVerificationError) as exc_info:
            verifier.verify(make_owner_token(aud='anon'))
        assert exc_info.value.code == 'invalid_audience'

    def test_forged_signature(self, verifier):
        forged = jwt.encode(
            {'sub': 'user-a', 'aud': TEST_AUDIENCE, 'exp': int(time.time()) + 60},
            'another-secret-of-sufficient-length-000',
            algorithm='HS256',
        )
        with pytest.raises(TokenVerificationError) as exc_info:
            verifier.verify(forged)
        assert exc_info.value.code == 'invalid_token'

    def test_missing_sub(self, verifier):
        token = jwt.encode(
            {'aud': TEST_AUDIENCE, 'exp': int(time.time()) + 60},
            TEST_JWT_SECRET,
            algorithm='HS256',
        )
        with pytest.raises(TokenVerificationError):
            verifier.verify(token)

    @pytest.mark.parametrize('token', ['', '   ', 'not.a.jwt'])
    def test_malformed(self, verifier, token):
        with pytest.raises(TokenVerificationError):
            verifier.verify(token)


class TestHelpers:
    def test_extract_bearer_token(self):
        request = MagicMock()
        request.headers = {'authorization': 'Bearer abc.def '}
        assert extract_bearer_token(request) == 'abc.def'

    def test_extract_bearer_token_missing(self):
        request = MagicMock()
        request.headers = {'authorization': 'Basic xyz'}
        assert extract_bearer_token(request) is None

    def test_factory_prefers_jwks(self):
        verifier = create_token_verifier(
            supabase_url='https://xyz.supabase.co', jwt_secret=TEST_JWT_SECRET,
        )
        assert isinstance(verifier._key_provider, JWKSKeyProvider)

    def test_factory_static_secret(self):
        verifier = create_token_verifier(jwt_secret=TEST_JWT_SECRET)
        assert isinstance(verifier._key_provider, StaticKeyProvider)

    def test_factory_requires_a_key(self):
        with pytest.raises(ValueError):
            create_token_verifier()
