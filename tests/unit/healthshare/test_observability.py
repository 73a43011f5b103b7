"""Tests for logging correlation, token scrubbing and metric path normalization.

Validates:
  - The request_id from context is injected into log events.
  - Share tokens are cut to a prefix in every logged string field.
  - Path labels never carry grant ids, profile ids or share tokens.
"""

from __future__ import annotations

import io
import logging
import sys

import pytest

from healthshare.app.sharing.model import generate_share_token, hash_token, new_grant_id
from healthshare.observability.logging import (
    _add_request_id,
    _scrub_tokens,
    configure_logging,
    get_logger,
    request_id_ctx,
    scrub_share_tokens,
)
from healthshare.observability.middleware import _normalize_path


def test_request_id_injected_when_set():
    token = request_id_ctx.set('req-abc12345')
    try:
        event = _add_request_id(None, 'info', {'event': 'x'})
    finally:
        request_id_ctx.reset(token)
    assert event['request_id'] == 'req-abc12345'


def test_request_id_absent_outside_request():
    assert 'request_id' not in _add_request_id(None, 'info', {'event': 'x'})


@pytest.mark.parametrize(
    'path, expected',
    [
        ('/api/v1/shares/shr_123', '/api/v1/shares/{grant_id}'),
        ('/api/v1/shares/shr_123/events', '/api/v1/shares/{grant_id}/events'),
        ('/api/v1/profiles/prof_a/shares', '/api/v1/profiles/{profile_id}/shares'),
        ('/share/SomeLongOpaqueToken_123', '/share/{token}'),
        ('/api/v1/share/access', '/api/v1/share/access'),
        ('/health', '/health'),
    ],
)
def test_normalize_path(path, expected):
    assert _normalize_path(path) == expected


def test_scrub_cuts_share_token_to_prefix():
    token = generate_share_token()
    scrubbed = scrub_share_tokens(f'redeem failed for {token} at /share/{token}')
    assert token not in scrubbed
    assert scrubbed == f'redeem failed for {token[:8]}... at /share/{token[:8]}...'


def test_scrub_leaves_ids_and_hashes_alone():
    grant_id = new_grant_id()
    digest = hash_token(generate_share_token())
    text = f'{grant_id} {digest} share_access_race_lost'
    assert scrub_share_tokens(text) == text


def test_scrub_processor_covers_every_string_field():
    token = generate_share_token()
    event = _scrub_tokens(None, 'info', {
        'event': f'token {token}',
        'exception': f'KeyError: {token!r}',
        'tokens': [token, 'ok'],
        'view_count': 3,
    })
    assert token not in repr(event)
    assert event['tokens'] == [f'{token[:8]}...', 'ok']
    assert event['view_count'] == 3


def test_configured_logging_never_prints_full_token(monkeypatch):
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    out = io.StringIO()
    monkeypatch.setattr(sys, 'stdout', out)
    token = generate_share_token()
    try:
        configure_logging(level='INFO', json_output=True, force=True)
        get_logger('healthshare.test.scrub').info('share_debug', detail=f'got {token}')
        logging.getLogger('uvicorn.error').warning('bad request for /share/%s', token)
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)

    text = out.getvalue()
    assert token not in text
    assert text.count(f'{token[:8]}...') == 2
