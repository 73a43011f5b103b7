"""Schema invariant tests for the share-link migration.

Validates:
  - Both tables exist, idempotently created, with RLS enabled.
  - The view counter is a single guarded UPDATE ... RETURNING.
  - Triggers are dropped before being recreated.
  - Access levels and actions are constrained to known values.

These tests parse the SQL directly; no live database required.
"""

from __future__ import annotations

import re
from pathlib import Path

import pytest

_MIGRATIONS_DIR = (
    Path(__file__).resolve().parents[3]
    / 'src'
    / 'healthshare'
    / 'app'
    / 'db'
    / 'migrations'
)

_SQL = (_MIGRATIONS_DIR / '001_share_links.sql').read_text()

TABLES = (
    'health.share_grants',
    'health.share_access_events',
)


def _normalise(sql: str) -> str:
    """Lower-case and collapse whitespace for pattern matching."""
    return re.sub(r'\s+', ' ', sql.lower())


_NORM = _normalise(_SQL)


def _function_body(name: str) -> str:
    match = re.search(
        rf'create or replace function {re.escape(name)}\(.*?\$\$(.*?)\$\$',
        _NORM,
    )
    assert match, f'function {name} not defined'
    return match.group(1)


@pytest.mark.parametrize('table', TABLES)
def test_table_created_if_not_exists(table):
    assert f'create table if not exists {table} (' in _NORM


@pytest.mark.parametrize('table', TABLES)
def test_rls_enabled(table):
    assert f'alter table {table} enable row level security' in _NORM


def test_token_hash_is_unique():
    assert 'create unique index if not exists share_grants_token_hash_key' in _NORM


def test_increment_is_one_guarded_update():
    body = _function_body('health.increment_share_view')
    assert body.count('update ') == 1
    assert 'set view_count = view_count + 1' in body
    assert 'where id = p_grant_id' in body
    assert 'and is_active' in body
    assert 'and expires_at > p_now' in body
    assert 'and (max_views is null or view_count < max_views)' in body
    assert body.strip().endswith('returning *;')


def test_increment_only_callable_by_service_role():
    assert 'revoke all on function health.increment_share_view(text, timestamptz) from public' in _NORM
    assert 'grant execute on function health.increment_share_view(text, timestamptz) to service_role' in _NORM


def test_triggers_dropped_before_create():
    created = re.findall(r'create trigger (\w+) ', _NORM)
    assert set(created) == {'share_grants_no_reactivate', 'share_access_events_immutable'}
    for name in created:
        drop_at = _NORM.find(f'drop trigger if exists {name} ')
        assert 0 <= drop_at < _NORM.find(f'create trigger {name} ')


def test_access_events_are_append_only():
    assert 'before update or delete on health.share_access_events' in _NORM


def test_enumerations_are_constrained():
    assert "check (access_level in ('view_only', 'download'))" in _NORM
    assert "check (action in ('viewed', 'downloaded'))" in _NORM
    assert "default 'view_only'" in _NORM
