"""Fixtures for share-link unit tests."""

from __future__ import annotations

import pytest

from share_fixtures import Stores, build_stores


@pytest.fixture
def stores() -> Stores:
    return build_stores()
