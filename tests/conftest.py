"""Shared fixtures for the Historian's Bookshelf test suite."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from core.store import MemoryBackend, PersistentStore
from tests.factories import make_result


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def store(backend) -> PersistentStore:
    return PersistentStore(backend)


@pytest.fixture
def fake_client() -> MagicMock:
    """A RecommendationClient stand-in returning three books and four topics."""
    client = MagicMock()
    client.fetch_recommendations.return_value = make_result()
    return client
