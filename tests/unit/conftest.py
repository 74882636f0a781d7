"""
Unit test configuration for tests/unit/.

Collaborator doubles live in tests/fixtures/iss.py; this module exposes
fresh instances of them as fixtures.
"""

import pytest

from tests.fixtures.iss import (
    FakeExchange,
    FakeProducer,
    MemoryWatermarkStore,
    RecordingPublisher,
)


@pytest.fixture
def exchange():
    """ISS feed with no trades yet."""
    return FakeExchange()


@pytest.fixture
def publisher():
    """Broker that acknowledges everything unless told otherwise."""
    return RecordingPublisher()


@pytest.fixture
def store():
    """Empty in-memory watermark store."""
    return MemoryWatermarkStore()


@pytest.fixture
def fake_producer():
    return FakeProducer()
