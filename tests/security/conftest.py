"""Fixtures for the security tests."""

from __future__ import annotations

import pytest

from ringsim.security.trust import TrustManager


@pytest.fixture
def trust():
    return TrustManager()


@pytest.fixture
def trusted_ring(small_ring, trust):
    """The small ring with a PeerSec trust context on every node."""
    contexts = [trust.create_context(node) for node in small_ring]
    return small_ring, contexts


@pytest.fixture
def dtls_ring(small_ring):
    """The small ring with DTLS-style overlords."""
    manager = TrustManager(dtls=True)
    contexts = [manager.create_context(node) for node in small_ring]
    return small_ring, contexts
