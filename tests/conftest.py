"""Global test fixtures for the ringsim test suite."""

from __future__ import annotations

import itertools
import os
import random

import pytest

from ringsim.core.config import SimulationSettings, clear_config_cache
from ringsim.network.address import RingAddress
from ringsim.network.node import StructuredNode
from ringsim.sim.clock import EventClock
from ringsim.sim.simulator import Simulator
from ringsim.transport.listener import SimulationEdgeListener, SimulationNetwork

# ============================================================================
# Environment
# ============================================================================


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all RINGSIM_ environment variables and the cached config."""
    for key in list(os.environ.keys()):
        if key.startswith("RINGSIM_"):
            monkeypatch.delenv(key, raising=False)
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def make_settings(clean_env):
    """Factory for small, seeded settings in the initial-ring topology."""

    def _make(**overrides) -> SimulationSettings:
        values = {"size": 8, "seed": 42, "evaluation": True}
        values.update(overrides)
        return SimulationSettings(**values)

    return _make


# ============================================================================
# Hand-built nodes
# ============================================================================


@pytest.fixture
def clock():
    return EventClock()


@pytest.fixture
def network():
    return SimulationNetwork(default_latency_ms=10)


@pytest.fixture
def node_factory(clock, network):
    """Build nodes with a plain simulated listener on a shared network."""
    rng = random.Random(1234)
    ids = itertools.count()

    def _make(address: RingAddress | None = None) -> StructuredNode:
        sim_id = next(ids)
        node = StructuredNode(
            address or RingAddress.random(rng),
            "testing",
            clock,
            rng=random.Random(sim_id),
        )
        listener = SimulationEdgeListener(sim_id, network)
        listener.node = node
        node.add_edge_listener(listener)
        return node

    return _make


def ring_of(nodes: list[StructuredNode]) -> list[StructuredNode]:
    """Point each node at its ring neighbors (+/-1, +/-2) and connect all."""
    ordered = sorted(nodes, key=lambda n: n.address)
    count = len(ordered)
    for idx, node in enumerate(ordered):
        node.remote_tas = [ordered[(idx + off) % count].local_tas[0] for off in (1, 2, -1, -2)]
    for node in ordered:
        node.connect()
    return ordered


@pytest.fixture
def small_ring(clock, node_factory):
    """Six connected nodes in ring order, settled for one simulated second."""
    nodes = ring_of([node_factory() for _ in range(6)])
    clock.run_steps(1000)
    return nodes


# ============================================================================
# Simulators
# ============================================================================


@pytest.fixture
def ring_sim(make_settings):
    """An 8 node simulator whose ring has completed."""
    sim = Simulator(make_settings(size=8))
    assert sim.complete(quiet=True)
    return sim


@pytest.fixture
def secure_sim(make_settings):
    """An 8 node simulator with secure edges and secure senders."""
    sim = Simulator(make_settings(size=8, secure_edges=True, secure_senders=True))
    assert sim.complete(quiet=True)
    return sim


@pytest.fixture
def make_ring():
    """The ``ring_of`` helper, for tests that build their own nodes."""
    return ring_of
