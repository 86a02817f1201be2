"""Tests for ringsim.network.dht."""

from __future__ import annotations

import pytest

from ringsim.network.address import RING_SIZE
from ringsim.network.dht import Dht, RpcDhtProxy, TableServer
from ringsim.network.rpc import Channel


@pytest.fixture
def dht_ring(small_ring):
    """Small ring with a table server on every node."""
    servers = {node.address: TableServer(node) for node in small_ring}
    return small_ring, servers


def _get(clock, dht, key):
    ch = Channel()
    dht.async_get(key, ch)
    clock.run_steps(2000)
    assert ch.closed
    items = []
    while len(ch):
        items.append(ch.dequeue())
    return items


# ============================================================================
# TableServer
# ============================================================================


class TestTableServer:
    """Test the replica store of a single node."""

    def test_put_and_get(self, node_factory):
        server = TableServer(node_factory())
        assert server.put(b"k", b"v", 60)
        assert server.get(b"k") == [{"value": b"v", "ttl": 60}]
        assert len(server) == 1

    def test_same_value_stored_once(self, node_factory):
        server = TableServer(node_factory())
        server.put(b"k", b"v", 10)
        server.put(b"k", b"v", 60)
        assert server.get(b"k") == [{"value": b"v", "ttl": 60}]

    def test_entries_expire(self, clock, node_factory):
        server = TableServer(node_factory())
        server.put(b"k", b"v", 1)
        clock.run_steps(1000)
        assert server.get(b"k") == []
        assert len(server) == 0

    def test_non_positive_ttl_rejected(self, node_factory):
        server = TableServer(node_factory())
        with pytest.raises(ValueError):
            server.put(b"k", b"v", 0)


# ============================================================================
# Dht client
# ============================================================================


class TestDht:
    """Test replicated puts and gets over a ring."""

    def test_map_to_ring_is_evenly_spaced(self, node_factory):
        dht = Dht(node_factory(), degree=3)
        points = dht.map_to_ring(b"key")

        assert len(points) == dht.replicas == 8
        step = RING_SIZE // 8
        for first, second in zip(points, points[1:]):
            assert first.right_distance(second) == step
        assert all(p.address_class == 0 for p in points)

    def test_put_then_get(self, clock, dht_ring):
        nodes, _ = dht_ring
        dht = Dht(nodes[0])
        ch = Channel(1)
        dht.async_put(b"k", b"v", 60, ch)
        clock.run_steps(2000)
        assert ch.dequeue() is True

        items = _get(clock, Dht(nodes[3]), b"k")
        assert [item["value"] for item in items] == [b"v"]
        assert 0 < items[0]["ttl"] <= 60

    def test_distinct_values_streamed(self, clock, dht_ring):
        nodes, _ = dht_ring
        dht = Dht(nodes[1])
        for value in (b"a", b"b"):
            dht.async_put(b"k", value, 60, Channel(1))
        clock.run_steps(2000)

        values = sorted(item["value"] for item in _get(clock, dht, b"k"))
        assert values == [b"a", b"b"]

    def test_missing_key_closes_empty(self, clock, dht_ring):
        nodes, _ = dht_ring
        assert _get(clock, Dht(nodes[2]), b"missing") == []

    def test_put_from_offline_node_fails(self, node_factory):
        dht = Dht(node_factory())
        ch = Channel(1)
        dht.async_put(b"k", b"v", 60, ch)
        assert ch.closed
        assert ch.dequeue() is False

    def test_put_without_servers_fails(self, clock, small_ring):
        ch = Channel(1)
        Dht(small_ring[0]).async_put(b"k", b"v", 60, ch)
        clock.run_steps(2000)
        assert ch.dequeue() is False


class TestRpcDhtProxy:
    """Test keep-alive registrations."""

    def test_registration_outlives_ttl(self, clock, dht_ring):
        nodes, _ = dht_ring
        dht = Dht(nodes[0])
        proxy = RpcDhtProxy(dht, nodes[0])

        assert proxy.register(b"k", b"v", 30)
        assert proxy.registered == [(b"k", b"v")]
        clock.run_steps(65000)
        assert [item["value"] for item in _get(clock, dht, b"k")] == [b"v"]

    def test_unregister_lets_entry_expire(self, clock, dht_ring):
        nodes, _ = dht_ring
        dht = Dht(nodes[0])
        proxy = RpcDhtProxy(dht, nodes[0])
        proxy.register(b"k", b"v", 30)
        clock.run_steps(65000)

        assert proxy.unregister(b"k", b"v")
        assert not proxy.unregister(b"k", b"v")
        clock.run_steps(40000)
        assert _get(clock, dht, b"k") == []

    def test_exposed_over_rpc(self, dht_ring):
        nodes, _ = dht_ring
        RpcDhtProxy(Dht(nodes[0]), nodes[0])
        assert "RpcDhtProxy.Register" in nodes[0].rpc.methods
        assert "dht.Put" in nodes[0].rpc.methods
