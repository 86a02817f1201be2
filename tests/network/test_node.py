"""Tests for ringsim.network.node - linking, ring convergence and departure."""

from __future__ import annotations

from ringsim.network.connection_table import ConnectionType
from ringsim.network.node import ConnectionState, DemuxHandler, Packet
from ringsim.transport.addresses import simulation_address


def _is_consistent(nodes):
    ordered = sorted(nodes, key=lambda n: n.address)
    for idx, node in enumerate(ordered):
        right = ordered[(idx + 1) % len(ordered)]
        table = node.connection_table
        if table.get_right_structured_neighbor_of(node.address).address != right.address:
            return False
        if right.connection_table.get_left_structured_neighbor_of(right.address).address != node.address:
            return False
    return True


# ============================================================================
# DemuxHandler
# ============================================================================


class TestDemuxHandler:
    def test_dispatch_to_subscribers(self):
        demux = DemuxHandler()
        seen = []
        demux.subscribe("x", lambda p, via: seen.append((p.payload, via)))

        count = demux.dispatch(Packet("x", 1, source=None), "via")
        assert count == 1
        assert seen == [(1, "via")]

    def test_unsubscribe(self):
        demux = DemuxHandler()
        handler = lambda p, via: None  # noqa: E731
        demux.subscribe("x", handler)
        demux.unsubscribe("x", handler)
        assert not demux.has_subscribers("x")
        assert demux.dispatch(Packet("x", 1, source=None)) == 0


# ============================================================================
# Linking
# ============================================================================


class TestLinking:
    """Test pairwise edge creation."""

    def test_link_connects_both_ends(self, clock, node_factory):
        a, b = node_factory(), node_factory()
        a.connect()
        b.connect()

        assert a.link(b.local_tas[0])
        clock.run_steps(100)

        assert b.address in a.connection_table
        assert a.address in b.connection_table
        assert a.connection_table.get(b.address).con_type is ConnectionType.STRUCTURED

    def test_link_to_self_refused(self, node_factory):
        a = node_factory()
        assert not a.link(a.local_tas[0])

    def test_link_to_unknown_ta(self, node_factory):
        a = node_factory()
        assert not a.link(simulation_address(999))

    def test_duplicate_link_ignored(self, clock, node_factory):
        a, b = node_factory(), node_factory()
        assert a.link(b.local_tas[0])
        assert not a.link(b.local_tas[0])

    def test_two_nodes_become_connected(self, clock, node_factory):
        a, b = node_factory(), node_factory()
        b.remote_tas = [a.local_tas[0]]
        a.connect()
        b.connect()
        clock.run_steps(100)

        assert a.con_state is ConnectionState.CONNECTED
        assert b.con_state is ConnectionState.CONNECTED


# ============================================================================
# Ring convergence
# ============================================================================


class TestRingConvergence:
    """Test the near-list exchange forms a consistent ring."""

    def test_initial_ring_is_consistent(self, small_ring):
        assert _is_consistent(small_ring)
        assert all(n.is_connected for n in small_ring)

    def test_join_through_single_seed(self, clock, node_factory):
        """Nodes that only know the first node still find their true neighbors."""
        nodes = [node_factory() for _ in range(8)]
        seed = nodes[0]
        seed.connect()
        for node in nodes[1:]:
            node.remote_tas = [seed.local_tas[0]]
            node.connect()
        clock.run_steps(30000)

        assert _is_consistent(nodes)

    def test_neighbors_rpc(self, small_ring):
        node = small_ring[2]
        reply = node._rpc_get_neighbors()
        assert reply["self"] == str(node.address)
        assert reply["left"] == str(small_ring[1].address)
        assert reply["right"] == str(small_ring[3].address)


# ============================================================================
# Departure
# ============================================================================


class TestDeparture:
    """Test clean and abrupt departure."""

    def test_disconnect_notifies_peers(self, clock, small_ring):
        leaving = small_ring[0]
        leaving.disconnect()

        assert leaving.con_state is ConnectionState.DISCONNECTED
        assert len(leaving.connection_table) == 0
        clock.run_steps(50)
        assert all(leaving.address not in n.connection_table for n in small_ring[1:])

    def test_abort_is_noticed_after_timeout(self, clock, small_ring):
        leaving = small_ring[0]
        leaving.abort()

        clock.run_steps(100)
        assert any(leaving.address in n.connection_table for n in small_ring[1:])
        clock.run_steps(leaving.edge_timeout_ms)
        assert all(leaving.address not in n.connection_table for n in small_ring[1:])

    def test_disconnected_node_drops_packets(self, small_ring):
        node = small_ring[0]
        seen = []
        node.demux.subscribe("x", lambda p, via: seen.append(p))
        node.disconnect()
        node.deliver(Packet("x", None, source=node.address))
        assert seen == []

    def test_disconnected_node_refuses_edges(self, node_factory, small_ring):
        leaving = small_ring[0]
        leaving.disconnect()
        newcomer = node_factory()
        assert not newcomer.link(leaving.local_tas[0])
