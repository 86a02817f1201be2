"""Tests for ringsim.network.rpc."""

from __future__ import annotations

import pytest

from ringsim.core.exceptions import ChannelClosedError, RpcException, SendError
from ringsim.network.router import GreedySender
from ringsim.network.rpc import Channel, RpcResult


class TestChannel:
    """Test the result queue."""

    def test_enqueue_dequeue_order(self):
        ch = Channel()
        ch.enqueue(1)
        ch.enqueue(2)
        assert len(ch) == 2
        assert ch.dequeue() == 1
        assert ch.dequeue() == 2
        assert ch.enqueued == 2

    def test_max_enqueues_closes(self):
        closed = []
        ch = Channel(max_enqueues=1)
        ch.add_close_handler(lambda c: closed.append(c))
        ch.enqueue("x")

        assert ch.closed
        assert closed == [ch]
        assert ch.dequeue() == "x"

    def test_enqueue_on_closed_raises(self):
        ch = Channel()
        ch.close()
        with pytest.raises(ChannelClosedError):
            ch.enqueue(1)

    def test_dequeue_closed_without_value(self):
        ch = Channel()
        ch.close()
        with pytest.raises(ChannelClosedError, match="without a value"):
            ch.dequeue()

    def test_close_handlers_run_once(self):
        calls = []
        ch = Channel()
        ch.add_close_handler(lambda c: calls.append(1))
        ch.close()
        ch.close()
        assert calls == [1]

    def test_enqueue_handler(self):
        seen = []
        ch = Channel()
        ch.add_enqueue_handler(lambda c: seen.append(len(c)))
        ch.enqueue("a")
        assert seen == [1]


class TestRpcResult:
    def test_result_returns_value(self):
        assert RpcResult(value=5).result == 5

    def test_result_raises_error(self):
        with pytest.raises(RpcException):
            _ = RpcResult(error=RpcException("boom")).result


# ============================================================================
# Calls over the overlay
# ============================================================================


class TestInvoke:
    """Test request/response over a small ring."""

    def test_ping_round_trip(self, clock, small_ring):
        caller, target = small_ring[0], small_ring[3]
        ch = Channel(1)
        caller.rpc.invoke(GreedySender(caller, target.address), ch, "sys:link.Ping", 7)
        clock.run_steps(1000)

        assert ch.closed
        result = ch.dequeue()
        assert result.result == 7
        assert result.source == target.address
        assert caller.rpc.pending == 0

    def test_get_neighbors(self, clock, small_ring):
        caller, target = small_ring[0], small_ring[2]
        ch = Channel(1)
        caller.rpc.invoke(GreedySender(caller, target.address), ch, "sys:link.GetNeighbors")
        clock.run_steps(1000)

        reply = ch.dequeue().result
        assert reply["left"] == str(small_ring[1].address)

    def test_unknown_method_faults(self, clock, small_ring):
        caller = small_ring[0]
        ch = Channel(1)
        caller.rpc.invoke(GreedySender(caller, small_ring[1].address), ch, "nope.Missing")
        clock.run_steps(1000)

        with pytest.raises(RpcException, match="No handler"):
            _ = ch.dequeue().result

    def test_handler_exception_becomes_fault(self, clock, small_ring):
        target = small_ring[1]

        def explode():
            raise RuntimeError("kaput")

        target.rpc.register("test.Explode", explode)
        caller = small_ring[0]
        ch = Channel(1)
        caller.rpc.invoke(GreedySender(caller, target.address), ch, "test.Explode")
        clock.run_steps(1000)

        with pytest.raises(RpcException, match="RuntimeError: kaput"):
            _ = ch.dequeue().result

    def test_timeout_closes_without_value(self, clock, small_ring):
        caller, target = small_ring[0], small_ring[3]
        target.abort()
        ch = Channel(1)
        caller.rpc.invoke(GreedySender(caller, target.address), ch, "sys:link.Ping")
        clock.run_steps(caller.rpc.timeout_ms + 1)

        assert ch.closed
        assert len(ch) == 0
        assert caller.rpc.pending == 0

    def test_offline_sender_raises(self, node_factory):
        node = node_factory()
        ch = Channel(1)
        with pytest.raises(SendError):
            node.rpc.invoke(GreedySender(node, node.address), ch, "sys:link.Ping")
        assert node.rpc.pending == 0

    def test_cancel_all_closes_channels(self, small_ring):
        caller = small_ring[0]
        ch = Channel(1)
        caller.rpc.invoke(GreedySender(caller, small_ring[1].address), ch, "sys:link.Ping")
        caller.rpc.cancel_all()
        assert ch.closed
        assert caller.rpc.pending == 0

    def test_methods_listing(self, node_factory):
        node = node_factory()
        assert "sys:link.Ping" in node.rpc.methods
        node.rpc.unregister("sys:link.Ping")
        assert "sys:link.Ping" not in node.rpc.methods
