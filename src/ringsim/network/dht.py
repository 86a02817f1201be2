# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
Distributed key/value store over the ring.

A key is hashed onto the ring and replicated at ``2**degree`` evenly spaced
ring points; each point is served by the node greedy routing reaches.
``async_put`` reports a single success flag (majority of replicas), while
``async_get`` streams every distinct value as replicas answer and closes once
all replicas have answered or timed out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ringsim.core.exceptions import ChannelClosedError, RpcException, SendError

from .address import RING_SIZE, RingAddress
from .router import GreedySender
from .rpc import Channel

if TYPE_CHECKING:
    from ringsim.sim.clock import Timer

    from .node import StructuredNode

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    value: bytes
    expires_at: int


class TableServer:
    """Stores replicas on behalf of the ring (``dht.Put`` / ``dht.Get``)."""

    def __init__(self, node: StructuredNode):
        self.node = node
        self._table: dict[bytes, list[_Entry]] = {}
        node.rpc.register("dht.Put", self.put)
        node.rpc.register("dht.Get", self.get)

    def _prune(self, key: bytes) -> list[_Entry]:
        now = self.node.clock.now
        entries = [e for e in self._table.get(key, []) if e.expires_at > now]
        if entries:
            self._table[key] = entries
        else:
            self._table.pop(key, None)
        return entries

    def put(self, key: bytes, value: bytes, ttl: int) -> bool:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        expires_at = self.node.clock.now + ttl * 1000
        entries = [e for e in self._prune(key) if e.value != value]
        entries.append(_Entry(value=value, expires_at=expires_at))
        self._table[key] = entries
        return True

    def get(self, key: bytes) -> list[dict[str, Any]]:
        now = self.node.clock.now
        return [
            {"value": e.value, "ttl": (e.expires_at - now) // 1000}
            for e in self._prune(key)
        ]

    def __len__(self) -> int:
        return sum(len(self._prune(k)) for k in list(self._table))


class Dht:
    """Client side of the key/value store, usable from any node."""

    def __init__(self, node: StructuredNode, degree: int = 3, delay: int = 20):
        self.node = node
        self.degree = degree
        self.delay = delay

    @property
    def replicas(self) -> int:
        return 1 << self.degree

    def map_to_ring(self, key: bytes) -> list[RingAddress]:
        base = RingAddress.for_key(key)
        step = RING_SIZE // self.replicas
        return [base.offset(i * step) for i in range(self.replicas)]

    def _fan_out(self, method: str, key: bytes, args: tuple, on_result, on_done) -> None:
        targets = self.map_to_ring(key)
        state = {"outstanding": len(targets)}

        def finished(channel: Channel | None) -> None:
            if channel is not None:
                try:
                    on_result(channel.dequeue().result)
                except (ChannelClosedError, RpcException) as e:
                    logger.debug(f"{method} replica failed: {e}")
            state["outstanding"] -= 1
            if state["outstanding"] == 0:
                on_done()

        for target in targets:
            channel = Channel(1)
            channel.add_close_handler(finished)
            try:
                self.node.rpc.invoke(GreedySender(self.node, target), channel, method, key, *args)
            except SendError as e:
                logger.debug(f"{method} to {target!r} not sent: {e}")
                finished(None)

    def async_put(self, key: bytes, value: bytes, ttl: int, returns: Channel) -> None:
        """Store ``value`` under ``key``; enqueues True/False then closes."""
        successes = []

        def on_result(result: Any) -> None:
            if result is True:
                successes.append(result)

        def on_done() -> None:
            returns.enqueue(len(successes) * 2 > self.replicas)
            returns.close()

        self._fan_out("dht.Put", key, (value, ttl), on_result, on_done)

    def async_get(self, key: bytes, returns: Channel) -> None:
        """Enqueue ``{"value", "ttl"}`` for each distinct value, then close."""
        seen: set[bytes] = set()

        def on_result(result: Any) -> None:
            for item in result or []:
                value = item.get("value")
                if value is None or value in seen:
                    continue
                seen.add(value)
                returns.enqueue(item)

        self._fan_out("dht.Get", key, (), on_result, returns.close)


class RpcDhtProxy:
    """Keeps registered entries alive by re-putting them before they expire.

    Exposed over RPC as ``RpcDhtProxy.Register`` and ``RpcDhtProxy.Unregister``.
    """

    def __init__(self, dht: Dht, node: StructuredNode):
        self.dht = dht
        self.node = node
        self._timers: dict[tuple[bytes, bytes], Timer] = {}
        node.rpc.register("RpcDhtProxy.Register", self.register)
        node.rpc.register("RpcDhtProxy.Unregister", self.unregister)

    @property
    def registered(self) -> list[tuple[bytes, bytes]]:
        return list(self._timers)

    def _refresh(self, key: bytes, value: bytes, ttl: int) -> None:
        if not self.node.is_online:
            return
        self.dht.async_put(key, value, ttl, Channel(1))

    def register(self, key: bytes, value: bytes, ttl: int) -> bool:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.unregister(key, value)
        self._refresh(key, value, ttl)
        period_ms = max(1, ttl - self.dht.delay) * 1000
        self._timers[(key, value)] = self.node.clock.schedule_periodic(
            period_ms, self._refresh, key, value, ttl
        )
        return True

    def unregister(self, key: bytes, value: bytes) -> bool:
        timer = self._timers.pop((key, value), None)
        if timer is None:
            return False
        timer.cancel()
        return True
