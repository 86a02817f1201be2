# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Simulated RPC over the overlay.

Results travel through a :class:`Channel`: zero or more values are enqueued,
followed by exactly one close. A channel that closes without ever having
yielded a value signals that the call failed (timeout or no route).
"""

from __future__ import annotations

import itertools
import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ringsim.core.exceptions import ChannelClosedError, RpcException, SendError

if TYPE_CHECKING:
    from ringsim.sim.clock import Timer

    from .address import RingAddress
    from .node import Packet, StructuredNode

logger = logging.getLogger(__name__)

RPC_PTYPE = "rpc"


class Channel:
    """Queue of results with an explicit close signal.

    Args:
        max_enqueues: Close automatically after this many enqueues
            (0 means unbounded).
    """

    def __init__(self, max_enqueues: int = 0):
        self.max_enqueues = max_enqueues
        self._items: deque[Any] = deque()
        self._enqueued = 0
        self._closed = False
        self._enqueue_handlers: list[Callable[[Channel], None]] = []
        self._close_handlers: list[Callable[[Channel], None]] = []

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def enqueued(self) -> int:
        """Total values ever enqueued."""
        return self._enqueued

    def __len__(self) -> int:
        return len(self._items)

    def add_enqueue_handler(self, handler: Callable[[Channel], None]) -> None:
        self._enqueue_handlers.append(handler)

    def add_close_handler(self, handler: Callable[[Channel], None]) -> None:
        self._close_handlers.append(handler)

    def enqueue(self, item: Any) -> None:
        if self._closed:
            raise ChannelClosedError("cannot enqueue on a closed channel")
        self._items.append(item)
        self._enqueued += 1
        for handler in list(self._enqueue_handlers):
            handler(self)
        if self.max_enqueues and self._enqueued >= self.max_enqueues:
            self.close()

    def dequeue(self) -> Any:
        """Pop the oldest value.

        Raises:
            ChannelClosedError: If no value is available.
        """
        if self._items:
            return self._items.popleft()
        if self._closed:
            raise ChannelClosedError("channel closed without a value")
        raise ChannelClosedError("channel is empty")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for handler in list(self._close_handlers):
            handler(self)


@dataclass
class RpcResult:
    """One response of an RPC call. ``result`` re-raises remote faults."""

    value: Any = None
    error: RpcException | None = None
    source: RingAddress | None = None

    @property
    def result(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.value


@dataclass
class _PendingCall:
    channel: Channel
    method: str
    timer: Timer | None = None


class RpcManager:
    """Dispatches RPC requests and matches responses for one node."""

    def __init__(self, node: StructuredNode, timeout_ms: int = 20000):
        self.node = node
        self.timeout_ms = timeout_ms
        self._methods: dict[str, Callable[..., Any]] = {}
        self._pending: dict[int, _PendingCall] = {}
        self._ids = itertools.count(1)
        node.demux.subscribe(RPC_PTYPE, self._handle_packet)

    def register(self, name: str, method: Callable[..., Any]) -> None:
        """Expose ``method`` under ``name`` (e.g. ``sys:link.Ping``)."""
        self._methods[name] = method

    def unregister(self, name: str) -> None:
        self._methods.pop(name, None)

    @property
    def methods(self) -> list[str]:
        return sorted(self._methods)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def invoke(self, sender: Any, channel: Channel, method: str, *args: Any) -> int:
        """Send a request through ``sender``; the response lands in ``channel``.

        Raises:
            SendError: If the request cannot be dispatched at all.
        """
        from .node import Packet

        req_id = next(self._ids)
        call = _PendingCall(channel=channel, method=method)
        self._pending[req_id] = call
        packet = Packet(
            RPC_PTYPE,
            {
                "kind": "request",
                "id": req_id,
                "method": method,
                "args": args,
                "reply_to": self.node.address,
            },
            source=self.node.address,
        )
        try:
            sender.send(packet)
        except SendError:
            del self._pending[req_id]
            raise
        call.timer = self.node.clock.schedule(self.timeout_ms, self._expire, req_id)
        return req_id

    def cancel_all(self) -> None:
        """Close every outstanding call without a result."""
        pending, self._pending = self._pending, {}
        for call in pending.values():
            if call.timer is not None:
                call.timer.cancel()
            call.channel.close()

    def _expire(self, req_id: int) -> None:
        call = self._pending.pop(req_id, None)
        if call is not None:
            logger.debug(f"RPC {call.method} #{req_id} timed out at {self.node.address}")
            call.channel.close()

    def _handle_packet(self, packet: Packet, via: Any) -> None:
        payload = packet.payload
        if payload.get("kind") == "request":
            self._handle_request(packet)
        elif payload.get("kind") == "response":
            self._handle_response(packet)

    def _handle_request(self, packet: Packet) -> None:
        from .node import Packet
        from .router import GreedySender

        payload = packet.payload
        method_name = payload["method"]
        method = self._methods.get(method_name)
        value = None
        error = None
        if method is None:
            error = RpcException(f"No handler for {method_name}", method=method_name)
        else:
            try:
                value = method(*payload["args"])
            except Exception as e:
                error = RpcException(f"{type(e).__name__}: {e}", method=method_name)

        reply_to = payload["reply_to"]
        response = Packet(
            RPC_PTYPE,
            {
                "kind": "response",
                "id": payload["id"],
                "to": reply_to,
                "value": value,
                "error": error,
            },
            source=self.node.address,
        )
        if packet.secure and self.node.overlord is not None:
            sender = self.node.overlord.get_secure_sender(reply_to)
        else:
            sender = GreedySender(self.node, reply_to)
        try:
            sender.send(response)
        except SendError as e:
            logger.debug(f"Dropping response to {reply_to}: {e}")

    def _handle_response(self, packet: Packet) -> None:
        payload = packet.payload
        if payload.get("to") != self.node.address:
            return
        call = self._pending.pop(payload["id"], None)
        if call is None:
            return
        if call.timer is not None:
            call.timer.cancel()
        if not call.channel.closed:
            call.channel.enqueue(
                RpcResult(value=payload["value"], error=payload["error"], source=packet.source)
            )
            call.channel.close()
