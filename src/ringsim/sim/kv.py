# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
Asynchronous key/value operations against the overlay's DHT.

:class:`DhtPut` and :class:`DhtGet` are one-shot operations with optional
completion callbacks. :class:`AsyncKVFacade` runs them to completion by
pumping the event clock. Failures never raise: a put reports False and a get
returns whatever values arrived before the channel closed.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from ringsim.core.exceptions import ChannelClosedError
from ringsim.network.rpc import Channel

if TYPE_CHECKING:
    from ringsim.network.dht import Dht

    from .clock import EventClock

logger = logging.getLogger(__name__)


class DhtPut:
    """Stores one value; ``successful`` is valid once ``done``."""

    def __init__(
        self,
        dht: Dht,
        key: bytes,
        value: bytes,
        ttl: int,
        callback: Callable[[DhtPut], None] | None = None,
    ):
        self.dht = dht
        self.key = key
        self.value = value
        self.ttl = ttl
        self.callback = callback
        self.done = False
        self.successful = False

    def start(self) -> None:
        returns = Channel()
        returns.add_close_handler(self._on_close)
        self.dht.async_put(self.key, self.value, self.ttl, returns)

    def _on_close(self, returns: Channel) -> None:
        try:
            self.successful = returns.dequeue() is True
        except ChannelClosedError:
            self.successful = False
        self.done = True
        if self.callback is not None:
            self.callback(self)


class DhtGet:
    """Collects every value stored under a key as replicas answer."""

    def __init__(
        self,
        dht: Dht,
        key: bytes,
        enqueue: Callable[[DhtGet], None] | None = None,
        close: Callable[[DhtGet], None] | None = None,
    ):
        self.dht = dht
        self.key = key
        self._enqueue = enqueue
        self._close = close
        self.results: deque[bytes] = deque()
        self.done = False

    def start(self) -> None:
        returns = Channel()
        returns.add_enqueue_handler(self._on_enqueue)
        returns.add_close_handler(self._on_close)
        self.dht.async_get(self.key, returns)

    def _on_enqueue(self, returns: Channel) -> None:
        while len(returns) > 0:
            item = returns.dequeue()
            value = item.get("value") if isinstance(item, dict) else None
            if isinstance(value, bytes):
                self.results.append(value)
            else:
                logger.debug(f"Ignoring undecodable DHT result: {item!r}")
        if self._enqueue is not None:
            self._enqueue(self)

    def _on_close(self, returns: Channel) -> None:
        if self._close is not None:
            self._close(self)
        self.done = True


class AsyncKVFacade:
    """Blocking-style put/get on top of the simulated clock."""

    def __init__(self, dht: Dht, clock: EventClock, max_wall_seconds: float = 3600.0):
        self.dht = dht
        self.clock = clock
        self.max_wall_seconds = max_wall_seconds

    def _wait(self, op: Any) -> None:
        wall_end = time.monotonic() + self.max_wall_seconds
        while not op.done and time.monotonic() < wall_end:
            if not self.clock.run_step():
                break

    def put(self, key: bytes, value: bytes, ttl: int) -> bool:
        op = DhtPut(self.dht, key, value, ttl)
        op.start()
        self._wait(op)
        return op.successful

    def get(self, key: bytes) -> list[bytes]:
        op = DhtGet(self.dht, key)
        op.start()
        self._wait(op)
        return list(op.results)
