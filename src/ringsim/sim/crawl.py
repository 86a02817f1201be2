# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
Live ring crawl through remote calls.

Unlike :class:`~ringsim.sim.verifier.RingVerifier`, which reads connection
tables directly, the crawl asks each node for its own view of its neighbors
over ``sys:link.GetNeighbors`` and follows the reported right neighbor.

Consistency is counted in two places:

- a node's reported left neighbor equals the previous hop;
- the node that is the origin's first reported left neighbor reports the
  origin as its right neighbor, closing the ring.

On a perfect ring of ``n`` nodes both together give ``n``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ringsim.core.exceptions import ChannelClosedError, RpcException, SendError
from ringsim.network.address import parse_address
from ringsim.network.router import GreedySender
from ringsim.network.rpc import Channel

if TYPE_CHECKING:
    from ringsim.network.address import RingAddress
    from ringsim.network.node import StructuredNode
    from ringsim.security.overlord import SecurityOverlord

logger = logging.getLogger(__name__)


@dataclass
class CrawlResult:
    visited: int
    expected: int
    consistency: int
    success: bool
    elapsed_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "visited": self.visited,
            "expected": self.expected,
            "consistency": self.consistency,
            "success": self.success,
            "elapsed_ms": self.elapsed_ms,
        }


class CrawlCoordinator:
    """Crawls the ring rightwards starting at ``node``.

    Args:
        node: Origin of the crawl; every call is issued from it.
        count: Number of nodes expected on the ring.
        overlord: When given, calls travel over secure senders.
        log: Log every hop and the final statistics.
    """

    def __init__(
        self,
        node: StructuredNode,
        count: int,
        overlord: SecurityOverlord | None = None,
        log: bool = False,
    ):
        self.node = node
        self.count = count
        self.overlord = overlord
        self.log = log
        self.crawled: set[RingAddress] = set()
        self.consistency = 0
        self.done = False
        self._first_left: RingAddress | None = None
        self._previous: RingAddress | None = None
        self._start = 0

    @property
    def success(self) -> bool:
        return len(self.crawled) == self.count

    def result(self) -> CrawlResult:
        return CrawlResult(
            visited=len(self.crawled),
            expected=self.count,
            consistency=self.consistency,
            success=self.success,
            elapsed_ms=self.node.clock.now - self._start,
        )

    def start(self) -> None:
        self._start = self.node.clock.now
        self._crawl_next(self.node.address)

    def run(self, max_wall_seconds: float = 3600.0) -> CrawlResult:
        """Start the crawl and pump the clock until it finishes."""
        self.start()
        wall_end = time.monotonic() + max_wall_seconds
        clock = self.node.clock
        while not self.done and time.monotonic() < wall_end:
            if not clock.run_step():
                break
        return self.result()

    def _sender(self, address: RingAddress) -> Any:
        if self.overlord is not None:
            return self.overlord.get_secure_sender(address)
        return GreedySender(self.node, address)

    def _crawl_next(self, address: RingAddress) -> None:
        finished = False
        if self.log and len(self.crawled) < self.count:
            logger.info(f"Current address: {address}")
        if address in self.crawled:
            finished = True
        else:
            self.crawled.add(address)
            channel = Channel(1)
            channel.add_close_handler(self._handle_close)
            try:
                self.node.rpc.invoke(self._sender(address), channel, "sys:link.GetNeighbors")
            except SendError as e:
                if self.log:
                    logger.info(f"Crawl failed: {e}")
                finished = True

        if finished:
            self.done = True
            if self.log:
                result = self.result()
                logger.info(f"Crawl stats: {result.visited}/{result.expected}")
                logger.info(f"Consistency: {result.consistency}/{result.visited}")
                logger.info(f"Finished in: {result.elapsed_ms} ms")

    def _handle_close(self, channel: Channel) -> None:
        address = self.node.address
        try:
            reply = channel.dequeue().result
            left = parse_address(reply["left"])
            right = parse_address(reply["right"])
            current = parse_address(reply["self"])

            if left == self._previous:
                self.consistency += 1
            elif self._previous is None:
                self._first_left = left

            if current == self._first_left and right == self.node.address:
                self.consistency += 1

            self._previous = current
            address = right
        except (ChannelClosedError, RpcException, KeyError, TypeError, ValueError) as e:
            if self.log:
                logger.info(f"Crawl failed due to exception: {e}")
        self._crawl_next(address)
