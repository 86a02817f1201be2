# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""All-pairs ping benchmark."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ringsim.core.exceptions import ChannelClosedError, RpcException, SendError
from ringsim.network.router import GreedySender
from ringsim.network.rpc import Channel

if TYPE_CHECKING:
    from .clock import EventClock
    from .registry import NodeRecord

logger = logging.getLogger(__name__)


@dataclass
class LatencyResult:
    issued: int
    nodes: int
    contributing: int
    total_latency_ms: int
    elapsed_ms: int
    wall_seconds: float

    @property
    def average_latency_ms(self) -> float | None:
        """Mean latency over contributing responses, None if there were none."""
        if self.contributing == 0:
            return None
        return self.total_latency_ms / self.contributing

    def to_dict(self) -> dict[str, Any]:
        return {
            "issued": self.issued,
            "nodes": self.nodes,
            "contributing": self.contributing,
            "average_latency_ms": self.average_latency_ms,
            "elapsed_ms": self.elapsed_ms,
        }


class LatencyMatrixCoordinator:
    """Pings every ordered pair of nodes once, measured from one start time."""

    def __init__(self, records: Sequence[NodeRecord], clock: EventClock, secure: bool = False):
        self.records = list(records)
        self.clock = clock
        self.secure = secure
        self.issued = 0
        self.waiting_on = 0
        self.contributing = 0
        self.total_latency = 0
        self.done = False
        self.done_count = 0
        self._start_time = 0
        self._wall_start = 0.0
        self._result: LatencyResult | None = None

    @property
    def result(self) -> LatencyResult | None:
        return self._result

    def _sender(self, src: NodeRecord, dst: NodeRecord) -> Any:
        if self.secure and src.overlord is not None:
            return src.overlord.get_secure_sender(dst.address)
        return GreedySender(src.node, dst.address)

    def start(self) -> None:
        self._start_time = self.clock.now
        self._wall_start = time.monotonic()
        for src in self.records:
            for dst in self.records:
                if src is dst:
                    continue
                channel = Channel(1)
                channel.add_close_handler(self._callback)
                try:
                    src.node.rpc.invoke(self._sender(src, dst), channel, "sys:link.Ping", 0)
                except SendError as e:
                    logger.debug(f"Ping {src.id} -> {dst.id} not sent: {e}")
                    continue
                self.issued += 1
                self.waiting_on += 1
        if self.waiting_on == 0:
            self._finish()

    def run(self, max_wall_seconds: float = 3600.0) -> LatencyResult:
        """Issue every ping and pump the clock until all have completed."""
        self.start()
        wall_end = time.monotonic() + max_wall_seconds
        while not self.done and time.monotonic() < wall_end:
            if not self.clock.run_step():
                break
        if self._result is None:
            return self._build_result()
        return self._result

    def _callback(self, channel: Channel) -> None:
        try:
            result = channel.dequeue().result
            if isinstance(result, int) and not isinstance(result, bool) and result == 0:
                self.total_latency += self.clock.now - self._start_time
                self.contributing += 1
        except (ChannelClosedError, RpcException) as e:
            logger.debug(f"Ping discarded: {e}")
        self.waiting_on -= 1
        if self.waiting_on == 0:
            self._finish()

    def _build_result(self) -> LatencyResult:
        return LatencyResult(
            issued=self.issued,
            nodes=len(self.records),
            contributing=self.contributing,
            total_latency_ms=self.total_latency,
            elapsed_ms=self.clock.now - self._start_time,
            wall_seconds=time.monotonic() - self._wall_start,
        )

    def _finish(self) -> None:
        if self.done:
            return
        self.done = True
        self.done_count += 1
        self._result = self._build_result()
        logger.info(f"Performed {self._result.issued} tests on {self._result.nodes} nodes")
        logger.info(f"Latency avg: {self._result.average_latency_ms}")
        logger.info(f"Finished in: {self._result.elapsed_ms} ms")
