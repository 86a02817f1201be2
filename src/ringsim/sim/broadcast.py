# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
Broadcast round: spanning-tree fan-out plus response aggregation.

Every node that receives the simulation broadcast reports its hop distance
to the shared :class:`BroadcastCollector`. A round ends by quiescence: the
deadline starts one window after the send and moves to one window after each
new response, so the round is over once no response arrived for a full
window of simulated time.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ringsim.network.broadcast import BroadcastReceiver, BroadcastSender

if TYPE_CHECKING:
    from ringsim.network.node import Packet, StructuredNode

    from .clock import EventClock
    from .registry import NodeRecord

logger = logging.getLogger(__name__)

SIM_BROADCAST_PTYPE = "simbcast"


def average(data: list[int] | list[float]) -> float:
    """Arithmetic mean of ``data``."""
    return sum(data) / len(data)


def standard_deviation(data: list[int] | list[float], avg: float) -> float:
    """Sample standard deviation (n - 1 denominator); 0.0 below two samples."""
    if len(data) < 2:
        return 0.0
    variance = sum((point - avg) ** 2 for point in data)
    return math.sqrt(variance / (len(data) - 1))


@dataclass(frozen=True)
class BroadcastResult:
    """One node's report of a broadcast."""

    responder: int
    hops: int
    sent_to: int = 0


@dataclass
class BroadcastStats:
    """Summary of one broadcast round."""

    root: int
    forwarders: int
    results: list[BroadcastResult] = field(default_factory=list)
    root_sent_to: int = 0
    average: float = 0.0
    stddev: float = 0.0
    elapsed_ms: int = 0

    @property
    def hit(self) -> int:
        return len(self.results)

    @property
    def max_hops(self) -> int:
        return max((r.hops for r in self.results), default=-1)

    def to_dict(self) -> dict[str, Any]:
        return {
            "root": self.root,
            "forwarders": self.forwarders,
            "hit": self.hit,
            "max_hops": self.max_hops,
            "average": self.average,
            "stddev": self.stddev,
            "elapsed_ms": self.elapsed_ms,
        }


class BroadcastCollector:
    """Receives simulation broadcasts on every node of a run."""

    def __init__(self, clock: EventClock, quiescence_ms: int = 1000):
        self.clock = clock
        self.quiescence_ms = quiescence_ms
        self.deadline = clock.now
        self.results: list[BroadcastResult] = []

    def attach(self, node: StructuredNode, sim_id: int) -> None:
        def handle(packet: Packet, via: Any) -> None:
            self.handle(sim_id, via)

        node.demux.subscribe(SIM_BROADCAST_PTYPE, handle)

    def start(self) -> None:
        self.deadline = self.clock.now + self.quiescence_ms
        self.results = []

    def handle(self, sim_id: int, receiver: BroadcastReceiver) -> None:
        self.deadline = self.clock.now + self.quiescence_ms
        self.results.append(BroadcastResult(sim_id, receiver.hops, receiver.sent_to))

    @property
    def remaining_ms(self) -> int:
        return self.deadline - self.clock.now


class BroadcastCoordinator:
    """Runs broadcast rounds and reports their statistics."""

    def __init__(
        self,
        collector: BroadcastCollector,
        clock: EventClock,
        output: Path | str | None = None,
        max_wall_seconds: float = 3600.0,
    ):
        self.collector = collector
        self.clock = clock
        self.output = Path(output) if output is not None else None
        self.max_wall_seconds = max_wall_seconds

    def run(self, root: NodeRecord, forwarders: int = -1) -> BroadcastStats:
        """Broadcast from ``root`` and pump the clock until quiescence."""
        collector = self.collector
        collector.start()
        started = self.clock.now
        sender = BroadcastSender(root.node, forwarders)
        sender.send(SIM_BROADCAST_PTYPE, None)

        wall_end = time.monotonic() + self.max_wall_seconds
        to_run = collector.remaining_ms
        while to_run > 0 and time.monotonic() < wall_end:
            self.clock.run_steps(to_run)
            to_run = collector.remaining_ms

        stats = BroadcastStats(
            root=root.id,
            forwarders=forwarders,
            results=list(collector.results),
            root_sent_to=sender.sent_to,
            elapsed_ms=self.clock.now - started,
        )
        hops = [r.hops for r in stats.results] + [0]
        stats.average = average(hops)
        stats.stddev = standard_deviation(hops, stats.average)

        if self.output is not None:
            self.write_results(stats)

        logger.info(f"Average: {stats.average}, StdDev: {stats.stddev}")
        logger.info(f"Hit: {stats.hit}, in: {stats.max_hops}")
        return stats

    def write_results(self, stats: BroadcastStats) -> None:
        """Append one ``<responder>, <hops>`` line per response."""
        with open(self.output, "a") as f:
            for result in stats.results:
                f.write(f"{result.responder}, {result.hops}\n")
