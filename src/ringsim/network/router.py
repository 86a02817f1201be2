# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Greedy routing over connection tables."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ringsim.core.exceptions import SendError

if TYPE_CHECKING:
    from .address import RingAddress
    from .node import Packet, StructuredNode

logger = logging.getLogger(__name__)


def greedy_path(
    start: StructuredNode, target: RingAddress
) -> tuple[list[StructuredNode], int]:
    """Follow strictly-closer connections from ``start`` towards ``target``.

    Connections over closed edges or to peers that are no longer online are
    skipped; a departed node keeps appearing in its peers' tables until its
    close message arrives.

    Returns:
        The visited nodes (first is ``start``, last is the closest reached) and
        the summed one-way latency of the hops taken.
    """
    current = start
    path = [start]
    latency = 0
    while current.address != target:
        best = None
        best_dist = current.address.distance_to(target)
        for conn in current.connection_table:
            if conn.edge.closed or not conn.edge.peer_of(current).is_online:
                continue
            dist = conn.address.distance_to(target)
            if dist < best_dist:
                best, best_dist = conn, dist
        if best is None:
            break
        latency += best.edge.latency_ms
        current = best.edge.peer_of(current)
        path.append(current)
    return path, latency


class GreedySender:
    """Delivers to the node closest to ``target`` (best effort)."""

    def __init__(self, node: StructuredNode, target: RingAddress):
        self.node = node
        self.target = target

    def send(self, packet: Packet) -> None:
        """Route and schedule delivery of ``packet``.

        Raises:
            SendError: If the source is offline or has no connection to route
                through.
        """
        node = self.node
        if not node.is_online:
            raise SendError(f"{node.address} is not connected")
        if self.target != node.address and len(node.connection_table) == 0:
            raise SendError(f"no route from {node.address} to {self.target}")
        path, latency = greedy_path(node, self.target)
        packet.destination = self.target
        packet.hops = len(path) - 1
        node.clock.schedule(latency, path[-1].deliver, packet, None)

    def __repr__(self) -> str:
        return f"GreedySender({self.node.address!r} -> {self.target!r})"
