# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Range-splitting broadcast over the ring.

The root owns the whole ring except itself. Each sender picks connections
inside its range, ordered clockwise, and hands every chosen connection the
sub-range up to the next chosen one. Ranges are disjoint, so on a consistent
ring every node is reached exactly once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ringsim.core.exceptions import EdgeException

from .address import in_range
from .node import Packet

if TYPE_CHECKING:
    from .address import RingAddress
    from .node import StructuredNode

logger = logging.getLogger(__name__)

BROADCAST_PTYPE = "bcast"


class BroadcastSender:
    """Forwards one broadcast payload across a range of the ring.

    Args:
        node: The forwarding node.
        forwarders: Connections to forward to per hop; -1 means all in range.
        source: Address of the broadcast root (defaults to ``node``).
        range_to: Exclusive clockwise end of this sender's range
            (defaults to ``node``, i.e. the whole ring).
        hops: Hop distance of ``node`` from the root.
    """

    def __init__(
        self,
        node: StructuredNode,
        forwarders: int = -1,
        source: RingAddress | None = None,
        range_to: RingAddress | None = None,
        hops: int = 0,
    ):
        self.node = node
        self.forwarders = forwarders
        self.source = source if source is not None else node.address
        self.range_to = range_to if range_to is not None else node.address
        self.hops = hops
        self.sent_to = 0

    def _select(self) -> list[Any]:
        here = self.node.address
        conns = [
            c for c in self.node.connection_table if in_range(here, self.range_to, c.address)
        ]
        conns.sort(key=lambda c: here.right_distance(c.address))
        if self.forwarders < 0 or len(conns) <= self.forwarders:
            return conns
        if self.forwarders == 0:
            return []
        step = len(conns) / self.forwarders
        return [conns[int(i * step)] for i in range(self.forwarders)]

    def send(self, ptype: str, data: Any) -> int:
        """Forward ``data`` (delivered as ``ptype`` at receivers).

        Returns:
            Number of connections the payload was handed to.
        """
        chosen = self._select()
        for idx, conn in enumerate(chosen):
            upper = chosen[idx + 1].address if idx + 1 < len(chosen) else self.range_to
            packet = Packet(
                BROADCAST_PTYPE,
                {
                    "source": self.source,
                    "to": upper,
                    "hops": self.hops + 1,
                    "forwarders": self.forwarders,
                    "ptype": ptype,
                    "data": data,
                },
                source=self.node.address,
                hops=self.hops + 1,
            )
            try:
                conn.edge.send(self.node, packet)
            except EdgeException:
                continue
            self.sent_to += 1
        return self.sent_to


@dataclass
class BroadcastReceiver:
    """Describes how a broadcast reached a node; passed to inner handlers."""

    node: StructuredNode
    source: RingAddress
    hops: int
    sent_to: int


class BroadcastHandler:
    """Re-broadcasts received payloads and delivers them locally."""

    def __init__(self, node: StructuredNode):
        self.node = node
        node.demux.subscribe(BROADCAST_PTYPE, self.handle)

    def handle(self, packet: Packet, via: Any) -> None:
        payload = packet.payload
        sender = BroadcastSender(
            self.node,
            payload["forwarders"],
            source=payload["source"],
            range_to=payload["to"],
            hops=payload["hops"],
        )
        sender.send(payload["ptype"], payload["data"])
        receiver = BroadcastReceiver(
            node=self.node, source=payload["source"], hops=payload["hops"], sent_to=sender.sent_to
        )
        inner = Packet(payload["ptype"], payload["data"], source=payload["source"], hops=payload["hops"])
        self.node.demux.dispatch(inner, receiver)
