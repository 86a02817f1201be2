# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Ring consistency check over local connection tables."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ringsim.network.connection_table import ConnectionType

if TYPE_CHECKING:
    from ringsim.network.address import RingAddress
    from ringsim.network.node import StructuredNode

    from .registry import NodeRegistry

logger = logging.getLogger(__name__)


class RingVerifier:
    """Walks the ring leftwards from the smallest address.

    Each step requires bidirectional agreement: the current node's left
    neighbor must name the current node as its right neighbor. The walk never
    changes any state, so repeated checks on an unchanged topology agree.
    """

    def __init__(self, registry: NodeRegistry):
        self.registry = registry

    def find_missing(self, log: bool = False) -> list[RingAddress | None]:
        """Registered addresses the walk never reached.

        A trailing ``None`` marks a walk length that differs from the live
        network size (a registered node that was never counted in, or the
        reverse).
        """
        registry = self.registry
        if len(registry) == 0:
            return []
        if log:
            logger.info("Checking ring...")

        start = registry.addresses[0]
        current = start
        found: set[RingAddress] = set()
        count = 0

        while count < len(registry):
            found.add(current)
            table = registry.by_address(current).node.connection_table
            try:
                left = table.get_left_structured_neighbor_of(current)
            except LookupError:
                if log:
                    logger.info(f"Hop {count}: {current} has no connection to the left")
                break
            if log:
                logger.info(f"Hop {count}: {current} connection to left {left}")

            next_addr = left.address
            back = None
            neighbor = registry.get(next_addr)
            if neighbor is not None:
                try:
                    back = neighbor.node.connection_table.get_right_structured_neighbor_of(next_addr)
                except LookupError:
                    back = None
            if back is None or back.address != current:
                if log:
                    logger.info(f"Right had edge, but left has no record of it: {left} != {back}")
                break

            current = next_addr
            count += 1
            if current == start:
                break

        missing: list[RingAddress | None] = []
        if count == len(registry):
            if log:
                logger.info("Ring properly formed")
        else:
            missing = [a for a in registry.addresses if a not in found]

        if count != registry.current_network_size:
            missing.append(None)
        return missing

    def check_ring(self, log: bool = False) -> bool:
        return not self.find_missing(log)

    # -------------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------------

    def connection_dump(self, node: StructuredNode) -> list[str]:
        lines = [f"Connections for Node: {node.address}"]
        lines.extend(str(c) for c in node.connection_table.get_connections(ConnectionType.STRUCTURED))
        return lines

    def print_connections(self) -> list[str]:
        """Log every node's structured connections; returns the lines."""
        lines: list[str] = []
        for record in self.registry:
            lines.extend(self.connection_dump(record.node))
            lines.append("=" * 62)
        for line in lines:
            logger.info(line)
        return lines

    def print_connection_state(self) -> int:
        """Log each node's state; returns how many are connected."""
        connected = 0
        for record in self.registry:
            logger.info(f"{record.address} {record.node.con_state.value}")
            if record.node.is_connected:
                connected += 1
        logger.info(f"Connected: {connected}")
        return connected
