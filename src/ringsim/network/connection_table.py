# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Per-node connection table.

Structured neighbors are derived, never stored: the left (right) neighbor of
an address is the connection with the smallest counter-clockwise (clockwise)
distance from it.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ringsim.network.address import RingAddress
    from ringsim.transport.listener import Edge


class ConnectionType(str, Enum):
    """How a connection came to exist."""

    LEAF = "leaf"
    STRUCTURED = "structured"


@dataclass(eq=False)
class Connection:
    """A connection from the owning node to ``address`` over ``edge``."""

    address: RingAddress
    edge: Edge
    con_type: ConnectionType
    created_at: int = 0

    def __str__(self) -> str:
        return f"Connection({self.con_type.value}, {self.address}, {self.edge})"


class ConnectionTable:
    """Connections of one node keyed by remote ring address."""

    def __init__(self, local: RingAddress):
        self.local = local
        self._connections: dict[RingAddress, Connection] = {}

    def add(self, connection: Connection) -> None:
        if connection.address == self.local:
            raise ValueError("cannot connect to self")
        self._connections[connection.address] = connection

    def remove(self, address: RingAddress) -> Connection | None:
        return self._connections.pop(address, None)

    def get(self, address: RingAddress) -> Connection | None:
        return self._connections.get(address)

    def clear(self) -> list[Connection]:
        removed = list(self._connections.values())
        self._connections.clear()
        return removed

    def __contains__(self, address: object) -> bool:
        return address in self._connections

    def __len__(self) -> int:
        return len(self._connections)

    def __iter__(self) -> Iterator[Connection]:
        return iter(list(self._connections.values()))

    def get_connections(self, con_type: ConnectionType | None = None) -> list[Connection]:
        """Connections ordered by address, optionally filtered by type."""
        conns = sorted(self._connections.values(), key=lambda c: c.address)
        if con_type is not None:
            conns = [c for c in conns if c.con_type is con_type]
        return conns

    def get_left_structured_neighbor_of(self, address: RingAddress) -> Connection:
        """Closest connection counter-clockwise from ``address``.

        Raises:
            LookupError: If there is no candidate connection.
        """
        candidates = [c for c in self._connections.values() if c.address != address]
        if not candidates:
            raise LookupError(f"no left neighbor of {address}")
        return min(candidates, key=lambda c: address.left_distance(c.address))

    def get_right_structured_neighbor_of(self, address: RingAddress) -> Connection:
        """Closest connection clockwise from ``address``.

        Raises:
            LookupError: If there is no candidate connection.
        """
        candidates = [c for c in self._connections.values() if c.address != address]
        if not candidates:
            raise LookupError(f"no right neighbor of {address}")
        return min(candidates, key=lambda c: address.right_distance(c.address))

    def nearest_left(self, k: int, of: RingAddress | None = None) -> list[Connection]:
        """The ``k`` connections closest counter-clockwise of ``of`` (default: local)."""
        origin = self.local if of is None else of
        conns = [c for c in self._connections.values() if c.address != origin]
        return sorted(conns, key=lambda c: origin.left_distance(c.address))[:k]

    def nearest_right(self, k: int, of: RingAddress | None = None) -> list[Connection]:
        """The ``k`` connections closest clockwise of ``of`` (default: local)."""
        origin = self.local if of is None else of
        conns = [c for c in self._connections.values() if c.address != origin]
        return sorted(conns, key=lambda c: origin.right_distance(c.address))[:k]

    def near(self, k: int, of: RingAddress | None = None) -> list[Connection]:
        """Union of the ``k`` nearest connections on each side of ``of``."""
        seen: dict[RingAddress, Connection] = {}
        for conn in self.nearest_left(k, of) + self.nearest_right(k, of):
            seen.setdefault(conn.address, conn)
        return list(seen.values())
