# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
Node bookkeeping for a simulation run.

:class:`NodeRegistry` holds two views of the same records: by ring address
(kept sorted, so the ring order is available by index) and by simulation id.
:class:`AddressSpace` hands out ids and addresses that are not yet taken.
"""

from __future__ import annotations

import bisect
import logging
import random
from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ringsim.core.exceptions import AddressSpaceExhaustedError, DuplicateIdError, UnknownNodeError
from ringsim.network.address import RingAddress

if TYPE_CHECKING:
    from ringsim.network.coordinates import NCService
    from ringsim.network.dht import Dht, RpcDhtProxy, TableServer
    from ringsim.network.node import StructuredNode
    from ringsim.security.overlord import SecurityOverlord
    from ringsim.security.trust import TrustContext
    from ringsim.transport.layers import PathELManager

logger = logging.getLogger(__name__)

MAX_SIM_ID = 2**31 - 1


@dataclass(eq=False)
class NodeRecord:
    """Everything the simulator knows about one node."""

    id: int
    address: RingAddress
    node: StructuredNode
    trust: TrustContext | None = None
    nc_service: NCService | None = None
    path_em: PathELManager | None = None
    dht: Dht | None = None
    dht_proxy: RpcDhtProxy | None = None
    table_server: TableServer | None = None

    @property
    def overlord(self) -> SecurityOverlord | None:
        return self.trust.overlord if self.trust is not None else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "address": str(self.address),
            "state": self.node.con_state.value,
            "connections": len(self.node.connection_table),
            "secure": self.trust is not None,
        }


class NodeRegistry:
    """Bijective id <-> address index of node records."""

    def __init__(self):
        self._by_address: dict[RingAddress, NodeRecord] = {}
        self._sorted: list[RingAddress] = []
        self._by_id: dict[int, NodeRecord] = {}
        self.current_network_size = 0

    def __len__(self) -> int:
        return len(self._by_address)

    def __iter__(self) -> Iterator[NodeRecord]:
        """Records in ring order."""
        return iter([self._by_address[a] for a in self._sorted])

    def __contains__(self, key: object) -> bool:
        if isinstance(key, RingAddress):
            return key in self._by_address
        return key in self._by_id

    @property
    def addresses(self) -> list[RingAddress]:
        return list(self._sorted)

    @property
    def ids(self) -> list[int]:
        return sorted(self._by_id)

    def add(self, record: NodeRecord) -> None:
        """Insert ``record`` into both views.

        Raises:
            DuplicateIdError: If its id or address is already registered.
        """
        if record.id in self._by_id:
            raise DuplicateIdError("id", record.id)
        if record.address in self._by_address:
            raise DuplicateIdError("address", record.address)
        self._by_id[record.id] = record
        self._by_address[record.address] = record
        bisect.insort(self._sorted, record.address)

    def remove(self, key: StructuredNode | RingAddress | int) -> NodeRecord:
        """Drop a record and decrement the live network size.

        Raises:
            UnknownNodeError: If nothing matches ``key``; nothing is changed.
        """
        record = self.get(key)
        if record is None:
            raise UnknownNodeError(key if isinstance(key, (int, RingAddress)) else key.address)
        del self._by_id[record.id]
        del self._by_address[record.address]
        idx = bisect.bisect_left(self._sorted, record.address)
        del self._sorted[idx]
        self.current_network_size -= 1
        return record

    def get(self, key: StructuredNode | RingAddress | int) -> NodeRecord | None:
        if isinstance(key, RingAddress):
            return self._by_address.get(key)
        if isinstance(key, int):
            return self._by_id.get(key)
        record = self._by_address.get(key.address)
        return record if record is not None and record.node is key else None

    def by_id(self, sim_id: int) -> NodeRecord:
        record = self._by_id.get(sim_id)
        if record is None:
            raise UnknownNodeError(sim_id)
        return record

    def by_address(self, address: RingAddress) -> NodeRecord:
        record = self._by_address.get(address)
        if record is None:
            raise UnknownNodeError(address)
        return record

    def record_at(self, idx: int) -> NodeRecord:
        """Record at position ``idx`` in ring order."""
        return self._by_address[self._sorted[idx]]

    def increment_network_size(self) -> int:
        """Count one more node as part of the live network."""
        self.current_network_size += 1
        return self.current_network_size

    def clear(self) -> None:
        self._by_address.clear()
        self._sorted.clear()
        self._by_id.clear()
        self.current_network_size = 0


class AddressSpace:
    """Allocates unused simulation ids and ring addresses."""

    def __init__(self, registry: NodeRegistry, rng: random.Random, retry_limit: int = 64):
        self.registry = registry
        self.rng = rng
        self.retry_limit = retry_limit
        self._allocated: set[int] = set()

    @property
    def allocated(self) -> set[int]:
        """Ids handed out and not yet released, plus every registered id."""
        return self._allocated | set(self.registry.ids)

    def allocate_id(self) -> int:
        """Next free simulation id, probing from the allocation count.

        Raises:
            AddressSpaceExhaustedError: After ``retry_limit`` random probes.
        """
        taken = self.allocated
        sim_id = len(taken)
        attempts = 0
        while sim_id in taken:
            attempts += 1
            if attempts > self.retry_limit:
                raise AddressSpaceExhaustedError("id", attempts)
            sim_id = self.rng.randint(0, MAX_SIM_ID)
        self._allocated.add(sim_id)
        return sim_id

    def release(self, sim_id: int) -> None:
        self._allocated.discard(sim_id)

    def generate_address(self) -> RingAddress:
        """Random ring address that no registered node holds.

        Raises:
            AddressSpaceExhaustedError: After ``retry_limit`` collisions.
        """
        for _ in range(self.retry_limit):
            address = RingAddress.random(self.rng)
            if address not in self.registry:
                return address
            logger.debug(f"Address collision on {address!r}, retrying")
        raise AddressSpaceExhaustedError("address", self.retry_limit)
