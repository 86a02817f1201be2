# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Simulated edges and edge listeners.

A :class:`SimulationNetwork` replaces the process-wide latency table of a
real transport: it is created once per simulation and handed to every
listener, so two simulations never share state.
"""

from __future__ import annotations

import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from ringsim.core.exceptions import EdgeException

from .addresses import SIMULATION_SCHEME, TransportAddress, simulation_address

if TYPE_CHECKING:
    from ringsim.network.address import RingAddress
    from ringsim.network.node import Packet, StructuredNode

logger = logging.getLogger(__name__)


class Decision(Enum):
    """Outcome of a transport authorization check."""

    ALLOW = "allow"
    DENY = "deny"


class TAAuthorizer(Protocol):
    """Decides whether an edge to a transport address may exist."""

    def authorize(self, address: TransportAddress) -> Decision: ...


class BrokenTAAuth:
    """Randomly breaks all edges to a remote entity.

    The decision for each remote id is drawn once and then cached, so a link
    is either consistently usable or consistently broken. Id 0 is the
    well-known first node and is always reachable.
    """

    def __init__(self, probability: float, rng: random.Random):
        if not 0.0 <= probability <= 1.0:
            raise ValueError(f"probability must be within [0, 1], got {probability}")
        self.probability = probability
        self._rng = rng
        self._decisions: dict[int, Decision] = {}

    def authorize(self, address: TransportAddress) -> Decision:
        if address.id == 0:
            return Decision.ALLOW

        decision = self._decisions.get(address.id)
        if decision is None:
            if self._rng.random() > self.probability:
                decision = Decision.ALLOW
            else:
                decision = Decision.DENY
            self._decisions[address.id] = decision
        return decision


@dataclass(eq=False)
class Edge:
    """A bidirectional link between two simulated nodes."""

    a: StructuredNode
    b: StructuredNode
    latency_ms: int
    kind: str = "direct"
    relay: RingAddress | None = None
    path: str | None = None
    secure: bool = False
    closed: bool = False

    def peer_of(self, node: StructuredNode) -> StructuredNode:
        if node is self.a:
            return self.b
        if node is self.b:
            return self.a
        raise ValueError("node is not an endpoint of this edge")

    def send(self, sender: StructuredNode, packet: Packet) -> None:
        """Deliver ``packet`` to the other endpoint after one latency."""
        if self.closed:
            raise EdgeException("edge closed", remote=str(self.peer_of(sender).address))
        peer = self.peer_of(sender)
        sender.clock.schedule(self.latency_ms, peer.deliver, packet, self)

    def close(self) -> None:
        self.closed = True

    def __str__(self) -> str:
        via = f" via {self.relay}" if self.relay is not None else ""
        return f"Edge({self.kind}{via}, {self.latency_ms}ms{', secure' if self.secure else ''})"


class SimulationNetwork:
    """Registry of simulated listeners plus the latency model."""

    def __init__(self, default_latency_ms: int = 10, latency_map: list[list[int]] | None = None):
        self.default_latency_ms = default_latency_ms
        self.latency_map = latency_map
        self._listeners: dict[int, SimulationEdgeListener] = {}

    def register(self, listener: SimulationEdgeListener) -> None:
        if listener.id in self._listeners:
            raise EdgeException(f"listener id already bound: {listener.id}")
        self._listeners[listener.id] = listener

    def unregister(self, listener: SimulationEdgeListener) -> None:
        if self._listeners.get(listener.id) is listener:
            del self._listeners[listener.id]

    def listener(self, ta_id: int) -> SimulationEdgeListener | None:
        return self._listeners.get(ta_id)

    def node_at(self, address: TransportAddress) -> StructuredNode | None:
        if address.scheme != SIMULATION_SCHEME:
            return None
        listener = self._listeners.get(address.id)
        return listener.node if listener is not None else None

    def latency(self, from_id: int, to_id: int) -> int:
        lmap = self.latency_map
        if lmap is not None and from_id < len(lmap) and to_id < len(lmap):
            return lmap[from_id][to_id]
        return self.default_latency_ms

    def __len__(self) -> int:
        return len(self._listeners)


class EdgeListener(ABC):
    """Something that can create edges towards a transport address."""

    node: StructuredNode | None = None

    @property
    @abstractmethod
    def local_tas(self) -> list[TransportAddress]: ...

    @abstractmethod
    def create_edge(self, remote: TransportAddress) -> Edge:
        """Create an edge or raise :class:`EdgeException`."""

    def start(self) -> None:
        pass

    def stop(self) -> None:
        pass

    def describe(self) -> dict[str, Any]:
        return {"type": type(self).__name__}


class SimulationEdgeListener(EdgeListener):
    """Base simulated transport endpoint, always the innermost listener."""

    def __init__(
        self,
        ta_id: int,
        network: SimulationNetwork,
        authorizer: TAAuthorizer | None = None,
    ):
        self.id = ta_id
        self.network = network
        self.authorizer = authorizer
        self.node = None
        self._running = False

    @property
    def local_tas(self) -> list[TransportAddress]:
        return [simulation_address(self.id)]

    def start(self) -> None:
        if not self._running:
            self.network.register(self)
            self._running = True

    def stop(self) -> None:
        if self._running:
            self.network.unregister(self)
            self._running = False

    def authorize(self, address: TransportAddress) -> Decision:
        if self.authorizer is None:
            return Decision.ALLOW
        return self.authorizer.authorize(address)

    def create_edge(self, remote: TransportAddress) -> Edge:
        if remote.scheme != SIMULATION_SCHEME:
            raise EdgeException(f"unsupported scheme {remote.scheme}", remote=str(remote))
        if self.node is None:
            raise EdgeException("listener not attached to a node", remote=str(remote))
        other = self.network.listener(remote.id)
        if other is None or other.node is None or not other.node.accepts_edges:
            raise EdgeException("no listener at remote address", remote=str(remote))
        if other.node is self.node:
            raise EdgeException("refusing edge to self", remote=str(remote))
        if self.authorize(remote) is Decision.DENY or other.authorize(
            simulation_address(self.id)
        ) is Decision.DENY:
            raise EdgeException("edge denied by authorizer", remote=str(remote))
        return Edge(self.node, other.node, self.network.latency(self.id, other.id))

    def describe(self) -> dict[str, Any]:
        return {
            "type": type(self).__name__,
            "id": self.id,
            "authorizer": type(self.authorizer).__name__ if self.authorizer else None,
        }
