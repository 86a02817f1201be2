# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
Listener stack steps.

A node's transport stack is an ordered list of steps, each a function from
an inner listener and a :class:`StackContext` to an outer listener::

    base -> path -> secure -> relay

Which steps run is decided from the simulation settings by the bootstrapper;
see :func:`build_stack`.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from ringsim.core.exceptions import EdgeException

from .addresses import SIMULATION_SCHEME, TransportAddress
from .listener import Edge, EdgeListener, SimulationNetwork

if TYPE_CHECKING:
    from ringsim.network.connection_table import Connection
    from ringsim.network.node import StructuredNode
    from ringsim.security.overlord import SecurityOverlord

logger = logging.getLogger(__name__)

DEFAULT_PATH = "/"


@dataclass
class StackContext:
    """Everything a stack step may need besides the inner listener."""

    node: StructuredNode
    network: SimulationNetwork
    overlord: SecurityOverlord | None = None
    overlap: RelayOverlap | None = None
    rng: random.Random | None = None


class WrappingEdgeListener(EdgeListener):
    """Delegates everything to ``inner`` unless overridden."""

    def __init__(self, inner: EdgeListener):
        self.inner = inner

    @property
    def node(self) -> StructuredNode | None:  # type: ignore[override]
        return self.inner.node

    @property
    def local_tas(self) -> list[TransportAddress]:
        return self.inner.local_tas

    def create_edge(self, remote: TransportAddress) -> Edge:
        return self.inner.create_edge(remote)

    def start(self) -> None:
        self.inner.start()

    def stop(self) -> None:
        self.inner.stop()

    def describe(self) -> dict[str, Any]:
        return {"type": type(self).__name__, "inner": self.inner.describe()}


# =============================================================================
# Multi-path
# =============================================================================


class PathELManager:
    """Multiplexes named paths over a single listener."""

    def __init__(self, listener: EdgeListener, node: StructuredNode):
        self.listener = listener
        self.node = node
        self._paths: dict[str, PathEdgeListener] = {}
        self._edges: dict[str, list[Edge]] = {}
        self.running = False

    @property
    def paths(self) -> list[str]:
        return sorted(self._paths)

    def create_path(self, path: str = DEFAULT_PATH) -> PathEdgeListener:
        """Listener bound to ``path``, created on first use."""
        pel = self._paths.get(path)
        if pel is None:
            pel = PathEdgeListener(self, path)
            self._paths[path] = pel
            self._edges[path] = []
        return pel

    def edges(self, path: str = DEFAULT_PATH) -> list[Edge]:
        """Open edges created on ``path``."""
        live = [e for e in self._edges.get(path, []) if not e.closed]
        self._edges[path] = live
        return list(live)

    def _track(self, path: str, edge: Edge) -> None:
        edge.path = path
        self._edges.setdefault(path, []).append(edge)

    def start(self) -> None:
        if not self.running:
            self.listener.start()
            self.running = True

    def stop(self) -> None:
        if self.running:
            self.listener.stop()
            self.running = False


class PathEdgeListener(WrappingEdgeListener):
    """One path of a :class:`PathELManager`."""

    def __init__(self, manager: PathELManager, path: str):
        super().__init__(manager.listener)
        self.manager = manager
        self.path = path

    def create_edge(self, remote: TransportAddress) -> Edge:
        edge = self.inner.create_edge(remote)
        self.manager._track(self.path, edge)
        return edge

    def start(self) -> None:
        self.manager.start()

    def stop(self) -> None:
        self.manager.stop()

    def describe(self) -> dict[str, Any]:
        return {"type": type(self).__name__, "path": self.path, "inner": self.inner.describe()}


# =============================================================================
# Secure edges
# =============================================================================


def verify_edge(edge: Edge, local: StructuredNode) -> None:
    """Both endpoints verify the other's certificate chain.

    Raises:
        EdgeException: If either side lacks an overlord or refuses the chain.
    """
    peer = edge.peer_of(local)
    mine, theirs = local.overlord, peer.overlord
    if mine is None or theirs is None:
        raise EdgeException("peer does not support secure edges", remote=str(peer.address))
    if not mine.verify_peer(theirs.cert_handler.chain, peer.address):
        raise EdgeException("peer certificate rejected", remote=str(peer.address))
    if not theirs.verify_peer(mine.cert_handler.chain, local.address):
        raise EdgeException("local certificate rejected by peer", remote=str(peer.address))
    edge.secure = True


class SecureEdgeListener(WrappingEdgeListener):
    """Only yields edges whose endpoints hold valid, unrevoked certificates."""

    def __init__(self, inner: EdgeListener, overlord: SecurityOverlord):
        super().__init__(inner)
        self.overlord = overlord

    def create_edge(self, remote: TransportAddress) -> Edge:
        edge = self.inner.create_edge(remote)
        try:
            verify_edge(edge, self.overlord.node)
        except EdgeException:
            edge.close()
            raise
        return edge


# =============================================================================
# Relays
# =============================================================================


class RelayOverlap(Protocol):
    """Picks which common neighbor relays an edge."""

    def choose(
        self, node: StructuredNode, remote: StructuredNode, candidates: Sequence[Connection]
    ) -> Connection: ...


class SimpleRelayOverlap:
    """Relay through the common neighbor with the lowest address."""

    def choose(self, node, remote, candidates):
        return min(candidates, key=lambda c: c.address)


class NCRelayOverlap:
    """Relay through the common neighbor with the smallest coordinate estimate."""

    def __init__(self):
        self._fallback = SimpleRelayOverlap()

    def choose(self, node, remote, candidates):
        if node.nc_service is None or remote.nc_service is None:
            return self._fallback.choose(node, remote, candidates)

        def cost(conn: Connection) -> float:
            relay = conn.edge.peer_of(node)
            if relay.nc_service is None:
                return float("inf")
            return node.nc_service.estimate(relay.nc_service) + relay.nc_service.estimate(
                remote.nc_service
            )

        return min(candidates, key=lambda c: (cost(c), c.address))


class RelayEdgeListener(WrappingEdgeListener):
    """Falls back to a relayed edge when ``inner`` cannot reach a peer.

    The relay must already hold connections to both ends. The relayed edge's
    latency is the sum of the two hops.
    """

    def __init__(
        self,
        inner: EdgeListener,
        network: SimulationNetwork,
        overlap: RelayOverlap | None = None,
        overlord: SecurityOverlord | None = None,
    ):
        super().__init__(inner)
        self.network = network
        self.overlap = overlap or SimpleRelayOverlap()
        self.overlord = overlord
        self.relayed = 0

    def create_edge(self, remote: TransportAddress) -> Edge:
        try:
            return self.inner.create_edge(remote)
        except EdgeException as e:
            direct_error = e
        edge = self._relay(remote, direct_error)
        if self.overlord is not None:
            try:
                verify_edge(edge, self.overlord.node)
            except EdgeException:
                edge.close()
                raise
        self.relayed += 1
        return edge

    def _relay(self, remote: TransportAddress, cause: EdgeException) -> Edge:
        node = self.node
        if remote.scheme != SIMULATION_SCHEME or node is None:
            raise cause
        peer = self.network.node_at(remote)
        if peer is None or peer is node or not peer.accepts_edges:
            raise cause
        common = [
            c
            for c in node.connection_table
            if c.address != peer.address and c.address in peer.connection_table and not c.edge.closed
        ]
        if not common:
            raise EdgeException("no relay shared with remote", remote=str(remote))
        chosen = self.overlap.choose(node, peer, common)
        second = peer.connection_table.get(chosen.address)
        latency = chosen.edge.latency_ms + second.edge.latency_ms
        logger.debug(f"Relaying {node.address!r} -> {peer.address!r} via {chosen.address!r}")
        return Edge(node, peer, latency, kind="relay", relay=chosen.address)

    def describe(self) -> dict[str, Any]:
        return {
            "type": type(self).__name__,
            "overlap": type(self.overlap).__name__,
            "secure": self.overlord is not None,
            "inner": self.inner.describe(),
        }


# =============================================================================
# Steps
# =============================================================================

StackStep = Callable[[EdgeListener, StackContext], EdgeListener]


def path_step(inner: EdgeListener, ctx: StackContext) -> EdgeListener:
    manager = PathELManager(inner, ctx.node)
    return manager.create_path(DEFAULT_PATH)


def secure_step(inner: EdgeListener, ctx: StackContext) -> EdgeListener:
    if ctx.overlord is None:
        raise EdgeException("secure edges need a security overlord")
    return SecureEdgeListener(inner, ctx.overlord)


def relay_step(inner: EdgeListener, ctx: StackContext) -> EdgeListener:
    return RelayEdgeListener(inner, ctx.network, ctx.overlap, ctx.overlord)


def build_stack(base: EdgeListener, steps: Sequence[StackStep], ctx: StackContext) -> EdgeListener:
    """Apply ``steps`` in order, innermost first."""
    listener = base
    for step in steps:
        listener = step(listener, ctx)
    return listener


def find_layer(listener: EdgeListener, kind: type) -> Any:
    """First listener of type ``kind`` walking inwards from ``listener``."""
    current: Any = listener
    while current is not None:
        if isinstance(current, kind):
            return current
        current = getattr(current, "inner", None)
    return None
