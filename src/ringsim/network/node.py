# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
Structured overlay node.

Each node keeps a connection table and converges towards its true ring
neighbors by exchanging near lists:

- Every new connection triggers a near-list exchange in both directions.
  A near list sent to a peer lists the connections nearest to that peer, and
  the receiver answers once with its own.
- A periodic, jittered stabilization repeats the exchange with the current
  near neighbors and one random connection.
- A node links to any advertised address that would become one of its
  ``near_degree`` nearest neighbors on either side.

Packets are delivered through a :class:`DemuxHandler` keyed by packet type.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from ringsim.core.exceptions import EdgeException

from .connection_table import Connection, ConnectionTable, ConnectionType
from .rpc import RpcManager

if TYPE_CHECKING:
    from ringsim.sim.clock import EventClock, Timer
    from ringsim.transport.addresses import TransportAddress
    from ringsim.transport.listener import Edge, EdgeListener

    from .address import RingAddress

logger = logging.getLogger(__name__)

LINK_PTYPE = "link"


class ConnectionState(str, Enum):
    """Lifecycle of a node in the overlay."""

    OFFLINE = "offline"
    JOINING = "joining"
    CONNECTED = "connected"
    LEAVING = "leaving"
    DISCONNECTED = "disconnected"


@dataclass
class Packet:
    """Unit of delivery between simulated nodes."""

    ptype: str
    payload: Any
    source: RingAddress
    destination: RingAddress | None = None
    hops: int = 0
    secure: bool = False


Handler = Callable[[Packet, Any], None]


class DemuxHandler:
    """Routes delivered packets to the subscribers of their type."""

    def __init__(self):
        self._subscribers: dict[str, list[Handler]] = {}

    def subscribe(self, ptype: str, handler: Handler) -> None:
        self._subscribers.setdefault(ptype, []).append(handler)

    def unsubscribe(self, ptype: str, handler: Handler) -> None:
        handlers = self._subscribers.get(ptype, [])
        if handler in handlers:
            handlers.remove(handler)

    def has_subscribers(self, ptype: str) -> bool:
        return bool(self._subscribers.get(ptype))

    def dispatch(self, packet: Packet, via: Any = None) -> int:
        """Hand ``packet`` to every subscriber; returns how many got it."""
        handlers = list(self._subscribers.get(packet.ptype, []))
        if not handlers:
            logger.debug(f"No subscriber for packet type {packet.ptype}")
        for handler in handlers:
            handler(packet, via)
        return len(handlers)


class StructuredNode:
    """A simulated overlay node addressed on the ring."""

    def __init__(
        self,
        address: RingAddress,
        namespace: str,
        clock: EventClock,
        rng: random.Random | None = None,
        near_degree: int = 2,
        stabilize_interval_ms: int = 1000,
        edge_timeout_ms: int = 5000,
        rpc_timeout_ms: int = 20000,
    ):
        self.address = address
        self.namespace = namespace
        self.clock = clock
        self.rng = rng or random.Random()
        self.near_degree = near_degree
        self.stabilize_interval_ms = stabilize_interval_ms
        self.edge_timeout_ms = edge_timeout_ms

        self.connection_table = ConnectionTable(address)
        self.con_state = ConnectionState.OFFLINE
        self.edge_listeners: list[EdgeListener] = []
        self.remote_tas: list[TransportAddress] = []

        self.demux = DemuxHandler()
        self.rpc = RpcManager(self, timeout_ms=rpc_timeout_ms)

        # Optional services attached by the bootstrapper
        self.overlord: Any = None
        self.nc_service: Any = None

        self._linking: set[RingAddress] = set()
        self._stabilize_timer: Timer | None = None

        self.demux.subscribe(LINK_PTYPE, self._handle_link)
        self.rpc.register("sys:link.GetNeighbors", self._rpc_get_neighbors)
        self.rpc.register("sys:link.Ping", self._rpc_ping)

    def __repr__(self) -> str:
        return f"<StructuredNode {self.address!r} {self.con_state.value} conns={len(self.connection_table)}>"

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def local_tas(self) -> list[TransportAddress]:
        tas: list[TransportAddress] = []
        for listener in self.edge_listeners:
            for ta in listener.local_tas:
                if ta not in tas:
                    tas.append(ta)
        return tas

    @property
    def is_online(self) -> bool:
        return self.con_state in (ConnectionState.JOINING, ConnectionState.CONNECTED)

    @property
    def is_connected(self) -> bool:
        return self.con_state is ConnectionState.CONNECTED

    @property
    def accepts_edges(self) -> bool:
        return self.con_state in (
            ConnectionState.OFFLINE,
            ConnectionState.JOINING,
            ConnectionState.CONNECTED,
        )

    def _update_state(self) -> None:
        if not self.is_online:
            return
        table = self.connection_table
        try:
            table.get_left_structured_neighbor_of(self.address)
            table.get_right_structured_neighbor_of(self.address)
        except LookupError:
            self.con_state = ConnectionState.JOINING
            return
        self.con_state = ConnectionState.CONNECTED

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def add_edge_listener(self, listener: EdgeListener) -> None:
        self.edge_listeners.append(listener)
        listener.start()

    def connect(self) -> None:
        """Join the overlay through ``remote_tas``."""
        if self.con_state is not ConnectionState.OFFLINE:
            return
        self.con_state = ConnectionState.JOINING
        self._update_state()
        for ta in self.remote_tas:
            self.link(ta, ConnectionType.LEAF)
        first = self.rng.randint(1, self.stabilize_interval_ms)
        self._stabilize_timer = self.clock.schedule_periodic(
            self.stabilize_interval_ms, self.stabilize, first_delay_ms=first
        )

    def disconnect(self) -> None:
        """Leave cleanly: peers drop their connection after one edge latency."""
        if self.con_state in (ConnectionState.LEAVING, ConnectionState.DISCONNECTED):
            return
        self.con_state = ConnectionState.LEAVING
        for conn in self.connection_table.clear():
            try:
                conn.edge.send(self, Packet(LINK_PTYPE, {"kind": "close"}, source=self.address))
            except EdgeException:
                pass
            conn.edge.close()
        self._shutdown()

    def abort(self) -> None:
        """Vanish: peers only notice after ``edge_timeout_ms``."""
        if self.con_state is ConnectionState.DISCONNECTED:
            return
        for conn in self.connection_table.clear():
            peer = conn.edge.peer_of(self)
            conn.edge.close()
            self.clock.schedule(self.edge_timeout_ms, peer._drop_connection, self.address, conn.edge)
        self._shutdown()

    def _shutdown(self) -> None:
        if self._stabilize_timer is not None:
            self._stabilize_timer.cancel()
            self._stabilize_timer = None
        self.con_state = ConnectionState.DISCONNECTED
        self.rpc.cancel_all()
        for listener in self.edge_listeners:
            listener.stop()

    # -------------------------------------------------------------------------
    # Linking
    # -------------------------------------------------------------------------

    def _create_edge(self, ta: TransportAddress) -> Edge:
        error: EdgeException | None = None
        for listener in self.edge_listeners:
            try:
                return listener.create_edge(ta)
            except EdgeException as e:
                error = e
        raise error or EdgeException("no edge listeners", remote=str(ta))

    def link(self, ta: TransportAddress, con_type: ConnectionType = ConnectionType.STRUCTURED) -> bool:
        """Start creating a connection to the node behind ``ta``.

        Returns:
            True if an edge is being established.
        """
        if not self.accepts_edges or ta in self.local_tas:
            return False
        try:
            edge = self._create_edge(ta)
        except EdgeException as e:
            logger.debug(f"{self.address!r} could not link to {ta}: {e.message}")
            return False
        peer = edge.peer_of(self)
        if peer.address in self.connection_table or peer.address in self._linking:
            return False
        self._linking.add(peer.address)
        self.clock.schedule(2 * edge.latency_ms, self._finish_link, edge, con_type)
        return True

    def _finish_link(self, edge: Edge, con_type: ConnectionType) -> None:
        peer = edge.peer_of(self)
        self._linking.discard(peer.address)
        if not (self.accepts_edges and peer.accepts_edges) or edge.closed:
            return
        if peer.address in self.connection_table:
            return
        self._add_connection(edge, con_type)
        peer._add_connection(edge, con_type)

    def _add_connection(self, edge: Edge, con_type: ConnectionType) -> None:
        peer = edge.peer_of(self)
        if peer.address in self.connection_table:
            return
        conn = Connection(peer.address, edge, con_type, created_at=self.clock.now)
        self.connection_table.add(conn)
        if self.nc_service is not None and peer.nc_service is not None:
            self.nc_service.sample(peer.nc_service, 2 * edge.latency_ms)
        self._update_state()
        self._send_near_list(conn)

    def _drop_connection(self, address: RingAddress, edge: Edge) -> None:
        conn = self.connection_table.get(address)
        if conn is not None and conn.edge is edge:
            self.connection_table.remove(address)
            edge.close()
            self._update_state()

    def close_connection(self, address: RingAddress) -> bool:
        """Close the connection to ``address`` from this side."""
        conn = self.connection_table.remove(address)
        if conn is None:
            return False
        try:
            conn.edge.send(self, Packet(LINK_PTYPE, {"kind": "close"}, source=self.address))
        except EdgeException:
            pass
        conn.edge.close()
        self._update_state()
        return True

    # -------------------------------------------------------------------------
    # Near-list exchange
    # -------------------------------------------------------------------------

    def near_list(self, around: RingAddress | None = None) -> list[tuple[RingAddress, TransportAddress]]:
        """This node plus its connections nearest to ``around`` (default: itself)."""
        entries = [(self.address, self.local_tas[0])] if self.local_tas else []
        for conn in self.connection_table.near(self.near_degree, around):
            peer = conn.edge.peer_of(self)
            if peer.local_tas:
                entries.append((conn.address, peer.local_tas[0]))
        return entries

    def _send_near_list(self, conn: Connection, reply: bool = False) -> None:
        payload = {"kind": "near", "near": self.near_list(conn.address), "reply": reply}
        try:
            conn.edge.send(self, Packet(LINK_PTYPE, payload, source=self.address))
        except EdgeException:
            pass

    def _would_be_near(self, address: RingAddress) -> bool:
        k = self.near_degree
        table = self.connection_table
        sides = (
            (table.nearest_right(k), self.address.right_distance),
            (table.nearest_left(k), self.address.left_distance),
        )
        for current, distance in sides:
            if len(current) < k or distance(address) < distance(current[-1].address):
                return True
        return False

    def stabilize(self) -> None:
        """Periodic maintenance: re-seed if isolated, then share near lists.

        Besides the near neighbors, one random connection is contacted each
        round so that partial rings joined only by far links still merge.
        """
        if not self.is_online:
            return
        table = self.connection_table
        if len(table) == 0:
            for ta in self.remote_tas:
                self.link(ta, ConnectionType.LEAF)
            return
        targets = table.near(self.near_degree)
        extra = self.rng.choice(table.get_connections())
        if extra not in targets:
            targets.append(extra)
        for conn in targets:
            self._send_near_list(conn)

    def _handle_link(self, packet: Packet, via: Any) -> None:
        kind = packet.payload.get("kind")
        if kind == "close":
            conn = self.connection_table.get(packet.source)
            if conn is not None and (via is None or conn.edge is via):
                self.connection_table.remove(packet.source)
                self._update_state()
        elif kind == "near":
            for address, ta in packet.payload["near"]:
                if address == self.address or address in self.connection_table:
                    continue
                if self._would_be_near(address):
                    self.link(ta, ConnectionType.STRUCTURED)
            # Answer once with what we know around the sender
            conn = self.connection_table.get(packet.source)
            if conn is not None and not packet.payload.get("reply"):
                self._send_near_list(conn, reply=True)

    # -------------------------------------------------------------------------
    # Delivery and sys:link RPC
    # -------------------------------------------------------------------------

    def deliver(self, packet: Packet, via: Any = None) -> None:
        if self.con_state is ConnectionState.DISCONNECTED:
            return
        self.demux.dispatch(packet, via)

    def _rpc_get_neighbors(self) -> dict[str, str]:
        table = self.connection_table
        left = table.get_left_structured_neighbor_of(self.address)
        right = table.get_right_structured_neighbor_of(self.address)
        return {"self": str(self.address), "left": str(left.address), "right": str(right.address)}

    def _rpc_ping(self, value: Any = 0) -> Any:
        return value
