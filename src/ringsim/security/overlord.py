# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
End-to-end security associations between overlay nodes.

Before a secure packet can flow, the two endpoints exchange certificate
chains in a handshake routed over the overlay. Each side verifies the other
against the shared authority, its revocation list and the claimed ring
address. Queued traffic is released once the association is active.

Two handshake flavours differ only in the number of round trips:

- :class:`PeerSecOverlord` completes in one round trip.
- :class:`DtlsOverlord` completes in two, like a DTLS cookie exchange.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from ringsim.core.exceptions import CertificateError, SendError
from ringsim.network.router import GreedySender

from .revocation import subject_name

if TYPE_CHECKING:
    from cryptography import x509
    from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

    from ringsim.network.address import RingAddress
    from ringsim.network.node import Packet, StructuredNode
    from ringsim.sim.clock import Timer

    from .trust import CertificateHandler

logger = logging.getLogger(__name__)

SECURITY_PTYPE = "sec"


class SAState(str, Enum):
    """Lifecycle of a security association."""

    WAITING = "waiting"
    ACTIVE = "active"
    CLOSED = "closed"


@dataclass(eq=False)
class SecurityAssociation:
    """Security state shared with one remote node."""

    peer: RingAddress
    state: SAState = SAState.WAITING
    initiator: bool = True
    round: int = 0
    peer_certificate: x509.Certificate | None = None
    queue: list[Packet] = field(default_factory=list)
    timer: Timer | None = None

    @property
    def subject(self) -> str:
        return subject_name(self.peer)


class SecurityOverlord:
    """Creates and tracks security associations for one node."""

    round_trips = 1

    def __init__(self, node: StructuredNode, key: Ed25519PrivateKey, cert_handler: CertificateHandler):
        self.node = node
        self.key = key
        self.cert_handler = cert_handler
        self._sas: dict[RingAddress, SecurityAssociation] = {}
        self.handshakes_completed = 0
        node.demux.subscribe(SECURITY_PTYPE, self._handle_packet)

    @property
    def address(self) -> RingAddress:
        return self.node.address

    @property
    def associations(self) -> list[SecurityAssociation]:
        return list(self._sas.values())

    def get_sa(self, peer: RingAddress) -> SecurityAssociation | None:
        return self._sas.get(peer)

    def get_secure_sender(self, target: RingAddress) -> SecureSender:
        return SecureSender(self, target)

    def verify_peer(self, chain: list[x509.Certificate], address: RingAddress) -> bool:
        """True if ``chain`` is valid for ``address``."""
        try:
            self.cert_handler.verify(chain, address)
        except CertificateError as e:
            logger.debug(f"{self.address!r} rejected chain for {address!r}: {e.message}")
            return False
        return True

    # -------------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------------

    def send(self, target: RingAddress, packet: Packet) -> None:
        """Send ``packet`` to ``target`` over an association.

        Raises:
            SendError: If a new handshake cannot be dispatched or the target
                has been revoked.
        """
        if self.cert_handler.is_revoked(subject_name(target)):
            raise SendError(f"{target} has been revoked")
        sa = self._sas.get(target)
        if sa is not None and sa.state is SAState.ACTIVE:
            self._send_data(sa, packet)
            return
        if sa is None:
            sa = SecurityAssociation(peer=target)
            self._sas[target] = sa
            try:
                self._send_hello(sa)
            except SendError:
                del self._sas[target]
                raise
            sa.timer = self.node.clock.schedule(self.node.rpc.timeout_ms, self._expire, sa)
        sa.queue.append(packet)

    def _route(self, target: RingAddress, payload: dict[str, Any]) -> None:
        from ringsim.network.node import Packet

        payload["to"] = target
        GreedySender(self.node, target).send(Packet(SECURITY_PTYPE, payload, source=self.address))

    def _send_hello(self, sa: SecurityAssociation) -> None:
        self._route(sa.peer, {"kind": "hello", "round": sa.round, "chain": self.cert_handler.chain})

    def _send_data(self, sa: SecurityAssociation, packet: Packet) -> None:
        self._route(sa.peer, {"kind": "data", "inner": packet})

    def _expire(self, sa: SecurityAssociation) -> None:
        if sa.state is SAState.WAITING and self._sas.get(sa.peer) is sa:
            logger.debug(f"Handshake {self.address!r} -> {sa.peer!r} timed out")
            self._close(sa)

    def _close(self, sa: SecurityAssociation) -> None:
        sa.state = SAState.CLOSED
        sa.queue.clear()
        if sa.timer is not None:
            sa.timer.cancel()
            sa.timer = None
        if self._sas.get(sa.peer) is sa:
            del self._sas[sa.peer]

    def _activate(self, sa: SecurityAssociation) -> None:
        sa.state = SAState.ACTIVE
        if sa.timer is not None:
            sa.timer.cancel()
            sa.timer = None
        self.handshakes_completed += 1
        queued, sa.queue = sa.queue, []
        for packet in queued:
            try:
                self._send_data(sa, packet)
            except SendError as e:
                logger.debug(f"Dropping queued secure packet to {sa.peer!r}: {e}")

    # -------------------------------------------------------------------------
    # Receiving
    # -------------------------------------------------------------------------

    def _handle_packet(self, packet: Packet, via: Any) -> None:
        payload = packet.payload
        if payload.get("to") != self.address:
            return
        kind = payload.get("kind")
        try:
            if kind == "hello":
                self._on_hello(packet)
            elif kind == "hello_ack":
                self._on_hello_ack(packet)
            elif kind == "reject":
                self._on_reject(packet)
            elif kind == "data":
                self._on_data(packet)
        except SendError as e:
            logger.debug(f"{self.address!r} could not answer {kind} from {packet.source!r}: {e}")

    def _on_hello(self, packet: Packet) -> None:
        source = packet.source
        payload = packet.payload
        if not self.verify_peer(payload["chain"], source):
            self._route(source, {"kind": "reject"})
            return
        rnd = payload["round"]
        if rnd + 1 >= self.round_trips:
            sa = self._sas.get(source)
            if sa is None or sa.state is not SAState.ACTIVE:
                # Crossed handshakes: the responder side wins and inherits the queue
                pending = sa.queue if sa is not None else []
                if sa is not None:
                    sa.queue = []
                    self._close(sa)
                sa = SecurityAssociation(peer=source, initiator=False, round=rnd, queue=pending)
                sa.peer_certificate = payload["chain"][-1]
                self._sas[source] = sa
                self._activate(sa)
        self._route(source, {"kind": "hello_ack", "round": rnd, "chain": self.cert_handler.chain})

    def _on_hello_ack(self, packet: Packet) -> None:
        sa = self._sas.get(packet.source)
        if sa is None or sa.state is not SAState.WAITING or packet.payload["round"] != sa.round:
            return
        chain = packet.payload["chain"]
        if not self.verify_peer(chain, sa.peer):
            self._close(sa)
            return
        sa.peer_certificate = chain[-1]
        sa.round += 1
        if sa.round < self.round_trips:
            self._send_hello(sa)
        else:
            self._activate(sa)

    def _on_reject(self, packet: Packet) -> None:
        sa = self._sas.get(packet.source)
        if sa is not None and sa.state is SAState.WAITING:
            logger.debug(f"{packet.source!r} rejected handshake from {self.address!r}")
            self._close(sa)

    def _on_data(self, packet: Packet) -> None:
        sa = self._sas.get(packet.source)
        if sa is None or sa.state is not SAState.ACTIVE:
            logger.debug(f"Dropping secure data from {packet.source!r} without an association")
            return
        if self.cert_handler.is_revoked(sa.subject):
            return
        inner = packet.payload["inner"]
        inner.secure = True
        inner.hops = packet.hops
        self.node.demux.dispatch(inner, self)

    # -------------------------------------------------------------------------
    # Revocation
    # -------------------------------------------------------------------------

    def revoke(self, subject: str) -> int:
        """Tear down associations and secure edges with ``subject``.

        Returns:
            Number of associations and connections closed.
        """
        closed = 0
        for sa in list(self._sas.values()):
            if sa.subject == subject:
                self._close(sa)
                closed += 1
        for conn in self.node.connection_table:
            if conn.edge.secure and subject_name(conn.address) == subject:
                if self.node.close_connection(conn.address):
                    closed += 1
        return closed


class PeerSecOverlord(SecurityOverlord):
    """Single round-trip handshake."""

    round_trips = 1


class DtlsOverlord(SecurityOverlord):
    """Two round-trip handshake with a cookie exchange."""

    round_trips = 2


class SecureSender:
    """Sender that routes through ``overlord``'s association with ``target``."""

    def __init__(self, overlord: SecurityOverlord, target: RingAddress):
        self.overlord = overlord
        self.target = target

    @property
    def node(self) -> StructuredNode:
        return self.overlord.node

    def send(self, packet: Packet) -> None:
        self.overlord.send(self.target, packet)

    def __repr__(self) -> str:
        return f"SecureSender({self.overlord.address!r} -> {self.target!r})"
