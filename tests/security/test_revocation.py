"""Tests for ringsim.security.revocation."""

from __future__ import annotations

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from ringsim.network.address import RingAddress
from ringsim.network.broadcast import BroadcastHandler, BroadcastSender
from ringsim.network.node import Packet
from ringsim.security.revocation import (
    REVOCATION_PTYPE,
    BroadcastRevocationHandler,
    UserRevocationMessage,
    subject_name,
)
from ringsim.security.trust import CertificateHandler, TrustManager


def test_subject_name_replaces_padding():
    assert "=" not in subject_name("brunet:node:AB==")
    assert subject_name(RingAddress(2)) == str(RingAddress(2))


class TestUserRevocationMessage:
    """Test signing and parsing of revocations."""

    def test_signable_data_is_canonical(self):
        msg = UserRevocationMessage(username="bob", timestamp=3)
        assert msg.get_signable_data() == b'{"timestamp":3,"type":"user_revocation","username":"bob"}'

    def test_sign_and_verify(self):
        key = Ed25519PrivateKey.generate()
        msg = UserRevocationMessage.create(key, "bob", 7)
        assert msg.verify(key.public_key())
        assert not msg.verify(Ed25519PrivateKey.generate().public_key())

    def test_tampered_username_fails(self):
        key = Ed25519PrivateKey.generate()
        msg = UserRevocationMessage.create(key, "bob", 7)
        msg.username = "alice"
        assert not msg.verify(key.public_key())

    def test_malformed_signature(self):
        key = Ed25519PrivateKey.generate()
        msg = UserRevocationMessage(username="bob", timestamp=1, signature="zz")
        assert not msg.verify(key.public_key())

    def test_dict_round_trip_keeps_signature_valid(self):
        key = Ed25519PrivateKey.generate()
        msg = UserRevocationMessage.create(key, "bob", 9)
        parsed = UserRevocationMessage.from_dict(msg.to_dict())
        assert parsed == msg
        assert parsed.verify(key.public_key())


class TestBroadcastRevocationHandler:
    """Test applying broadcast revocations."""

    def _handler(self, trust):
        handler = CertificateHandler()
        handler.add_ca_certificate(trust.ca_cert)
        return handler, BroadcastRevocationHandler(trust.ca_cert, handler)

    def test_valid_revocation_applied(self, trust):
        handler, brh = self._handler(trust)
        msg = trust.create_revocation(RingAddress(6))
        brh.handle(Packet(REVOCATION_PTYPE, msg.to_dict(), source=None), None)
        assert handler.is_revoked(subject_name(RingAddress(6)))

    def test_bad_signature_ignored(self, trust):
        handler, brh = self._handler(trust)
        forged = TrustManager().create_revocation(RingAddress(6))
        brh.handle(Packet(REVOCATION_PTYPE, forged.to_dict(), source=None), None)
        assert handler.revoked == frozenset()

    def test_malformed_payload_dropped(self, trust):
        handler, brh = self._handler(trust)
        brh.handle(Packet(REVOCATION_PTYPE, {"timestamp": 1}, source=None), None)
        assert handler.revoked == frozenset()

    def test_revoke_is_idempotent(self, trust):
        _, brh = self._handler(trust)
        assert brh.revoke("bob")
        assert not brh.revoke("bob")

    def test_verification_hook(self, trust):
        cert = trust.issue_certificate(RingAddress(6), Ed25519PrivateKey.generate())
        _, brh = self._handler(trust)
        assert brh.verify(cert)
        brh.revoke(subject_name(RingAddress(6)))
        assert not brh.verify(cert)

    def test_broadcast_reaches_every_node(self, clock, trusted_ring, trust):
        nodes, contexts = trusted_ring
        for node in nodes:
            BroadcastHandler(node)
        victim = nodes[3]
        msg = trust.create_revocation(victim.address)

        BroadcastSender(nodes[0]).send(REVOCATION_PTYPE, msg.to_dict())
        contexts[0].revocation_handler.revoke(msg.username)
        clock.run_steps(1000)

        assert all(ctx.handler.is_revoked(subject_name(victim.address)) for ctx in contexts)
