# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
Authority-signed certificate revocation.

A revocation names a certificate subject and is signed by the simulation's
authority key. It is spread with a broadcast; every node that receives it
verifies the signature and records the subject as revoked. Revocation is
append-only for the life of a run.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from cryptography.x509.oid import NameOID

if TYPE_CHECKING:
    from cryptography import x509

    from ringsim.network.node import Packet

    from .overlord import SecurityOverlord
    from .trust import CertificateHandler

logger = logging.getLogger(__name__)

REVOCATION_PTYPE = "revocation"


def subject_name(address: Any) -> str:
    """Certificate subject for a ring address ('=' is not allowed there)."""
    return str(address).replace("=", "0")


@dataclass
class UserRevocationMessage:
    """Revocation of one certificate subject."""

    username: str
    timestamp: int
    signature: str = ""
    type: str = "user_revocation"

    def get_signable_data(self) -> bytes:
        data = {"type": self.type, "username": self.username, "timestamp": self.timestamp}
        return json.dumps(data, sort_keys=True, separators=(",", ":")).encode()

    @classmethod
    def create(cls, key: Ed25519PrivateKey, username: str, timestamp: int) -> UserRevocationMessage:
        msg = cls(username=username, timestamp=timestamp)
        msg.signature = key.sign(msg.get_signable_data()).hex()
        return msg

    def verify(self, public_key: Ed25519PublicKey) -> bool:
        try:
            public_key.verify(bytes.fromhex(self.signature), self.get_signable_data())
            return True
        except InvalidSignature:
            return False
        except ValueError as e:
            logger.warning(f"Malformed revocation signature for {self.username}: {e}")
            return False

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "username": self.username,
            "timestamp": self.timestamp,
            "signature": self.signature,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserRevocationMessage:
        return cls(
            username=data["username"],
            timestamp=data.get("timestamp", 0),
            signature=data.get("signature", ""),
            type=data.get("type", "user_revocation"),
        )


class BroadcastRevocationHandler:
    """Applies verified revocations to a node's certificate handler.

    Also acts as a certificate verification hook: a certificate whose
    subject has been revoked no longer verifies.
    """

    def __init__(
        self,
        ca_cert: x509.Certificate,
        cert_handler: CertificateHandler,
        overlord: SecurityOverlord | None = None,
    ):
        self.ca_cert = ca_cert
        self.cert_handler = cert_handler
        self.overlord = overlord

    def handle(self, packet: Packet, via: Any) -> None:
        try:
            msg = UserRevocationMessage.from_dict(packet.payload)
        except (KeyError, TypeError) as e:
            logger.warning(f"Dropping malformed revocation: {e}")
            return
        if not msg.verify(self.ca_cert.public_key()):
            logger.warning(f"Dropping revocation of {msg.username} with a bad signature")
            return
        self.revoke(msg.username)

    def revoke(self, username: str) -> bool:
        """Record ``username`` as revoked. Returns False if it already was."""
        if self.cert_handler.is_revoked(username):
            return False
        self.cert_handler.revoke(username)
        if self.overlord is not None:
            self.overlord.revoke(username)
        logger.debug(f"Revoked {username}")
        return True

    def verify(self, cert: x509.Certificate) -> bool:
        names = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        return not any(self.cert_handler.is_revoked(n.value) for n in names)
