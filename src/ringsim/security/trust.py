# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
Certificate authority and per-node certificate handling.

One authority key and self-signed certificate exist per simulation run. Each
node gets a leaf certificate whose subject is its ring address (with
characters that are illegal in the subject replaced) and whose subject
alternative name binds the exact address, signed by the authority.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.x509.oid import NameOID

from ringsim.core.exceptions import CertificateError

from .overlord import DtlsOverlord, PeerSecOverlord, SecurityOverlord
from .revocation import (
    REVOCATION_PTYPE,
    BroadcastRevocationHandler,
    UserRevocationMessage,
    subject_name,
)

if TYPE_CHECKING:
    from ringsim.network.address import RingAddress
    from ringsim.network.node import StructuredNode

logger = logging.getLogger(__name__)

CERT_VALIDITY = datetime.timedelta(days=3650)


class CertificateVerification(Protocol):
    def verify(self, cert: x509.Certificate) -> bool: ...


class CertificateHandler:
    """Trusted authorities, this node's own chain, and revoked subjects."""

    def __init__(self):
        self._ca_certs: list[x509.Certificate] = []
        self._signed: list[x509.Certificate] = []
        self._revoked: set[str] = set()
        self._verifiers: list[CertificateVerification] = []

    def add_ca_certificate(self, cert: x509.Certificate) -> None:
        self._ca_certs.append(cert)

    def add_signed_certificate(self, cert: x509.Certificate) -> None:
        self._signed.append(cert)

    def add_certificate_verification(self, verifier: CertificateVerification) -> None:
        self._verifiers.append(verifier)

    @property
    def chain(self) -> list[x509.Certificate]:
        """Authority certificate followed by this node's leaf."""
        if not self._ca_certs or not self._signed:
            return []
        return [self._ca_certs[0], self._signed[0]]

    @property
    def revoked(self) -> frozenset[str]:
        return frozenset(self._revoked)

    def revoke(self, subject: str) -> None:
        self._revoked.add(subject)

    def is_revoked(self, subject: str) -> bool:
        return subject in self._revoked

    def _trusted_issuer(self, cert: x509.Certificate) -> x509.Certificate | None:
        fingerprint = cert.fingerprint(hashes.SHA256())
        for ca in self._ca_certs:
            if ca.fingerprint(hashes.SHA256()) == fingerprint:
                return ca
        return None

    def verify(
        self, chain: Sequence[x509.Certificate], claimed_address: RingAddress | None = None
    ) -> x509.Certificate:
        """Verify a peer's chain and return its leaf certificate.

        Raises:
            CertificateError: If the chain is not signed by a trusted authority,
                the subject is revoked, or the address binding does not match.
        """
        if len(chain) < 2:
            raise CertificateError("incomplete certificate chain")
        ca = self._trusted_issuer(chain[0])
        if ca is None:
            raise CertificateError("untrusted authority")
        leaf = chain[-1]
        try:
            ca.public_key().verify(leaf.signature, leaf.tbs_certificate_bytes)
        except InvalidSignature as e:
            raise CertificateError("leaf not signed by authority") from e

        names = leaf.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        subject = str(names[0].value) if names else ""
        if self.is_revoked(subject):
            raise CertificateError("certificate revoked", subject=subject)

        if claimed_address is not None:
            try:
                san = leaf.extensions.get_extension_for_class(x509.SubjectAlternativeName)
                uris = san.value.get_values_for_type(x509.UniformResourceIdentifier)
            except x509.ExtensionNotFound:
                uris = []
            if str(claimed_address) not in uris:
                raise CertificateError("address not bound by certificate", subject=subject)

        for verifier in self._verifiers:
            if not verifier.verify(leaf):
                raise CertificateError("rejected by verification hook", subject=subject)
        return leaf


@dataclass
class TrustContext:
    """Per-node security state created by :class:`TrustManager`."""

    certificate: x509.Certificate
    handler: CertificateHandler
    overlord: SecurityOverlord
    revocation_handler: BroadcastRevocationHandler


class TrustManager:
    """Owns the authority key and issues node certificates for one run."""

    def __init__(self, dtls: bool = False, organization: str = "ringsim"):
        self.dtls = dtls
        self.organization = organization
        self._key = Ed25519PrivateKey.generate()
        self.ca_cert = self._self_sign()
        self.issued = 0

    def _name(self, common_name: str) -> x509.Name:
        return x509.Name(
            [
                x509.NameAttribute(NameOID.COUNTRY_NAME, "US"),
                x509.NameAttribute(NameOID.ORGANIZATION_NAME, self.organization),
                x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, "simulation"),
                x509.NameAttribute(NameOID.COMMON_NAME, common_name),
            ]
        )

    def _self_sign(self) -> x509.Certificate:
        name = self._name(f"{self.organization} authority")
        now = datetime.datetime.now(datetime.UTC)
        return (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(self._key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - datetime.timedelta(days=1))
            .not_valid_after(now + CERT_VALIDITY)
            .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
            .sign(self._key, algorithm=None)
        )

    @property
    def authority_public_key(self):
        return self._key.public_key()

    def copy_key(self) -> Ed25519PrivateKey:
        """A fresh key object holding the authority key material."""
        raw = self._key.private_bytes(
            serialization.Encoding.Raw,
            serialization.PrivateFormat.Raw,
            serialization.NoEncryption(),
        )
        return Ed25519PrivateKey.from_private_bytes(raw)

    def issue_certificate(self, address: RingAddress, key: Ed25519PrivateKey) -> x509.Certificate:
        """Sign a leaf certificate binding ``address`` to ``key``."""
        now = datetime.datetime.now(datetime.UTC)
        cert = (
            x509.CertificateBuilder()
            .subject_name(self._name(subject_name(address)))
            .issuer_name(self.ca_cert.subject)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - datetime.timedelta(days=1))
            .not_valid_after(now + CERT_VALIDITY)
            .add_extension(
                x509.SubjectAlternativeName([x509.UniformResourceIdentifier(str(address))]),
                critical=False,
            )
            .sign(self._key, algorithm=None)
        )
        self.issued += 1
        return cert

    def create_context(self, node: StructuredNode) -> TrustContext:
        """Install a certificate chain, overlord and revocation handler on ``node``."""
        key = self.copy_key()
        cert = self.issue_certificate(node.address, key)

        handler = CertificateHandler()
        handler.add_ca_certificate(self.ca_cert)
        handler.add_signed_certificate(cert)

        overlord_cls = DtlsOverlord if self.dtls else PeerSecOverlord
        overlord = overlord_cls(node, key, handler)

        brh = BroadcastRevocationHandler(self.ca_cert, handler, overlord)
        node.demux.subscribe(REVOCATION_PTYPE, brh.handle)
        handler.add_certificate_verification(brh)
        node.overlord = overlord
        return TrustContext(certificate=cert, handler=handler, overlord=overlord, revocation_handler=brh)

    def create_revocation(self, address: RingAddress, timestamp: int = 0) -> UserRevocationMessage:
        """Authority-signed revocation of ``address``'s certificate."""
        return UserRevocationMessage.create(self._key, subject_name(address), timestamp)
