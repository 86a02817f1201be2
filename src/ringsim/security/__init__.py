# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""ringsim security - certificates, security associations and revocation."""

from ringsim.security.overlord import DtlsOverlord, PeerSecOverlord, SecureSender, SecurityOverlord
from ringsim.security.revocation import BroadcastRevocationHandler, UserRevocationMessage, subject_name
from ringsim.security.trust import CertificateHandler, TrustContext, TrustManager

__all__ = [
    "CertificateHandler",
    "TrustContext",
    "TrustManager",
    "SecurityOverlord",
    "PeerSecOverlord",
    "DtlsOverlord",
    "SecureSender",
    "BroadcastRevocationHandler",
    "UserRevocationMessage",
    "subject_name",
]
