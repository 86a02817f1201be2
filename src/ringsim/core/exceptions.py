# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Custom exception hierarchy for ringsim.

Configuration errors are raised to the caller. Topology anomalies are never
raised; they surface as results of the ring checks. Remote faults end only the
protocol instance that observed them.
"""

from __future__ import annotations

from typing import Any


class RingSimException(Exception):  # noqa: N818
    """Base exception for all ringsim errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigException(RingSimException):
    """Exception for invalid simulation configuration."""

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class DuplicateIdError(RingSimException):
    """Raised when a simulation id or ring address is already registered."""

    def __init__(self, kind: str, key: Any):
        super().__init__(f"{kind} already taken: {key}", {"kind": kind, "key": str(key)})
        self.kind = kind
        self.key = key


class UnknownNodeError(RingSimException):
    """Raised when a node is not present in the registry."""

    def __init__(self, key: Any):
        super().__init__(f"Node not found: {key}", {"key": str(key)})
        self.key = key


class AddressSpaceExhaustedError(RingSimException):
    """Raised when no free identifier is found within the retry budget."""

    def __init__(self, kind: str, attempts: int):
        super().__init__(
            f"Unable to allocate a free {kind} after {attempts} attempts",
            {"kind": kind, "attempts": attempts},
        )
        self.kind = kind
        self.attempts = attempts


class EdgeException(RingSimException):
    """Raised when an edge cannot be created.

    Raised when:
    - The remote transport address has no listener
    - Either side's authorizer denies the edge
    - Certificate verification fails on a secure edge
    """

    def __init__(self, message: str, remote: str | None = None):
        details = {}
        if remote:
            details["remote"] = remote
        super().__init__(message, details)
        self.remote = remote


class SendError(RingSimException):
    """Raised at dispatch time when a packet has no route."""

    pass


class RpcException(RingSimException):
    """A fault raised by a remote RPC handler, delivered inside an RpcResult."""

    def __init__(self, message: str, method: str | None = None):
        details = {}
        if method:
            details["method"] = method
        super().__init__(message, details)
        self.method = method


class ChannelClosedError(RingSimException):
    """Raised when dequeuing from an empty channel."""

    pass


class CertificateError(RingSimException):
    """Raised when a certificate chain fails verification."""

    def __init__(self, message: str, subject: str | None = None):
        details = {}
        if subject:
            details["subject"] = subject
        super().__init__(message, details)
        self.subject = subject
