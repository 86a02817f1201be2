"""Tests for ringsim.core.exceptions.

Tests cover:
- Base exception details and serialization
- Detail population of each subclass
- The inheritance tree used by callers to catch families of errors
"""

from __future__ import annotations

import json

import pytest

from ringsim.core.exceptions import (
    AddressSpaceExhaustedError,
    CertificateError,
    ChannelClosedError,
    ConfigException,
    DuplicateIdError,
    EdgeException,
    RingSimException,
    RpcException,
    SendError,
    UnknownNodeError,
)

# ============================================================================
# RingSimException
# ============================================================================


class TestRingSimException:
    """Test the base exception."""

    def test_message_and_empty_details(self):
        """Test that details default to an empty dict."""
        exc = RingSimException("boom")
        assert exc.message == "boom"
        assert exc.details == {}
        assert str(exc) == "boom"

    def test_to_dict_is_json_serializable(self):
        """Test to_dict output survives a JSON round trip."""
        exc = RingSimException("boom", {"node": 3})
        data = exc.to_dict()
        assert data == {"error": "RingSimException", "message": "boom", "details": {"node": 3}}
        assert json.loads(json.dumps(data)) == data


# ============================================================================
# Subclasses
# ============================================================================


class TestSubclasses:
    """Test detail population of the specific errors."""

    def test_config_exception_fields(self):
        """Test field and value are kept and stringified in details."""
        exc = ConfigException("bad size", field="size", value=-1)
        assert exc.field == "size"
        assert exc.details == {"field": "size", "value": "-1"}

    def test_config_exception_without_field(self):
        """Test no details are added when nothing is given."""
        assert ConfigException("bad").details == {}

    def test_duplicate_id(self):
        """Test DuplicateIdError names the kind and key."""
        exc = DuplicateIdError("id", 7)
        assert exc.kind == "id"
        assert exc.key == 7
        assert "7" in exc.message
        assert exc.details == {"kind": "id", "key": "7"}

    def test_unknown_node(self):
        """Test UnknownNodeError carries the key."""
        exc = UnknownNodeError(12)
        assert exc.key == 12
        assert exc.to_dict()["error"] == "UnknownNodeError"

    def test_address_space_exhausted(self):
        """Test the attempts count is reported."""
        exc = AddressSpaceExhaustedError("address", 64)
        assert exc.kind == "address"
        assert exc.details["attempts"] == 64

    def test_edge_exception_remote(self):
        """Test the remote transport address is recorded."""
        exc = EdgeException("denied", remote="b.s://4")
        assert exc.remote == "b.s://4"
        assert exc.details == {"remote": "b.s://4"}

    def test_rpc_exception_method(self):
        """Test the failing method name is recorded."""
        exc = RpcException("fault", method="sys:link.Ping")
        assert exc.method == "sys:link.Ping"

    def test_certificate_error_subject(self):
        """Test the subject is recorded when given."""
        assert CertificateError("revoked", subject="brunet:node:AAAA").details == {
            "subject": "brunet:node:AAAA"
        }
        assert CertificateError("untrusted").details == {}


class TestHierarchy:
    """Test everything can be caught as RingSimException."""

    @pytest.mark.parametrize(
        "exc",
        [
            ConfigException("x"),
            DuplicateIdError("id", 1),
            UnknownNodeError(1),
            AddressSpaceExhaustedError("id", 1),
            EdgeException("x"),
            SendError("x"),
            RpcException("x"),
            ChannelClosedError("x"),
            CertificateError("x"),
        ],
    )
    def test_is_ringsim_exception(self, exc):
        """Test each error derives from the base."""
        assert isinstance(exc, RingSimException)
        with pytest.raises(RingSimException):
            raise exc
