"""Tests for ringsim.network.address and ringsim.transport.addresses."""

from __future__ import annotations

import random

import pytest

from ringsim.network.address import (
    PREFIX,
    RING_SIZE,
    RingAddress,
    in_range,
    parse_address,
)
from ringsim.transport.addresses import (
    TransportAddress,
    parse_transport_address,
    simulation_address,
)

# ============================================================================
# RingAddress
# ============================================================================


class TestRingAddress:
    """Test identifier values and arithmetic."""

    def test_random_is_ring_class(self):
        rng = random.Random(3)
        for _ in range(50):
            address = RingAddress.random(rng)
            assert address.address_class == 0
            assert 0 <= address.value < RING_SIZE

    def test_out_of_range(self):
        with pytest.raises(ValueError):
            RingAddress(RING_SIZE)
        with pytest.raises(ValueError):
            RingAddress(-2)

    def test_string_round_trip(self):
        address = RingAddress.random(random.Random(9))
        text = str(address)
        assert text.startswith(PREFIX)
        assert parse_address(text) == address

    def test_distances_wrap(self):
        a = RingAddress(RING_SIZE - 10)
        b = RingAddress(20)
        assert a.right_distance(b) == 30
        assert b.left_distance(a) == 30
        assert a.left_distance(b) == RING_SIZE - 30
        assert a.distance_to(b) == 30
        assert a.is_right_of_half(b)
        assert not b.is_right_of_half(a)

    def test_offset_keeps_class(self):
        base = RingAddress(100)
        assert base.offset(3).value == 102
        assert base.offset(RING_SIZE).value == 100

    def test_for_key_is_stable(self):
        assert RingAddress.for_key(b"key") == RingAddress.for_key(b"key")
        assert RingAddress.for_key(b"key").address_class == 0

    def test_ordering(self):
        assert sorted([RingAddress(8), RingAddress(2), RingAddress(4)]) == [
            RingAddress(2),
            RingAddress(4),
            RingAddress(8),
        ]

    @pytest.mark.parametrize("text", ["", "brunet:node:", "brunet:node:!!!", "b.s://1"])
    def test_parse_rejects_garbage(self, text):
        with pytest.raises(ValueError):
            parse_address(text)


class TestInRange:
    """Test the strict clockwise arc."""

    def test_simple_arc(self):
        start, end = RingAddress(10), RingAddress(20)
        assert in_range(start, end, RingAddress(14))
        assert not in_range(start, end, start)
        assert not in_range(start, end, end)
        assert not in_range(start, end, RingAddress(30))

    def test_wrapping_arc(self):
        start, end = RingAddress(RING_SIZE - 10), RingAddress(10)
        assert in_range(start, end, RingAddress(2))
        assert not in_range(start, end, RingAddress(12))

    def test_full_ring(self):
        start = RingAddress(50)
        assert in_range(start, start, RingAddress(2))
        assert not in_range(start, start, start)


# ============================================================================
# TransportAddress
# ============================================================================


class TestTransportAddress:
    def test_simulation_address(self):
        ta = simulation_address(4)
        assert str(ta) == "b.s://4"
        assert parse_transport_address("b.s://4") == ta

    def test_equality_and_hash(self):
        assert {simulation_address(1), simulation_address(1)} == {TransportAddress("b.s", 1)}

    @pytest.mark.parametrize("text", ["b.s:/4", "b.s://x", "://4", "nothing"])
    def test_parse_errors(self, text):
        with pytest.raises(ValueError):
            parse_transport_address(text)
