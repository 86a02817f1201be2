# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Ring identifiers.

A :class:`RingAddress` is a 160-bit value placing a node on the overlay's
circular identifier space. The lowest bit carries the address class; ring
addresses are class 0 (even values).
"""

from __future__ import annotations

import base64
import hashlib
import random
from dataclasses import dataclass

MEM_SIZE = 20
ADDRESS_BITS = MEM_SIZE * 8
RING_SIZE = 1 << ADDRESS_BITS
RING_CLASS = 0
PREFIX = "brunet:node:"


def set_class(value: int, address_class: int = RING_CLASS) -> int:
    """Tag ``value`` with ``address_class`` (the low bit)."""
    return (value & ~1) | (address_class & 1)


@dataclass(frozen=True, order=True)
class RingAddress:
    """Fixed-width position on the ring, ordered by numeric value."""

    value: int

    def __post_init__(self):
        if not 0 <= self.value < RING_SIZE:
            raise ValueError(f"address out of range: {self.value}")

    @classmethod
    def random(cls, rng: random.Random) -> RingAddress:
        """Draw a uniformly random ring-class address."""
        return cls(set_class(rng.getrandbits(ADDRESS_BITS)))

    @classmethod
    def from_bytes(cls, data: bytes) -> RingAddress:
        if len(data) != MEM_SIZE:
            raise ValueError(f"expected {MEM_SIZE} bytes, got {len(data)}")
        return cls(int.from_bytes(data, "big"))

    @classmethod
    def for_key(cls, key: bytes) -> RingAddress:
        """Map an arbitrary key onto the ring (SHA-1, ring class)."""
        return cls(set_class(int.from_bytes(hashlib.sha1(key).digest(), "big")))

    @property
    def address_class(self) -> int:
        return self.value & 1

    def to_bytes(self) -> bytes:
        return self.value.to_bytes(MEM_SIZE, "big")

    def offset(self, delta: int) -> RingAddress:
        """Address ``delta`` steps clockwise, re-tagged with the ring class."""
        return RingAddress(set_class((self.value + delta) % RING_SIZE))

    def right_distance(self, other: RingAddress) -> int:
        """Clockwise distance from this address to ``other``."""
        return (other.value - self.value) % RING_SIZE

    def left_distance(self, other: RingAddress) -> int:
        """Counter-clockwise distance from this address to ``other``."""
        return (self.value - other.value) % RING_SIZE

    def distance_to(self, other: RingAddress) -> int:
        return min(self.right_distance(other), self.left_distance(other))

    def is_right_of_half(self, other: RingAddress) -> bool:
        """True if ``other`` is reached faster going clockwise."""
        return self.right_distance(other) <= self.left_distance(other)

    def __str__(self) -> str:
        return PREFIX + base64.b32encode(self.to_bytes()).decode("ascii")

    def __repr__(self) -> str:
        return f"RingAddress({str(self)[len(PREFIX):len(PREFIX) + 8]}...)"


def parse_address(text: str) -> RingAddress:
    """Parse the ``brunet:node:<BASE32>`` form.

    Raises:
        ValueError: If the text is not a ring address.
    """
    if not text.startswith(PREFIX):
        raise ValueError(f"not a ring address: {text!r}")
    try:
        data = base64.b32decode(text[len(PREFIX):])
    except (ValueError, TypeError) as e:
        raise ValueError(f"bad address encoding: {text!r}") from e
    return RingAddress.from_bytes(data)


def in_range(start: RingAddress, end: RingAddress, candidate: RingAddress) -> bool:
    """True if ``candidate`` lies strictly inside the clockwise arc (start, end).

    When ``start == end`` the arc is the whole ring minus ``start``.
    """
    span = start.right_distance(end) or RING_SIZE
    pos = start.right_distance(candidate)
    return 0 < pos < span
