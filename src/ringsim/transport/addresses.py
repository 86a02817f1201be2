# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Transport addresses of simulated endpoints (``b.s://<id>``)."""

from __future__ import annotations

from dataclasses import dataclass

SIMULATION_SCHEME = "b.s"


@dataclass(frozen=True)
class TransportAddress:
    """Where an edge listener can be reached."""

    scheme: str
    id: int

    def __str__(self) -> str:
        return f"{self.scheme}://{self.id}"


def parse_transport_address(text: str) -> TransportAddress:
    """Parse ``<scheme>://<id>``.

    Raises:
        ValueError: If the text is malformed or the id is not an integer.
    """
    scheme, sep, rest = text.partition("://")
    if not sep or not scheme:
        raise ValueError(f"missing scheme: {text!r}")
    try:
        ta_id = int(rest)
    except ValueError as e:
        raise ValueError(f"bad transport id in {text!r}") from e
    if ta_id < 0:
        raise ValueError(f"negative transport id in {text!r}")
    return TransportAddress(scheme, ta_id)


def simulation_address(ta_id: int) -> TransportAddress:
    return TransportAddress(SIMULATION_SCHEME, ta_id)
