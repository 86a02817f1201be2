# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Vivaldi-style network coordinates.

Each node keeps a point in a low-dimensional space whose distances predict
round-trip times. Points move a little on every measured round trip.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .node import StructuredNode

# Vivaldi tuning constants
CC = 0.25
CE = 0.25
MIN_ERROR = 0.01


@dataclass
class Point:
    """Coordinates plus a non-negative height (access-link latency)."""

    coords: list[float] = field(default_factory=lambda: [0.0, 0.0])
    height: float = 0.0

    def distance(self, other: Point) -> float:
        return math.dist(self.coords, other.coords) + self.height + other.height


class NCService:
    """Maintains one node's coordinates from round-trip samples."""

    def __init__(self, node: StructuredNode, point: Point | None = None, rng: random.Random | None = None):
        self.node = node
        self.point = point or Point()
        self.error = 1.0
        self.samples = 0
        self._rng = rng or node.rng

    def estimate(self, other: NCService) -> float:
        """Predicted round trip to ``other`` in milliseconds."""
        return self.point.distance(other.point)

    def sample(self, other: NCService, rtt_ms: float) -> None:
        """Move towards the position explaining ``rtt_ms`` to ``other``."""
        if rtt_ms <= 0:
            return
        weight = self.error / (self.error + other.error)
        predicted = self.point.distance(other.point)
        sample_error = abs(predicted - rtt_ms) / rtt_ms
        self.error = max(MIN_ERROR, sample_error * CE * weight + self.error * (1 - CE * weight))

        delta = CC * weight * (rtt_ms - predicted)
        direction = [a - b for a, b in zip(self.point.coords, other.point.coords)]
        norm = math.hypot(*direction)
        if norm == 0:
            direction = [self._rng.uniform(-1.0, 1.0) for _ in direction]
            norm = math.hypot(*direction) or 1.0
        self.point.coords = [c + delta * d / norm for c, d in zip(self.point.coords, direction)]
        self.samples += 1
