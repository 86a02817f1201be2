# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""ringsim sim - event clock, node bookkeeping and protocol coordinators."""

from ringsim.sim.clock import EventClock, Timer
from ringsim.sim.registry import AddressSpace, NodeRecord, NodeRegistry
from ringsim.sim.simulator import Simulator

__all__ = [
    "EventClock",
    "Timer",
    "AddressSpace",
    "NodeRecord",
    "NodeRegistry",
    "Simulator",
]
