# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""ringsim transport - simulated edges, listeners and listener stack steps."""

from ringsim.transport.addresses import TransportAddress, parse_transport_address, simulation_address
from ringsim.transport.layers import (
    NCRelayOverlap,
    PathELManager,
    RelayEdgeListener,
    SecureEdgeListener,
    SimpleRelayOverlap,
    StackContext,
    build_stack,
    path_step,
    relay_step,
    secure_step,
)
from ringsim.transport.listener import (
    BrokenTAAuth,
    Decision,
    Edge,
    EdgeListener,
    SimulationEdgeListener,
    SimulationNetwork,
)

__all__ = [
    "TransportAddress",
    "parse_transport_address",
    "simulation_address",
    "Decision",
    "BrokenTAAuth",
    "Edge",
    "EdgeListener",
    "SimulationEdgeListener",
    "SimulationNetwork",
    "StackContext",
    "PathELManager",
    "SecureEdgeListener",
    "RelayEdgeListener",
    "SimpleRelayOverlap",
    "NCRelayOverlap",
    "path_step",
    "secure_step",
    "relay_step",
    "build_stack",
]
