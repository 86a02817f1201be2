# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""ringsim core - configuration, logging and the exception hierarchy."""

from .config import SimulationSettings, clear_config_cache, get_config
from .exceptions import (
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
from .logging import configure_logging, round_context

__all__ = [
    "SimulationSettings",
    "get_config",
    "clear_config_cache",
    "RingSimException",
    "ConfigException",
    "DuplicateIdError",
    "UnknownNodeError",
    "AddressSpaceExhaustedError",
    "EdgeException",
    "SendError",
    "RpcException",
    "ChannelClosedError",
    "CertificateError",
    "configure_logging",
    "round_context",
]
