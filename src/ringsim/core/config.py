# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Core configuration - centralized settings for a simulation run.

All environment-based configuration flows through this module. Settings can
also be passed explicitly, which is what tests and the CLI do.

Usage:
    from ringsim.core.config import get_config
    config = get_config()

    size = config.size
    secure = config.secure_edges
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SimulationSettings(BaseSettings):
    """Configuration settings for one simulation run.

    Every setting can be overridden by a RINGSIM_ prefixed environment
    variable. Lists (the latency map) are JSON-encoded.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ==========================================================================
    # NETWORK SHAPE
    # ==========================================================================

    size: int = Field(
        default=100,
        ge=0,
        description="Number of nodes created at start",
        validation_alias="RINGSIM_SIZE",
    )
    seed: int | None = Field(
        default=None,
        description="Random seed; unseeded runs draw one and record it",
        validation_alias="RINGSIM_SEED",
    )
    evaluation: bool = Field(
        default=False,
        description="Link the initial nodes into a ring (+/-1, +/-2) instead of random discovery",
        validation_alias="RINGSIM_EVALUATION",
    )
    broken: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Probability that a direct edge between two nodes is denied (0 disables)",
        validation_alias="RINGSIM_BROKEN",
    )

    # ==========================================================================
    # TRANSPORT STACK
    # ==========================================================================

    pathing: bool = Field(
        default=False,
        description="Multiplex edges over a path manager",
        validation_alias="RINGSIM_PATHING",
    )
    secure_edges: bool = Field(
        default=False,
        description="Require certificate-verified edges",
        validation_alias="RINGSIM_SECURE_EDGES",
    )
    secure_senders: bool = Field(
        default=False,
        description="Use security associations for end-to-end RPC",
        validation_alias="RINGSIM_SECURE_SENDERS",
    )
    dtls: bool = Field(
        default=False,
        description="Use the DTLS-style handshake instead of the symmetric one",
        validation_alias="RINGSIM_DTLS",
    )
    nc_enable: bool = Field(
        default=False,
        description="Run network coordinate services and use them for relay selection",
        validation_alias="RINGSIM_NC_ENABLE",
    )

    # ==========================================================================
    # TIMING (all simulated milliseconds unless noted)
    # ==========================================================================

    default_latency_ms: int = Field(
        default=10,
        ge=0,
        description="One-way latency of an edge without a latency map entry",
        validation_alias="RINGSIM_DEFAULT_LATENCY_MS",
    )
    latency_map: list[list[int]] | None = Field(
        default=None,
        description="Square matrix of one-way latencies indexed by simulation id",
        validation_alias="RINGSIM_LATENCY_MAP",
    )
    stabilize_interval_ms: int = Field(
        default=1000,
        gt=0,
        description="Period of the near-neighbor exchange",
        validation_alias="RINGSIM_STABILIZE_INTERVAL_MS",
    )
    near_degree: int = Field(
        default=2,
        ge=1,
        description="Near neighbors kept per side of the ring",
        validation_alias="RINGSIM_NEAR_DEGREE",
    )
    rpc_timeout_ms: int = Field(
        default=20000,
        gt=0,
        description="RPC calls without a response close empty after this long",
        validation_alias="RINGSIM_RPC_TIMEOUT_MS",
    )
    edge_timeout_ms: int = Field(
        default=5000,
        gt=0,
        description="Delay before peers notice an aborted node",
        validation_alias="RINGSIM_EDGE_TIMEOUT_MS",
    )
    quiescence_ms: int = Field(
        default=1000,
        gt=0,
        description="Broadcast rounds end after this long without a new response",
        validation_alias="RINGSIM_QUIESCENCE_MS",
    )
    max_wall_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="Wall-clock budget (seconds) of every driver wait loop",
        validation_alias="RINGSIM_MAX_WALL_SECONDS",
    )

    # ==========================================================================
    # ADDRESS SPACE AND SERVICES
    # ==========================================================================

    address_retry_limit: int = Field(
        default=64,
        ge=1,
        description="Attempts before identifier generation gives up",
        validation_alias="RINGSIM_ADDRESS_RETRY_LIMIT",
    )
    dht_degree: int = Field(
        default=3,
        ge=0,
        description="Key/value replicas are placed at 2**degree ring points",
        validation_alias="RINGSIM_DHT_DEGREE",
    )
    dht_delay: int = Field(
        default=20,
        ge=0,
        description="Seconds before expiry at which the DHT proxy re-registers",
        validation_alias="RINGSIM_DHT_DELAY",
    )

    # ==========================================================================
    # OUTPUT AND LOGGING
    # ==========================================================================

    output: str | None = Field(
        default=None,
        description="Broadcast results file (appended, one line per responder)",
        validation_alias="RINGSIM_OUTPUT",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias="RINGSIM_LOG_LEVEL",
    )
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
        validation_alias="RINGSIM_LOG_FORMAT",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (optional)",
        validation_alias="RINGSIM_LOG_FILE",
    )

    @field_validator("latency_map")
    @classmethod
    def _check_square(cls, value: list[list[int]] | None) -> list[list[int]] | None:
        if value is not None and any(len(row) != len(value) for row in value):
            raise ValueError("latency_map must be a square matrix")
        return value

    @property
    def trust_enabled(self) -> bool:
        """Whether an authority key and node certificates are needed."""
        return self.secure_edges or self.secure_senders


# ==========================================================================
# GLOBAL CONFIG INSTANCE (lazy loaded)
# ==========================================================================

_config: SimulationSettings | None = None


def get_config() -> SimulationSettings:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = SimulationSettings()
    return _config


def clear_config_cache() -> None:
    """Clear the config cache. Useful for testing."""
    global _config
    _config = None
