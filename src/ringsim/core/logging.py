# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Structured logging configuration for ringsim.

Provides:
- JSON formatter for machine-parseable run logs
- Standard formatter for interactive runs (human-readable)
- Round IDs tagging every line emitted during one protocol round
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

_round_id: ContextVar[str | None] = ContextVar("round_id", default=None)


def get_round_id() -> str | None:
    """Get the ID of the protocol round currently running, if any."""
    return _round_id.get()


def set_round_id(round_id: str | None) -> None:
    """Set the round ID for the current context.

    Args:
        round_id: The round ID to set, or None to clear.
    """
    _round_id.set(round_id)


def generate_round_id(kind: str = "round") -> str:
    """Generate a new unique round ID prefixed with the protocol kind."""
    return f"{kind}-{uuid.uuid4().hex[:12]}"


@contextmanager
def round_context(
    kind: str = "round",
    round_id: str | None = None,
) -> Generator[str, None, None]:
    """Context manager scoping a round ID.

    Example:
        with round_context("crawl") as rid:
            logger.info("Crawl stats: 8/8")  # tagged with rid
    """
    rid = round_id or generate_round_id(kind)
    token = _round_id.set(rid)
    try:
        yield rid
    finally:
        _round_id.reset(token)


class JSONFormatter(logging.Formatter):
    """JSON log formatter for archived simulation runs."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        round_id = get_round_id()
        if round_id:
            log_data["round_id"] = round_id

        if record.levelno >= logging.WARNING:
            log_data["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_data"):
            log_data["extra"] = record.extra_data

        return json.dumps(log_data)


class StandardFormatter(logging.Formatter):
    """Human-readable formatter with colors for terminal output."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"
    ROUND_COLOR = "\033[90m"  # Gray

    def __init__(self, use_colors: bool = True):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        # Copy so other handlers see the unmodified record
        record = logging.makeLogRecord(record.__dict__)

        round_id = get_round_id()
        if round_id:
            if self.use_colors:
                rid_str = f"{self.ROUND_COLOR}[{round_id}]{self.RESET} "
            else:
                rid_str = f"[{round_id}] "
            record.msg = rid_str + str(record.msg)

        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            record.levelname = f"{color}{record.levelname}{self.RESET}"

        return super().format(record)


def configure_logging(
    level: str | int | None = None,
    json_format: bool | None = None,
    log_file: str | None = None,
) -> None:
    """Configure logging for a simulation run.

    Args:
        level: Log level; falls back to RINGSIM_LOG_LEVEL
        json_format: Use JSON format (auto-detect if None)
        log_file: Optional file to write logs to

    Environment variables:
        RINGSIM_LOG_LEVEL: Log level when ``level`` is not given
        RINGSIM_LOG_FORMAT: "json" or "text", auto-detect if unset
        RINGSIM_LOG_FILE: Log file path
    """
    from .config import get_config

    config = get_config()

    if level is None:
        level = config.log_level
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    if json_format is None:
        format_env = config.log_format.lower()
        if format_env == "json":
            json_format = True
        elif format_env == "text":
            json_format = False
        else:
            json_format = not sys.stderr.isatty()

    log_file = config.log_file if log_file is None else log_file

    formatter: logging.Formatter
    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = StandardFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        # Always use JSON for file output
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    logging.getLogger("cryptography").setLevel(logging.WARNING)
