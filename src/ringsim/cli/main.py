# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
ringsim CLI - discrete-event simulator for a structured ring overlay.

Commands:
  ringsim complete          Build the overlay and wait for the ring to form
  ringsim crawl             Crawl the ring over RPC
  ringsim broadcast         Broadcast and report hop statistics
  ringsim all-to-all        Ping every pair of nodes
  ringsim revoke            Revoke a random node's certificate
  ringsim kv                Put then get a sample key
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any

from pydantic import ValidationError

from ringsim.core.config import SimulationSettings
from ringsim.core.exceptions import RingSimException
from ringsim.core.logging import configure_logging
from ringsim.security.revocation import subject_name
from ringsim.sim.simulator import Simulator

logger = logging.getLogger(__name__)

# Flag name -> settings field, only forwarded when given
SETTING_FLAGS = {
    "size": "size",
    "seed": "seed",
    "secure_edges": "secure_edges",
    "secure_senders": "secure_senders",
    "dtls": "dtls",
    "pathing": "pathing",
    "broken": "broken",
    "nc": "nc_enable",
    "evaluation": "evaluation",
    "output": "output",
    "latency": "default_latency_ms",
    "quiescence": "quiescence_ms",
}


def output_result(data: dict[str, Any]) -> None:
    print(json.dumps(data, indent=2, default=str))


def output_error(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)


def build_settings(args: argparse.Namespace) -> SimulationSettings:
    overrides = {}
    for flag, field in SETTING_FLAGS.items():
        value = getattr(args, flag, None)
        if value is not None:
            overrides[field] = value
    return SimulationSettings(**overrides)


def start_simulation(args: argparse.Namespace) -> Simulator | None:
    """Build the overlay and wait for the ring; None if it never formed."""
    sim = Simulator(build_settings(args))
    if not sim.complete(quiet=args.quiet):
        return None
    return sim


def cmd_complete(args: argparse.Namespace) -> int:
    sim = Simulator(build_settings(args))
    success = sim.complete(quiet=args.quiet)
    output_result(
        {
            "complete": success,
            "nodes": len(sim.registry),
            "simulated_ms": sim.clock.now,
            "seed": sim.settings.seed,
        }
    )
    return 0 if success else 1


def cmd_crawl(args: argparse.Namespace) -> int:
    sim = start_simulation(args)
    if sim is None:
        return 1
    result = sim.crawl(log=args.verbose)
    output_result(result.to_dict())
    return 0 if result.success else 1


def cmd_broadcast(args: argparse.Namespace) -> int:
    sim = start_simulation(args)
    if sim is None:
        return 1
    stats = sim.broadcast(args.forwarders, args.root)
    output_result(stats.to_dict())
    return 0


def cmd_all_to_all(args: argparse.Namespace) -> int:
    sim = start_simulation(args)
    if sim is None:
        return 1
    result = sim.all_to_all()
    output_result(result.to_dict())
    return 0 if result.issued == 0 or result.contributing > 0 else 1


def cmd_revoke(args: argparse.Namespace) -> int:
    sim = start_simulation(args)
    if sim is None:
        return 1
    revoked = sim.revoke(log=args.verbose)
    sim.run_steps(sim.settings.quiescence_ms)
    subject = subject_name(revoked.address)
    aware = sum(
        1
        for record in sim.registry
        if record.trust is not None and record.trust.handler.is_revoked(subject)
    )
    output_result({"revoked": str(revoked.address), "id": revoked.id, "aware": aware, "nodes": len(sim.registry)})
    return 0


def cmd_kv(args: argparse.Namespace) -> int:
    sim = start_simulation(args)
    if sim is None:
        return 1
    kv = sim.kv()
    key, value = args.key.encode(), args.value.encode()
    stored = kv.put(key, value, args.ttl)
    values = kv.get(key)
    output_result({"put": stored, "get": [v.decode(errors="replace") for v in values]})
    return 0 if stored and value in values else 1


def app() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="ringsim",
        description="Discrete-event simulator for a structured ring overlay",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ringsim --size 32 --evaluation complete       Form a 32 node ring
  ringsim --size 16 --seed 7 broadcast -f 3     Broadcast with fan-out 3
  ringsim --secure-edges crawl                  Crawl over secure senders
  ringsim --secure-senders --dtls all-to-all    All pairs over DTLS
        """,
    )
    parser.add_argument("--size", "-n", type=int, help="Number of nodes")
    parser.add_argument("--seed", "-s", type=int, help="Random seed")
    parser.add_argument("--secure-edges", action="store_true", default=None, help="Verify certificates on edges")
    parser.add_argument("--secure-senders", action="store_true", default=None, help="Use end-to-end security")
    parser.add_argument("--dtls", action="store_true", default=None, help="Two round-trip handshakes")
    parser.add_argument("--pathing", action="store_true", default=None, help="Multiplex paths over listeners")
    parser.add_argument("--broken", type=float, help="Probability a link is broken (0 disables)")
    parser.add_argument("--nc", action="store_true", default=None, help="Enable network coordinates")
    parser.add_argument(
        "--evaluation", action="store_true", default=None, help="Link the initial nodes into a ring"
    )
    parser.add_argument("--output", "-o", help="Append broadcast results to this file")
    parser.add_argument("--latency", type=int, help="Default edge latency in ms")
    parser.add_argument("--quiescence", type=int, help="Broadcast quiescence window in ms")
    parser.add_argument("--log-level", help="Log level (DEBUG, INFO, WARNING, ERROR)")
    parser.add_argument("--quiet", "-q", action="store_true", help="Skip failure diagnostics")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log every protocol step")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("complete", help="Wait for the ring to form")
    subparsers.add_parser("crawl", help="Crawl the ring over RPC")

    bcast_parser = subparsers.add_parser("broadcast", help="Broadcast and report hop statistics")
    bcast_parser.add_argument("--forwarders", "-f", type=int, default=-1, help="Fan-out per hop (-1 = all)")
    bcast_parser.add_argument("--root", "-r", type=int, help="Ring index of the root (random if omitted)")

    subparsers.add_parser("all-to-all", help="Ping every pair of nodes")
    subparsers.add_parser("revoke", help="Revoke a random node's certificate")

    kv_parser = subparsers.add_parser("kv", help="Put then get a key")
    kv_parser.add_argument("--key", default="ringsim", help="Key to store")
    kv_parser.add_argument("--value", default="hello", help="Value to store")
    kv_parser.add_argument("--ttl", type=int, default=60, help="Time to live in seconds")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = app()
    args = parser.parse_args(argv)
    configure_logging(level=args.log_level)

    commands = {
        "complete": cmd_complete,
        "crawl": cmd_crawl,
        "broadcast": cmd_broadcast,
        "all-to-all": cmd_all_to_all,
        "revoke": cmd_revoke,
        "kv": cmd_kv,
    }

    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 1
    try:
        return handler(args)
    except ValidationError as e:
        output_error(f"invalid settings: {e}")
        return 2
    except RingSimException as e:
        output_error(e.message)
        return 1


if __name__ == "__main__":
    sys.exit(main())
