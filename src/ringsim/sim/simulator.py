# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
Simulation driver.

A :class:`Simulator` owns one run: its seeded random generator, event clock,
simulated network, node registry and the optional trust authority. It
populates the overlay, then drives protocol rounds by pumping the clock until
each round reports completion or the wall-clock budget runs out.

Usage:
    from ringsim.core.config import SimulationSettings
    from ringsim.sim.simulator import Simulator

    sim = Simulator(SimulationSettings(size=16, seed=7, evaluation=True))
    assert sim.complete()
    stats = sim.broadcast(forwarders=3, idx=0)
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from ringsim.core.config import SimulationSettings, get_config
from ringsim.core.exceptions import ConfigException, UnknownNodeError
from ringsim.core.logging import round_context
from ringsim.network.broadcast import BroadcastSender
from ringsim.security.revocation import REVOCATION_PTYPE
from ringsim.security.trust import TrustManager
from ringsim.transport.listener import SimulationNetwork

from .bootstrap import OverlayBootstrapper
from .broadcast import (
    BroadcastCollector,
    BroadcastCoordinator,
    BroadcastStats,
    average,
    standard_deviation,
)
from .clock import EventClock
from .crawl import CrawlCoordinator, CrawlResult
from .kv import AsyncKVFacade, DhtGet, DhtPut
from .latency import LatencyMatrixCoordinator, LatencyResult
from .registry import AddressSpace, NodeRecord, NodeRegistry
from .verifier import RingVerifier

if TYPE_CHECKING:
    from ringsim.network.address import RingAddress
    from ringsim.network.node import StructuredNode

logger = logging.getLogger(__name__)

MAX_SEED = 2**31 - 1


class Simulator:
    """Drives one simulated overlay.

    Args:
        settings: Run configuration; defaults to the global settings. An
            unseeded configuration gets a drawn seed recorded on ``settings``.
        start: Populate the overlay immediately.
    """

    def __init__(self, settings: SimulationSettings | None = None, start: bool = True):
        settings = settings or get_config()
        if settings.seed is None:
            seed = random.SystemRandom().randint(0, MAX_SEED)
            settings = settings.model_copy(update={"seed": seed})
        self.settings = settings
        logger.info(f"Simulation seed {settings.seed}")

        self.rng = random.Random(settings.seed)
        self.namespace = f"testing{self.rng.randint(0, MAX_SEED)}"
        self.clock = EventClock()
        self.network = SimulationNetwork(settings.default_latency_ms, settings.latency_map)
        self.registry = NodeRegistry()
        self.address_space = AddressSpace(self.registry, self.rng, settings.address_retry_limit)
        self.verifier = RingVerifier(self.registry)

        self.trust_manager = TrustManager(dtls=settings.dtls) if settings.trust_enabled else None
        self.collector = BroadcastCollector(self.clock, settings.quiescence_ms)
        self.bootstrapper = OverlayBootstrapper(
            settings,
            self.clock,
            self.rng,
            self.registry,
            self.network,
            self.namespace,
            trust_manager=self.trust_manager,
            collector=self.collector,
        )
        self.broadcaster = BroadcastCoordinator(
            self.collector, self.clock, settings.output, settings.max_wall_seconds
        )

        self._initial = settings.evaluation
        if start:
            self.start()
        self._initial = False

    # -------------------------------------------------------------------------
    # Population
    # -------------------------------------------------------------------------

    @property
    def current_network_size(self) -> int:
        return self.registry.current_network_size

    def start(self) -> None:
        for _ in range(self.settings.size):
            self.add_node()

        if self._initial:
            self.bootstrapper.link_initial_ring()
            for record in self.registry:
                record.node.connect()

    def add_node(self, sim_id: int | None = None, address: RingAddress | None = None) -> StructuredNode:
        """Create, register and (outside the initial ring) connect a node."""
        if sim_id is None:
            sim_id = self.address_space.allocate_id()
        if address is None:
            address = self.address_space.generate_address()
        record = self.bootstrapper.prepare_node(sim_id, address, initial=self._initial)
        if not self._initial:
            record.node.connect()
        self.registry.increment_network_size()
        return record.node

    def remove_node(self, node: StructuredNode, cleanly: bool = True, output: bool = False) -> NodeRecord:
        """Take ``node`` out of the overlay and the registry.

        Raises:
            UnknownNodeError: If ``node`` is not registered.
        """
        record = self.registry.get(node)
        if record is None:
            raise UnknownNodeError(node.address)
        if output:
            logger.info(f"Removing: {record.address}")
        if cleanly:
            node.disconnect()
        else:
            node.abort()
        self.registry.remove(record.address)
        self.address_space.release(record.id)
        if record.path_em is not None:
            record.path_em.stop()
        return record

    def remove_random_node(self, cleanly: bool = True, output: bool = False) -> NodeRecord:
        record = self.registry.record_at(self.rng.randrange(len(self.registry)))
        return self.remove_node(record.node, cleanly, output)

    def disconnect(self) -> None:
        """Disconnect every node and forget them."""
        for record in self.registry:
            record.node.disconnect()
            self.address_space.release(record.id)
        self.registry.clear()

    # -------------------------------------------------------------------------
    # Ring state
    # -------------------------------------------------------------------------

    def find_missing(self, log: bool = False) -> list[RingAddress | None]:
        return self.verifier.find_missing(log)

    def check_ring(self, log: bool = False) -> bool:
        return self.verifier.check_ring(log)

    def print_connections(self) -> list[str]:
        return self.verifier.print_connections()

    def print_connection_state(self) -> int:
        return self.verifier.print_connection_state()

    def _pick_record(self, idx: int | None, purpose: str) -> NodeRecord:
        """Record at ring index ``idx``, or a random one when ``idx`` is None.

        Raises:
            ConfigException: If the network is empty or ``idx`` is out of range.
        """
        count = len(self.registry)
        if count == 0:
            raise ConfigException(f"cannot run {purpose} on an empty network")
        if idx is None:
            idx = self.rng.randrange(count)
        elif not 0 <= idx < count:
            raise ConfigException(f"node index {idx} outside 0..{count - 1}", field="idx", value=idx)
        return self.registry.record_at(idx)

    def run_steps(self, duration_ms: int) -> int:
        return self.clock.run_steps(duration_ms)

    def complete(self, quiet: bool = False) -> bool:
        """Pump the clock until the ring checks out.

        Gives up when the wall-clock budget is spent or no event is left.
        """
        wall_start = time.monotonic()
        wall_end = wall_start + self.settings.max_wall_seconds
        sim_start = self.clock.now
        success = False
        while time.monotonic() < wall_end:
            success = self.check_ring()
            if success or not self.clock.run_step():
                break

        if not quiet:
            if success:
                logger.info(
                    f"It took {self.clock.now - sim_start} ms simulated "
                    f"({time.monotonic() - wall_start:.3f}s wall) to complete the ring"
                )
            else:
                self.print_connections()
                self.print_connection_state()
                logger.warning("Unable to complete ring")
        return success

    # -------------------------------------------------------------------------
    # Protocol rounds
    # -------------------------------------------------------------------------

    def broadcast(self, forwarders: int = -1, idx: int | None = None) -> BroadcastStats:
        """Broadcast from the node at ring index ``idx`` (random if None)."""
        root = self._pick_record(idx, "broadcast")
        with round_context("broadcast"):
            return self.broadcaster.run(root, forwarders)

    def crawl(self, log: bool = False, secure: bool | None = None) -> CrawlResult:
        """Crawl the ring over RPC from the first node in ring order."""
        if len(self.registry) == 0:
            raise ConfigException("cannot crawl an empty network")
        if secure is None:
            secure = self.settings.secure_edges
        record = self.registry.record_at(0)
        overlord = record.overlord if secure else None
        coordinator = CrawlCoordinator(record.node, len(self.registry), overlord, log)
        with round_context("crawl"):
            return coordinator.run(self.settings.max_wall_seconds)

    def all_to_all(self, secure: bool | None = None) -> LatencyResult:
        """Ping every ordered pair of nodes."""
        if secure is None:
            secure = self.settings.secure_senders
        coordinator = LatencyMatrixCoordinator(list(self.registry), self.clock, secure)
        with round_context("all-to-all"):
            return coordinator.run(self.settings.max_wall_seconds)

    def revoke(self, log: bool = False) -> NodeRecord:
        """Revoke a random node's certificate, announced by a different node.

        Returns:
            The revoked node's record.
        """
        if self.trust_manager is None:
            raise ConfigException("revocation needs secure edges or secure senders", field="secure_edges")
        if len(self.registry) < 2:
            raise ConfigException("revocation needs at least two nodes", field="size", value=len(self.registry))

        count = len(self.registry)
        revoked = self.registry.record_at(self.rng.randrange(count))
        revoker = revoked
        while revoker is revoked:
            revoker = self.registry.record_at(self.rng.randrange(count))

        with round_context("revocation"):
            message = self.trust_manager.create_revocation(revoked.address, self.clock.now)
            if revoker.trust is not None:
                revoker.trust.revocation_handler.revoke(message.username)
            BroadcastSender(revoker.node).send(REVOCATION_PTYPE, message.to_dict())
            if log:
                logger.info(f"Revoked: {revoked.address}")
        return revoked

    # -------------------------------------------------------------------------
    # Key/value
    # -------------------------------------------------------------------------

    def kv(self, idx: int | None = None) -> AsyncKVFacade:
        """Key/value facade issuing operations from the node at ``idx``."""
        return AsyncKVFacade(self._pick_record(idx, "kv").dht, self.clock, self.settings.max_wall_seconds)

    def dht_put(
        self,
        key: bytes,
        value: bytes,
        ttl: int,
        idx: int | None = None,
        callback: Callable[[DhtPut], None] | None = None,
    ) -> DhtPut:
        op = DhtPut(self._pick_record(idx, "kv").dht, key, value, ttl, callback)
        op.start()
        return op

    def dht_get(
        self,
        key: bytes,
        idx: int | None = None,
        enqueue: Callable[[DhtGet], None] | None = None,
        close: Callable[[DhtGet], None] | None = None,
    ) -> DhtGet:
        op = DhtGet(self._pick_record(idx, "kv").dht, key, enqueue, close)
        op.start()
        return op

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    average = staticmethod(average)
    standard_deviation = staticmethod(standard_deviation)
