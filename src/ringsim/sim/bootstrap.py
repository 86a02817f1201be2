# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
Per-node stack construction.

:meth:`OverlayBootstrapper.prepare_node` builds one node in a fixed order:

1. Base simulated listener, with a :class:`BrokenTAAuth` authorizer when link
   breaking is on (the first node is never constrained).
2. Trust context (certificate, overlord, revocation handler) when secure
   edges or secure senders are on.
3. Listener steps: path, then secure, then relay, each only if enabled.
4. Network coordinates, broadcast handling and the key/value services.
"""

from __future__ import annotations

import logging
import random
from typing import TYPE_CHECKING

from ringsim.core.exceptions import DuplicateIdError
from ringsim.network.broadcast import BroadcastHandler
from ringsim.network.coordinates import NCService
from ringsim.network.dht import Dht, RpcDhtProxy, TableServer
from ringsim.network.node import StructuredNode
from ringsim.transport.addresses import TransportAddress, simulation_address
from ringsim.transport.layers import (
    NCRelayOverlap,
    PathEdgeListener,
    SimpleRelayOverlap,
    StackContext,
    StackStep,
    build_stack,
    find_layer,
    path_step,
    relay_step,
    secure_step,
)
from ringsim.transport.listener import BrokenTAAuth, SimulationEdgeListener, SimulationNetwork

from .registry import NodeRecord, NodeRegistry

if TYPE_CHECKING:
    from ringsim.core.config import SimulationSettings
    from ringsim.network.address import RingAddress
    from ringsim.security.trust import TrustManager

    from .broadcast import BroadcastCollector
    from .clock import EventClock

logger = logging.getLogger(__name__)

MAX_REMOTE_TAS = 5


class OverlayBootstrapper:
    """Builds nodes and registers them with the registry."""

    def __init__(
        self,
        settings: SimulationSettings,
        clock: EventClock,
        rng: random.Random,
        registry: NodeRegistry,
        network: SimulationNetwork,
        namespace: str,
        trust_manager: TrustManager | None = None,
        collector: BroadcastCollector | None = None,
    ):
        self.settings = settings
        self.clock = clock
        self.rng = rng
        self.registry = registry
        self.network = network
        self.namespace = namespace
        self.trust_manager = trust_manager
        self.collector = collector

    def steps(self) -> list[StackStep]:
        """Listener steps enabled by the settings, innermost first."""
        steps: list[StackStep] = []
        if self.settings.pathing:
            steps.append(path_step)
        if self.settings.secure_edges:
            steps.append(secure_step)
        if self.settings.broken > 0:
            steps.append(relay_step)
        return steps

    def create_edge_listener(self, sim_id: int) -> SimulationEdgeListener:
        authorizer = None
        if self.settings.broken > 0 and sim_id > 0:
            authorizer = BrokenTAAuth(self.settings.broken, self.rng)
        return SimulationEdgeListener(sim_id, self.network, authorizer)

    def remote_tas(self) -> list[TransportAddress]:
        """Up to five random registered peers, plus the first node when links break."""
        tas: list[TransportAddress] = []
        ids = self.registry.ids
        for _ in range(min(MAX_REMOTE_TAS, len(ids))):
            tas.append(simulation_address(self.rng.choice(ids)))
        if self.settings.broken > 0:
            tas.append(simulation_address(0))
        return tas

    def prepare_node(self, sim_id: int, address: RingAddress, initial: bool = False) -> NodeRecord:
        """Build and register the node for ``sim_id``.

        Args:
            initial: Part of the initial evaluation topology; remote addresses
                are then assigned by :meth:`link_initial_ring` instead.

        Raises:
            DuplicateIdError: If ``sim_id`` or ``address`` is registered already.
        """
        if sim_id in self.registry:
            raise DuplicateIdError("id", sim_id)

        s = self.settings
        node = StructuredNode(
            address,
            self.namespace,
            self.clock,
            rng=random.Random(self.rng.getrandbits(64)),
            near_degree=s.near_degree,
            stabilize_interval_ms=s.stabilize_interval_ms,
            edge_timeout_ms=s.edge_timeout_ms,
            rpc_timeout_ms=s.rpc_timeout_ms,
        )
        record = NodeRecord(id=sim_id, address=address, node=node)
        self.registry.add(record)

        base = self.create_edge_listener(sim_id)
        base.node = node

        if s.trust_enabled and self.trust_manager is not None:
            record.trust = self.trust_manager.create_context(node)

        if s.nc_enable:
            record.nc_service = NCService(node, rng=random.Random(self.rng.getrandbits(64)))
            node.nc_service = record.nc_service
            overlap = NCRelayOverlap()
        else:
            overlap = SimpleRelayOverlap()

        ctx = StackContext(
            node=node,
            network=self.network,
            overlord=record.overlord if s.secure_edges else None,
            overlap=overlap,
            rng=self.rng,
        )
        listener = build_stack(base, self.steps(), ctx)
        path_listener = find_layer(listener, PathEdgeListener)
        if path_listener is not None:
            record.path_em = path_listener.manager
        node.add_edge_listener(listener)

        if not initial:
            node.remote_tas = self.remote_tas()

        BroadcastHandler(node)
        if self.collector is not None:
            self.collector.attach(node, sim_id)

        record.table_server = TableServer(node)
        record.dht = Dht(node, s.dht_degree, s.dht_delay)
        record.dht_proxy = RpcDhtProxy(record.dht, node)
        logger.debug(f"Prepared node {sim_id} at {address!r} with {listener.describe()}")
        return record

    def link_initial_ring(self) -> None:
        """Point every node at its ring neighbors at offsets +1, +2, -1 and -2."""
        records = list(self.registry)
        count = len(records)
        for idx, record in enumerate(records):
            tas = []
            for offset in (1, 2, -1, -2):
                neighbor = records[(idx + offset) % count]
                tas.append(neighbor.node.local_tas[0])
            record.node.remote_tas = tas
