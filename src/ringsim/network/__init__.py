# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
ringsim network - the simulated overlay node and the services it hosts.

Nodes are addressed on the ring, keep a connection table and route greedily.
RPC, broadcast, network coordinates and the DHT all run on top of a node.
"""

from ringsim.network.address import RingAddress, in_range, parse_address
from ringsim.network.broadcast import BroadcastHandler, BroadcastReceiver, BroadcastSender
from ringsim.network.connection_table import Connection, ConnectionTable, ConnectionType
from ringsim.network.coordinates import NCService, Point
from ringsim.network.dht import Dht, RpcDhtProxy, TableServer
from ringsim.network.node import ConnectionState, DemuxHandler, Packet, StructuredNode
from ringsim.network.router import GreedySender, greedy_path
from ringsim.network.rpc import Channel, RpcManager, RpcResult

__all__ = [
    "RingAddress",
    "parse_address",
    "in_range",
    "Connection",
    "ConnectionTable",
    "ConnectionType",
    "ConnectionState",
    "DemuxHandler",
    "Packet",
    "StructuredNode",
    "GreedySender",
    "greedy_path",
    "Channel",
    "RpcManager",
    "RpcResult",
    "BroadcastSender",
    "BroadcastReceiver",
    "BroadcastHandler",
    "NCService",
    "Point",
    "TableServer",
    "Dht",
    "RpcDhtProxy",
]
