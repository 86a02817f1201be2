# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""ringsim - discrete-event simulator for a structured peer-to-peer ring.

A run creates simulated nodes on a 160-bit identifier ring, lets them form
the ring by exchanging neighbor lists, and drives protocol rounds over it:

  - ring consistency checks over local connection tables
  - range-splitting broadcast with hop statistics
  - live crawls over RPC
  - all-pairs ping latency
  - certificate-based trust with broadcast revocation
  - a replicated key/value store

CLI entry point: ``ringsim``
"""

__version__ = "0.1.0"
