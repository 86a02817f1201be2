# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""ringsim command line interface."""
