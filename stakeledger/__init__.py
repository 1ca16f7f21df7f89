# MIT License
# Copyright (c) 2025 Hashborn

"""
StakeLedger

Persistent accounting layer for token staking: pools, reward indices,
unbonding queues and versioned balance snapshots.
"""

__version__ = "0.3.0"
