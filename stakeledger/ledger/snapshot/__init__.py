# MIT License
# Copyright (c) 2025 Hashborn

"""
Versioned Snapshot Maps

Key-value maps that keep a changelog per version, so any past value can be
reconstructed without storing full copies at every step.
"""

from .snapshot_map import SnapshotMap
from .types import ChangeSet

__all__ = ["SnapshotMap", "ChangeSet"]
