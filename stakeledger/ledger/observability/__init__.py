# MIT License
# Copyright (c) 2025 Hashborn

"""
Observability Module

Prometheus metrics for ledger steps, unbonding locks and snapshots.
"""

from .metrics import metrics_registry

__all__ = ['metrics_registry']
