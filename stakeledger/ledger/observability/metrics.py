# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus metrics for the staking ledger.

Metrics:
- Atomic steps by outcome (committed / rolled_back)
- Unbonding lock entries inserted and drained, drained amount
- Snapshot writes per family
"""

from prometheus_client import Counter, CollectorRegistry

# Create registry for metrics
metrics_registry = CollectorRegistry()

steps_total = Counter(
    'stakeledger_steps_total',
    'Atomic execution steps by outcome',
    ['outcome'],
    registry=metrics_registry
)

locks_inserted_total = Counter(
    'stakeledger_locks_inserted_total',
    'Unbonding lock entries inserted',
    registry=metrics_registry
)

locks_drained_total = Counter(
    'stakeledger_locks_drained_total',
    'Matured unbonding lock entries removed',
    registry=metrics_registry
)

drained_amount_total = Counter(
    'stakeledger_drained_amount_total',
    'Sum of amounts released from matured lock entries',
    registry=metrics_registry
)

snapshot_writes_total = Counter(
    'stakeledger_snapshot_writes_total',
    'Changed values written to versioned snapshot maps',
    ['family'],
    registry=metrics_registry
)


def record_step(outcome: str, enabled: bool = True):
    if enabled:
        steps_total.labels(outcome=outcome).inc()


def record_lock_inserted(enabled: bool = True):
    if enabled:
        locks_inserted_total.inc()


def record_drain(entries: int, amount: int, enabled: bool = True):
    if enabled and entries:
        locks_drained_total.inc(entries)
        drained_amount_total.inc(amount)


def record_snapshot_write(family: str, enabled: bool = True):
    if enabled:
        snapshot_writes_total.labels(family=family).inc()
