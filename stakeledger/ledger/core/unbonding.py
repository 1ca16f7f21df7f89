# MIT License
# Copyright (c) 2025 Hashborn

"""
Unbonding queue: per (asset, staker), unlock time -> queued amount.

Unlock times are 8-byte big-endian keys, so byte order equals time order
and both paginated listing and draining are plain range scans.
"""

import logging
from typing import List, Optional, Union

from pydantic import TypeAdapter

from ...protocol.types.amounts import checked_add
from ...protocol.types.common import MalformedError, Order
from ...protocol.types.staking import LockInfo
from ...protocol.config.params import (
    CURRENT_CONFIG, LOCK_MERGE_SUM, PREFIX_LOCK_INFO, LedgerConfig
)
from ..observability.metrics import record_drain, record_lock_inserted
from ..storage.bucket import Bucket
from ..storage.db import StorageDB
from ..storage.keys import U64_MAX, be_u64, from_be_u64, namespace, next_key

logger = logging.getLogger(__name__)

_AMOUNT_ADAPTER = TypeAdapter(int)


class UnbondingQueue:
    def __init__(self, db: StorageDB, config: LedgerConfig = CURRENT_CONFIG):
        self.db = db
        self.config = config

    def _bucket(self, asset_key: bytes, staker: bytes) -> Bucket:
        return Bucket(self.db, namespace(PREFIX_LOCK_INFO, asset_key, staker), _AMOUNT_ADAPTER, name="Lock amount")

    def insert(self, asset_key: bytes, staker: bytes, lock: LockInfo) -> LockInfo:
        """
        Queues `lock.amount` at `lock.unlock_time`. A second lock on the same
        second is summed with the first, or replaces it in overwrite mode.
        Returns the entry as stored.
        """
        bucket = self._bucket(asset_key, staker)
        time_key = be_u64(lock.unlock_time)
        amount = lock.amount

        existing = bucket.may_load(time_key)
        if existing is not None:
            if self.config.lock_merge == LOCK_MERGE_SUM:
                amount = checked_add(existing, amount)
            else:
                logger.warning(
                    f"Lock at {lock.unlock_time} for staker {staker.hex()} overwritten: "
                    f"{existing} replaced by {amount}"
                )

        bucket.save(time_key, amount)
        record_lock_inserted(self.config.metrics_enabled)
        logger.debug(f"Lock queued: asset={asset_key.hex()} staker={staker.hex()} "
                     f"unlock_time={lock.unlock_time} amount={amount}")
        return LockInfo(unlock_time=lock.unlock_time, amount=amount)

    def list(self,
             asset_key: bytes,
             staker: bytes,
             start_after: Optional[int] = None,
             limit: Optional[int] = None,
             order: Union[Order, int, None] = None) -> List[LockInfo]:
        """
        Paginated scan. `start_after` is exclusive in both directions; limit
        defaults to config.default_limit and is clamped to config.max_limit.
        """
        order_by = Order.parse(order)
        limit = min(limit if limit is not None else self.config.default_limit, self.config.max_limit)
        if start_after is not None and not (0 <= start_after <= U64_MAX):
            raise MalformedError(f"start_after must be a u64 timestamp, got {start_after}")
        if limit <= 0:
            return []

        cursor = be_u64(start_after) if start_after is not None else None
        if order_by == Order.ASCENDING:
            start, end = (next_key(cursor) if cursor is not None else None), None
        else:
            start, end = None, cursor

        locks = []
        for time_key, amount in self._bucket(asset_key, staker).range(start, end, order_by):
            locks.append(LockInfo(unlock_time=from_be_u64(time_key), amount=amount))
            if len(locks) >= limit:
                break
        return locks

    def drain_matured(self, asset_key: bytes, staker: bytes, as_of: int) -> int:
        """
        Removes every entry with unlock_time <= as_of and returns their sum.
        The scan runs oldest first and stops at the first immature entry.
        """
        bucket = self._bucket(asset_key, staker)
        matured = []
        total = 0

        for time_key, amount in bucket.range():
            if from_be_u64(time_key) > as_of:
                break
            matured.append(time_key)
            total = checked_add(total, amount)

        for time_key in matured:
            bucket.remove(time_key)

        if matured:
            logger.debug(f"Drained {len(matured)} lock(s) for staker {staker.hex()} "
                         f"asset {asset_key.hex()}: {total}")
        record_drain(len(matured), total, self.config.metrics_enabled)
        return total
