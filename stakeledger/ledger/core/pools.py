# MIT License
# Copyright (c) 2025 Hashborn

"""
Per-asset stores: pool aggregates, reward rates and unbonding periods.

Missing reward rates or unbonding periods raise NotFoundError. Callers
read that as "unconfigured", which is not the same thing as zero.
"""

from typing import List, Tuple

from pydantic import TypeAdapter

from ...protocol.types.staking import AssetRaw, PoolInfo
from ...protocol.config.params import (
    PREFIX_POOL_INFO, PREFIX_REWARDS_PER_SEC, PREFIX_UNBONDING_PERIOD
)
from ..storage.bucket import Bucket
from ..storage.db import StorageDB
from ..storage.keys import namespace

_POOL_ADAPTER = TypeAdapter(PoolInfo)
_RATES_ADAPTER = TypeAdapter(List[AssetRaw])
_PERIOD_ADAPTER = TypeAdapter(int)


class PoolLedger:
    def __init__(self, db: StorageDB):
        self._bucket = Bucket(db, namespace(PREFIX_POOL_INFO), _POOL_ADAPTER, name="PoolInfo")

    def put(self, asset_key: bytes, pool_info: PoolInfo):
        self._bucket.save(asset_key, pool_info)

    def get(self, asset_key: bytes) -> PoolInfo:
        return self._bucket.load(asset_key)

    def exists(self, asset_key: bytes) -> bool:
        return self._bucket.has(asset_key)

    def list_all(self) -> List[Tuple[bytes, PoolInfo]]:
        """Every pool, ascending by raw asset key. Meant for small asset counts."""
        return list(self._bucket.range())


class RewardRateStore:
    """Reward assets emitted per second for each staked asset."""

    def __init__(self, db: StorageDB):
        self._bucket = Bucket(db, namespace(PREFIX_REWARDS_PER_SEC), _RATES_ADAPTER, name="Reward rates")

    def put(self, asset_key: bytes, rates: List[AssetRaw]):
        self._bucket.save(asset_key, rates)

    def get(self, asset_key: bytes) -> List[AssetRaw]:
        return self._bucket.load(asset_key)


class UnbondingPeriodStore:
    def __init__(self, db: StorageDB):
        self._bucket = Bucket(db, namespace(PREFIX_UNBONDING_PERIOD), _PERIOD_ADAPTER, name="Unbonding period")

    def put(self, asset_key: bytes, period: int):
        if period < 0:
            raise ValueError(f"Unbonding period must be non-negative, got {period}")
        self._bucket.save(asset_key, period)

    def get(self, asset_key: bytes) -> int:
        return self._bucket.load(asset_key)
