# MIT License
# Copyright (c) 2025 Hashborn

import logging
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from ...protocol.types.amounts import (
    checked_add, checked_sub, decimal_add, decimal_from_ratio, decimal_sub, mul_floor
)
from ...protocol.types.common import NotFoundError, Order
from ...protocol.types.staking import (
    AssetRaw, Config, LockInfo, PoolInfo, RewardInfo, UnbondResult
)
from ...protocol.config.params import (
    CURRENT_CONFIG, STAKED_BALANCES_NAMESPACES, STAKED_TOTAL_NAMESPACES, LedgerConfig
)
from ..snapshot.snapshot_map import SnapshotMap
from ..storage.db import StorageDB
from ..storage.keys import namespace
from .config_store import ConfigStore
from .pools import PoolLedger, RewardRateStore, UnbondingPeriodStore
from .rewards import RewardLedger
from .stakers import StakerRegistry
from .unbonding import UnbondingQueue

logger = logging.getLogger(__name__)


class StakingState:
    """
    Every staking store over one StorageDB, plus the routines that keep
    them consistent with each other.

    Mutating routines must run inside `db.step()` and raise StepError
    otherwise: they read, modify and write several stores and rely on the
    step to commit or discard them together. Query routines never write.
    """

    def __init__(self, db: StorageDB, config: LedgerConfig = CURRENT_CONFIG):
        self.db = db
        self.config = config
        self.config_store = ConfigStore(db)
        self.pools = PoolLedger(db)
        self.reward_rates = RewardRateStore(db)
        self.unbonding_periods = UnbondingPeriodStore(db)
        self.rewards = RewardLedger(db)
        self.stakers = StakerRegistry(db)
        self.locks = UnbondingQueue(db, config)
        self.staked_balances = SnapshotMap(db, *STAKED_BALANCES_NAMESPACES, value_type=int, default=0)
        self.staked_total = SnapshotMap(db, *STAKED_TOTAL_NAMESPACES, value_type=int, default=0)

    def _require_step(self):
        # Raises StepError before the first write, so nothing lands outside a step
        self.db.active_step

    @staticmethod
    def _balance_key(asset_key: bytes, staker: bytes) -> bytes:
        return namespace(asset_key) + staker

    # --- Setup ---
    def register_pool(self,
                      asset_key: bytes,
                      staking_token: str,
                      unbonding_period: Optional[int] = None,
                      reward_rates: Optional[List[AssetRaw]] = None) -> PoolInfo:
        self._require_step()
        if self.pools.exists(asset_key):
            raise ValueError(f"Pool {asset_key.hex()} already registered")

        pool = PoolInfo(staking_token=staking_token)
        self.pools.put(asset_key, pool)
        if unbonding_period is not None:
            self.unbonding_periods.put(asset_key, unbonding_period)
        if reward_rates is not None:
            self.reward_rates.put(asset_key, reward_rates)

        logger.info(f"Registered pool {asset_key.hex()} (unbonding_period={unbonding_period})")
        return pool

    # --- Reward index propagation ---
    def deposit_reward(self, asset_key: bytes, amount: int) -> PoolInfo:
        """
        Spreads `amount` over everything currently bonded by raising the
        reward index. With nothing bonded the amount waits in
        pool.pending_reward for the next deposit.
        """
        self._require_step()
        pool = self.pools.get(asset_key)
        if pool.total_bond_amount == 0:
            pool.pending_reward = checked_add(pool.pending_reward, amount)
        else:
            distributable = checked_add(amount, pool.pending_reward)
            pool.reward_index = decimal_add(
                pool.reward_index, decimal_from_ratio(distributable, pool.total_bond_amount)
            )
            pool.pending_reward = 0
        self.pools.put(asset_key, pool)
        return pool

    @staticmethod
    def _settle(pool: PoolInfo, info: RewardInfo):
        """Accrues rewards earned since the staker's last index into pending_reward."""
        delta: Decimal = decimal_sub(pool.reward_index, info.index)
        if delta > 0:
            earned = mul_floor(info.bond_amount, delta)
            info.pending_reward = checked_add(info.pending_reward, earned)
        info.index = pool.reward_index

    def _load_reward_info(self, asset_key: bytes, staker: bytes, pool: PoolInfo,
                          native_token: bool = False) -> RewardInfo:
        info = self.rewards.may_get(staker, asset_key)
        if info is None:
            return RewardInfo(native_token=native_token, index=pool.reward_index)
        return info

    def _save_reward_info(self, asset_key: bytes, staker: bytes, info: RewardInfo):
        if info.is_empty():
            self.rewards.remove(staker, asset_key)
        else:
            self.rewards.put(staker, asset_key, info)

    def _record_balances(self, asset_key: bytes, staker: bytes, info: RewardInfo, pool: PoolInfo):
        self.staked_balances.write(self._balance_key(asset_key, staker), info.bond_amount)
        self.staked_total.write(asset_key, pool.total_bond_amount)

    # --- Bonding ---
    def bond(self, asset_key: bytes, staker: bytes, amount: int, native_token: bool = False) -> RewardInfo:
        self._require_step()
        pool = self.pools.get(asset_key)
        info = self._load_reward_info(asset_key, staker, pool, native_token)
        self._settle(pool, info)

        info.bond_amount = checked_add(info.bond_amount, amount)
        pool.total_bond_amount = checked_add(pool.total_bond_amount, amount)

        self.pools.put(asset_key, pool)
        self._save_reward_info(asset_key, staker, info)
        if info.bond_amount > 0:
            self.stakers.add(asset_key, staker)
        self._record_balances(asset_key, staker, info, pool)
        return info

    def unbond(self, asset_key: bytes, staker: bytes, amount: int, now: int) -> UnbondResult:
        """
        Reduces the staker's bond. With an unbonding period configured the
        amount is queued until now + period; otherwise it is released at once.
        """
        self._require_step()
        pool = self.pools.get(asset_key)
        info = self.rewards.get(staker, asset_key)
        self._settle(pool, info)

        info.bond_amount = checked_sub(info.bond_amount, amount)
        pool.total_bond_amount = checked_sub(pool.total_bond_amount, amount)

        self.pools.put(asset_key, pool)
        self._save_reward_info(asset_key, staker, info)
        if info.bond_amount == 0:
            self.stakers.remove(asset_key, staker)
        self._record_balances(asset_key, staker, info, pool)

        try:
            period = self.unbonding_periods.get(asset_key)
        except NotFoundError:
            period = None

        if not period:
            return UnbondResult(released=amount)

        lock = self.locks.insert(asset_key, staker, LockInfo(unlock_time=now + period, amount=amount))
        return UnbondResult(released=0, lock=lock)

    def withdraw_unlocked(self, asset_key: bytes, staker: bytes, now: int) -> int:
        self._require_step()
        return self.locks.drain_matured(asset_key, staker, now)

    # --- Reward assets ---
    @staticmethod
    def _split_reward(amount: int, rates: List[AssetRaw]) -> List[AssetRaw]:
        total_rate = sum(r.amount for r in rates)
        if amount == 0 or total_rate == 0:
            return []
        return [
            AssetRaw(info=r.info, amount=amount * r.amount // total_rate)
            for r in rates
        ]

    @staticmethod
    def _merge_assets(into: List[AssetRaw], assets: List[AssetRaw]) -> List[AssetRaw]:
        """Adds amounts per asset; unseen assets are appended in order."""
        merged = [a.model_copy() for a in into]
        index: Dict[Tuple[str, str], AssetRaw] = {(a.info.kind.value, a.info.id): a for a in merged}
        for asset in assets:
            if asset.amount == 0:
                continue
            key = (asset.info.kind.value, asset.info.id)
            if key in index:
                index[key].amount = checked_add(index[key].amount, asset.amount)
            else:
                entry = asset.model_copy()
                merged.append(entry)
                index[key] = entry
        return merged

    def update_reward_rates(self, asset_key: bytes, rates: List[AssetRaw]):
        """
        Replaces the reward rates of a pool. Rewards already accrued are
        moved into each staker's pending_withdraw at the old split first.
        """
        self._require_step()
        pool = self.pools.get(asset_key)
        try:
            old_rates = self.reward_rates.get(asset_key)
        except NotFoundError:
            old_rates = None

        if old_rates:
            for staker in self.stakers.list(asset_key):
                info = self.rewards.get(staker, asset_key)
                self._settle(pool, info)
                if info.pending_reward > 0:
                    assets = self._split_reward(info.pending_reward, old_rates)
                    info.pending_withdraw = self._merge_assets(info.pending_withdraw, assets)
                    info.pending_reward = 0
                self._save_reward_info(asset_key, staker, info)

        self.reward_rates.put(asset_key, rates)
        logger.info(f"Reward rates updated for pool {asset_key.hex()}: "
                    f"{[(r.info.id, r.amount) for r in rates]}")

    def withdraw_reward(self, asset_key: bytes, staker: bytes) -> List[AssetRaw]:
        """Pays out everything accrued for one position and clears it."""
        self._require_step()
        pool = self.pools.get(asset_key)
        info = self.rewards.get(staker, asset_key)
        self._settle(pool, info)

        payout = []
        if info.pending_reward > 0:
            payout = self._split_reward(info.pending_reward, self.reward_rates.get(asset_key))
        payout = self._merge_assets(info.pending_withdraw, payout)

        info.pending_reward = 0
        info.pending_withdraw = []
        self._save_reward_info(asset_key, staker, info)
        return [a for a in payout if a.amount > 0]

    # --- Config ---
    def store_config(self, config: Config):
        self._require_step()
        self.config_store.store(config)

    def read_config(self) -> Config:
        return self.config_store.read()

    # --- Queries ---
    def pool(self, asset_key: bytes) -> PoolInfo:
        return self.pools.get(asset_key)

    def all_pools(self) -> List[Tuple[bytes, PoolInfo]]:
        return self.pools.list_all()

    def reward_infos(self, staker: bytes) -> List[Tuple[bytes, RewardInfo]]:
        return self.rewards.list_for_staker(staker)

    def staker_list(self, asset_key: bytes) -> List[bytes]:
        return self.stakers.list(asset_key)

    def lock_infos(self, asset_key: bytes, staker: bytes,
                   start_after: Optional[int] = None,
                   limit: Optional[int] = None,
                   order=None) -> List[LockInfo]:
        return self.locks.list(asset_key, staker, start_after, limit, order)

    def staked_balance(self, asset_key: bytes, staker: bytes) -> int:
        return self.staked_balances.read(self._balance_key(asset_key, staker))

    def staked_balance_at(self, asset_key: bytes, staker: bytes, version: int) -> int:
        return self.staked_balances.read_at(self._balance_key(asset_key, staker), version)

    def total_staked_at(self, asset_key: bytes, version: int) -> int:
        return self.staked_total.read_at(asset_key, version)

    def check_pool_invariant(self, asset_key: bytes) -> bool:
        """total_bond_amount must equal the sum of every staker's bond."""
        pool = self.pools.get(asset_key)
        bonded = sum(balance for _, balance in self.staked_balances.range(namespace(asset_key), Order.ASCENDING))
        registered = 0
        for staker in self.stakers.list(asset_key):
            registered += self.rewards.get(staker, asset_key).bond_amount
        ok = pool.total_bond_amount == bonded == registered
        if not ok:
            logger.error(f"Pool {asset_key.hex()} invariant broken: total={pool.total_bond_amount} "
                         f"snapshots={bonded} records={registered}")
        return ok
