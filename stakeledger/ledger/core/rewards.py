# MIT License
# Copyright (c) 2025 Hashborn

from typing import List, Optional, Tuple

from pydantic import TypeAdapter

from ...protocol.types.staking import RewardInfo
from ...protocol.config.params import PREFIX_REWARD
from ..storage.bucket import Bucket
from ..storage.db import StorageDB
from ..storage.keys import namespace

_REWARD_ADAPTER = TypeAdapter(RewardInfo)


class RewardLedger:
    """
    Last computed reward state per (staker, asset), namespaced by staker so
    all of one staker's positions are a single prefix scan.

    Accrual is not computed here; callers run the read-modify-write cycle
    inside one step.
    """

    def __init__(self, db: StorageDB):
        self.db = db

    def _bucket(self, staker: bytes) -> Bucket:
        return Bucket(self.db, namespace(PREFIX_REWARD, staker), _REWARD_ADAPTER, name="RewardInfo")

    def put(self, staker: bytes, asset_key: bytes, info: RewardInfo):
        self._bucket(staker).save(asset_key, info)

    def get(self, staker: bytes, asset_key: bytes) -> RewardInfo:
        return self._bucket(staker).load(asset_key)

    def may_get(self, staker: bytes, asset_key: bytes) -> Optional[RewardInfo]:
        return self._bucket(staker).may_load(asset_key)

    def remove(self, staker: bytes, asset_key: bytes):
        self._bucket(staker).remove(asset_key)

    def list_for_staker(self, staker: bytes) -> List[Tuple[bytes, RewardInfo]]:
        return list(self._bucket(staker).range())
