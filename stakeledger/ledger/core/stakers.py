# MIT License
# Copyright (c) 2025 Hashborn

from typing import List

from pydantic import TypeAdapter

from ...protocol.config.params import PREFIX_STAKER
from ..storage.bucket import Bucket
from ..storage.db import StorageDB
from ..storage.keys import namespace

_FLAG_ADAPTER = TypeAdapter(bool)


class StakerRegistry:
    """Set of stakers currently bonded per asset (presence = member)."""

    def __init__(self, db: StorageDB):
        self.db = db

    def _bucket(self, asset_key: bytes) -> Bucket:
        return Bucket(self.db, namespace(PREFIX_STAKER, asset_key), _FLAG_ADAPTER, name="Staker flag")

    def add(self, asset_key: bytes, staker: bytes):
        self._bucket(asset_key).save(staker, True)

    def remove(self, asset_key: bytes, staker: bytes):
        self._bucket(asset_key).remove(staker)

    def contains(self, asset_key: bytes, staker: bytes) -> bool:
        return self._bucket(asset_key).has(staker)

    def list(self, asset_key: bytes) -> List[bytes]:
        return list(self._bucket(asset_key).keys())
