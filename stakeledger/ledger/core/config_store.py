# MIT License
# Copyright (c) 2025 Hashborn

from pydantic import TypeAdapter

from ...protocol.types.staking import Config
from ...protocol.config.params import KEY_CONFIG
from ..storage.bucket import Bucket
from ..storage.db import StorageDB
from ..storage.keys import namespace

_CONFIG_ADAPTER = TypeAdapter(Config)


class ConfigStore:
    """Singleton holding the owner and rewarder addresses."""

    def __init__(self, db: StorageDB):
        self._bucket = Bucket(db, namespace(KEY_CONFIG), _CONFIG_ADAPTER, name="Config")

    def store(self, config: Config):
        self._bucket.save(b"", config)

    def read(self) -> Config:
        return self._bucket.load(b"")
