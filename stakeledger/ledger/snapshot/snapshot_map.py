# MIT License
# Copyright (c) 2025 Hashborn

"""
Snapshot Map

A map whose history can be queried by version. Three regions per
instance, each under its own namespace:

- primary:     key -> current value
- checkpoints: be_u64(version) -> number of keys changed in that version
- changelog:   (key, be_u64(version)) -> ChangeSet(old=value before the version)

Every step that changes a value checkpoints its version. Only the first
change of a key within a version is logged, so the changelog always holds
the value as of the end of the previous version.
"""

import logging
from typing import Generic, Iterator, List, Optional, Tuple, TypeVar

from pydantic import TypeAdapter

from ...protocol.types.common import MalformedError, Order
from ..observability.metrics import record_snapshot_write
from ..storage.bucket import Bucket
from ..storage.db import StorageDB
from ..storage.keys import U64_MAX, be_u64, from_be_u64, namespace, prefix_range_end
from .types import ChangeSet

logger = logging.getLogger(__name__)

T = TypeVar("T")

_COUNT_ADAPTER = TypeAdapter(int)


class SnapshotMap(Generic[T]):
    def __init__(self,
                 db: StorageDB,
                 primary: bytes,
                 checkpoints: bytes,
                 changelog: bytes,
                 value_type,
                 default: Optional[T] = None):
        """
        Args:
            db: Backing store
            primary, checkpoints, changelog: Distinct namespace names for the three regions
            value_type: Type of stored values (anything pydantic can validate)
            default: Returned by reads when a key is absent at the requested point
        """
        if len({primary, checkpoints, changelog}) != 3:
            raise ValueError("Snapshot namespaces must be distinct")
        self.db = db
        self.family = primary.decode("ascii", errors="replace")
        self.default = default
        self._changelog_ns = changelog
        self._value_adapter = TypeAdapter(value_type)
        self._change_type = ChangeSet[value_type]
        self._change_adapter = TypeAdapter(self._change_type)
        self._primary = Bucket(db, namespace(primary), self._value_adapter, name=f"{self.family} value")
        self._checkpoints = Bucket(db, namespace(checkpoints), _COUNT_ADAPTER, name=f"{self.family} checkpoint")

    def _log(self, key: bytes) -> Bucket:
        return Bucket(self.db, namespace(self._changelog_ns, key), self._change_adapter,
                      name=f"{self.family} changelog")

    # --- Current value ---
    def may_read(self, key: bytes) -> Optional[T]:
        return self._primary.may_load(key)

    def read(self, key: bytes) -> T:
        value = self._primary.may_load(key)
        return self.default if value is None else value

    def range(self, prefix: bytes = b"", order: Order = Order.ASCENDING) -> Iterator[Tuple[bytes, T]]:
        """Current values of every key starting with `prefix` (prefix stripped)."""
        end = prefix_range_end(prefix) if prefix else None
        for key, value in self._primary.range(prefix or None, end, order):
            yield key[len(prefix):], value

    # --- Mutation ---
    def write(self, key: bytes, value: T):
        """Sets the current value, logging history under the active step's version."""
        self._change(key, value)

    def remove(self, key: bytes):
        self._change(key, None)

    def _change(self, key: bytes, new: Optional[T]):
        old = self._primary.may_load(key)
        if old == new:
            return
        # Writing the default over an absent key changes no read
        if old is None and new == self.default:
            return

        version = self.db.active_step.version
        log = self._log(key)
        version_key = be_u64(version)
        if not log.has(version_key):
            log.save(version_key, self._change_type(old=old))
            count = self._checkpoints.may_load(version_key) or 0
            self._checkpoints.save(version_key, count + 1)

        if new is None:
            self._primary.remove(key)
        else:
            self._primary.save(key, new)

        record_snapshot_write(self.family, self.db.metrics_enabled)
        logger.debug(f"{self.family}[{key.hex()}] {old} -> {new} at version {version}")

    # --- History ---
    def may_read_at(self, key: bytes, version: int) -> Optional[T]:
        """
        Value as of the end of `version`: the logged `old` of the first
        change made after it, or the current value if nothing changed since.
        """
        if version < 0:
            raise MalformedError(f"Version must be non-negative, got {version}")
        if version >= U64_MAX:
            return self._primary.may_load(key)

        for _, change in self._log(key).range(start=be_u64(version + 1)):
            return change.old
        return self._primary.may_load(key)

    def read_at(self, key: bytes, version: int) -> T:
        value = self.may_read_at(key, version)
        return self.default if value is None else value

    def changelog(self, key: bytes) -> List[Tuple[int, ChangeSet]]:
        return [(from_be_u64(v), change) for v, change in self._log(key).range()]

    def checkpoints(self) -> List[int]:
        """Versions in which at least one key of this map changed."""
        return [from_be_u64(v) for v in self._checkpoints.keys()]
