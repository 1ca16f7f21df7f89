# MIT License
# Copyright (c) 2025 Hashborn

from typing import Generic, Iterator, Optional, Tuple, TypeVar

from pydantic import TypeAdapter, ValidationError

from ...protocol.types.common import MalformedError, NotFoundError, Order
from .db import StorageDB
from .keys import prefix_range_end

T = TypeVar("T")


class Bucket(Generic[T]):
    """
    Typed view of every key under one namespace prefix. Values are stored
    as pydantic JSON; every load returns a fresh copy.
    """

    def __init__(self, db: StorageDB, prefix: bytes, adapter: TypeAdapter, name: str = "value"):
        self.db = db
        self.prefix = prefix
        self.adapter = adapter
        self.name = name

    def _encode(self, value: T) -> bytes:
        return self.adapter.dump_json(value)

    def _decode(self, raw: bytes) -> T:
        try:
            return self.adapter.validate_json(raw)
        except ValidationError as e:
            raise MalformedError(f"Corrupted {self.name} under {self.prefix!r}: {e}")

    def save(self, key: bytes, value: T):
        self.db.set(self.prefix + key, self._encode(value))

    def may_load(self, key: bytes) -> Optional[T]:
        raw = self.db.get(self.prefix + key)
        return self._decode(raw) if raw is not None else None

    def load(self, key: bytes) -> T:
        value = self.may_load(key)
        if value is None:
            raise NotFoundError(f"{self.name} not found for key {key.hex()}")
        return value

    def has(self, key: bytes) -> bool:
        return self.db.has(self.prefix + key)

    def remove(self, key: bytes):
        self.db.delete(self.prefix + key)

    def range(self,
              start: Optional[bytes] = None,
              end: Optional[bytes] = None,
              order: Order = Order.ASCENDING) -> Iterator[Tuple[bytes, T]]:
        """(item_key, value) pairs with start <= item_key < end, prefix stripped."""
        lo = self.prefix + start if start is not None else self.prefix
        hi = self.prefix + end if end is not None else prefix_range_end(self.prefix)
        plen = len(self.prefix)
        for key, raw in self.db.range(lo, hi, order):
            yield key[plen:], self._decode(raw)

    def keys(self, order: Order = Order.ASCENDING) -> Iterator[bytes]:
        for key, _ in self.db.scan_prefix(self.prefix, order):
            yield key
