# MIT License
# Copyright (c) 2025 Hashborn

import sqlite3
import threading
import logging
from contextlib import contextmanager
from typing import Iterator, Optional, Tuple

from ...protocol.types.common import Order, StepError
from ...protocol.config.params import KEY_STEP_VERSION
from ..observability.metrics import record_step
from .keys import namespace, prefix_range_end

logger = logging.getLogger(__name__)

_VERSION_KEY = namespace(KEY_STEP_VERSION)


class Step:
    """
    One atomic execution step. The version is allocated on first use, so a
    step that never touches versioned data leaves the counter alone.
    """

    def __init__(self, db: "StorageDB", requested_version: Optional[int] = None):
        self._db = db
        self._requested = requested_version
        self._version: Optional[int] = None

    @property
    def version(self) -> int:
        if self._version is None:
            last = self._db.current_version()
            if self._requested is None:
                version = last + 1
            elif self._requested < last:
                raise StepError(f"Step version {self._requested} is behind last version {last}")
            else:
                version = self._requested
            self._db.set(_VERSION_KEY, version.to_bytes(8, "big"))
            self._version = version
        return self._version

    @property
    def has_version(self) -> bool:
        return self._version is not None


class StorageDB:
    """
    Flat ordered key-value store. Keys are compared as raw bytes (sqlite
    compares BLOBs with memcmp), so range scans follow byte order.
    """

    SCAN_BATCH = 64

    def __init__(self, db_path: str = ":memory:", metrics_enabled: bool = True):
        # Autocommit outside of steps; steps issue BEGIN/COMMIT explicitly
        self.conn = sqlite3.connect(db_path, check_same_thread=False, isolation_level=None)
        self._lock = threading.RLock()
        self._step: Optional[Step] = None
        self.metrics_enabled = metrics_enabled
        self._init_db()

    def _init_db(self):
        with self._lock:
            self.conn.execute('''
                CREATE TABLE IF NOT EXISTS kv (
                    key BLOB PRIMARY KEY,
                    value BLOB NOT NULL
                )
            ''')

    def close(self):
        with self._lock:
            self.conn.close()

    # --- Atomic steps ---
    @contextmanager
    def step(self, version: Optional[int] = None) -> Iterator[Step]:
        """
        Runs the enclosed block as one all-or-nothing unit. Any exception
        rolls back every write of the step, version advancement included.
        """
        with self._lock:
            if self._step is not None:
                raise StepError("Steps cannot be nested")
            self.conn.execute("BEGIN")
            step = Step(self, version)
            self._step = step
            try:
                yield step
            except BaseException as e:
                self.conn.execute("ROLLBACK")
                logger.warning(f"Step rolled back: {type(e).__name__}: {e}")
                record_step("rolled_back", self.metrics_enabled)
                raise
            else:
                self.conn.execute("COMMIT")
                if step.has_version:
                    logger.info(f"Step committed at version {step.version}")
                record_step("committed", self.metrics_enabled)
            finally:
                self._step = None

    @property
    def active_step(self) -> Step:
        if self._step is None:
            raise StepError("No active step")
        return self._step

    @property
    def in_step(self) -> bool:
        return self._step is not None

    def current_version(self) -> int:
        """Last allocated version (0 before any versioned write)."""
        raw = self.get(_VERSION_KEY)
        return int.from_bytes(raw, "big") if raw else 0

    # --- Point access ---
    def get(self, key: bytes) -> Optional[bytes]:
        with self._lock:
            row = self.conn.execute('SELECT value FROM kv WHERE key = ?', (key,)).fetchone()
            return bytes(row[0]) if row else None

    def has(self, key: bytes) -> bool:
        with self._lock:
            row = self.conn.execute('SELECT 1 FROM kv WHERE key = ?', (key,)).fetchone()
            return row is not None

    def set(self, key: bytes, value: bytes):
        with self._lock:
            self.conn.execute('INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)', (key, value))

    def delete(self, key: bytes):
        with self._lock:
            self.conn.execute('DELETE FROM kv WHERE key = ?', (key,))

    # --- Ordered scans ---
    def range(self,
              start: Optional[bytes] = None,
              end: Optional[bytes] = None,
              order: Order = Order.ASCENDING) -> Iterator[Tuple[bytes, bytes]]:
        """
        Yields (key, value) with start <= key < end in the given order.
        Rows are fetched lazily, so callers that stop early never read the rest.
        """
        clauses = []
        params = []
        if start is not None:
            clauses.append('key >= ?')
            params.append(start)
        if end is not None:
            clauses.append('key < ?')
            params.append(end)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        direction = "ASC" if order == Order.ASCENDING else "DESC"
        sql = f'SELECT key, value FROM kv{where} ORDER BY key {direction}'

        with self._lock:
            cursor = self.conn.execute(sql, params)
        try:
            while True:
                with self._lock:
                    batch = cursor.fetchmany(self.SCAN_BATCH)
                if not batch:
                    break
                for key, value in batch:
                    yield bytes(key), bytes(value)
        finally:
            cursor.close()

    def scan_prefix(self, prefix: bytes, order: Order = Order.ASCENDING) -> Iterator[Tuple[bytes, bytes]]:
        """Like range() over every key under `prefix`, with the prefix stripped."""
        plen = len(prefix)
        for key, value in self.range(prefix, prefix_range_end(prefix), order):
            yield key[plen:], value
