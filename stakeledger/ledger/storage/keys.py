# MIT License
# Copyright (c) 2025 Hashborn

"""
Composite keys over the flat byte-ordered store.

Every path segment is prefixed with its 2-byte big-endian length, the
item key is appended raw:

    namespace(b"reward_v3", staker) + asset_key

so all items under one sub-namespace share a prefix and sort by the raw
item key. Integers that take part in ordering are always fixed-width
big-endian, which keeps byte order equal to numeric order.
"""

from typing import Optional, Union

from ...protocol.types.common import InvalidTimestampError

Segment = Union[bytes, bytearray, memoryview]

U64_MAX = (1 << 64) - 1


def namespace(*segments: Segment) -> bytes:
    out = bytearray()
    for seg in segments:
        seg_b = bytes(seg)
        if len(seg_b) > 0xFFFF:
            raise ValueError(f"Namespace segment too long: {len(seg_b)} bytes")
        out.extend(len(seg_b).to_bytes(2, "big"))
        out.extend(seg_b)
    return bytes(out)


def be_u64(n: int) -> bytes:
    if not (0 <= n <= U64_MAX):
        raise InvalidTimestampError(f"Timestamp {n} does not fit in u64")
    return n.to_bytes(8, "big")


def from_be_u64(raw: bytes) -> int:
    if len(raw) != 8:
        raise InvalidTimestampError(f"Casting u64 to timestamp failed: {len(raw)} bytes")
    return int.from_bytes(raw, "big")


def next_key(key: bytes) -> bytes:
    """Smallest key strictly greater than `key`."""
    return key + b"\x00"


def prefix_range_end(prefix: bytes) -> Optional[bytes]:
    """Exclusive upper bound of all keys starting with `prefix` (None = unbounded)."""
    buf = bytearray(prefix)
    while buf:
        if buf[-1] < 0xFF:
            buf[-1] += 1
            return bytes(buf)
        buf.pop()
    return None
