# MIT License
# Copyright (c) 2025 Hashborn

from enum import IntEnum


class ProtocolError(Exception):
    pass


class NotFoundError(ProtocolError):
    """A required key is absent from the store."""
    pass


class MalformedError(ProtocolError):
    """A stored value failed to decode, or an input is out of range."""
    pass


class ArithmeticOverflowError(ProtocolError):
    pass


class InvalidTimestampError(ProtocolError):
    pass


class StepError(ProtocolError):
    """Misuse of the atomic step context (nesting, version regression)."""
    pass


class Order(IntEnum):
    ASCENDING = 1
    DESCENDING = 2

    @classmethod
    def parse(cls, value) -> "Order":
        """
        Accepts an Order, its integer code, or None (ascending).
        Any other value is a malformed request.
        """
        if value is None:
            return cls.ASCENDING
        if isinstance(value, bool):
            raise MalformedError(f"Invalid order: {value!r}")
        try:
            return cls(value)
        except ValueError:
            raise MalformedError(f"Invalid order: {value!r}")
