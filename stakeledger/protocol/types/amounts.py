# MIT License
# Copyright (c) 2025 Hashborn

"""
Uint128 checked arithmetic and 18-digit fixed-point decimals.

Amounts are plain Python ints constrained to [0, 2**128). The reward
index is a Decimal truncated (never rounded up) to 18 fractional digits.
"""

from decimal import Decimal, ROUND_DOWN, localcontext
from typing import Union

from .common import ArithmeticOverflowError

UINT128_MAX = (1 << 128) - 1
DECIMAL_PLACES = 18

_QUANTUM = Decimal(1).scaleb(-DECIMAL_PLACES)
# Uint128 * Uint128 fits comfortably in 90 significant digits
_PRECISION = 90


def _check_range(value: int, op: str) -> int:
    if value < 0 or value > UINT128_MAX:
        raise ArithmeticOverflowError(f"Overflow in {op}: result {value} outside Uint128")
    return value


def checked_add(a: int, b: int) -> int:
    return _check_range(a + b, "add")


def checked_sub(a: int, b: int) -> int:
    return _check_range(a - b, "sub")


def checked_mul(a: int, b: int) -> int:
    return _check_range(a * b, "mul")


def to_decimal(value: Union[int, str, Decimal]) -> Decimal:
    """Normalizes a value to the 18-digit fixed-point grid (truncating)."""
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return Decimal(value).quantize(_QUANTUM, rounding=ROUND_DOWN)


def decimal_from_ratio(numerator: int, denominator: int) -> Decimal:
    if denominator == 0:
        raise ArithmeticOverflowError("Division by zero in decimal_from_ratio")
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return (Decimal(numerator) / Decimal(denominator)).quantize(_QUANTUM, rounding=ROUND_DOWN)


def mul_floor(amount: int, factor: Decimal) -> int:
    """amount * factor, floored to an integer and range-checked."""
    if factor < 0:
        raise ArithmeticOverflowError(f"Negative factor {factor} in mul_floor")
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        product = (Decimal(amount) * factor).to_integral_value(rounding=ROUND_DOWN)
    return _check_range(int(product), "mul")


def decimal_add(a: Decimal, b: Decimal) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return (a + b).quantize(_QUANTUM, rounding=ROUND_DOWN)


def decimal_sub(a: Decimal, b: Decimal) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return (a - b).quantize(_QUANTUM, rounding=ROUND_DOWN)
