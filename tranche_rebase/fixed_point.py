"""
Fixed-point arithmetic on plain Python ints scaled by WAD (1e18).

Division floors. Every result is range-checked against the unsigned 256-bit
domain so an oversized or negative value raises instead of wrapping or
silently going negative.
"""
from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal, InvalidOperation, localcontext
from typing import Union

from .errors import ArithmeticOverflow, DivideByZero, ValueValidationError

WAD: int = 10**18
BPS_SCALE: int = 10_000
MAX_UINT256: int = 2**256 - 1

Numeric = Union[int, str, float, Decimal]


def check(x: int) -> int:
    if x < 0:
        raise ArithmeticOverflow(f"underflow: {x} < 0")
    if x > MAX_UINT256:
        raise ArithmeticOverflow(f"overflow: {x} exceeds 256-bit range")
    return x


def add(a: int, b: int) -> int:
    return check(a + b)


def sub(a: int, b: int) -> int:
    return check(a - b)


def mul_div(a: int, b: int, denom: int) -> int:
    """``floor(a * b / denom)``; the intermediate product is range-checked too."""
    if denom == 0:
        raise DivideByZero("mul_div denominator is zero")
    return check(check(a * b) // denom)


def mul_wad(a: int, b: int) -> int:
    return mul_div(a, b, WAD)


def ratio(a: int, b: int) -> int:
    """``a / b`` in WAD; raises DivideByZero when ``b == 0``."""
    if b == 0:
        raise DivideByZero("ratio denominator is zero")
    return mul_div(a, WAD, b)


def bps_to_wad(bps: int) -> int:
    return bps * WAD // BPS_SCALE


def to_wad(x: Numeric) -> int:
    # floats go through str() so 0.1 becomes 0.1, not 0.1000000000000000055...
    if isinstance(x, float):
        x = str(x)
    try:
        d = Decimal(x.strip() if isinstance(x, str) else x)
    except InvalidOperation:
        raise ValueValidationError(f"not a number: {x!r}") from None
    if not d.is_finite():
        raise ValueValidationError(f"not a finite number: {x!r}")
    with localcontext() as ctx:
        ctx.prec = 100
        return check(int((d * WAD).to_integral_value(rounding=ROUND_FLOOR)))


def from_wad(x: int) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = 100
        return Decimal(x) / Decimal(WAD)
