from decimal import Decimal

import pytest

from tranche_rebase.errors import ArithmeticOverflow, DivideByZero, ErrorKind, RebaseError, ValueValidationError
from tranche_rebase.fixed_point import MAX_UINT256, WAD, add, bps_to_wad, from_wad, mul_div, mul_wad, ratio, sub, to_wad


def test_mul_div_floors():
    assert mul_div(10, 1, 3) == 3
    assert mul_div(WAD, 13, 12 * 100) == 10833333333333333
    assert mul_wad(3 * WAD, WAD // 2) == 3 * WAD // 2


def test_ratio_and_divide_by_zero():
    assert ratio(11 * WAD, 10 * WAD) == 11 * WAD // 10
    with pytest.raises(DivideByZero) as ei:
        ratio(1, 0)
    assert ei.value.kind is ErrorKind.ARITHMETIC
    with pytest.raises(DivideByZero):
        mul_div(1, 1, 0)


def test_range_checks():
    assert add(MAX_UINT256 - 1, 1) == MAX_UINT256
    with pytest.raises(ArithmeticOverflow):
        add(MAX_UINT256, 1)
    with pytest.raises(ArithmeticOverflow):
        sub(1, 2)
    # intermediate product overflow is caught even when the quotient would fit
    with pytest.raises(ArithmeticOverflow):
        mul_div(MAX_UINT256, 2, 4)


def test_conversions():
    assert to_wad("1.009") == 1009 * WAD // 1000
    assert to_wad(0.1) == WAD // 10
    assert to_wad(Decimal("11150000")) == 11_150_000 * WAD
    assert to_wad(" 2 ") == 2 * WAD
    assert from_wad(WAD + WAD // 4) == Decimal("1.25")
    assert bps_to_wad(1300) == 13 * WAD // 100


def test_to_wad_rejects_garbage():
    with pytest.raises(ValueValidationError) as ei:
        to_wad("12,5 M")
    # callers that catch RebaseError also catch bad user input
    assert isinstance(ei.value, RebaseError)
    assert ei.value.kind is ErrorKind.VALIDATION
    with pytest.raises(ValueValidationError):
        to_wad("abc")
    with pytest.raises(ValueValidationError):
        to_wad("inf")
    with pytest.raises(ArithmeticOverflow):
        to_wad("-1")
