"""Tests for checked integer arithmetic and the fixed-point Decimal."""

import pytest

from levfarm.errors import ArithmeticFault, BadArgument
from levfarm.numeric import (
    DECIMAL_FRACTIONAL,
    UINT128_MAX,
    Decimal,
    check_u128,
    checked_add,
    checked_sub,
    isqrt_u256,
    multiply_ratio,
)


def test_checked_add_overflow():
    assert checked_add(UINT128_MAX - 1, 1) == UINT128_MAX
    with pytest.raises(ArithmeticFault):
        checked_add(UINT128_MAX, 1)


def test_checked_sub_underflow():
    assert checked_sub(5, 5) == 0
    with pytest.raises(ArithmeticFault):
        checked_sub(4, 5)


def test_check_u128_rejects_negative():
    with pytest.raises(ArithmeticFault):
        check_u128(-1)


def test_multiply_ratio_floors_and_allows_wide_intermediate():
    assert multiply_ratio(10, 1, 3) == 3
    # intermediate product is far beyond 128 bits, result is not
    assert multiply_ratio(UINT128_MAX, UINT128_MAX, UINT128_MAX) == UINT128_MAX


def test_multiply_ratio_zero_denominator():
    with pytest.raises(ArithmeticFault):
        multiply_ratio(1, 1, 0)


def test_multiply_ratio_result_overflow():
    with pytest.raises(ArithmeticFault):
        multiply_ratio(UINT128_MAX, 2, 1)


def test_isqrt_u256():
    assert isqrt_u256(0) == 0
    assert isqrt_u256(15) == 3
    assert isqrt_u256(16) == 4
    assert isqrt_u256(UINT128_MAX * UINT128_MAX) == UINT128_MAX
    with pytest.raises(ArithmeticFault):
        isqrt_u256(1 << 256)


def test_decimal_from_str_and_str():
    assert Decimal.from_str("0.75").atomics == 75 * DECIMAL_FRACTIONAL // 100
    assert str(Decimal.from_str("4")) == "4"
    assert str(Decimal.from_str("0.001")) == "0.001"
    assert str(Decimal.from_str("1.50")) == "1.5"


@pytest.mark.parametrize("raw", ["", "-1", "1.2.3", "abc", "0." + "1" * 19])
def test_decimal_from_str_rejects(raw):
    with pytest.raises(BadArgument):
        Decimal.from_str(raw)


def test_decimal_mul_int_floors():
    assert Decimal.from_str("0.05").mul_int(1_000_000) == 50_000
    assert Decimal.from_ratio(1, 3).mul_int(10) == 3


def test_decimal_ordering_and_arithmetic():
    assert Decimal.percent(75) < Decimal.from_str("0.76") <= Decimal.percent(90)
    assert Decimal.one() - Decimal.percent(25) == Decimal.percent(75)
    assert Decimal.from_int(2) * Decimal.from_str("0.5") == Decimal.one()
    with pytest.raises(ArithmeticFault):
        Decimal.zero() - Decimal.one()


def test_decimal_from_ratio_zero_denominator():
    with pytest.raises(ArithmeticFault):
        Decimal.from_ratio(1, 0)
