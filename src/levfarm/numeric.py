from __future__ import annotations

"""
Integer and fixed-point arithmetic for the position engine.

All token amounts and unit counts are plain Python ints that must stay inside the
unsigned 128-bit range. Python ints never overflow, so the range is enforced here
explicitly: every helper raises `ArithmeticFault` instead of silently producing a
value the accounting could not represent.

Ratios (prices, LTV, fee/bonus rates, tax rate) use `Decimal`, a fixed-point number
with a 10^18 denominator. The denominator is part of the contract: tax math must
reproduce bit-for-bit, so never swap this for `fractions.Fraction` or floats.
"""

import math
from dataclasses import dataclass

from levfarm.errors import ArithmeticFault, BadArgument

UINT128_MAX = (1 << 128) - 1
UINT256_MAX = (1 << 256) - 1

DECIMAL_FRACTIONAL = 10**18
DECIMAL_PLACES = 18


def check_u128(value: int, *, what: str = "value") -> int:
    if value < 0:
        raise ArithmeticFault(f"{what} underflow: {value}")
    if value > UINT128_MAX:
        raise ArithmeticFault(f"{what} overflows 128 bits: {value}")
    return value


def checked_add(a: int, b: int) -> int:
    return check_u128(a + b, what="addition")


def checked_sub(a: int, b: int) -> int:
    if b > a:
        raise ArithmeticFault(f"cannot subtract {b} from {a}")
    return a - b


def checked_mul(a: int, b: int) -> int:
    return check_u128(a * b, what="multiplication")


def multiply_ratio(value: int, numerator: int, denominator: int) -> int:
    """
    value * numerator / denominator, rounded toward zero.

    The intermediate product is allowed to exceed 128 bits (it lives in the 256-bit
    domain); only the result is narrowed.
    """
    if denominator == 0:
        raise ArithmeticFault(f"division by zero in {value} * {numerator} / 0")
    return check_u128(value * numerator // denominator, what="ratio")


def isqrt_u256(value: int) -> int:
    if value < 0 or value > UINT256_MAX:
        raise ArithmeticFault(f"isqrt argument outside the 256-bit domain: {value}")
    return math.isqrt(value)


@dataclass(frozen=True, order=True)
class Decimal:
    """
    Unsigned fixed-point number: value = atomics / 10^18.
    """

    atomics: int

    def __post_init__(self) -> None:
        if self.atomics < 0:
            raise ArithmeticFault(f"negative decimal: {self.atomics}")

    @classmethod
    def zero(cls) -> Decimal:
        return cls(0)

    @classmethod
    def one(cls) -> Decimal:
        return cls(DECIMAL_FRACTIONAL)

    @classmethod
    def percent(cls, x: int) -> Decimal:
        return cls(x * DECIMAL_FRACTIONAL // 100)

    @classmethod
    def from_int(cls, x: int) -> Decimal:
        return cls(x * DECIMAL_FRACTIONAL)

    @classmethod
    def from_ratio(cls, numerator: int, denominator: int) -> Decimal:
        if denominator == 0:
            raise ArithmeticFault(f"decimal ratio with zero denominator: {numerator}/0")
        return cls(numerator * DECIMAL_FRACTIONAL // denominator)

    @classmethod
    def from_str(cls, s: str) -> Decimal:
        s = str(s).strip()
        whole, _, frac = s.partition(".")
        if not whole.isdigit() or (frac and not frac.isdigit()):
            raise BadArgument(f"invalid decimal: {s!r}")
        if len(frac) > DECIMAL_PLACES:
            raise BadArgument(f"too many fractional digits in decimal: {s!r}")
        frac = frac.ljust(DECIMAL_PLACES, "0")
        return cls(int(whole) * DECIMAL_FRACTIONAL + int(frac or "0"))

    def is_zero(self) -> bool:
        return self.atomics == 0

    def mul_int(self, amount: int) -> int:
        """Uint128 * Decimal, floored."""
        return check_u128(amount * self.atomics // DECIMAL_FRACTIONAL, what="decimal product")

    def __mul__(self, other: Decimal) -> Decimal:
        if not isinstance(other, Decimal):
            return NotImplemented
        return Decimal(self.atomics * other.atomics // DECIMAL_FRACTIONAL)

    def __add__(self, other: Decimal) -> Decimal:
        if not isinstance(other, Decimal):
            return NotImplemented
        return Decimal(self.atomics + other.atomics)

    def __sub__(self, other: Decimal) -> Decimal:
        if not isinstance(other, Decimal):
            return NotImplemented
        return Decimal(checked_sub(self.atomics, other.atomics))

    def __float__(self) -> float:
        return self.atomics / DECIMAL_FRACTIONAL

    def __str__(self) -> str:
        whole, frac = divmod(self.atomics, DECIMAL_FRACTIONAL)
        if frac == 0:
            return str(whole)
        return f"{whole}.{str(frac).rjust(DECIMAL_PLACES, '0').rstrip('0')}"

    def __repr__(self) -> str:
        return f"Decimal('{self}')"


__all__ = [
    "UINT128_MAX",
    "DECIMAL_FRACTIONAL",
    "Decimal",
    "check_u128",
    "checked_add",
    "checked_sub",
    "checked_mul",
    "multiply_ratio",
    "isqrt_u256",
]
