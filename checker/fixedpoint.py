"""
Fixed-point and rational helpers.

Prices and rates are carried as exact Fractions. Values that are updated
repeatedly (q, drift, the indices) are snapped to a 2^-64 grid so their
numerators and denominators stay bounded, and exponentiation with large
integer exponents is done in 64.64 fixed point.
"""

import math
from fractions import Fraction

FIXEDPOINT_SCALING_FACTOR = 2 ** 64
FIXEDPOINT_ONE = FIXEDPOINT_SCALING_FACTOR


def fp_of_fraction_floor(q: Fraction) -> int:
    return math.floor(q * FIXEDPOINT_SCALING_FACTOR)


def fp_of_fraction_ceil(q: Fraction) -> int:
    return math.ceil(q * FIXEDPOINT_SCALING_FACTOR)


def fp_to_fraction(fp: int) -> Fraction:
    return Fraction(fp, FIXEDPOINT_SCALING_FACTOR)


def fp_mul(a: int, b: int) -> int:
    return (a * b) // FIXEDPOINT_SCALING_FACTOR


def fp_pow(base: int, exponent: int) -> int:
    """Raise a fixed-point value to a non-negative integer power by squaring.

    Every intermediate product is rounded down, so the result never exceeds
    the exact power.
    """
    if exponent < 0:
        raise ValueError(f"Negative exponent: {exponent}")
    result = FIXEDPOINT_ONE
    while exponent > 0:
        if exponent & 1:
            result = fp_mul(result, base)
        base = fp_mul(base, base)
        exponent >>= 1
    return result


def snap(q: Fraction) -> Fraction:
    """Round a rational down onto the fixed-point grid."""
    return fp_to_fraction(fp_of_fraction_floor(q))


def qexp(amount: Fraction) -> Fraction:
    """First-order approximation of e^amount, never negative."""
    return max(Fraction(0), 1 + amount)


def clamp(value, lower, upper):
    assert lower <= upper
    return min(max(value, lower), upper)
