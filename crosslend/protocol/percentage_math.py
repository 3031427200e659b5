"""Basis-point fixed-point helpers.

Python ints are unbounded, so the products below never overflow. All
divisions truncate toward zero; callers rely on the exact placement of the
multiply and divide to reproduce protocol rounding.
"""

from crosslend.data.constants import BPS


def percent_multiply(value: int, bps: int) -> int:
    """Return ``value * bps / 10000`` rounded down."""
    return value * bps // BPS

