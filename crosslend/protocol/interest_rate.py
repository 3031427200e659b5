"""Utilization-driven piecewise linear interest rate model.

All inputs and outputs are integers in basis points; rates are per year.
"""

from dataclasses import dataclass

import numpy as np
import pandas as pd

from crosslend.data.constants import BPS, MAX_BORROW_RATE


@dataclass(frozen=True)
class InterestRateParams:
    """Parameters for the kinked rate curve (all in bps)."""

    optimal_utilization: int = 8_000
    base_rate: int = 100
    slope1: int = 400
    slope2: int = 7_500
    max_borrow_rate: int = MAX_BORROW_RATE

    def __post_init__(self) -> None:
        if not 0 < self.optimal_utilization <= BPS:
            raise ValueError(
                f"optimal_utilization must be in (0, {BPS}], got {self.optimal_utilization}"
            )
        for name in ("base_rate", "slope1", "slope2", "max_borrow_rate"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")


def utilization(total_deposited: int, total_borrowed: int) -> int:
    """Borrowed share of deposits in bps (0 for an empty reserve)."""
    if total_deposited <= 0:
        return 0
    return total_borrowed * BPS // total_deposited


class InterestRateModel:
    """Kinked borrow curve plus the derived depositor yield."""

    def __init__(self, params: InterestRateParams | None = None) -> None:
        self.params = params or InterestRateParams()

    def borrow_rate(self, utilization_bps: int) -> int:
        """Borrow rate for a given utilization.

        Args:
            utilization_bps: Pool utilization in bps, normally in [0, 10000].

        Returns:
            Annual borrow rate in bps, capped at ``max_borrow_rate``.
        """
        p = self.params
        u = max(0, utilization_bps)
        if u <= p.optimal_utilization:
            rate = p.base_rate + u * p.slope1 // BPS
        else:
            rate = (
                p.base_rate
                + p.optimal_utilization * p.slope1 // BPS
                + (u - p.optimal_utilization) * p.slope2 // BPS
            )
        return min(rate, p.max_borrow_rate)

    def liquidity_rate(
        self, borrow_rate: int, utilization_bps: int, reserve_factor: int
    ) -> int:
        """Depositor rate: borrow yield scaled by utilization, net of the fee share."""
        return borrow_rate * utilization_bps // BPS * (BPS - reserve_factor) // BPS

    def rates(
        self, total_deposited: int, total_borrowed: int, reserve_factor: int
    ) -> tuple[int, int]:
        """Compute ``(borrow_rate, liquidity_rate)`` for a reserve snapshot."""
        if total_deposited <= 0:
            return self.params.base_rate, 0
        u = utilization(total_deposited, total_borrowed)
        borrow = self.borrow_rate(u)
        return borrow, self.liquidity_rate(borrow, u, reserve_factor)

    def rate_curve(
        self, reserve_factor: int = 0, n_points: int = 201
    ) -> pd.DataFrame:
        """Sample the full curve for reporting.

        Returns:
            DataFrame with columns: utilization, borrow_rate, liquidity_rate
        """
        utilizations = np.linspace(0, BPS, n_points).round().astype(int)
        borrow_rates = [self.borrow_rate(int(u)) for u in utilizations]
        liquidity_rates = [
            self.liquidity_rate(b, int(u), reserve_factor)
            for b, u in zip(borrow_rates, utilizations)
        ]

        return pd.DataFrame(
            {
                "utilization": utilizations,
                "borrow_rate": borrow_rates,
                "liquidity_rate": liquidity_rates,
            }
        )
