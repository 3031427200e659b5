"""Time-based interest accrual for positions and reserve rate refresh."""

from __future__ import annotations

import logging

from crosslend.data.constants import BPS, SECONDS_PER_YEAR
from crosslend.protocol.interest_rate import InterestRateModel
from crosslend.protocol.percentage_math import percent_multiply
from crosslend.protocol.reserve import ReserveRegistry

logger = logging.getLogger(__name__)


def interest_for(amount: int, rate_bps: int, dt: int) -> int:
    """Simple interest on ``amount`` at ``rate_bps`` per year over ``dt`` seconds."""
    return amount * rate_bps * dt // (BPS * SECONDS_PER_YEAR)


class AccrualEngine:
    """Brings positions up to date and recomputes reserve rates.

    Interest is capitalized into the principal on every accrual, so
    successive calls compound even though each call is simple interest.
    """

    def __init__(self, registry: ReserveRegistry, rate_model: InterestRateModel) -> None:
        self.registry = registry
        self.rate_model = rate_model

    def accrue_user(self, asset: str, user: str, now: int) -> tuple[int, int]:
        """Capitalize interest on ``user``'s position in ``asset`` up to ``now``.

        Untracked positions are left untracked. Calling twice with the same
        timestamp changes nothing the second time.

        Returns:
            ``(deposit_interest, borrow_interest)`` added by this call.
        """
        reserve = self.registry.get_reserve(asset)
        if not self.registry.has_position(asset, user):
            return 0, 0
        position = self.registry.get_position(asset, user)

        dt = now - position.last_update_time
        if dt <= 0:
            return 0, 0

        deposit_interest = 0
        if position.deposited_amount > 0:
            deposit_interest = interest_for(position.deposited_amount, reserve.liquidity_rate, dt)
            position.deposited_amount += deposit_interest
            reserve.total_deposited += deposit_interest

        borrow_interest = 0
        if position.borrowed_amount > 0:
            borrow_interest = interest_for(position.borrowed_amount, reserve.borrow_rate, dt)
            position.borrowed_amount += borrow_interest
            reserve.total_borrowed += borrow_interest
            if reserve.reserve_factor > 0:
                reserve.collected_fees += percent_multiply(borrow_interest, reserve.reserve_factor)

        position.last_update_time = now
        if now > reserve.last_update_time:
            reserve.last_update_time = now

        if deposit_interest or borrow_interest:
            logger.debug(
                "Accrued %s/%s over %ds: +%d deposit, +%d borrow",
                asset, user, dt, deposit_interest, borrow_interest,
            )
        return deposit_interest, borrow_interest

    def accrue_user_assets(self, user: str, now: int) -> None:
        """Accrue every asset ``user`` has touched."""
        for asset in self.registry.user_assets(user):
            self.accrue_user(asset, user, now)

    def update_rates(self, asset: str) -> tuple[int, int]:
        """Recompute ``asset``'s borrow and liquidity rates from its totals."""
        reserve = self.registry.get_reserve(asset)
        reserve.borrow_rate, reserve.liquidity_rate = self.rate_model.rates(
            reserve.total_deposited, reserve.total_borrowed, reserve.reserve_factor
        )
        return reserve.borrow_rate, reserve.liquidity_rate
