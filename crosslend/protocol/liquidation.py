"""Partial liquidation of unhealthy positions with a bonus-adjusted seizure."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from crosslend.data.constants import HEALTH_FACTOR_SCALE
from crosslend.protocol.errors import (
    HealthFactorError,
    InsufficientBalanceError,
    InsufficientLiquidityError,
    ValidationError,
)
from crosslend.protocol.params import ProtocolParams
from crosslend.protocol.percentage_math import percent_multiply
from crosslend.protocol.reserve import ReserveRegistry
from crosslend.protocol.risk import RiskEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LiquidationQuote:
    """Outcome of a liquidation, computed before anything is settled.

    Attributes:
        debt_to_cover: Debt the liquidator repays, after the close-factor cap.
        collateral_to_seize: Collateral sent to the liquidator, capped at the
            user's deposit. When the cap binds the liquidator receives less
            than the full bonus.
        debt_value: ``debt_to_cover * debt_price``.
        bonus_value: Liquidation penalty on ``debt_value``.
        health_factor: User's health factor when the quote was made.
    """

    user: str
    debt_asset: str
    collateral_asset: str
    debt_to_cover: int
    collateral_to_seize: int
    debt_price: int
    collateral_price: int
    debt_value: int
    bonus_value: int
    health_factor: int

    @property
    def seize_capped(self) -> bool:
        return self.collateral_to_seize < (self.debt_value + self.bonus_value) // self.collateral_price


class LiquidationEngine:
    """Computes and books liquidations; transfers are left to the caller."""

    def __init__(
        self,
        registry: ReserveRegistry,
        risk: RiskEngine,
        params: ProtocolParams | None = None,
    ) -> None:
        self.registry = registry
        self.risk = risk
        self.params = params or ProtocolParams()

    def max_closable_debt(self, borrowed: int) -> int:
        return percent_multiply(borrowed, self.params.close_factor)

    def quote(
        self,
        user: str,
        debt_asset: str,
        collateral_asset: str,
        requested_debt: int,
    ) -> LiquidationQuote:
        """Check preconditions and size a liquidation without mutating state.

        Raises:
            ValidationError: Same asset for debt and collateral, zero request,
                or a debt too small to close any part of.
            InsufficientBalanceError: No debt in ``debt_asset`` or no
                collateral-flagged deposit in ``collateral_asset``.
            OracleError: Either price is unavailable.
            HealthFactorError: The user is not below the threshold.
            InsufficientLiquidityError: The collateral reserve cannot pay out.
        """
        if requested_debt <= 0:
            raise ValidationError("Liquidation amount must be positive")
        if debt_asset == collateral_asset:
            raise ValidationError("Debt and collateral assets must differ")
        self.registry.get_reserve(debt_asset)
        collateral_reserve = self.registry.get_reserve(collateral_asset)

        debt_position = self.registry.get_position(debt_asset, user)
        collateral_position = self.registry.get_position(collateral_asset, user)
        if debt_position.borrowed_amount <= 0:
            raise InsufficientBalanceError(f"{user} has no {debt_asset} debt")
        if collateral_position.deposited_amount <= 0 or not collateral_position.is_collateral:
            raise InsufficientBalanceError(f"{user} has no {collateral_asset} collateral")

        debt_price = self.risk.require_price(debt_asset)
        collateral_price = self.risk.require_price(collateral_asset)

        health_factor = self.risk.health_factor(user)
        if health_factor >= HEALTH_FACTOR_SCALE:
            raise HealthFactorError(f"{user} is not liquidatable", health_factor)

        debt_to_cover = min(requested_debt, self.max_closable_debt(debt_position.borrowed_amount))
        if debt_to_cover <= 0:
            raise ValidationError(f"{user}'s {debt_asset} debt is too small to liquidate")

        debt_value = debt_to_cover * debt_price
        bonus_value = percent_multiply(debt_value, self.params.liquidation_penalty)
        collateral_to_seize = min(
            (debt_value + bonus_value) // collateral_price,
            collateral_position.deposited_amount,
        )
        if collateral_to_seize > collateral_reserve.available_liquidity:
            raise InsufficientLiquidityError(
                f"{collateral_asset} reserve holds {collateral_reserve.available_liquidity}, "
                f"needs {collateral_to_seize}"
            )

        return LiquidationQuote(
            user=user,
            debt_asset=debt_asset,
            collateral_asset=collateral_asset,
            debt_to_cover=debt_to_cover,
            collateral_to_seize=collateral_to_seize,
            debt_price=debt_price,
            collateral_price=collateral_price,
            debt_value=debt_value,
            bonus_value=bonus_value,
            health_factor=health_factor,
        )

    def settle(self, quote: LiquidationQuote) -> None:
        """Book a quote: shrink the user's debt and collateral and the reserve totals."""
        debt_reserve = self.registry.get_reserve(quote.debt_asset)
        collateral_reserve = self.registry.get_reserve(quote.collateral_asset)
        debt_position = self.registry.get_position(quote.debt_asset, quote.user)
        collateral_position = self.registry.get_position(quote.collateral_asset, quote.user)

        debt_position.borrowed_amount -= quote.debt_to_cover
        debt_reserve.total_borrowed -= quote.debt_to_cover
        collateral_position.deposited_amount -= quote.collateral_to_seize
        collateral_reserve.total_deposited -= quote.collateral_to_seize

        if quote.seize_capped:
            logger.warning(
                "Seizure of %s from %s capped at remaining balance %d",
                quote.collateral_asset, quote.user, quote.collateral_to_seize,
            )
