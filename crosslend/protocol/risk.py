"""Cross-asset risk aggregation: collateral, debt, health factor and tiers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from crosslend.data.constants import BPS, HEALTH_FACTOR_SCALE, MAX_HEALTH_FACTOR
from crosslend.data.interfaces import PriceSource
from crosslend.data.static_params import OverridePriceSource
from crosslend.protocol.errors import OracleError, ValidationError
from crosslend.protocol.params import RiskTierParams
from crosslend.protocol.percentage_math import percent_multiply
from crosslend.protocol.reserve import ReserveRegistry

logger = logging.getLogger(__name__)


class RiskTier(str, Enum):
    SAFE = "safe"
    MEDIUM = "medium"
    HIGH = "high"
    IMMINENT = "imminent"


@dataclass(frozen=True)
class AssetValuation:
    """One priced position inside a snapshot."""

    asset: str
    price: int
    deposited: int
    borrowed: int
    deposit_value: int
    borrow_value: int
    is_collateral: bool


@dataclass(frozen=True)
class UserSnapshot:
    """Aggregated position of one user across every asset they touched.

    Values are ``amount * price`` and carry the price source's scale; they
    are only meaningful relative to each other.
    """

    total_collateral_value: int
    total_borrow_value: int
    weighted_collateral_value: int
    borrowing_capacity: int
    health_factor: int
    assets: tuple[AssetValuation, ...] = ()

    @property
    def available_borrows(self) -> int:
        return max(0, self.borrowing_capacity - self.total_borrow_value)


def compute_health_factor(weighted_collateral_value: int, total_borrow_value: int) -> int:
    """Scaled ratio of weighted collateral to debt; maximal with no debt."""
    if total_borrow_value == 0:
        return MAX_HEALTH_FACTOR
    return weighted_collateral_value * HEALTH_FACTOR_SCALE // total_borrow_value


class RiskEngine:
    """Values user positions against live prices.

    Two price policies coexist. :meth:`snapshot` enumerates best-effort and
    skips assets priced at zero so one dead feed does not freeze every other
    asset. :meth:`require_price` is the must-succeed path used when an action
    depends on one asset's price, and raises :class:`OracleError`.
    """

    def __init__(
        self,
        registry: ReserveRegistry,
        prices: PriceSource,
        tiers: RiskTierParams | None = None,
    ) -> None:
        self.registry = registry
        self.prices = prices
        self.tiers = tiers or RiskTierParams()

    def require_price(self, asset: str, prices: PriceSource | None = None) -> int:
        price = (prices or self.prices).get_asset_price(asset)
        if not price or price <= 0:
            raise OracleError(asset)
        return price

    def snapshot(
        self,
        user: str,
        excluded_asset: str | None = None,
        override_deposit: int | None = None,
        prices: PriceSource | None = None,
    ) -> UserSnapshot:
        """Aggregate ``user``'s positions.

        Args:
            user: Account to value.
            excluded_asset: Asset whose deposit is replaced by
                ``override_deposit`` (previews a withdrawal).
            override_deposit: Hypothetical deposit for ``excluded_asset``.
            prices: Alternative price source (price-move simulations).

        Returns:
            UserSnapshot with totals, health factor and per-asset valuations.
        """
        source = prices or self.prices
        collateral = borrow = weighted = capacity = 0
        valuations: list[AssetValuation] = []

        for asset in self.registry.user_assets(user):
            position = self.registry.get_position(asset, user)
            deposited = position.deposited_amount
            if asset == excluded_asset and override_deposit is not None:
                deposited = override_deposit
            if deposited == 0 and position.borrowed_amount == 0:
                continue

            price = source.get_asset_price(asset)
            if not price or price <= 0:
                logger.warning("Skipping %s for %s: no price available", asset, user)
                continue

            reserve = self.registry.get_reserve(asset)
            deposit_value = deposited * price
            if position.is_collateral and deposited > 0:
                collateral += deposit_value
                weighted += percent_multiply(deposit_value, reserve.liquidation_threshold)
                capacity += percent_multiply(deposit_value, reserve.loan_to_value)
            borrow_value = position.borrowed_amount * price
            borrow += borrow_value

            valuations.append(
                AssetValuation(
                    asset=asset,
                    price=price,
                    deposited=deposited,
                    borrowed=position.borrowed_amount,
                    deposit_value=deposit_value,
                    borrow_value=borrow_value,
                    is_collateral=position.is_collateral,
                )
            )

        return UserSnapshot(
            total_collateral_value=collateral,
            total_borrow_value=borrow,
            weighted_collateral_value=weighted,
            borrowing_capacity=capacity,
            health_factor=compute_health_factor(weighted, borrow),
            assets=tuple(valuations),
        )

    def health_factor(self, user: str) -> int:
        return self.snapshot(user).health_factor

    def available_borrows(self, user: str) -> int:
        return self.snapshot(user).available_borrows

    def is_liquidatable(self, user: str) -> bool:
        return self.health_factor(user) < HEALTH_FACTOR_SCALE

    def preview_borrow(self, user: str, asset: str, amount: int) -> int:
        """Health factor if ``user`` borrowed ``amount`` more of ``asset``."""
        price = self.require_price(asset)
        snap = self.snapshot(user)
        return compute_health_factor(
            snap.weighted_collateral_value, snap.total_borrow_value + amount * price
        )

    def preview_withdraw(self, user: str, asset: str, amount: int) -> int:
        """Health factor if ``user`` withdrew ``amount`` of ``asset``."""
        deposited = self.registry.get_position(asset, user).deposited_amount
        return self.snapshot(
            user, excluded_asset=asset, override_deposit=max(0, deposited - amount)
        ).health_factor

    def tier_for_health_factor(self, health_factor: int) -> RiskTier:
        t = HEALTH_FACTOR_SCALE
        if health_factor >= percent_multiply(t, self.tiers.safe):
            return RiskTier.SAFE
        if health_factor >= percent_multiply(t, self.tiers.medium):
            return RiskTier.MEDIUM
        if health_factor >= percent_multiply(t, self.tiers.high):
            return RiskTier.HIGH
        return RiskTier.IMMINENT

    def risk_tier(self, user: str) -> RiskTier:
        return self.tier_for_health_factor(self.health_factor(user))

    def simulate_price_change(self, user: str, asset: str, change_bps: int) -> int:
        """Health factor if ``asset``'s price moved by ``change_bps`` (signed)."""
        if change_bps <= -BPS:
            raise ValidationError(f"Price change must be above -{BPS} bps, got {change_bps}")
        price = self.require_price(asset)
        shocked = OverridePriceSource(self.prices, {asset: price * (BPS + change_bps) // BPS})
        return self.snapshot(user, prices=shocked).health_factor
