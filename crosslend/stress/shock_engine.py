"""Replay price-shock scenarios against a user's positions."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd

from crosslend.data.constants import BPS, HEALTH_FACTOR_SCALE, MAX_HEALTH_FACTOR
from crosslend.data.interfaces import PriceSource
from crosslend.data.static_params import OverridePriceSource
from crosslend.protocol.risk import RiskEngine, RiskTier
from crosslend.stress.scenarios import StressScenario


@dataclass(frozen=True)
class ShockResult:
    """Result of applying a stress scenario to one user."""

    hf_before: int
    hf_after: int
    collateral_before: int
    collateral_after: int
    borrow_before: int
    borrow_after: int
    tier_before: RiskTier
    tier_after: RiskTier

    @property
    def is_liquidatable(self) -> bool:
        return self.hf_after < HEALTH_FACTOR_SCALE


def health_factor_ratio(health_factor: int) -> float:
    """Scaled health factor as a float; no debt maps to ``inf``."""
    if health_factor == MAX_HEALTH_FACTOR:
        return float("inf")
    return health_factor / HEALTH_FACTOR_SCALE


def shocked_prices(prices: PriceSource, scenario: StressScenario) -> PriceSource:
    """Price source with the scenario's moves applied on top of ``prices``."""
    overrides = {
        asset: prices.get_asset_price(asset) * (BPS + change) // BPS
        for asset, change in scenario.price_changes.items()
    }
    return OverridePriceSource(prices, overrides)


def apply_scenario(risk: RiskEngine, user: str, scenario: StressScenario) -> ShockResult:
    """Apply a stress scenario to ``user`` and compare before/after.

    Nothing is mutated; positions are valued as of their last accrual.
    """
    before = risk.snapshot(user)
    after = risk.snapshot(user, prices=shocked_prices(risk.prices, scenario))

    return ShockResult(
        hf_before=before.health_factor,
        hf_after=after.health_factor,
        collateral_before=before.total_collateral_value,
        collateral_after=after.total_collateral_value,
        borrow_before=before.total_borrow_value,
        borrow_after=after.total_borrow_value,
        tier_before=risk.tier_for_health_factor(before.health_factor),
        tier_after=risk.tier_for_health_factor(after.health_factor),
    )


def liquidation_price_change(risk: RiskEngine, user: str, asset: str) -> int | None:
    """Smallest drop in ``asset``'s price (in bps) that makes ``user`` liquidatable.

    Returns:
        0 if already liquidatable, ``None`` if no drop short of -100% does
        it (e.g. ``asset`` is not collateral), otherwise a negative bps move.
    """
    if risk.health_factor(user) < HEALTH_FACTOR_SCALE:
        return 0
    if risk.simulate_price_change(user, asset, -(BPS - 1)) >= HEALTH_FACTOR_SCALE:
        return None

    # health factor is non-increasing as collateral price falls
    lo, hi = 0, BPS - 1
    while lo + 1 < hi:
        mid = (lo + hi) // 2
        if risk.simulate_price_change(user, asset, -mid) < HEALTH_FACTOR_SCALE:
            hi = mid
        else:
            lo = mid
    return -hi


def health_factor_sensitivity(
    risk: RiskEngine,
    user: str,
    asset: str,
    change_range: tuple[int, int] = (-5_000, 5_000),
    n_points: int = 101,
) -> pd.DataFrame:
    """Health factor across a range of price moves in one asset.

    Returns:
        DataFrame with columns: price_change_bps, health_factor, tier
    """
    changes = np.linspace(change_range[0], change_range[1], n_points).round().astype(int)
    hfs = []
    tiers = []
    for change in changes:
        hf = risk.simulate_price_change(user, asset, int(change))
        hfs.append(health_factor_ratio(hf))
        tiers.append(risk.tier_for_health_factor(hf).value)

    return pd.DataFrame({"price_change_bps": changes, "health_factor": hfs, "tier": tiers})
