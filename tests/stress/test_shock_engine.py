"""Tests for the shock engine."""

import math

import pytest

from crosslend.data.constants import HEALTH_FACTOR_SCALE, MAX_HEALTH_FACTOR
from crosslend.data.static_params import StaticPriceSource
from crosslend.protocol.pool import LendingPool
from crosslend.protocol.risk import RiskTier
from crosslend.stress.scenarios import create_custom_scenario
from crosslend.stress.shock_engine import (
    apply_scenario,
    health_factor_ratio,
    health_factor_sensitivity,
    liquidation_price_change,
    shocked_prices,
)

ONE = HEALTH_FACTOR_SCALE


@pytest.fixture
def safe_pool(pool: LendingPool) -> LendingPool:
    """alice: 100 AAA collateral (price 2, weighted 160) and 50 BBB debt."""
    pool.deposit("BBB", "bob", 1_000, now=0)
    pool.deposit("AAA", "alice", 100, now=0)
    pool.borrow("BBB", "alice", 50, now=0)
    return pool


class TestShockedPrices:
    def test_applies_moves(self, prices: StaticPriceSource) -> None:
        scenario = create_custom_scenario("Half", {"AAA": -5_000})
        shocked = shocked_prices(prices, scenario)
        assert shocked.get_asset_price("AAA") == 1
        assert shocked.get_asset_price("BBB") == 1
        assert prices.get_asset_price("AAA") == 2


class TestApplyScenario:
    def test_collateral_drop_reduces_hf(self, safe_pool: LendingPool) -> None:
        scenario = create_custom_scenario("AAA halves", {"AAA": -5_000})
        result = apply_scenario(safe_pool.risk, "alice", scenario)
        assert result.hf_before == 160 * ONE // 50
        assert result.hf_after == 80 * ONE // 50
        assert result.collateral_before == 200
        assert result.collateral_after == 100
        assert result.tier_before is RiskTier.SAFE
        assert result.tier_after is RiskTier.MEDIUM
        assert result.is_liquidatable is False

    def test_no_change_preserves_hf(self, safe_pool: LendingPool) -> None:
        result = apply_scenario(safe_pool.risk, "alice", create_custom_scenario("Flat", {}))
        assert result.hf_before == result.hf_after

    def test_severe_drop_triggers_liquidation(self, safe_pool: LendingPool) -> None:
        severe = create_custom_scenario("Severe", {"AAA": -7_500})
        result = apply_scenario(safe_pool.risk, "alice", severe)
        # AAA 2 -> 0.5 truncates to 0 and is skipped
        assert result.collateral_after == 0
        assert result.borrow_after == 50
        assert result.hf_after == 0
        assert result.tier_after is RiskTier.IMMINENT
        assert result.is_liquidatable is True

    def test_does_not_mutate(self, safe_pool: LendingPool) -> None:
        apply_scenario(safe_pool.risk, "alice", create_custom_scenario("Crash", {"AAA": -9_000}))
        assert safe_pool.get_position("AAA", "alice").deposited_amount == 100


class TestLiquidationPriceChange:
    def test_threshold_drop(self, safe_pool: LendingPool, prices: StaticPriceSource) -> None:
        prices.set_price("AAA", 10_000)
        prices.set_price("BBB", 10_000)
        # weighted 800_000 vs debt 500_000: liquidatable once AAA drops 37.5%
        change = liquidation_price_change(safe_pool.risk, "alice", "AAA")
        assert change == -3_751
        assert safe_pool.simulate_price_change("alice", "AAA", change) < ONE
        assert safe_pool.simulate_price_change("alice", "AAA", change + 1) >= ONE

    def test_already_liquidatable(self, safe_pool: LendingPool) -> None:
        safe_pool.set_risk_parameters("AAA", 1_000, 2_000)
        assert liquidation_price_change(safe_pool.risk, "alice", "AAA") == 0

    def test_debt_asset_drop_never_liquidates(self, safe_pool: LendingPool) -> None:
        assert liquidation_price_change(safe_pool.risk, "alice", "BBB") is None


class TestSensitivity:
    def test_output_shape(self, safe_pool: LendingPool) -> None:
        df = health_factor_sensitivity(safe_pool.risk, "alice", "AAA", n_points=21)
        assert len(df) == 21
        assert list(df.columns) == ["price_change_bps", "health_factor", "tier"]

    def test_hf_increases_with_collateral_price(self, safe_pool: LendingPool, prices: StaticPriceSource) -> None:
        prices.set_price("AAA", 10_000)
        df = health_factor_sensitivity(safe_pool.risk, "alice", "AAA")
        hfs = df["health_factor"].values
        assert all(hfs[i] <= hfs[i + 1] for i in range(len(hfs) - 1))

    def test_ratio_conversion(self) -> None:
        assert health_factor_ratio(ONE) == pytest.approx(1.0)
        assert math.isinf(health_factor_ratio(MAX_HEALTH_FACTOR))
