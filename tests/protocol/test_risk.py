"""Tests for health factor aggregation and risk tiers."""

import pytest

from crosslend.data.constants import HEALTH_FACTOR_SCALE, MAX_HEALTH_FACTOR
from crosslend.data.static_params import StaticPriceSource
from crosslend.protocol.errors import OracleError, ValidationError
from crosslend.protocol.params import RiskTierParams
from crosslend.protocol.pool import LendingPool
from crosslend.protocol.risk import RiskEngine, RiskTier, compute_health_factor

ONE = HEALTH_FACTOR_SCALE


class TestComputeHealthFactor:
    def test_no_debt_is_maximal(self) -> None:
        assert compute_health_factor(1, 0) == MAX_HEALTH_FACTOR
        assert compute_health_factor(0, 0) == MAX_HEALTH_FACTOR

    def test_ratio(self) -> None:
        assert compute_health_factor(160, 160) == ONE
        assert compute_health_factor(160, 150) == 160 * ONE // 150


class TestSnapshot:
    def test_collateral_only(self, pool: LendingPool) -> None:
        pool.deposit("AAA", "alice", 100, now=0)
        snap = pool.risk.snapshot("alice")
        assert snap.total_collateral_value == 200
        assert snap.weighted_collateral_value == 160
        assert snap.borrowing_capacity == 150
        assert snap.total_borrow_value == 0
        assert snap.health_factor == MAX_HEALTH_FACTOR

    def test_with_debt(self, borrowed_pool: LendingPool) -> None:
        snap = borrowed_pool.risk.snapshot("alice")
        assert snap.total_borrow_value == 150
        assert snap.health_factor == 160 * ONE // 150
        assert snap.available_borrows == 0
        assert [v.asset for v in snap.assets] == ["AAA", "BBB"]

    def test_non_collateral_deposit_is_ignored(self, pool: LendingPool) -> None:
        pool.deposit("AAA", "alice", 100, now=0)
        pool.set_collateral("AAA", "alice", False, now=0)
        snap = pool.risk.snapshot("alice")
        assert snap.total_collateral_value == 0
        assert snap.weighted_collateral_value == 0

    def test_unpriced_asset_is_skipped(
        self, borrowed_pool: LendingPool, prices: StaticPriceSource
    ) -> None:
        prices.set_price("BBB", 0)
        snap = borrowed_pool.risk.snapshot("alice")
        assert snap.total_borrow_value == 0
        assert snap.total_collateral_value == 200
        assert [v.asset for v in snap.assets] == ["AAA"]

    def test_override_deposit(self, borrowed_pool: LendingPool) -> None:
        snap = borrowed_pool.risk.snapshot("alice", excluded_asset="AAA", override_deposit=50)
        assert snap.weighted_collateral_value == 80

    def test_unknown_user(self, pool: LendingPool) -> None:
        snap = pool.risk.snapshot("nobody")
        assert snap.total_collateral_value == 0
        assert snap.health_factor == MAX_HEALTH_FACTOR


class TestPreviews:
    def test_preview_borrow(self, borrowed_pool: LendingPool) -> None:
        assert borrowed_pool.risk.preview_borrow("alice", "BBB", 10) == 160 * ONE // 160
        assert borrowed_pool.risk.preview_borrow("alice", "BBB", 20) < ONE

    def test_preview_borrow_requires_price(
        self, borrowed_pool: LendingPool, prices: StaticPriceSource
    ) -> None:
        prices.set_price("BBB", 0)
        with pytest.raises(OracleError) as exc_info:
            borrowed_pool.risk.preview_borrow("alice", "BBB", 10)
        assert exc_info.value.asset == "BBB"
        assert exc_info.value.category == "oracle"

    def test_preview_withdraw(self, borrowed_pool: LendingPool) -> None:
        assert borrowed_pool.risk.preview_withdraw("alice", "AAA", 10) == 144 * ONE // 150

    def test_previews_do_not_mutate(self, borrowed_pool: LendingPool) -> None:
        borrowed_pool.risk.preview_withdraw("alice", "AAA", 100)
        borrowed_pool.risk.preview_borrow("alice", "BBB", 100)
        assert borrowed_pool.get_position("AAA", "alice").deposited_amount == 100
        assert borrowed_pool.get_position("BBB", "alice").borrowed_amount == 150


class TestRiskTiers:
    @pytest.fixture
    def engine(self, pool: LendingPool) -> RiskEngine:
        return pool.risk

    @pytest.mark.parametrize(
        "health_factor, tier",
        [
            (MAX_HEALTH_FACTOR, RiskTier.SAFE),
            (2 * ONE, RiskTier.SAFE),
            (2 * ONE - 1, RiskTier.MEDIUM),
            (14 * ONE // 10, RiskTier.MEDIUM),
            (14 * ONE // 10 - 1, RiskTier.HIGH),
            (12 * ONE // 10, RiskTier.HIGH),
            (12 * ONE // 10 - 1, RiskTier.IMMINENT),
            (ONE // 2, RiskTier.IMMINENT),
        ],
    )
    def test_default_bands(self, engine: RiskEngine, health_factor: int, tier: RiskTier) -> None:
        assert engine.tier_for_health_factor(health_factor) is tier

    def test_custom_bands(self, pool: LendingPool) -> None:
        engine = RiskEngine(pool.registry, pool.prices, RiskTierParams(safe=30_000))
        assert engine.tier_for_health_factor(2 * ONE) is RiskTier.MEDIUM

    def test_invalid_bands(self) -> None:
        with pytest.raises(ValueError):
            RiskTierParams(safe=10_000, medium=14_000)

    def test_user_tier(self, borrowed_pool: LendingPool) -> None:
        # 160 / 150 = 1.07
        assert borrowed_pool.risk_tier("alice") is RiskTier.IMMINENT
        assert borrowed_pool.risk_tier("bob") is RiskTier.SAFE


class TestSimulatePriceChange:
    def test_collateral_drop(self, borrowed_pool: LendingPool) -> None:
        # AAA 2 -> 1 halves the weighted collateral
        assert borrowed_pool.simulate_price_change("alice", "AAA", -5_000) == 80 * ONE // 150

    def test_debt_rally(self, borrowed_pool: LendingPool) -> None:
        # BBB 1 -> 2 doubles the debt value
        assert borrowed_pool.simulate_price_change("alice", "BBB", 10_000) == 160 * ONE // 300

    def test_does_not_touch_live_prices(
        self, borrowed_pool: LendingPool, prices: StaticPriceSource
    ) -> None:
        borrowed_pool.simulate_price_change("alice", "AAA", -5_000)
        assert prices.get_asset_price("AAA") == 2

    def test_rejects_total_wipeout(self, borrowed_pool: LendingPool) -> None:
        with pytest.raises(ValidationError):
            borrowed_pool.simulate_price_change("alice", "AAA", -10_000)
