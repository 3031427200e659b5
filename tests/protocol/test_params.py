"""Tests for protocol parameters and environment overrides."""

import pytest

from crosslend.data.constants import CLOSE_FACTOR
from crosslend.protocol.interest_rate import InterestRateParams
from crosslend.protocol.params import ProtocolParams, RiskTierParams, params_from_env


class TestValidation:
    def test_defaults(self) -> None:
        params = ProtocolParams()
        assert params.close_factor == 5_000
        assert params.liquidation_penalty == 1_000
        assert params.max_reserve_factor == 5_000
        assert params.rate_params == InterestRateParams()
        assert params.risk_tiers == RiskTierParams()

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"close_factor": 0},
            {"close_factor": 10_001},
            {"liquidation_penalty": -1},
            {"max_reserve_factor": 10_001},
            {"max_assets_per_user": -1},
        ],
    )
    def test_rejects_out_of_range(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            ProtocolParams(**kwargs)

    def test_tier_order(self) -> None:
        with pytest.raises(ValueError):
            RiskTierParams(safe=20_000, medium=12_000, high=14_000)


class TestParamsFromEnv:
    def test_empty_env_keeps_defaults(self) -> None:
        assert params_from_env({}) == ProtocolParams()

    def test_top_level_override(self) -> None:
        params = params_from_env({"CROSSLEND_CLOSE_FACTOR": "10_000"})
        assert params.close_factor == 10_000

    def test_rate_override(self) -> None:
        params = params_from_env(
            {"CROSSLEND_SLOPE1": "700", "CROSSLEND_OPTIMAL_UTILIZATION": "9000"}
        )
        assert params.rate_params.slope1 == 700
        assert params.rate_params.optimal_utilization == 9_000
        assert params.rate_params.slope2 == InterestRateParams().slope2

    def test_non_integer_is_ignored(self, caplog: pytest.LogCaptureFixture) -> None:
        params = params_from_env({"CROSSLEND_CLOSE_FACTOR": "half"})
        assert params.close_factor == CLOSE_FACTOR
        assert "CROSSLEND_CLOSE_FACTOR" in caplog.text

    def test_out_of_range_is_ignored(self, caplog: pytest.LogCaptureFixture) -> None:
        params = params_from_env({"CROSSLEND_CLOSE_FACTOR": "0"})
        assert params.close_factor == CLOSE_FACTOR
        assert "Invalid" in caplog.text

    def test_invalid_rate_override_is_ignored(self) -> None:
        params = params_from_env({"CROSSLEND_OPTIMAL_UTILIZATION": "0"})
        assert params.rate_params == InterestRateParams()

    def test_base_is_respected(self) -> None:
        base = ProtocolParams(liquidation_penalty=500)
        params = params_from_env({"CROSSLEND_MAX_ASSETS_PER_USER": "4"}, base=base)
        assert params.liquidation_penalty == 500
        assert params.max_assets_per_user == 4

    def test_reads_process_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CROSSLEND_LIQUIDATION_PENALTY", "750")
        assert params_from_env().liquidation_penalty == 750
