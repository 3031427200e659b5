"""Static price source and reference reserve parameters."""

from __future__ import annotations

from crosslend.data.constants import USDC, WBTC, WETH
from crosslend.data.interfaces import PriceSource, ReserveConfig

# --- Reference listings for demos and tests ---

DEFAULT_RESERVE_CONFIGS: dict[str, ReserveConfig] = {
    WETH: ReserveConfig(
        loan_to_value=8_000,
        liquidation_threshold=8_250,
        reserve_factor=1_500,
    ),
    USDC: ReserveConfig(
        loan_to_value=7_700,
        liquidation_threshold=8_000,
        reserve_factor=1_000,
    ),
    WBTC: ReserveConfig(
        loan_to_value=7_000,
        liquidation_threshold=7_500,
        reserve_factor=2_000,
        max_capacity=10_000_000,
    ),
}

# Unit prices in USD cents; only ratios between them matter to the engine
DEFAULT_PRICES: dict[str, int] = {
    WETH: 300_000,
    USDC: 100,
    WBTC: 6_000_000,
}


class StaticPriceSource(PriceSource):
    """Price source backed by a mutable in-memory table.

    Unknown assets report 0, the engine's "unavailable" signal.
    """

    def __init__(self, prices: dict[str, int] | None = None) -> None:
        self._prices: dict[str, int] = dict(DEFAULT_PRICES if prices is None else prices)

    def get_asset_price(self, asset: str) -> int:
        return self._prices.get(asset, 0)

    def set_price(self, asset: str, price: int) -> None:
        if price < 0:
            raise ValueError(f"Negative price for {asset}: {price}")
        self._prices[asset] = price

    def prices(self) -> dict[str, int]:
        return dict(self._prices)


class OverridePriceSource(PriceSource):
    """Wraps another source, replacing the prices of selected assets."""

    def __init__(self, base: PriceSource, overrides: dict[str, int]) -> None:
        self._base = base
        self._overrides = dict(overrides)

    def get_asset_price(self, asset: str) -> int:
        if asset in self._overrides:
            return self._overrides[asset]
        return self._base.get_asset_price(asset)
