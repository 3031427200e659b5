"""Price-shock scenario definitions: reference presets and custom scenarios."""

from dataclasses import dataclass, field

from crosslend.data.constants import USDC, WBTC, WETH


@dataclass(frozen=True)
class StressScenario:
    """A set of simultaneous price moves.

    Attributes:
        name: Short identifier.
        description: Human-readable explanation.
        price_changes: Signed move per asset in bps (e.g. -4000 = -40%).
            Assets not listed keep their current price.
    """

    name: str
    description: str
    price_changes: dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for asset, change in self.price_changes.items():
            if change <= -10_000:
                raise ValueError(f"{asset} price change must be above -10000 bps, got {change}")


# --- Reference scenarios ---

ETH_CRASH = StressScenario(
    name="ETH crash",
    description="ETH drops 40% while stablecoins and BTC hold.",
    price_changes={WETH: -4_000},
)

MARKET_WIDE_DRAWDOWN = StressScenario(
    name="Market-wide drawdown",
    description="Volatile assets sell off together: ETH -35%, BTC -30%.",
    price_changes={WETH: -3_500, WBTC: -3_000},
)

STABLECOIN_DEPEG = StressScenario(
    name="Stablecoin depeg",
    description="USDC loses its peg and trades at 0.90.",
    price_changes={USDC: -1_000},
)

REFERENCE_SCENARIOS = [ETH_CRASH, MARKET_WIDE_DRAWDOWN, STABLECOIN_DEPEG]


def create_custom_scenario(
    name: str,
    price_changes: dict[str, int],
    description: str = "Custom scenario",
) -> StressScenario:
    """Factory for user-defined stress scenarios."""
    return StressScenario(
        name=name,
        description=description,
        price_changes=dict(price_changes),
    )
