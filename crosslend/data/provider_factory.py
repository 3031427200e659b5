"""Factories for the engine's external collaborators."""

from __future__ import annotations

import logging
import os

from crosslend.data.interfaces import PriceSource, TokenLedger
from crosslend.data.static_params import StaticPriceSource
from crosslend.data.token_ledger import InMemoryTokenLedger

logger = logging.getLogger(__name__)


def _parse_prices(raw: str) -> dict[str, int]:
    """Parse ``"WETH=300000,USDC=100"`` into a price table."""
    prices: dict[str, int] = {}
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        asset, _, value = item.partition("=")
        prices[asset.strip()] = int(value)
    return prices


def create_price_source(prices: dict[str, int] | None = None) -> PriceSource:
    """Create a price source.

    Parameters
    ----------
    prices : dict[str, int] | None
        Explicit price table. Falls back to the ``CROSSLEND_PRICES``
        environment variable (``ASSET=PRICE`` pairs separated by commas),
        then to the built-in reference prices.

    Returns
    -------
    PriceSource
        A ``StaticPriceSource`` over the resolved table.
    """
    if prices is not None:
        return StaticPriceSource(prices)

    raw = os.environ.get("CROSSLEND_PRICES")
    if raw:
        try:
            return StaticPriceSource(_parse_prices(raw))
        except ValueError:
            logger.warning("Malformed CROSSLEND_PRICES=%r; using reference prices", raw)
    return StaticPriceSource()


def create_token_ledger(
    initial_balances: dict[tuple[str, str], int] | None = None,
) -> TokenLedger:
    """Create an in-memory token ledger, optionally pre-funded."""
    ledger = InMemoryTokenLedger()
    for (asset, account), amount in (initial_balances or {}).items():
        ledger.mint(asset, account, amount)
    return ledger
