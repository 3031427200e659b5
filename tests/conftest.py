"""Shared fixtures: a two-asset pool with funded accounts."""

import pytest

from crosslend.data.static_params import StaticPriceSource
from crosslend.data.token_ledger import InMemoryTokenLedger
from crosslend.protocol.pool import LendingPool

from tests.helpers import ACCOUNTS, STANDARD_CONFIG, STARTING_BALANCE


@pytest.fixture
def prices() -> StaticPriceSource:
    return StaticPriceSource({"AAA": 2, "BBB": 1})


@pytest.fixture
def tokens() -> InMemoryTokenLedger:
    ledger = InMemoryTokenLedger()
    for account in ACCOUNTS:
        for asset in ("AAA", "BBB"):
            ledger.mint(asset, account, STARTING_BALANCE)
    return ledger


@pytest.fixture
def pool(prices: StaticPriceSource, tokens: InMemoryTokenLedger) -> LendingPool:
    pool = LendingPool(prices, tokens)
    pool.add_reserve("AAA", STANDARD_CONFIG)
    pool.add_reserve("BBB", STANDARD_CONFIG)
    return pool


@pytest.fixture
def borrowed_pool(pool: LendingPool) -> LendingPool:
    """alice: 100 AAA collateral (price 2) and 150 BBB debt; bob supplies 1000 BBB."""
    pool.deposit("BBB", "bob", 1_000, now=0)
    pool.deposit("AAA", "alice", 100, now=0)
    pool.borrow("BBB", "alice", 150, now=0)
    return pool
