"""Asset identifiers and protocol constants."""

# Asset symbols used by the reference collaborators
WETH = "WETH"
USDC = "USDC"
WBTC = "WBTC"

# Account that holds pooled liquidity in the token ledger
POOL_ACCOUNT = "pool"

# Basis points (1e4), the unit for rates and risk parameters
BPS = 10_000

SECONDS_PER_YEAR = 365 * 24 * 3600

# Health factor fixed-point unit; 1.0 == liquidation threshold
HEALTH_FACTOR_SCALE = 10**18
MAX_HEALTH_FACTOR = 2**256 - 1

# Protocol-wide caps
MAX_RESERVE_FACTOR = 5_000
MAX_BORROW_RATE = 10_000

# Liquidation defaults
CLOSE_FACTOR = 5_000
LIQUIDATION_PENALTY = 1_000
