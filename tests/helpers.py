"""Constants shared by the test suites."""

from crosslend.data.interfaces import ReserveConfig

ACCOUNTS = ("alice", "bob", "carol")
STARTING_BALANCE = 1_000_000

# Collateral reserve and debt reserve share the same risk parameters
STANDARD_CONFIG = ReserveConfig(
    loan_to_value=7_500,
    liquidation_threshold=8_000,
    reserve_factor=1_000,
)
