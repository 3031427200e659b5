"""Cross-collateral lending ledger: reserves, interest accrual, risk and liquidation."""

from crosslend.protocol.pool import LendingPool

__all__ = ["LendingPool"]
__version__ = "0.1.0"
