"""Typed rejections raised by the lending engine.

Every public action either commits completely or raises one of these. The
``category`` attribute lets callers tell the failure classes apart without
matching on concrete types.
"""

VALIDATION = "validation"
INSOLVENCY = "insolvency"
ORACLE = "oracle"
TRANSFER = "transfer"
REENTRANCY = "reentrancy"


class LendingError(Exception):
    """Base exception for all engine rejections."""

    category = "lending"


class ValidationError(LendingError):
    """Bad input: zero amount, unknown or inactive asset, invalid account."""

    category = VALIDATION


class PausedError(ValidationError):
    """The pool is paused for this kind of action."""


class CapacityExceededError(ValidationError):
    """A deposit would push a reserve over its maximum capacity."""


class InsolvencyError(LendingError):
    """The action would leave a balance or the pool short."""

    category = INSOLVENCY


class InsufficientBalanceError(InsolvencyError):
    """The user does not hold enough deposit or debt for the action."""


class InsufficientLiquidityError(InsolvencyError):
    """The reserve does not hold enough free liquidity."""


class HealthFactorError(InsolvencyError):
    """The health factor is on the wrong side of the liquidation threshold."""

    def __init__(self, message: str, health_factor: int) -> None:
        super().__init__(message)
        self.health_factor = health_factor


class OracleError(LendingError):
    """A price required by the action is missing or zero."""

    category = ORACLE

    def __init__(self, asset: str) -> None:
        super().__init__(f"No price available for {asset}")
        self.asset = asset


class TransferError(LendingError):
    """The token ledger rejected a pull or push."""

    category = TRANSFER


class ReentrancyError(LendingError):
    """A mutating action was invoked while another one was in progress."""

    category = REENTRANCY
