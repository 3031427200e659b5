"""Interfaces of the engine's external collaborators."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from crosslend.data.constants import BPS


@dataclass(frozen=True)
class ReserveConfig:
    """Risk parameters an administrator sets when listing an asset.

    All ratios are in basis points. ``max_capacity`` of 0 means unbounded.
    """

    loan_to_value: int
    liquidation_threshold: int
    reserve_factor: int = 0
    max_capacity: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.loan_to_value <= self.liquidation_threshold <= BPS:
            raise ValueError(
                "expected 0 <= loan_to_value <= liquidation_threshold <= 10000, got "
                f"{self.loan_to_value} / {self.liquidation_threshold}"
            )
        if self.reserve_factor < 0 or self.max_capacity < 0:
            raise ValueError("reserve_factor and max_capacity must be non-negative")


class PriceSource(ABC):
    """Unit prices for every asset, in one shared quote currency and scale."""

    @abstractmethod
    def get_asset_price(self, asset: str) -> int:
        """Return the unit price of ``asset``, or 0 when unavailable."""


class TokenLedger(ABC):
    """External ledger that moves balances between accounts and the pool.

    Each call either fully succeeds or raises
    :class:`crosslend.protocol.errors.TransferError`.
    """

    @abstractmethod
    def pull(self, asset: str, from_account: str, amount: int) -> None:
        """Move ``amount`` of ``asset`` from ``from_account`` into the pool."""

    @abstractmethod
    def push(self, asset: str, to_account: str, amount: int) -> None:
        """Move ``amount`` of ``asset`` from the pool to ``to_account``."""
