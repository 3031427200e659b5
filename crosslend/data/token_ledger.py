"""In-memory token ledger used as the reference transfer mechanism."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable

from crosslend.data.constants import POOL_ACCOUNT
from crosslend.data.interfaces import TokenLedger
from crosslend.protocol.errors import TransferError

logger = logging.getLogger(__name__)

TransferHook = Callable[[str, str, str, int], None]


class InMemoryTokenLedger(TokenLedger):
    """Balances per ``(asset, account)`` with fault injection for tests.

    Parameters
    ----------
    pool_account : str
        Account that represents the lending pool's holdings.
    on_transfer : callable | None
        Called as ``hook(kind, asset, account, amount)`` after every
        successful transfer. Lets tests simulate token callbacks.
    """

    def __init__(
        self,
        pool_account: str = POOL_ACCOUNT,
        on_transfer: TransferHook | None = None,
    ) -> None:
        self.pool_account = pool_account
        self.on_transfer = on_transfer
        self._balances: defaultdict[tuple[str, str], int] = defaultdict(int)
        self._frozen: set[str] = set()
        self._pending_failures: list[str] = []

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    def balance_of(self, asset: str, account: str) -> int:
        return self._balances[(asset, account)]

    def mint(self, asset: str, account: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("mint amount must be non-negative")
        self._balances[(asset, account)] += amount

    # ------------------------------------------------------------------
    # Fault injection
    # ------------------------------------------------------------------

    def fail_next(self, reason: str = "injected failure") -> None:
        """Make the next pull or push raise ``TransferError``."""
        self._pending_failures.append(reason)

    def freeze(self, account: str) -> None:
        self._frozen.add(account)

    def unfreeze(self, account: str) -> None:
        self._frozen.discard(account)

    # ------------------------------------------------------------------
    # TokenLedger
    # ------------------------------------------------------------------

    def pull(self, asset: str, from_account: str, amount: int) -> None:
        self._transfer("pull", asset, from_account, self.pool_account, amount)

    def push(self, asset: str, to_account: str, amount: int) -> None:
        self._transfer("push", asset, self.pool_account, to_account, amount)

    def _transfer(self, kind: str, asset: str, source: str, target: str, amount: int) -> None:
        self._move(asset, source, target, amount)
        if self.on_transfer is None:
            return
        counterparty = source if kind == "pull" else target
        try:
            self.on_transfer(kind, asset, counterparty, amount)
        except Exception:
            # a failing callback fails the whole transfer
            self._balances[(asset, target)] -= amount
            self._balances[(asset, source)] += amount
            raise

    def _move(self, asset: str, source: str, target: str, amount: int) -> None:
        if self._pending_failures:
            reason = self._pending_failures.pop(0)
            raise TransferError(f"Transfer of {amount} {asset} rejected: {reason}")
        if amount < 0:
            raise TransferError(f"Negative transfer amount: {amount}")
        for account in (source, target):
            if account in self._frozen:
                raise TransferError(f"Account {account} is frozen")
        if self._balances[(asset, source)] < amount:
            raise TransferError(
                f"Insufficient {asset} balance in {source}: "
                f"{self._balances[(asset, source)]} < {amount}"
            )
        self._balances[(asset, source)] -= amount
        self._balances[(asset, target)] += amount
        logger.debug("Moved %d %s from %s to %s", amount, asset, source, target)
