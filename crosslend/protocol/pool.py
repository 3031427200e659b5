"""Lending pool: the public surface tying the engines together.

Every mutating action runs as one transaction: it takes the non-reentrant
lock, accrues the positions it reads, books its changes, validates the
health factor, performs the external transfers and refreshes reserve rates.
Any exception restores the registry and reverses transfers already made.
"""

from __future__ import annotations

import dataclasses
import logging
from contextlib import contextmanager
from typing import Iterator

from crosslend.data.constants import HEALTH_FACTOR_SCALE, POOL_ACCOUNT
from crosslend.data.interfaces import PriceSource, ReserveConfig, TokenLedger
from crosslend.protocol.accrual import AccrualEngine
from crosslend.protocol.errors import (
    CapacityExceededError,
    HealthFactorError,
    InsufficientBalanceError,
    InsufficientLiquidityError,
    PausedError,
    ReentrancyError,
    ValidationError,
)
from crosslend.protocol.interest_rate import InterestRateModel
from crosslend.protocol.liquidation import LiquidationEngine, LiquidationQuote
from crosslend.protocol.params import ProtocolParams
from crosslend.protocol.reserve import Position, Reserve, ReserveRegistry
from crosslend.protocol.risk import RiskEngine, RiskTier, UserSnapshot

logger = logging.getLogger(__name__)

# (kind, asset, account, amount) of a completed external transfer
Transfer = tuple[str, str, str, int]


class LendingPool:
    """Cross-collateral lending pool over an explicit registry.

    Parameters
    ----------
    prices : PriceSource
        Unit prices for every listed asset.
    tokens : TokenLedger
        External ledger moving balances in and out of the pool.
    params : ProtocolParams | None
        Protocol-wide parameters (defaults when omitted).
    registry : ReserveRegistry | None
        State store; a fresh one is created when omitted.
    """

    def __init__(
        self,
        prices: PriceSource,
        tokens: TokenLedger,
        params: ProtocolParams | None = None,
        registry: ReserveRegistry | None = None,
    ) -> None:
        self.params = params or ProtocolParams()
        self.registry = registry or ReserveRegistry(self.params.max_assets_per_user)
        self.prices = prices
        self.tokens = tokens
        self.rate_model = InterestRateModel(self.params.rate_params)
        self.accrual = AccrualEngine(self.registry, self.rate_model)
        self.risk = RiskEngine(self.registry, prices, self.params.risk_tiers)
        self.liquidation = LiquidationEngine(self.registry, self.risk, self.params)

        self.fee_recipient: str | None = None
        self.paused = False
        self._lock_token: object | None = None

    # ------------------------------------------------------------------
    # Transaction plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self, action: str) -> Iterator[list[Transfer]]:
        """Run one action atomically under the non-reentrant lock."""
        self._require_unlocked(action)
        token = object()
        self._lock_token = token
        checkpoint = self.registry.checkpoint()
        journal: list[Transfer] = []
        try:
            yield journal
        except Exception as exc:
            self.registry.restore(checkpoint)
            self._compensate(journal)
            logger.warning("Rolled back %s: %s", action, exc)
            raise
        finally:
            if self._lock_token is token:
                self._lock_token = None

    def _compensate(self, journal: list[Transfer]) -> None:
        for kind, asset, account, amount in reversed(journal):
            try:
                if kind == "pull":
                    self.tokens.push(asset, account, amount)
                else:
                    self.tokens.pull(asset, account, amount)
            except Exception:
                logger.error(
                    "Could not reverse %s of %d %s for %s", kind, amount, asset, account,
                    exc_info=True,
                )

    def _pull(self, journal: list[Transfer], asset: str, account: str, amount: int) -> None:
        self.tokens.pull(asset, account, amount)
        journal.append(("pull", asset, account, amount))

    def _push(self, journal: list[Transfer], asset: str, account: str, amount: int) -> None:
        self.tokens.push(asset, account, amount)
        journal.append(("push", asset, account, amount))

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def _require_unlocked(self, action: str) -> None:
        if self._lock_token is not None:
            raise ReentrancyError(f"{action} called while another action is in progress")

    def _require_not_paused(self, action: str) -> None:
        if self.paused:
            raise PausedError(f"Pool is paused; {action} is disabled")

    @staticmethod
    def _require_amount(amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise ValidationError(f"Amount must be a positive integer, got {amount!r}")

    @staticmethod
    def _require_account(account: str) -> None:
        if not isinstance(account, str) or not account or account == POOL_ACCOUNT:
            raise ValidationError(f"Invalid account: {account!r}")

    def _require_active(self, asset: str) -> Reserve:
        reserve = self.registry.get_reserve(asset)
        if not reserve.active:
            raise ValidationError(f"Reserve {asset} is not active")
        return reserve

    def _require_health(self, health_factor: int, action: str) -> None:
        if health_factor < HEALTH_FACTOR_SCALE:
            raise HealthFactorError(
                f"{action} would drop health factor to {health_factor}", health_factor
            )

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def deposit(self, asset: str, user: str, amount: int, now: int) -> None:
        """Supply ``amount`` of ``asset``; a first deposit counts as collateral."""
        with self._transaction("deposit") as journal:
            self._require_not_paused("deposit")
            self._require_amount(amount)
            self._require_account(user)
            reserve = self._require_active(asset)

            position = self.registry.touch_position(asset, user, now)
            self.accrual.accrue_user(asset, user, now)

            if reserve.max_capacity and reserve.total_deposited + amount > reserve.max_capacity:
                raise CapacityExceededError(
                    f"Deposit of {amount} {asset} exceeds capacity {reserve.max_capacity}"
                )

            self._pull(journal, asset, user, amount)
            position.deposited_amount += amount
            reserve.total_deposited += amount
            if not position.collateral_chosen:
                position.is_collateral = True
                position.collateral_chosen = True
            self.accrual.update_rates(asset)

        logger.info("%s deposited %d %s", user, amount, asset)

    def withdraw(self, asset: str, user: str, amount: int, now: int) -> None:
        """Withdraw ``amount`` of ``asset`` if the health factor stays at or above 1."""
        with self._transaction("withdraw") as journal:
            self._require_not_paused("withdraw")
            self._require_amount(amount)
            self._require_account(user)
            self._withdraw(journal, asset, user, amount, now)

        logger.info("%s withdrew %d %s", user, amount, asset)

    def emergency_withdraw(self, asset: str, user: str, now: int) -> int:
        """Withdraw the whole deposit of ``asset``, allowed while paused.

        Only available for reserves with the emergency switch on. The health
        factor check still applies.
        """
        with self._transaction("emergency_withdraw") as journal:
            self._require_account(user)
            reserve = self.registry.get_reserve(asset)
            if not reserve.emergency_withdraw:
                raise ValidationError(f"Emergency withdrawal is not enabled for {asset}")
            self.accrual.accrue_user_assets(user, now)
            amount = self.registry.get_position(asset, user).deposited_amount
            if amount == 0:
                raise InsufficientBalanceError(f"{user} has no {asset} deposit")
            self._withdraw(journal, asset, user, amount, now)

        logger.info("%s emergency-withdrew %d %s", user, amount, asset)
        return amount

    def _withdraw(
        self, journal: list[Transfer], asset: str, user: str, amount: int, now: int
    ) -> None:
        reserve = self.registry.get_reserve(asset)
        if not self.registry.has_position(asset, user):
            raise InsufficientBalanceError(f"{user} has no {asset} deposit")
        self.accrual.accrue_user_assets(user, now)

        position = self.registry.get_position(asset, user)
        if position.deposited_amount < amount:
            raise InsufficientBalanceError(
                f"{user} holds {position.deposited_amount} {asset}, cannot withdraw {amount}"
            )
        if reserve.available_liquidity < amount:
            raise InsufficientLiquidityError(
                f"{asset} reserve holds {reserve.available_liquidity} free, cannot pay {amount}"
            )
        if position.is_collateral:
            self._require_health(self.risk.preview_withdraw(user, asset, amount), "withdraw")

        position.deposited_amount -= amount
        reserve.total_deposited -= amount
        self._push(journal, asset, user, amount)
        self.accrual.update_rates(asset)

    def borrow(self, asset: str, user: str, amount: int, now: int) -> None:
        """Borrow ``amount`` of ``asset`` against the user's collateral."""
        with self._transaction("borrow") as journal:
            self._require_not_paused("borrow")
            self._require_amount(amount)
            self._require_account(user)
            reserve = self._require_active(asset)

            position = self.registry.touch_position(asset, user, now)
            self.accrual.accrue_user_assets(user, now)

            if reserve.total_borrowed + amount > reserve.total_deposited:
                raise InsufficientLiquidityError(
                    f"{asset} reserve holds {reserve.available_liquidity} free, cannot lend {amount}"
                )
            self._require_health(self.risk.preview_borrow(user, asset, amount), "borrow")

            position.borrowed_amount += amount
            reserve.total_borrowed += amount
            self._push(journal, asset, user, amount)
            self.accrual.update_rates(asset)

        logger.info("%s borrowed %d %s", user, amount, asset)

    def repay(self, asset: str, user: str, amount: int, now: int) -> int:
        """Repay the user's own debt; returns the amount actually repaid."""
        return self.repay_on_behalf(asset, user, user, amount, now)

    def repay_on_behalf(
        self, asset: str, payer: str, user: str, amount: int, now: int
    ) -> int:
        """``payer`` repays up to ``amount`` of ``user``'s debt in ``asset``.

        Amounts above the outstanding debt are capped; only the capped amount
        is pulled from the payer. Repayment is allowed while paused.
        """
        with self._transaction("repay") as journal:
            self._require_amount(amount)
            self._require_account(payer)
            self._require_account(user)
            reserve = self.registry.get_reserve(asset)

            self.accrual.accrue_user(asset, user, now)
            position = self.registry.get_position(asset, user)
            if position.borrowed_amount == 0:
                raise InsufficientBalanceError(f"{user} has no {asset} debt")

            repaid = min(amount, position.borrowed_amount)
            self._pull(journal, asset, payer, repaid)
            position.borrowed_amount -= repaid
            reserve.total_borrowed -= repaid
            self.accrual.update_rates(asset)

        logger.info("%s repaid %d %s for %s", payer, repaid, asset, user)
        return repaid

    def liquidate(
        self,
        user: str,
        debt_asset: str,
        collateral_asset: str,
        requested_debt: int,
        liquidator: str,
        now: int,
    ) -> LiquidationQuote:
        """Close part of an unhealthy position in exchange for bonus collateral."""
        with self._transaction("liquidate") as journal:
            self._require_not_paused("liquidate")
            self._require_amount(requested_debt)
            self._require_account(user)
            self._require_account(liquidator)
            if liquidator == user:
                raise ValidationError("A user cannot liquidate their own position")

            self.accrual.accrue_user_assets(user, now)
            quote = self.liquidation.quote(user, debt_asset, collateral_asset, requested_debt)

            self._pull(journal, debt_asset, liquidator, quote.debt_to_cover)
            self.liquidation.settle(quote)
            self._push(journal, collateral_asset, liquidator, quote.collateral_to_seize)
            self.accrual.update_rates(debt_asset)
            self.accrual.update_rates(collateral_asset)

        logger.info(
            "%s liquidated %s: covered %d %s, seized %d %s",
            liquidator, user, quote.debt_to_cover, debt_asset,
            quote.collateral_to_seize, collateral_asset,
        )
        return quote

    def set_collateral(self, asset: str, user: str, enabled: bool, now: int) -> None:
        """Include or exclude the user's ``asset`` deposit from collateral."""
        with self._transaction("set_collateral"):
            self._require_not_paused("set_collateral")
            self._require_account(user)
            self.registry.get_reserve(asset)
            if not self.registry.has_position(asset, user):
                raise InsufficientBalanceError(f"{user} has no {asset} position")

            self.accrual.accrue_user_assets(user, now)
            position = self.registry.get_position(asset, user)
            position.collateral_chosen = True
            if position.is_collateral == enabled:
                return
            position.is_collateral = enabled
            if not enabled:
                self._require_health(self.risk.health_factor(user), "disabling collateral")

        logger.info("%s set %s collateral=%s", user, asset, enabled)

    def withdraw_fees(self, asset: str, now: int) -> int:
        """Send the reserve's collected fees to the fee recipient."""
        with self._transaction("withdraw_fees") as journal:
            if self.fee_recipient is None:
                raise ValidationError("No fee recipient configured")
            reserve = self.registry.get_reserve(asset)
            amount = reserve.collected_fees
            if amount == 0:
                return 0
            reserve.collected_fees = 0
            self._push(journal, asset, self.fee_recipient, amount)

        logger.info("Sent %d %s fees to %s", amount, asset, self.fee_recipient)
        return amount

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def add_reserve(self, asset: str, config: ReserveConfig, now: int = 0) -> None:
        self._require_unlocked("add_reserve")
        if config.reserve_factor > self.params.max_reserve_factor:
            raise ValidationError(
                f"Reserve factor {config.reserve_factor} above cap {self.params.max_reserve_factor}"
            )
        self.registry.add_reserve(asset, config, now)
        self.accrual.update_rates(asset)
        logger.info("Listed reserve %s", asset)

    def set_reserve_active(self, asset: str, active: bool) -> None:
        self._require_unlocked("set_reserve_active")
        self.registry.get_reserve(asset).active = active

    def set_risk_parameters(self, asset: str, loan_to_value: int, liquidation_threshold: int) -> None:
        self._require_unlocked("set_risk_parameters")
        reserve = self.registry.get_reserve(asset)
        try:
            ReserveConfig(loan_to_value=loan_to_value, liquidation_threshold=liquidation_threshold)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        reserve.loan_to_value = loan_to_value
        reserve.liquidation_threshold = liquidation_threshold

    def set_reserve_factor(self, asset: str, reserve_factor: int) -> None:
        self._require_unlocked("set_reserve_factor")
        if not 0 <= reserve_factor <= self.params.max_reserve_factor:
            raise ValidationError(
                f"Reserve factor must be in [0, {self.params.max_reserve_factor}]"
            )
        self.registry.get_reserve(asset).reserve_factor = reserve_factor
        self.accrual.update_rates(asset)

    def set_max_capacity(self, asset: str, max_capacity: int) -> None:
        self._require_unlocked("set_max_capacity")
        if max_capacity < 0:
            raise ValidationError("max_capacity must be non-negative")
        self.registry.get_reserve(asset).max_capacity = max_capacity

    def set_fee_recipient(self, account: str) -> None:
        self._require_unlocked("set_fee_recipient")
        self._require_account(account)
        self.fee_recipient = account

    def set_paused(self, paused: bool) -> None:
        self._require_unlocked("set_paused")
        self.paused = paused
        logger.info("Pool %s", "paused" if paused else "unpaused")

    def set_emergency_withdraw(self, asset: str, enabled: bool) -> None:
        self._require_unlocked("set_emergency_withdraw")
        self.registry.get_reserve(asset).emergency_withdraw = enabled

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_reserve(self, asset: str) -> Reserve:
        """Copy of the reserve; mutating it does not affect the pool."""
        return dataclasses.replace(self.registry.get_reserve(asset))

    def get_position(self, asset: str, user: str) -> Position:
        return dataclasses.replace(self.registry.get_position(asset, user))

    def user_assets(self, user: str) -> list[str]:
        return self.registry.user_assets(user)

    @contextmanager
    def _projected(self, user: str, as_of: int | None) -> Iterator[None]:
        """Temporarily accrue ``user`` to ``as_of`` for a read-only query."""
        if as_of is None:
            yield
            return
        checkpoint = self.registry.checkpoint()
        try:
            self.accrual.accrue_user_assets(user, as_of)
            yield
        finally:
            self.registry.restore(checkpoint)

    def snapshot(
        self,
        user: str,
        as_of: int | None = None,
        excluded_asset: str | None = None,
        override_deposit: int | None = None,
    ) -> UserSnapshot:
        """Value ``user``'s positions, optionally projected forward to ``as_of``."""
        with self._projected(user, as_of):
            return self.risk.snapshot(user, excluded_asset, override_deposit)

    def health_factor(self, user: str, as_of: int | None = None) -> int:
        return self.snapshot(user, as_of).health_factor

    def available_borrows(self, user: str, as_of: int | None = None) -> int:
        return self.snapshot(user, as_of).available_borrows

    def risk_tier(self, user: str, as_of: int | None = None) -> RiskTier:
        return self.risk.tier_for_health_factor(self.health_factor(user, as_of))

    def simulate_price_change(self, user: str, asset: str, change_bps: int) -> int:
        return self.risk.simulate_price_change(user, asset, change_bps)

    def liquidation_quote(
        self,
        user: str,
        debt_asset: str,
        collateral_asset: str,
        requested_debt: int,
        as_of: int | None = None,
    ) -> LiquidationQuote:
        with self._projected(user, as_of):
            return self.liquidation.quote(user, debt_asset, collateral_asset, requested_debt)
