"""Reserve and position state, and the registry that owns them."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field

from crosslend.data.interfaces import ReserveConfig
from crosslend.protocol.errors import ValidationError


@dataclass
class Reserve:
    """Mutable per-asset pool state.

    Amounts are in the asset's native unit; rates and ratios in bps.
    """

    asset: str
    loan_to_value: int
    liquidation_threshold: int
    reserve_factor: int = 0
    max_capacity: int = 0
    total_deposited: int = 0
    total_borrowed: int = 0
    liquidity_rate: int = 0
    borrow_rate: int = 0
    last_update_time: int = 0
    collected_fees: int = 0
    active: bool = True
    emergency_withdraw: bool = False

    @property
    def available_liquidity(self) -> int:
        """Deposits not currently lent out."""
        return max(0, self.total_deposited - self.total_borrowed)

    @classmethod
    def from_config(cls, asset: str, config: ReserveConfig, now: int = 0) -> "Reserve":
        return cls(
            asset=asset,
            loan_to_value=config.loan_to_value,
            liquidation_threshold=config.liquidation_threshold,
            reserve_factor=config.reserve_factor,
            max_capacity=config.max_capacity,
            last_update_time=now,
        )


@dataclass
class Position:
    """One user's deposit and debt in one asset."""

    deposited_amount: int = 0
    borrowed_amount: int = 0
    last_update_time: int = 0
    is_collateral: bool = False
    # set by the first deposit or an explicit toggle, whichever comes first
    collateral_chosen: bool = False

    @property
    def is_empty(self) -> bool:
        return self.deposited_amount == 0 and self.borrowed_amount == 0


@dataclass
class _RegistryState:
    reserves: dict[str, Reserve] = field(default_factory=dict)
    positions: dict[tuple[str, str], Position] = field(default_factory=dict)
    user_assets: dict[str, list[str]] = field(default_factory=dict)


class ReserveRegistry:
    """Key-value store for reserves, positions and per-user touched assets.

    Reserves are keyed by asset and positions by ``(asset, user)``. Each user
    also has a first-seen list of assets so aggregation only visits assets
    the user has actually used. With ``max_assets_per_user`` set, touching a
    new asset beyond the cap is rejected; otherwise the list is unbounded and
    aggregation cost grows with it.
    """

    def __init__(self, max_assets_per_user: int = 0) -> None:
        self.max_assets_per_user = max_assets_per_user
        self._state = _RegistryState()

    # ------------------------------------------------------------------
    # Reserves
    # ------------------------------------------------------------------

    def add_reserve(self, asset: str, config: ReserveConfig, now: int = 0) -> Reserve:
        if not asset:
            raise ValidationError("Asset identifier must be non-empty")
        if asset in self._state.reserves:
            raise ValidationError(f"Reserve {asset} already exists")
        reserve = Reserve.from_config(asset, config, now)
        self._state.reserves[asset] = reserve
        return reserve

    def has_reserve(self, asset: str) -> bool:
        return asset in self._state.reserves

    def get_reserve(self, asset: str) -> Reserve:
        """Return the live reserve for ``asset``; unknown assets are a validation error."""
        reserve = self._state.reserves.get(asset)
        if reserve is None:
            raise ValidationError(f"Unknown asset: {asset}")
        return reserve

    def assets(self) -> list[str]:
        return list(self._state.reserves)

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------

    def get_position(self, asset: str, user: str) -> Position:
        """Return the position, or an empty detached one if never touched."""
        return self._state.positions.get((asset, user)) or Position()

    def touch_position(self, asset: str, user: str, now: int) -> Position:
        """Return the stored position, creating and tracking it on first use."""
        key = (asset, user)
        position = self._state.positions.get(key)
        if position is not None:
            return position

        self.get_reserve(asset)
        tracked = self._state.user_assets.setdefault(user, [])
        if self.max_assets_per_user and len(tracked) >= self.max_assets_per_user:
            raise ValidationError(
                f"User {user} already uses {len(tracked)} assets "
                f"(limit {self.max_assets_per_user})"
            )
        position = Position(last_update_time=now)
        self._state.positions[key] = position
        tracked.append(asset)
        return position

    def has_position(self, asset: str, user: str) -> bool:
        return (asset, user) in self._state.positions

    def user_assets(self, user: str) -> list[str]:
        return list(self._state.user_assets.get(user, ()))

    def users(self) -> list[str]:
        return list(self._state.user_assets)

    # ------------------------------------------------------------------
    # Rollback
    # ------------------------------------------------------------------

    def checkpoint(self) -> _RegistryState:
        """Deep copy of the whole store, for :meth:`restore`."""
        return copy.deepcopy(self._state)

    def restore(self, checkpoint: _RegistryState) -> None:
        """Replace the store's contents with a prior checkpoint.

        Existing ``Reserve`` and ``Position`` objects are updated in place so
        references held by callers stay valid.
        """
        saved = copy.deepcopy(checkpoint)

        for asset in list(self._state.reserves):
            if asset not in saved.reserves:
                del self._state.reserves[asset]
        for asset, reserve in saved.reserves.items():
            live = self._state.reserves.get(asset)
            if live is None:
                self._state.reserves[asset] = reserve
            else:
                live.__dict__.update(reserve.__dict__)

        for key in list(self._state.positions):
            if key not in saved.positions:
                del self._state.positions[key]
        for key, position in saved.positions.items():
            live_position = self._state.positions.get(key)
            if live_position is None:
                self._state.positions[key] = position
            else:
                live_position.__dict__.update(position.__dict__)

        self._state.user_assets = saved.user_assets
