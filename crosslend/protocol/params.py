"""Protocol-wide parameters and their environment overrides."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from typing import Mapping

from crosslend.data.constants import (
    BPS,
    CLOSE_FACTOR,
    LIQUIDATION_PENALTY,
    MAX_RESERVE_FACTOR,
)
from crosslend.protocol.interest_rate import InterestRateParams

logger = logging.getLogger(__name__)

ENV_PREFIX = "CROSSLEND_"


@dataclass(frozen=True)
class RiskTierParams:
    """Health-factor multiples (in bps of the threshold) separating risk tiers.

    Attributes:
        safe: At or above this multiple the position is SAFE (2.0x).
        medium: At or above this multiple the position is MEDIUM (1.4x).
        high: At or above this multiple the position is HIGH (1.2x);
            anything lower is IMMINENT.
    """

    safe: int = 20_000
    medium: int = 14_000
    high: int = 12_000

    def __post_init__(self) -> None:
        if not self.safe >= self.medium >= self.high >= BPS:
            raise ValueError("risk tiers must satisfy safe >= medium >= high >= 10000")


@dataclass(frozen=True)
class ProtocolParams:
    """Global knobs shared by every reserve.

    Attributes:
        close_factor: Max share of one debt closable per liquidation (bps).
        liquidation_penalty: Bonus granted to liquidators (bps of debt value).
        max_reserve_factor: Upper bound for any reserve's fee share (bps).
        max_assets_per_user: Cap on the touched-asset list, 0 for unbounded.
        rate_params: Interest rate curve used by every reserve.
        risk_tiers: Health factor bands for the risk tier query.
    """

    close_factor: int = CLOSE_FACTOR
    liquidation_penalty: int = LIQUIDATION_PENALTY
    max_reserve_factor: int = MAX_RESERVE_FACTOR
    max_assets_per_user: int = 0
    rate_params: InterestRateParams = field(default_factory=InterestRateParams)
    risk_tiers: RiskTierParams = field(default_factory=RiskTierParams)

    def __post_init__(self) -> None:
        if not 0 < self.close_factor <= BPS:
            raise ValueError(f"close_factor must be in (0, {BPS}]")
        if not 0 <= self.liquidation_penalty <= BPS:
            raise ValueError(f"liquidation_penalty must be in [0, {BPS}]")
        if not 0 <= self.max_reserve_factor <= BPS:
            raise ValueError(f"max_reserve_factor must be in [0, {BPS}]")
        if self.max_assets_per_user < 0:
            raise ValueError("max_assets_per_user must be non-negative")


def _int_overrides(
    env: Mapping[str, str], names: list[str]
) -> dict[str, int]:
    overrides: dict[str, int] = {}
    for name in names:
        key = ENV_PREFIX + name.upper()
        raw = env.get(key)
        if raw is None:
            continue
        try:
            overrides[name] = int(raw.replace("_", ""))
        except ValueError:
            logger.warning("Ignoring %s=%r: not an integer", key, raw)
    return overrides


def params_from_env(
    env: Mapping[str, str] | None = None,
    base: ProtocolParams | None = None,
) -> ProtocolParams:
    """Overlay ``CROSSLEND_*`` environment variables on ``base``.

    Recognised keys mirror the dataclass fields, e.g. ``CROSSLEND_CLOSE_FACTOR``,
    ``CROSSLEND_SLOPE1`` or ``CROSSLEND_OPTIMAL_UTILIZATION``. Malformed or
    out-of-range values are logged and the default is kept.
    """
    env = os.environ if env is None else env
    params = base or ProtocolParams()

    rate_names = [f.name for f in fields(InterestRateParams)]
    rate_overrides = _int_overrides(env, rate_names)
    if rate_overrides:
        try:
            params = replace(params, rate_params=replace(params.rate_params, **rate_overrides))
        except ValueError:
            logger.warning("Invalid rate overrides %s; using defaults", rate_overrides, exc_info=True)

    top_names = ["close_factor", "liquidation_penalty", "max_reserve_factor", "max_assets_per_user"]
    for name, value in _int_overrides(env, top_names).items():
        try:
            params = replace(params, **{name: value})
        except ValueError:
            logger.warning("Invalid %s%s=%d; keeping %d", ENV_PREFIX, name.upper(), value, getattr(params, name))

    return params
