"""
reserves.py - Reserve Configuration and Aggregate State

A reserve is the per-asset pool: immutable risk configuration (ReserveConfig)
plus an aggregate state snapshot (ReserveState) that the ledger replaces on
every committed change.

Aggregate totals are kept in scaled units, the same way positions are:

    total_supplied = (total_scaled_supply + treasury_scaled) * liquidity_index
    total_borrowed = total_scaled_borrow * borrow_index

so the totals grow with interest without touching any holder.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from .core import (
    ConfigInvariantViolation, UnknownAsset,
    BPS, ONE, ZERO, MAX_ASSET_DECIMALS,
    bps_to_fraction, quantize,
)
from .interest_rate import RateParams, validate_rate_params


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class ReserveConfig:
    """
    Immutable risk configuration of a reserve, fixed at registration.

    Percentages are basis points: ltv=8000 means 80%, liquidation_bonus=500
    means the liquidator receives 5% extra collateral.
    """
    asset: str
    decimals: int
    ltv: int
    liquidation_threshold: int
    liquidation_bonus: int
    rate_params: RateParams

    @property
    def ltv_fraction(self) -> Decimal:
        return bps_to_fraction(self.ltv)

    @property
    def liquidation_threshold_fraction(self) -> Decimal:
        return bps_to_fraction(self.liquidation_threshold)

    @property
    def liquidation_bonus_fraction(self) -> Decimal:
        return bps_to_fraction(self.liquidation_bonus)


@dataclass(frozen=True, slots=True)
class ReserveState:
    """
    Immutable snapshot of a reserve's aggregate state.

    Each change creates a NEW instance (value semantics), which lets pure
    functions build the next state and hand it to the ledger for commit.
    """
    total_scaled_supply: Decimal
    total_scaled_borrow: Decimal
    treasury_scaled: Decimal
    liquidity_index: Decimal
    borrow_index: Decimal
    last_update_timestamp: datetime

    @property
    def total_supplied(self) -> Decimal:
        """True supplied amount, including the treasury share (unrounded)."""
        return (self.total_scaled_supply + self.treasury_scaled) * self.liquidity_index

    @property
    def total_borrowed(self) -> Decimal:
        """True borrowed amount (unrounded)."""
        return self.total_scaled_borrow * self.borrow_index

    @property
    def available_liquidity(self) -> Decimal:
        return self.total_supplied - self.total_borrowed

    @property
    def accrued_to_treasury(self) -> Decimal:
        return self.treasury_scaled * self.liquidity_index


def initial_reserve_state(timestamp: datetime) -> ReserveState:
    """Fresh reserve: empty totals, both indices at 1."""
    return ReserveState(
        total_scaled_supply=ZERO,
        total_scaled_borrow=ZERO,
        treasury_scaled=ZERO,
        liquidity_index=ONE,
        borrow_index=ONE,
        last_update_timestamp=timestamp,
    )


def reserve_totals(config: ReserveConfig, state: ReserveState) -> Dict[str, Decimal]:
    """True totals quantized to the asset's decimals."""
    return {
        'total_supplied': quantize(state.total_supplied, config.decimals),
        'total_borrowed': quantize(state.total_borrowed, config.decimals),
        'available_liquidity': quantize(state.available_liquidity, config.decimals),
        'accrued_to_treasury': quantize(state.accrued_to_treasury, config.decimals),
    }


# ============================================================================
# RESERVE CREATION
# ============================================================================

def create_reserve_config(
    asset: str,
    decimals: int,
    ltv: int,
    liquidation_threshold: int,
    liquidation_bonus: int,
    rate_params: RateParams,
) -> ReserveConfig:
    """
    Create a validated reserve configuration.

    Args:
        asset: Asset symbol (e.g., "USDC")
        decimals: Decimal precision of the asset (0-36)
        ltv: Loan-to-value in basis points
        liquidation_threshold: Liquidation threshold in basis points
        liquidation_bonus: Liquidator bonus in basis points
        rate_params: Interest rate curve for this reserve

    Raises:
        ConfigInvariantViolation: If ltv >= liquidation_threshold, the
            threshold exceeds 100%, any percentage is negative, decimals are
            out of range, or the rate curve is invalid.

    Example:
        usdc = create_reserve_config(
            asset="USDC", decimals=6,
            ltv=8000, liquidation_threshold=8500, liquidation_bonus=500,
            rate_params=create_rate_params(),
        )
    """
    if not asset or not asset.strip():
        raise ConfigInvariantViolation("asset cannot be empty")
    if isinstance(decimals, bool) or not isinstance(decimals, int):
        raise ConfigInvariantViolation(f"{asset}: decimals must be an int, got {decimals!r}")
    if not (0 <= decimals <= MAX_ASSET_DECIMALS):
        raise ConfigInvariantViolation(
            f"{asset}: decimals must be in [0, {MAX_ASSET_DECIMALS}], got {decimals}"
        )
    for name, value in (
        ('ltv', ltv),
        ('liquidation_threshold', liquidation_threshold),
        ('liquidation_bonus', liquidation_bonus),
    ):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigInvariantViolation(f"{asset}: {name} must be int basis points, got {value!r}")
        if value < 0:
            raise ConfigInvariantViolation(f"{asset}: {name} cannot be negative, got {value}")
    if ltv >= liquidation_threshold:
        raise ConfigInvariantViolation(
            f"{asset}: ltv ({ltv}) must be below liquidation_threshold ({liquidation_threshold})"
        )
    if liquidation_threshold > BPS:
        raise ConfigInvariantViolation(
            f"{asset}: liquidation_threshold ({liquidation_threshold}) exceeds 100%"
        )
    validate_rate_params(rate_params)

    return ReserveConfig(
        asset=asset,
        decimals=decimals,
        ltv=ltv,
        liquidation_threshold=liquidation_threshold,
        liquidation_bonus=liquidation_bonus,
        rate_params=rate_params,
    )


# ============================================================================
# REGISTRY
# ============================================================================

class ReserveRegistry:
    """
    Holds every reserve's configuration and current aggregate state.

    Configurations are immutable once registered. States are replaced only
    through LendingLedger's commit path (set_state).
    """

    def __init__(self):
        self._configs: Dict[str, ReserveConfig] = {}
        self._states: Dict[str, ReserveState] = {}

    def register(
        self,
        asset: str,
        decimals: int,
        ltv: int,
        liquidation_threshold: int,
        liquidation_bonus: int,
        rate_params: RateParams,
        timestamp: datetime,
    ) -> ReserveConfig:
        """
        Register a new reserve with indices at 1 and empty totals.

        Raises:
            ConfigInvariantViolation: If the asset is already registered or the
                configuration is invalid (see create_reserve_config).
        """
        if asset in self._configs:
            raise ConfigInvariantViolation(f"Reserve {asset} already registered")
        config = create_reserve_config(
            asset, decimals, ltv, liquidation_threshold, liquidation_bonus, rate_params,
        )
        self._configs[asset] = config
        self._states[asset] = initial_reserve_state(timestamp)
        return config

    def get_config(self, asset: str) -> ReserveConfig:
        try:
            return self._configs[asset]
        except KeyError:
            raise UnknownAsset(f"Reserve {asset} not registered") from None

    def get_state(self, asset: str) -> ReserveState:
        try:
            return self._states[asset]
        except KeyError:
            raise UnknownAsset(f"Reserve {asset} not registered") from None

    def set_state(self, asset: str, state: ReserveState) -> None:
        if asset not in self._configs:
            raise UnknownAsset(f"Reserve {asset} not registered")
        self._states[asset] = state

    def is_registered(self, asset: str) -> bool:
        return asset in self._configs

    def list_assets(self) -> List[str]:
        return sorted(self._configs)

    def copy(self) -> 'ReserveRegistry':
        """Shallow copy; configs and states are immutable."""
        cloned = ReserveRegistry()
        cloned._configs = dict(self._configs)
        cloned._states = dict(self._states)
        return cloned

    def __contains__(self, asset: Optional[str]) -> bool:
        return asset in self._configs

    def __len__(self) -> int:
        return len(self._configs)
