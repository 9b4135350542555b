"""
risk.py - Account Risk Aggregation

Aggregates a user's positions across reserves into one USD-normalized
AccountSnapshot.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASS (explicit output):
   - AccountSnapshot: derived, never persisted, recomputed on every read

2. PURE CALCULATION FUNCTIONS (calculate_*):
   - Take positions, configs, accrued states and prices explicitly
   - No MarketView, no oracle, no hidden state
   - Stress-testable: pass shocked prices or hypothetical positions

3. CONVENIENCE FUNCTION (compute_account_snapshot):
   - Loads positions from the view, projects the touched reserves to the
     current time, fetches prices for assets actually held, then calls the
     pure function

Key Formulas:
    collateral_usd = sum(true_supply_i * price_i)
    debt_usd = sum(true_borrow_i * price_i)
    ltv = sum(collateral_usd_i * ltv_i) / collateral_usd
    liquidation_threshold = sum(collateral_usd_i * threshold_i) / collateral_usd
    health_factor = collateral_usd * liquidation_threshold / debt_usd  (inf if no debt)
    available_borrows_usd = max(0, collateral_usd * ltv - debt_usd)

The RiskEngine enforces no policy; operations decide what to reject.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Mapping, Optional, Tuple

from .core import (
    MarketView, PriceOracle, PriceUnavailable,
    INFINITY, ONE, ZERO, USD_DECIMALS,
    quantize_down, quantize_usd,
)
from .accrual import project_reserve_state
from .positions import UserPosition, true_supply_balance, true_borrow_balance
from .reserves import ReserveConfig, ReserveState


@dataclass(frozen=True, slots=True)
class AccountSnapshot:
    """
    Immutable USD risk picture of one account at one instant.

    USD fields and the health factor carry 18 decimals; ltv and
    liquidation_threshold are collateral-weighted fractions (0.8 = 80%).
    """
    total_collateral_usd: Decimal
    total_debt_usd: Decimal
    available_borrows_usd: Decimal
    liquidation_threshold: Decimal
    ltv: Decimal
    health_factor: Decimal

    @property
    def is_liquidatable(self) -> bool:
        return self.health_factor < ONE

    @property
    def has_debt(self) -> bool:
        return self.total_debt_usd > ZERO


EMPTY_SNAPSHOT = AccountSnapshot(
    total_collateral_usd=ZERO,
    total_debt_usd=ZERO,
    available_borrows_usd=ZERO,
    liquidation_threshold=ZERO,
    ltv=ZERO,
    health_factor=INFINITY,
)


def calculate_usd_value(amount: Decimal, price: Decimal) -> Decimal:
    """
    USD value of a token amount at an oracle price.

    Amounts are whole-token Decimals already bounded by the asset's
    decimals, so no base-unit rescaling is needed; the result is
    quantized to USD_DECIMALS.
    """
    return quantize_usd(amount * price)


def calculate_health_factor(
    total_collateral_usd: Decimal,
    liquidation_threshold: Decimal,
    total_debt_usd: Decimal,
) -> Decimal:
    """
    collateral * threshold / debt, or Infinity when there is no debt.

    Truncated to USD_DECIMALS so a ratio just below 1 never reads as 1.
    """
    if total_debt_usd <= ZERO:
        return INFINITY
    return quantize_down(total_collateral_usd * liquidation_threshold / total_debt_usd, USD_DECIMALS)


def calculate_account_snapshot(
    positions: Mapping[str, UserPosition],
    configs: Mapping[str, ReserveConfig],
    states: Mapping[str, ReserveState],
    prices: Mapping[str, Decimal],
) -> AccountSnapshot:
    """
    Aggregate positions into an AccountSnapshot.

    PURE FUNCTION - All inputs explicit, no hidden state.

    Args:
        positions: Asset -> UserPosition for one user
        configs: Asset -> ReserveConfig for every asset in positions
        states: Asset -> ReserveState already accrued to the snapshot time
        prices: Asset -> USD price; only needed for assets with a nonzero balance

    Returns:
        AccountSnapshot

    Raises:
        PriceUnavailable: If a held asset has no price.

    Example:
        # Stress test: what if every collateral price drops 20%?
        stressed = {k: v * Decimal("0.8") for k, v in prices.items()}
        snap = calculate_account_snapshot(positions, configs, states, stressed)
    """
    collateral_usd = ZERO
    debt_usd = ZERO
    weighted_ltv = ZERO
    weighted_threshold = ZERO

    for asset in sorted(positions):
        position = positions[asset]
        config = configs[asset]
        state = states[asset]
        supplied = true_supply_balance(position, state.liquidity_index, config.decimals)
        borrowed = true_borrow_balance(position, state.borrow_index, config.decimals)
        if supplied == ZERO and borrowed == ZERO:
            continue
        if asset not in prices:
            raise PriceUnavailable(f"Missing price for {asset}")
        price = prices[asset]

        if supplied > ZERO:
            value = calculate_usd_value(supplied, price)
            collateral_usd += value
            weighted_ltv += value * config.ltv_fraction
            weighted_threshold += value * config.liquidation_threshold_fraction
        if borrowed > ZERO:
            debt_usd += calculate_usd_value(borrowed, price)

    if collateral_usd > ZERO:
        ltv = weighted_ltv / collateral_usd
        liquidation_threshold = weighted_threshold / collateral_usd
    else:
        ltv = ZERO
        liquidation_threshold = ZERO

    # weighted_ltv == collateral_usd * ltv
    available = max(ZERO, weighted_ltv - debt_usd)
    health_factor = calculate_health_factor(collateral_usd, liquidation_threshold, debt_usd)

    return AccountSnapshot(
        total_collateral_usd=quantize_usd(collateral_usd),
        total_debt_usd=quantize_usd(debt_usd),
        available_borrows_usd=quantize_usd(available),
        liquidation_threshold=quantize_usd(liquidation_threshold),
        ltv=quantize_usd(ltv),
        health_factor=health_factor,
    )


# ============================================================================
# ADAPTER FUNCTIONS - Bridge Between MarketView/Oracle and Pure Functions
# ============================================================================

def load_account(
    view: MarketView,
    user: str,
    position_overrides: Optional[Mapping[str, UserPosition]] = None,
    state_overrides: Optional[Mapping[str, ReserveState]] = None,
) -> Tuple[Dict[str, UserPosition], Dict[str, ReserveConfig], Dict[str, ReserveState]]:
    """
    Load a user's positions with their configs and current reserve states.

    Overrides substitute tentative (not yet committed) positions or reserve
    states, which is how operations evaluate "what if this commits".
    Reserves not overridden are projected to view.current_time.
    """
    positions = dict(view.get_user_positions(user))
    if position_overrides:
        positions.update(position_overrides)

    configs: Dict[str, ReserveConfig] = {}
    states: Dict[str, ReserveState] = {}
    for asset in positions:
        configs[asset] = view.get_reserve_config(asset)
        if state_overrides and asset in state_overrides:
            states[asset] = state_overrides[asset]
        else:
            states[asset] = project_reserve_state(view, asset)
    return positions, configs, states


def fetch_prices(
    oracle: PriceOracle,
    positions: Mapping[str, UserPosition],
    configs: Mapping[str, ReserveConfig],
    states: Mapping[str, ReserveState],
) -> Dict[str, Decimal]:
    """Query the oracle only for assets with a nonzero true balance."""
    prices: Dict[str, Decimal] = {}
    for asset in sorted(positions):
        position = positions[asset]
        config = configs[asset]
        state = states[asset]
        if (true_supply_balance(position, state.liquidity_index, config.decimals) > ZERO
                or true_borrow_balance(position, state.borrow_index, config.decimals) > ZERO):
            prices[asset] = oracle.get_price(asset)
    return prices


def compute_account_snapshot(
    view: MarketView,
    oracle: PriceOracle,
    user: str,
    position_overrides: Optional[Mapping[str, UserPosition]] = None,
    state_overrides: Optional[Mapping[str, ReserveState]] = None,
) -> AccountSnapshot:
    """
    Compute a fresh AccountSnapshot for a user at view.current_time.

    This is a convenience function that loads state and calls the pure
    calculate_account_snapshot() function.

    Example:
        snap = compute_account_snapshot(ledger, oracle, "alice")
        if snap.health_factor < 1:
            print("alice can be liquidated")
    """
    positions, configs, states = load_account(view, user, position_overrides, state_overrides)
    if not positions:
        return EMPTY_SNAPSHOT
    prices = fetch_prices(oracle, positions, configs, states)
    return calculate_account_snapshot(positions, configs, states, prices)
