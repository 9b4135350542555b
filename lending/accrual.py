"""
accrual.py - Liquidity and Borrow Index Accrual

Each reserve carries two running indices. Interest is applied to everyone at
once by growing the indices; balances are converted at read time, so accrual
is O(1) regardless of how many accounts hold the asset.

Accrual is linear per elapsed interval:

    liquidity_index' = liquidity_index * (1 + supply_rate * elapsed)
    borrow_index'    = borrow_index    * (1 + borrow_rate * elapsed)

using the rates at the utilization observed before the interval.

Borrow interest not paid out to suppliers (the reserve-factor share) is
credited to the treasury as scaled supply, which keeps
total_supplied - total_borrowed unchanged by accrual.
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
import logging

from .core import (
    MarketView, PendingTransaction, ReserveStateChange,
    INDEX_DECIMALS, ONE, ZERO,
    build_transaction, empty_pending_transaction, quantize,
)
from .interest_rate import (
    calculate_utilization, calculate_borrow_rate, calculate_supply_rate,
)
from .reserves import ReserveConfig, ReserveState

logger = logging.getLogger(__name__)


def elapsed_seconds(since: datetime, now: datetime) -> Decimal:
    """Elapsed wall time between two instants, in seconds as a Decimal."""
    return Decimal(str((now - since).total_seconds()))


def calculate_accrued_state(
    config: ReserveConfig,
    state: ReserveState,
    now: datetime,
) -> ReserveState:
    """
    Advance a reserve's indices to `now`.

    PURE FUNCTION - All inputs explicit, no hidden state.

    Args:
        config: Reserve configuration (rate curve, reserve factor)
        state: Current reserve state
        now: Target time

    Returns:
        New ReserveState with accrued indices and treasury share, or the same
        state if no time has elapsed.

    Raises:
        ValueError: If now is earlier than the last update.
    """
    elapsed = elapsed_seconds(state.last_update_timestamp, now)
    if elapsed < ZERO:
        raise ValueError(
            f"Cannot accrue {config.asset} backwards: {now} < {state.last_update_timestamp}"
        )
    if elapsed == ZERO:
        return state

    params = config.rate_params
    utilization = calculate_utilization(state.total_borrowed, state.total_supplied)
    borrow_rate = calculate_borrow_rate(params, utilization)
    supply_rate = calculate_supply_rate(params, utilization)

    liquidity_index = quantize(
        state.liquidity_index * (ONE + supply_rate * elapsed), INDEX_DECIMALS
    )
    borrow_index = quantize(
        state.borrow_index * (ONE + borrow_rate * elapsed), INDEX_DECIMALS
    )

    # Treasury takes whatever borrow interest was not distributed to suppliers
    # (the reserve factor share, plus index rounding residue).
    borrow_interest = state.total_scaled_borrow * (borrow_index - state.borrow_index)
    supplier_interest = (
        (state.total_scaled_supply + state.treasury_scaled)
        * (liquidity_index - state.liquidity_index)
    )
    treasury_scaled = state.treasury_scaled
    if borrow_interest > supplier_interest:
        treasury_scaled += (borrow_interest - supplier_interest) / liquidity_index

    return replace(
        state,
        liquidity_index=liquidity_index,
        borrow_index=borrow_index,
        treasury_scaled=treasury_scaled,
        last_update_timestamp=now,
    )


def project_reserve_state(view: MarketView, asset: str) -> ReserveState:
    """
    Reserve state accrued to view.current_time, without committing it.

    Risk reads use this so they always see current indices even for reserves
    nobody has touched since the clock moved.
    """
    config = view.get_reserve_config(asset)
    state = view.get_reserve_state(asset)
    return calculate_accrued_state(config, state, view.current_time)


def compute_accrual(view: MarketView, asset: str) -> PendingTransaction:
    """
    Accrue a single reserve up to the view's current time.

    Returns:
        PendingTransaction holding only the reserve state change, or an
        empty one if no time has elapsed since the last update.

    Example:
        ledger.advance_time(ledger.current_time + timedelta(days=30))
        ledger.execute(compute_accrual(ledger, "USDC"))
    """
    old_state = view.get_reserve_state(asset)
    new_state = project_reserve_state(view, asset)
    if new_state == old_state:
        return empty_pending_transaction(view, "ACCRUE")

    logger.debug(
        "accrue %s: liquidity_index %s -> %s, borrow_index %s -> %s",
        asset, old_state.liquidity_index, new_state.liquidity_index,
        old_state.borrow_index, new_state.borrow_index,
    )
    return build_transaction(
        view, "ACCRUE",
        reserve_changes=[ReserveStateChange(asset=asset, old_state=old_state, new_state=new_state)],
    )
