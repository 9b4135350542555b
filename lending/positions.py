"""
positions.py - Scaled User Positions

Each (user, asset) position stores principal in scaled units:

    true_balance(t) = scaled * index(t)

so a deposit of `amount` at index I stores amount / I, and later reads
multiply by whatever the index has grown to. The supply side uses the
reserve's liquidity index, the borrow side its borrow index.

True balances are always derived from the index passed in; nothing here
caches a converted balance.

All functions are pure and must be called with indices already accrued to
the current time.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from decimal import Decimal

from .core import (
    InsufficientBalance, ZERO,
    quantize, to_decimal,
)


@dataclass(frozen=True, slots=True)
class UserPosition:
    """
    Immutable scaled principal of one user in one reserve.

    A position is logically removed once both scaled values return to zero.
    """
    user: str
    asset: str
    scaled_supply: Decimal = ZERO
    scaled_borrow: Decimal = ZERO

    def __post_init__(self):
        """Convert float values to Decimal to ensure type consistency."""
        if not isinstance(self.scaled_supply, Decimal):
            object.__setattr__(self, 'scaled_supply', to_decimal(self.scaled_supply))
        if not isinstance(self.scaled_borrow, Decimal):
            object.__setattr__(self, 'scaled_borrow', to_decimal(self.scaled_borrow))


def empty_position(user: str, asset: str) -> UserPosition:
    return UserPosition(user=user, asset=asset)


def is_empty(position: UserPosition) -> bool:
    return position.scaled_supply == ZERO and position.scaled_borrow == ZERO


def scaled_amount(amount: Decimal, index: Decimal) -> Decimal:
    """Convert a true amount to scaled units at the given index."""
    return amount / index


def true_balance(scaled: Decimal, index: Decimal, decimals: int) -> Decimal:
    """Scaled principal times index, rounded to the asset's precision."""
    return quantize(scaled * index, decimals)


def true_supply_balance(position: UserPosition, liquidity_index: Decimal, decimals: int) -> Decimal:
    return true_balance(position.scaled_supply, liquidity_index, decimals)


def true_borrow_balance(position: UserPosition, borrow_index: Decimal, decimals: int) -> Decimal:
    return true_balance(position.scaled_borrow, borrow_index, decimals)


# ============================================================================
# SUPPLY SIDE
# ============================================================================

def increase_supply(position: UserPosition, amount: Decimal, liquidity_index: Decimal) -> UserPosition:
    """Credit `amount` of supply: scaled_supply += amount / liquidity_index."""
    return replace(
        position,
        scaled_supply=position.scaled_supply + scaled_amount(amount, liquidity_index),
    )


def decrease_supply(
    position: UserPosition,
    amount: Decimal,
    liquidity_index: Decimal,
    decimals: int,
) -> UserPosition:
    """
    Debit `amount` of supply.

    Withdrawing the entire true balance zeroes the scaled principal exactly,
    so no dust is left behind by index rounding.

    Raises:
        InsufficientBalance: If amount exceeds the true supplied balance.
    """
    balance = true_supply_balance(position, liquidity_index, decimals)
    if amount > balance:
        raise InsufficientBalance(
            f"{position.user} {position.asset}: supply {balance} < requested {amount}"
        )
    if amount == balance:
        return replace(position, scaled_supply=ZERO)
    remaining = position.scaled_supply - scaled_amount(amount, liquidity_index)
    return replace(position, scaled_supply=max(remaining, ZERO))


# ============================================================================
# BORROW SIDE
# ============================================================================

def increase_borrow(position: UserPosition, amount: Decimal, borrow_index: Decimal) -> UserPosition:
    """Record `amount` of new debt: scaled_borrow += amount / borrow_index."""
    return replace(
        position,
        scaled_borrow=position.scaled_borrow + scaled_amount(amount, borrow_index),
    )


def decrease_borrow(
    position: UserPosition,
    amount: Decimal,
    borrow_index: Decimal,
    decimals: int,
) -> UserPosition:
    """
    Reduce debt by `amount`; repaying the full true debt clears it exactly.

    Raises:
        InsufficientBalance: If amount exceeds the true debt.
    """
    debt = true_borrow_balance(position, borrow_index, decimals)
    if amount > debt:
        raise InsufficientBalance(
            f"{position.user} {position.asset}: debt {debt} < repayment {amount}"
        )
    if amount == debt:
        return replace(position, scaled_borrow=ZERO)
    remaining = position.scaled_borrow - scaled_amount(amount, borrow_index)
    return replace(position, scaled_borrow=max(remaining, ZERO))
