"""
Core types and pure helpers for the lending ledger.

This module provides the foundational data structures and protocols:
1. Protocols: MarketView for read-only market access, plus the external
   collaborators (PriceOracle, TokenGateway, EventSink)
2. Immutable data structures: Move, ReserveStateChange, PositionChange,
   PendingTransaction, Transaction, LendingEvent
3. Exceptions: LendingError and the validation error taxonomy
4. Fixed-point helpers: amount validation and quantization

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_EVEN, ROUND_DOWN, getcontext
from typing import (
    Dict, List, Optional, Any, Protocol, Tuple, FrozenSet,
    runtime_checkable, TYPE_CHECKING,
)

if TYPE_CHECKING:
    from .reserves import ReserveConfig, ReserveState
    from .positions import UserPosition


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Index and USD arithmetic must be deterministic. The global context is
# configured once at import.
#
# PRECONDITION: No other code should modify the global Decimal context.
# If thread-local contexts are needed, use decimal.localcontext().
#
_LENDING_DECIMAL_CONTEXT = getcontext()
_LENDING_DECIMAL_CONTEXT.prec = 50
_LENDING_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Wallet id standing for funds held by the protocol itself.
POOL_WALLET = "pool"

# Fixed-point scales
PRICE_DECIMALS = 8
USD_DECIMALS = 18
INDEX_DECIMALS = 27
MAX_ASSET_DECIMALS = 36

BPS = Decimal("10000")
SECONDS_PER_YEAR = Decimal("31536000")

ONE = Decimal("1")
ZERO = Decimal("0")
INFINITY = Decimal("Infinity")

DEFAULT_CLOSE_FACTOR = Decimal("0.5")

# Event types (strings, matching the emitted event names)
EVENT_SUPPLY = "Supply"
EVENT_WITHDRAW = "Withdraw"
EVENT_BORROW = "Borrow"
EVENT_REPAY = "Repay"
EVENT_LIQUIDATION = "Liquidation"

EVENT_TYPES = frozenset({
    EVENT_SUPPLY, EVENT_WITHDRAW, EVENT_BORROW, EVENT_REPAY, EVENT_LIQUIDATION,
})


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LendingError(Exception):
    """Base exception for all lending validation failures."""
    pass


class UnknownAsset(LendingError):
    """Raised when an asset has no registered reserve."""
    pass


class InvalidAmount(LendingError):
    """Raised when an amount is non-positive, non-finite, or too precise for the asset."""
    pass


class InsufficientBalance(LendingError):
    """Raised when an amount exceeds the position's true balance."""
    pass


class InsufficientLiquidity(LendingError):
    """Raised when the reserve cannot release the requested amount."""
    pass


class BorrowExceedsLimit(LendingError):
    """Raised when a borrow's USD value exceeds the account's available borrows."""
    pass


class WithdrawBreaksHealthFactor(LendingError):
    """Raised when a withdrawal would leave an indebted account below health factor 1."""
    pass


class SelfCollateralBorrowRejected(LendingError):
    """Raised when borrowing an asset the account currently supplies."""
    pass


class HealthFactorAboveLiquidationThreshold(LendingError):
    """Raised when liquidating an account whose health factor is at least 1."""
    pass


class ExceedsCloseFactor(LendingError):
    """Raised when debt_to_cover exceeds the close factor share of the debt."""
    pass


class InsufficientCollateral(LendingError):
    """Raised when the bonus-adjusted seizure exceeds the borrower's collateral."""
    pass


class ConfigInvariantViolation(LendingError):
    """Raised when reserve or market configuration breaks a risk invariant."""
    pass


class PriceUnavailable(LendingError):
    """Raised when the oracle has no usable price for an asset."""
    pass


class TransferFailed(LendingError):
    """Raised by a token collaborator when a credit or debit cannot settle."""
    pass


class StaleStateError(LendingError):
    """Raised when a pending transaction was built against outdated state."""
    pass


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class MarketView(Protocol):
    """
    Read-only interface to lending market state.

    Pure compute functions accept a MarketView to declare their read-only
    intent. LendingLedger implements this protocol; tests use FakeView.
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the market."""
        ...

    def get_reserve_config(self, asset: str) -> 'ReserveConfig':
        """Return the risk configuration of a reserve. Raises UnknownAsset."""
        ...

    def get_reserve_state(self, asset: str) -> 'ReserveState':
        """Return the last committed state of a reserve. Raises UnknownAsset."""
        ...

    def list_reserves(self) -> List[str]:
        """Return all registered assets, sorted."""
        ...

    def get_position(self, user: str, asset: str) -> 'UserPosition':
        """Return the user's position in a reserve (an empty one if none exists)."""
        ...

    def get_user_positions(self, user: str) -> Dict[str, 'UserPosition']:
        """Return all stored positions of a user keyed by asset."""
        ...


@runtime_checkable
class PriceOracle(Protocol):
    """External price source quoting assets in USD with 8 decimals."""

    def get_price(self, asset: str) -> Decimal:
        ...


@runtime_checkable
class TokenGateway(Protocol):
    """
    External token collaborator.

    Both methods must raise TransferFailed when the wallet's balance or
    allowance cannot cover the transfer.
    """

    def credit(self, wallet: str, asset: str, amount: Decimal) -> None:
        ...

    def debit(self, wallet: str, asset: str, amount: Decimal) -> None:
        ...


@runtime_checkable
class EventSink(Protocol):
    """Observability sink receiving events after a successful commit."""

    def publish(self, event: 'LendingEvent') -> None:
        ...


# ============================================================================
# FIXED-POINT HELPERS
# ============================================================================

def to_decimal(value: Any) -> Decimal:
    """Coerce int/float/str to Decimal via str() to avoid binary float artifacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantum(decimals: int) -> Decimal:
    """Return the smallest step for a given number of decimal places."""
    return Decimal(10) ** -decimals


def quantize(value: Decimal, decimals: int, rounding: str = ROUND_HALF_EVEN) -> Decimal:
    """Round a value to a fixed number of decimal places."""
    return value.quantize(quantum(decimals), rounding=rounding)


def quantize_down(value: Decimal, decimals: int) -> Decimal:
    return value.quantize(quantum(decimals), rounding=ROUND_DOWN)


def quantize_usd(value: Decimal) -> Decimal:
    """Quantize a USD value to USD_DECIMALS; infinities pass through."""
    if value.is_infinite():
        return value
    return quantize(value, USD_DECIMALS)


def bps_to_fraction(bps: int) -> Decimal:
    """Convert basis points to a Decimal fraction (8000 -> 0.8)."""
    return Decimal(bps) / BPS


def validate_amount(amount: Any, decimals: int, asset: str) -> Decimal:
    """
    Validate a token amount against its asset precision.

    Args:
        amount: Candidate amount (Decimal, int, float or str)
        decimals: Decimal places supported by the asset
        asset: Asset symbol, for error messages

    Returns:
        The amount as a Decimal.

    Raises:
        InvalidAmount: If the amount is not a finite positive number or has
            more fractional digits than the asset supports.
    """
    try:
        value = to_decimal(amount)
    except (ArithmeticError, ValueError) as exc:
        raise InvalidAmount(f"{asset}: amount {amount!r} is not a number") from exc
    if not value.is_finite():
        raise InvalidAmount(f"{asset}: amount must be finite, got {value}")
    if value <= ZERO:
        raise InvalidAmount(f"{asset}: amount must be positive, got {value}")
    if value != quantize_down(value, decimals):
        raise InvalidAmount(
            f"{asset}: amount {value} has more than {decimals} decimal places"
        )
    return value


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single token transfer between a wallet and the pool.

    Attributes:
        quantity: Amount of the asset (must be finite and positive).
        asset: Asset symbol being transferred.
        source: Wallet debited.
        dest: Wallet credited.
        reason: Identifier of the operation generating this move.

    Exactly one side must be POOL_WALLET: user funds enter or leave the pool,
    they never move wallet-to-wallet inside the core.
    """
    quantity: Decimal
    asset: str
    source: str
    dest: str
    reason: str

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.asset or not self.asset.strip():
            raise ValueError("Move asset cannot be empty")
        if not isinstance(self.quantity, Decimal):
            raise ValueError(f"Move quantity must be Decimal, got {type(self.quantity)}")
        if not self.quantity.is_finite() or self.quantity <= ZERO:
            raise ValueError(f"Move quantity must be finite and positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")
        if POOL_WALLET not in (self.source, self.dest):
            raise ValueError("Move must have the pool on one side")

    @property
    def is_debit(self) -> bool:
        """True when funds flow from a wallet into the pool."""
        return self.dest == POOL_WALLET

    @property
    def wallet(self) -> str:
        """The non-pool side of the move."""
        return self.source if self.is_debit else self.dest

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.asset}: {self.source}→{self.dest})"


@dataclass(frozen=True, slots=True)
class ReserveStateChange:
    """
    Before/after record of a reserve's state.

    old_state lets the ledger detect that the transaction was built against
    outdated state; new_state is written on commit.
    """
    asset: str
    old_state: 'ReserveState'
    new_state: 'ReserveState'


@dataclass(frozen=True, slots=True)
class PositionChange:
    """Before/after record of a user position; a None new_state removes it."""
    user: str
    asset: str
    old_state: Optional['UserPosition']
    new_state: Optional['UserPosition']


@dataclass(frozen=True, slots=True)
class LendingEvent:
    """
    Observable record of a committed operation.

    Attributes:
        event_type: Supply, Withdraw, Borrow, Repay or Liquidation
        user: Wallet that initiated the operation (borrower for liquidations)
        asset: Asset supplied/withdrawn/borrowed/repaid (debt asset for liquidations)
        amount: Amount moved (debt covered for liquidations)
        counterparty: on_behalf_of / to / liquidator, depending on event type
        collateral_asset: Collateral seized (liquidations only)
        liquidated_collateral_amount: Collateral amount seized (liquidations only)
        sequence_number: Monotonic ordering reference assigned on commit
        timestamp: Ledger time of the commit
    """
    event_type: str
    user: str
    asset: str
    amount: Decimal
    counterparty: Optional[str] = None
    collateral_asset: Optional[str] = None
    liquidated_collateral_amount: Optional[Decimal] = None
    sequence_number: int = -1
    timestamp: Optional[datetime] = None

    def __post_init__(self):
        if self.event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type {self.event_type!r}")

    def involves(self, wallet: str) -> bool:
        return wallet in (self.user, self.counterparty)


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A fully validated state transition before commit - represents INTENT.

    Built by the pure compute_* functions and submitted to
    LendingLedger.execute(). Holds everything the ledger needs to apply the
    operation atomically; nothing in here has touched ledger state yet.

    Attributes:
        operation: Operation name (SUPPLY, WITHDRAW, BORROW, REPAY, LIQUIDATION, ACCRUE)
        reserve_changes: Accrued/updated reserve states
        position_changes: Updated user positions
        moves: Token transfers to settle with the token collaborator
        events: Event drafts, sequenced by the ledger on commit
        timestamp: View time the transaction was built at
    """
    operation: str
    reserve_changes: Tuple[ReserveStateChange, ...]
    position_changes: Tuple[PositionChange, ...]
    moves: Tuple[Move, ...]
    events: Tuple[LendingEvent, ...]
    timestamp: datetime

    def is_empty(self) -> bool:
        """Return True if this pending transaction changes nothing."""
        return not (self.reserve_changes or self.position_changes or self.moves)

    def __repr__(self) -> str:
        return (
            f"PendingTransaction({self.operation}: {len(self.reserve_changes)} reserves, "
            f"{len(self.position_changes)} positions, {len(self.moves)} moves)"
        )


def build_transaction(
    view: MarketView,
    operation: str,
    reserve_changes: Optional[List[ReserveStateChange]] = None,
    position_changes: Optional[List[PositionChange]] = None,
    moves: Optional[List[Move]] = None,
    events: Optional[List[LendingEvent]] = None,
) -> PendingTransaction:
    """
    Build a PendingTransaction stamped with the view's current time.

    Change lists are frozen into tuples; the records themselves are immutable.
    """
    return PendingTransaction(
        operation=operation,
        reserve_changes=tuple(reserve_changes or ()),
        position_changes=tuple(position_changes or ()),
        moves=tuple(moves or ()),
        events=tuple(events or ()),
        timestamp=view.current_time,
    )


def empty_pending_transaction(view: MarketView, operation: str = "NOOP") -> PendingTransaction:
    """Create a PendingTransaction that changes nothing."""
    return build_transaction(view, operation)


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    A committed, immutable record of a state transition - represents FACT.

    Attributes:
        operation: Operation name from the PendingTransaction
        reserve_changes: Reserve states written
        position_changes: Positions written
        moves: Token transfers settled
        events: Events emitted, with sequence numbers assigned
        exec_id: Unique execution identifier (ledger + sequence + time)
        ledger_name: Name of the ledger that executed this
        execution_time: Ledger time of the commit
        sequence_number: Monotonic sequence within the ledger
    """
    operation: str
    reserve_changes: Tuple[ReserveStateChange, ...]
    position_changes: Tuple[PositionChange, ...]
    moves: Tuple[Move, ...]
    events: Tuple[LendingEvent, ...]
    exec_id: str
    ledger_name: str
    execution_time: datetime
    sequence_number: int
    assets: FrozenSet[str] = field(default=None)

    def __post_init__(self):
        if self.assets is None:
            touched = {rc.asset for rc in self.reserve_changes}
            touched.update(m.asset for m in self.moves)
            object.__setattr__(self, 'assets', frozenset(touched))

    def __repr__(self) -> str:
        return (
            f"Transaction({self.exec_id}, {self.operation}, "
            f"assets={sorted(self.assets)}, moves={list(self.moves)})"
        )
