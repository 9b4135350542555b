"""
operations.py - Supply, Withdraw, Borrow, Repay and Liquidate

Every balance-changing operation is a pure validate-then-build function that
returns a PendingTransaction; LendingLedger.execute() is the only thing that
commits it.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. PURE COMPUTE FUNCTIONS (compute_*):
   - Take (view, [oracle], user, asset, amount, ...) explicitly
   - Accrue every touched reserve to view.current_time BEFORE reading any
     balance or index
   - Validate against the accrued state, raising a LendingError subclass
   - Return the accrued + updated reserve state(s), position change(s),
     token moves and exactly one event draft

2. UNIFIED DISPATCHER (transact):
   - Routes an event type string to the matching compute_* function

3. FACADE (OperationProcessor):
   - Holds the ledger, oracle and collaborators
   - Builds, executes and logs each operation
   - Exposes the read-only query surface

Scaled deltas:
    Reserve totals move by exactly (new_position.scaled - old_position.scaled),
    so a full withdrawal or repayment that zeroes a position also removes its
    whole scaled share from the reserve.
"""

from __future__ import annotations
from dataclasses import replace
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional
import logging

from .core import (
    MarketView, PriceOracle, TokenGateway, EventSink,
    PendingTransaction, Transaction, Move, ReserveStateChange, PositionChange, LendingEvent,
    LendingError, ConfigInvariantViolation, InvalidAmount,
    InsufficientBalance, InsufficientLiquidity, BorrowExceedsLimit,
    WithdrawBreaksHealthFactor, SelfCollateralBorrowRejected,
    HealthFactorAboveLiquidationThreshold, ExceedsCloseFactor, InsufficientCollateral,
    POOL_WALLET, DEFAULT_CLOSE_FACTOR, INDEX_DECIMALS, ONE, ZERO,
    EVENT_SUPPLY, EVENT_WITHDRAW, EVENT_BORROW, EVENT_REPAY, EVENT_LIQUIDATION,
    build_transaction, quantize, quantize_down, to_decimal, validate_amount,
)
from .accrual import calculate_accrued_state, compute_accrual, project_reserve_state
from .interest_rate import (
    calculate_utilization, calculate_borrow_apr, calculate_supply_apr,
    calculate_borrow_rate, calculate_supply_rate, rate_params_to_dict,
)
from .positions import (
    UserPosition, empty_position, is_empty,
    increase_supply, decrease_supply, increase_borrow, decrease_borrow,
    true_supply_balance, true_borrow_balance,
)
from .reserves import ReserveConfig, ReserveState, reserve_totals
from .risk import AccountSnapshot, calculate_usd_value, compute_account_snapshot

logger = logging.getLogger(__name__)


# ============================================================================
# HELPERS
# ============================================================================

def validate_close_factor(close_factor: Any) -> Decimal:
    """Close factor must be a fraction in (0, 1]."""
    try:
        value = to_decimal(close_factor)
    except (ArithmeticError, ValueError) as exc:
        raise ConfigInvariantViolation(f"close_factor must be a number, got {close_factor!r}") from exc
    if not value.is_finite() or not (ZERO < value <= ONE):
        raise ConfigInvariantViolation(f"close_factor must be in (0, 1], got {close_factor}")
    return value


def _stored_position(view: MarketView, user: str, asset: str) -> Optional[UserPosition]:
    """The committed position, or None when the user has never touched the reserve."""
    return view.get_user_positions(user).get(asset)


def _accrued(view: MarketView, asset: str):
    config = view.get_reserve_config(asset)
    committed = view.get_reserve_state(asset)
    return config, committed, calculate_accrued_state(config, committed, view.current_time)


def _apply_position_delta(state: ReserveState, old: UserPosition, new: UserPosition) -> ReserveState:
    """Move the reserve's scaled totals by the position's scaled delta."""
    return replace(
        state,
        total_scaled_supply=max(
            ZERO, state.total_scaled_supply + (new.scaled_supply - old.scaled_supply)
        ),
        total_scaled_borrow=max(
            ZERO, state.total_scaled_borrow + (new.scaled_borrow - old.scaled_borrow)
        ),
    )


def _position_change(
    user: str,
    asset: str,
    stored: Optional[UserPosition],
    new: UserPosition,
) -> PositionChange:
    return PositionChange(
        user=user,
        asset=asset,
        old_state=stored,
        new_state=None if is_empty(new) else new,
    )


def _available_liquidity(config: ReserveConfig, state: ReserveState) -> Decimal:
    """Liquidity the pool can release, rounded down to the asset's precision."""
    # strip division residue at index precision before flooring
    cleaned = quantize(state.available_liquidity, INDEX_DECIMALS)
    return quantize_down(cleaned, config.decimals)


# ============================================================================
# SUPPLY / WITHDRAW
# ============================================================================

def compute_supply(
    view: MarketView,
    user: str,
    asset: str,
    amount: Any,
    on_behalf_of: Optional[str] = None,
) -> PendingTransaction:
    """
    Deposit `amount` of `asset` from `user`, credited to `on_behalf_of`.

    Args:
        view: Read-only market access
        user: Wallet paying the tokens in
        asset: Reserve asset
        amount: Whole-token amount
        on_behalf_of: Account credited with the supply (defaults to user)

    Raises:
        UnknownAsset: If the reserve is not registered.
        InvalidAmount: If the amount is not positive or too precise.

    Example:
        pending = compute_supply(ledger, "alice", "USDC", Decimal("1000"))
        ledger.execute(pending)
    """
    config, committed, state = _accrued(view, asset)
    amount = validate_amount(amount, config.decimals, asset)
    beneficiary = on_behalf_of or user

    stored = _stored_position(view, beneficiary, asset)
    old_position = stored or empty_position(beneficiary, asset)
    new_position = increase_supply(old_position, amount, state.liquidity_index)
    new_state = _apply_position_delta(state, old_position, new_position)

    return build_transaction(
        view, "SUPPLY",
        reserve_changes=[ReserveStateChange(asset, committed, new_state)],
        position_changes=[_position_change(beneficiary, asset, stored, new_position)],
        moves=[Move(amount, asset, user, POOL_WALLET, "SUPPLY")],
        events=[LendingEvent(EVENT_SUPPLY, user, asset, amount, counterparty=beneficiary)],
    )


def compute_withdraw(
    view: MarketView,
    oracle: PriceOracle,
    user: str,
    asset: str,
    amount: Any,
    to: Optional[str] = None,
) -> PendingTransaction:
    """
    Withdraw `amount` of supplied `asset`, paid out to `to`.

    The account is re-evaluated with the tentative position; an indebted
    account may not end below health factor 1.

    Raises:
        UnknownAsset, InvalidAmount
        InsufficientBalance: If amount exceeds the true supplied balance.
        InsufficientLiquidity: If the reserve cannot release the amount.
        WithdrawBreaksHealthFactor: If the account would become liquidatable.
        PriceUnavailable: If a held asset has no price.
    """
    config, committed, state = _accrued(view, asset)
    amount = validate_amount(amount, config.decimals, asset)

    stored = _stored_position(view, user, asset)
    old_position = stored or empty_position(user, asset)
    new_position = decrease_supply(old_position, amount, state.liquidity_index, config.decimals)

    available = _available_liquidity(config, state)
    if amount > available:
        raise InsufficientLiquidity(f"{asset}: available {available} < requested {amount}")

    new_state = _apply_position_delta(state, old_position, new_position)
    snapshot = compute_account_snapshot(
        view, oracle, user,
        position_overrides={asset: new_position},
        state_overrides={asset: new_state},
    )
    if snapshot.has_debt and snapshot.health_factor < ONE:
        raise WithdrawBreaksHealthFactor(
            f"{user}: withdrawing {amount} {asset} leaves health factor {snapshot.health_factor}"
        )

    recipient = to or user
    return build_transaction(
        view, "WITHDRAW",
        reserve_changes=[ReserveStateChange(asset, committed, new_state)],
        position_changes=[_position_change(user, asset, stored, new_position)],
        moves=[Move(amount, asset, POOL_WALLET, recipient, "WITHDRAW")],
        events=[LendingEvent(EVENT_WITHDRAW, user, asset, amount, counterparty=recipient)],
    )


# ============================================================================
# BORROW / REPAY
# ============================================================================

def compute_borrow(
    view: MarketView,
    oracle: PriceOracle,
    user: str,
    asset: str,
    amount: Any,
    to: Optional[str] = None,
) -> PendingTransaction:
    """
    Borrow `amount` of `asset` against the account's collateral.

    Checks, in order: self-collateral, borrow capacity, reserve liquidity.

    Raises:
        UnknownAsset, InvalidAmount
        SelfCollateralBorrowRejected: If the user currently supplies this asset.
        BorrowExceedsLimit: If amount * price exceeds available_borrows_usd.
        InsufficientLiquidity: If the reserve cannot lend the amount.
        PriceUnavailable: If a needed price is missing.

    Example:
        # 1000 USDC collateral at 80% LTV -> up to 800 USD of DAI
        pending = compute_borrow(ledger, oracle, "alice", "DAI", Decimal("800"))
    """
    config, committed, state = _accrued(view, asset)
    amount = validate_amount(amount, config.decimals, asset)

    stored = _stored_position(view, user, asset)
    old_position = stored or empty_position(user, asset)
    if true_supply_balance(old_position, state.liquidity_index, config.decimals) > ZERO:
        raise SelfCollateralBorrowRejected(f"{user} supplies {asset} and cannot borrow it")

    snapshot = compute_account_snapshot(view, oracle, user, state_overrides={asset: state})
    value = calculate_usd_value(amount, oracle.get_price(asset))
    if value > snapshot.available_borrows_usd:
        raise BorrowExceedsLimit(
            f"{user}: borrow of {amount} {asset} ({value} USD) exceeds "
            f"available {snapshot.available_borrows_usd} USD"
        )

    available = _available_liquidity(config, state)
    if amount > available:
        raise InsufficientLiquidity(f"{asset}: available {available} < requested {amount}")

    new_position = increase_borrow(old_position, amount, state.borrow_index)
    new_state = _apply_position_delta(state, old_position, new_position)

    recipient = to or user
    return build_transaction(
        view, "BORROW",
        reserve_changes=[ReserveStateChange(asset, committed, new_state)],
        position_changes=[_position_change(user, asset, stored, new_position)],
        moves=[Move(amount, asset, POOL_WALLET, recipient, "BORROW")],
        events=[LendingEvent(EVENT_BORROW, user, asset, amount, counterparty=recipient)],
    )


def compute_repay(
    view: MarketView,
    user: str,
    asset: str,
    amount: Any,
    on_behalf_of: Optional[str] = None,
) -> PendingTransaction:
    """
    Repay up to `amount` of `on_behalf_of`'s debt, paid by `user`.

    Overpayment is capped at the true debt; the event and the token move
    carry the amount actually repaid.

    Raises:
        UnknownAsset, InvalidAmount
        InsufficientBalance: If the debtor owes nothing in this asset.
    """
    config, committed, state = _accrued(view, asset)
    amount = validate_amount(amount, config.decimals, asset)
    debtor = on_behalf_of or user

    stored = _stored_position(view, debtor, asset)
    old_position = stored or empty_position(debtor, asset)
    debt = true_borrow_balance(old_position, state.borrow_index, config.decimals)
    if debt == ZERO:
        raise InsufficientBalance(f"{debtor} has no {asset} debt to repay")

    repaid = min(amount, debt)
    new_position = decrease_borrow(old_position, repaid, state.borrow_index, config.decimals)
    new_state = _apply_position_delta(state, old_position, new_position)

    return build_transaction(
        view, "REPAY",
        reserve_changes=[ReserveStateChange(asset, committed, new_state)],
        position_changes=[_position_change(debtor, asset, stored, new_position)],
        moves=[Move(repaid, asset, user, POOL_WALLET, "REPAY")],
        events=[LendingEvent(EVENT_REPAY, user, asset, repaid, counterparty=debtor)],
    )


# ============================================================================
# LIQUIDATION
# ============================================================================

def calculate_seized_collateral(
    debt_to_cover: Decimal,
    debt_price: Decimal,
    collateral_price: Decimal,
    liquidation_bonus: Decimal,
    collateral_decimals: int,
) -> Decimal:
    """
    Bonus-adjusted collateral owed to a liquidator.

    PURE FUNCTION:
        seized = debt_to_cover * debt_price * (1 + bonus) / collateral_price

    rounded down to the collateral's precision so the pool never pays out
    more than the bonus.

    Args:
        debt_to_cover: Debt repaid by the liquidator
        debt_price: USD price of the debt asset
        collateral_price: USD price of the collateral asset
        liquidation_bonus: Bonus fraction (0.05 = 5%)
        collateral_decimals: Precision of the collateral asset
    """
    raw = debt_to_cover * debt_price * (ONE + liquidation_bonus) / collateral_price
    return quantize_down(raw, collateral_decimals)


def compute_liquidation(
    view: MarketView,
    oracle: PriceOracle,
    liquidator: str,
    user: str,
    debt_asset: str,
    collateral_asset: str,
    debt_to_cover: Any,
    close_factor: Any = DEFAULT_CLOSE_FACTOR,
) -> PendingTransaction:
    """
    Repay part of an unhealthy account's debt in exchange for its collateral.

    The liquidator pays `debt_to_cover` of `debt_asset` into the pool and
    receives the bonus-adjusted amount of `collateral_asset`. When both assets
    are the same, both legs apply to one reserve state and one position.

    Raises:
        UnknownAsset, InvalidAmount, PriceUnavailable
        ConfigInvariantViolation: If close_factor is outside (0, 1].
        HealthFactorAboveLiquidationThreshold: If health factor >= 1.
        ExceedsCloseFactor: If debt_to_cover > close_factor * debt.
        InsufficientCollateral: If the seizure exceeds the user's collateral.
        InsufficientLiquidity: If the collateral reserve cannot release it.

    Example:
        # Debt 1000 USDC, close factor 50% -> at most 500 USDC per call
        pending = compute_liquidation(
            ledger, oracle, "liquidator", "bob",
            debt_asset="USDC", collateral_asset="WETH",
            debt_to_cover=Decimal("500"),
        )
    """
    close_factor = validate_close_factor(close_factor)
    debt_config, debt_committed, debt_state = _accrued(view, debt_asset)
    collateral_config, collateral_committed, collateral_state = _accrued(view, collateral_asset)
    debt_to_cover = validate_amount(debt_to_cover, debt_config.decimals, debt_asset)
    same_asset = debt_asset == collateral_asset

    snapshot = compute_account_snapshot(
        view, oracle, user,
        state_overrides={debt_asset: debt_state, collateral_asset: collateral_state},
    )
    if not snapshot.is_liquidatable:
        raise HealthFactorAboveLiquidationThreshold(
            f"{user}: health factor {snapshot.health_factor} is not below 1"
        )

    # Debt leg
    debt_stored = _stored_position(view, user, debt_asset)
    debt_position = debt_stored or empty_position(user, debt_asset)
    debt = true_borrow_balance(debt_position, debt_state.borrow_index, debt_config.decimals)
    max_cover = quantize_down(debt * close_factor, debt_config.decimals)
    if debt_to_cover > max_cover:
        raise ExceedsCloseFactor(
            f"{user}: debt_to_cover {debt_to_cover} {debt_asset} exceeds "
            f"{close_factor} of debt {debt} (max {max_cover})"
        )
    repaid_position = decrease_borrow(
        debt_position, debt_to_cover, debt_state.borrow_index, debt_config.decimals,
    )
    debt_state = _apply_position_delta(debt_state, debt_position, repaid_position)

    # Collateral leg
    seized = calculate_seized_collateral(
        debt_to_cover,
        oracle.get_price(debt_asset),
        oracle.get_price(collateral_asset),
        collateral_config.liquidation_bonus_fraction,
        collateral_config.decimals,
    )
    if seized <= ZERO:
        raise InvalidAmount(
            f"debt_to_cover {debt_to_cover} {debt_asset} is too small to seize any {collateral_asset}"
        )

    if same_asset:
        collateral_stored = debt_stored
        collateral_position = repaid_position
        collateral_state = debt_state
    else:
        collateral_stored = _stored_position(view, user, collateral_asset)
        collateral_position = collateral_stored or empty_position(user, collateral_asset)

    balance = true_supply_balance(
        collateral_position, collateral_state.liquidity_index, collateral_config.decimals,
    )
    if seized > balance:
        raise InsufficientCollateral(
            f"{user}: seizing {seized} {collateral_asset} exceeds collateral {balance}"
        )
    available = _available_liquidity(collateral_config, collateral_state)
    if seized > available:
        raise InsufficientLiquidity(
            f"{collateral_asset}: available {available} < seized {seized}"
        )

    seized_position = decrease_supply(
        collateral_position, seized, collateral_state.liquidity_index, collateral_config.decimals,
    )
    collateral_state = _apply_position_delta(collateral_state, collateral_position, seized_position)

    if same_asset:
        reserve_changes = [ReserveStateChange(debt_asset, debt_committed, collateral_state)]
        position_changes = [_position_change(user, debt_asset, debt_stored, seized_position)]
    else:
        reserve_changes = [
            ReserveStateChange(debt_asset, debt_committed, debt_state),
            ReserveStateChange(collateral_asset, collateral_committed, collateral_state),
        ]
        position_changes = [
            _position_change(user, debt_asset, debt_stored, repaid_position),
            _position_change(user, collateral_asset, collateral_stored, seized_position),
        ]

    return build_transaction(
        view, "LIQUIDATION",
        reserve_changes=reserve_changes,
        position_changes=position_changes,
        moves=[
            Move(debt_to_cover, debt_asset, liquidator, POOL_WALLET, "LIQUIDATION"),
            Move(seized, collateral_asset, POOL_WALLET, liquidator, "LIQUIDATION"),
        ],
        events=[LendingEvent(
            EVENT_LIQUIDATION, user, debt_asset, debt_to_cover,
            counterparty=liquidator,
            collateral_asset=collateral_asset,
            liquidated_collateral_amount=seized,
        )],
    )


# ============================================================================
# UNIFIED DISPATCHER
# ============================================================================

def _require(kwargs: Dict[str, Any], event_type: str, *names: str) -> List[Any]:
    values = []
    for name in names:
        value = kwargs.get(name)
        if value is None:
            raise ValueError(f"Missing '{name}' parameter for {event_type} event")
        values.append(value)
    return values


def transact(
    view: MarketView,
    oracle: Optional[PriceOracle],
    event_type: str,
    **kwargs
) -> PendingTransaction:
    """
    Build the PendingTransaction for a lending event.

    Args:
        view: Read-only market access
        oracle: Price source (unused by SUPPLY, REPAY and ACCRUE)
        event_type: Type of event:
            - SUPPLY: requires 'user', 'asset', 'amount' (optional 'on_behalf_of')
            - WITHDRAW: requires 'user', 'asset', 'amount' (optional 'to')
            - BORROW: requires 'user', 'asset', 'amount' (optional 'to')
            - REPAY: requires 'user', 'asset', 'amount' (optional 'on_behalf_of')
            - LIQUIDATION: requires 'liquidator', 'user', 'debt_asset',
              'collateral_asset', 'debt_to_cover' (optional 'close_factor')
            - ACCRUE: requires 'asset'
        **kwargs: Event-specific parameters

    Raises:
        ValueError: If event_type is unknown or a required parameter is missing.

    Example:
        pending = transact(ledger, oracle, "BORROW", user="alice", asset="DAI", amount=100)
    """
    if event_type == 'SUPPLY':
        user, asset, amount = _require(kwargs, event_type, 'user', 'asset', 'amount')
        return compute_supply(view, user, asset, amount, kwargs.get('on_behalf_of'))

    elif event_type == 'WITHDRAW':
        user, asset, amount = _require(kwargs, event_type, 'user', 'asset', 'amount')
        return compute_withdraw(view, oracle, user, asset, amount, kwargs.get('to'))

    elif event_type == 'BORROW':
        user, asset, amount = _require(kwargs, event_type, 'user', 'asset', 'amount')
        return compute_borrow(view, oracle, user, asset, amount, kwargs.get('to'))

    elif event_type == 'REPAY':
        user, asset, amount = _require(kwargs, event_type, 'user', 'asset', 'amount')
        return compute_repay(view, user, asset, amount, kwargs.get('on_behalf_of'))

    elif event_type == 'LIQUIDATION':
        liquidator, user, debt_asset, collateral_asset, debt_to_cover = _require(
            kwargs, event_type,
            'liquidator', 'user', 'debt_asset', 'collateral_asset', 'debt_to_cover',
        )
        return compute_liquidation(
            view, oracle, liquidator, user, debt_asset, collateral_asset, debt_to_cover,
            kwargs.get('close_factor', DEFAULT_CLOSE_FACTOR),
        )

    elif event_type == 'ACCRUE':
        (asset,) = _require(kwargs, event_type, 'asset')
        return compute_accrual(view, asset)

    else:
        raise ValueError(f"Unknown lending event type: {event_type}")


# ============================================================================
# FACADE
# ============================================================================

class OperationProcessor:
    """
    Entry point for callers: builds each operation, commits it, logs it.

    The processor owns no market state. Reserves and positions live in the
    ledger; the oracle, token gateway and event sinks are collaborators.

    Example:
        processor = OperationProcessor(ledger, oracle, tokens=tokens, events=log)
        processor.supply("alice", "USDC", Decimal("1000"))
        processor.borrow("alice", "DAI", Decimal("800"))
        processor.get_user_account_data("alice").health_factor
    """

    def __init__(
        self,
        ledger,
        oracle: PriceOracle,
        tokens: Optional[TokenGateway] = None,
        events: Optional[EventSink] = None,
        close_factor: Any = DEFAULT_CLOSE_FACTOR,
    ):
        self.ledger = ledger
        self.oracle = oracle
        self.close_factor = validate_close_factor(close_factor)
        if tokens is not None:
            ledger.set_token_gateway(tokens)
        if events is not None:
            ledger.subscribe(events)

    def _run(self, operation: str, build: Callable[[], PendingTransaction]) -> Transaction:
        try:
            pending = build()
        except LendingError as exc:
            logger.info("%s rejected: %s: %s", operation, type(exc).__name__, exc)
            raise
        tx = self.ledger.execute(pending)
        logger.info("%s committed as %s", operation, tx.exec_id)
        return tx

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def supply(self, user: str, asset: str, amount: Any, on_behalf_of: Optional[str] = None) -> Transaction:
        return self._run("SUPPLY", lambda: compute_supply(
            self.ledger, user, asset, amount, on_behalf_of))

    def withdraw(self, user: str, asset: str, amount: Any, to: Optional[str] = None) -> Transaction:
        return self._run("WITHDRAW", lambda: compute_withdraw(
            self.ledger, self.oracle, user, asset, amount, to))

    def borrow(self, user: str, asset: str, amount: Any, to: Optional[str] = None) -> Transaction:
        return self._run("BORROW", lambda: compute_borrow(
            self.ledger, self.oracle, user, asset, amount, to))

    def repay(self, user: str, asset: str, amount: Any, on_behalf_of: Optional[str] = None) -> Transaction:
        return self._run("REPAY", lambda: compute_repay(
            self.ledger, user, asset, amount, on_behalf_of))

    def liquidate(
        self,
        liquidator: str,
        user: str,
        debt_asset: str,
        collateral_asset: str,
        debt_to_cover: Any,
    ) -> Transaction:
        return self._run("LIQUIDATION", lambda: compute_liquidation(
            self.ledger, self.oracle, liquidator, user,
            debt_asset, collateral_asset, debt_to_cover, self.close_factor))

    def accrue(self, asset: str) -> Optional[Transaction]:
        """Commit accrual of one reserve; None if it is already current."""
        pending = compute_accrual(self.ledger, asset)
        if pending.is_empty():
            return None
        return self.ledger.execute(pending)

    def accrue_all(self) -> List[Transaction]:
        committed = []
        for asset in self.ledger.list_reserves():
            tx = self.accrue(asset)
            if tx is not None:
                committed.append(tx)
        return committed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_user_account_data(self, user: str) -> AccountSnapshot:
        return compute_account_snapshot(self.ledger, self.oracle, user)

    def get_reserve_config(self, asset: str) -> ReserveConfig:
        return self.ledger.get_reserve_config(asset)

    def get_reserve_state(self, asset: str) -> ReserveState:
        """Reserve state projected to the ledger's current time (not committed)."""
        return project_reserve_state(self.ledger, asset)

    def get_user_position(self, user: str, asset: str) -> Dict[str, Decimal]:
        """True supplied and borrowed balances of a user in one reserve."""
        config = self.ledger.get_reserve_config(asset)
        state = project_reserve_state(self.ledger, asset)
        position = self.ledger.get_position(user, asset)
        return {
            'supplied': true_supply_balance(position, state.liquidity_index, config.decimals),
            'borrowed': true_borrow_balance(position, state.borrow_index, config.decimals),
        }

    def get_reserve_data(self, asset: str) -> Dict[str, Any]:
        """
        Totals, utilization and current rates of a reserve.

        Returns:
            Dict with total_supplied, total_borrowed, available_liquidity,
            accrued_to_treasury, utilization, borrow_apr, supply_apr,
            borrow_rate, supply_rate (per second), liquidity_index,
            borrow_index and rate_params.
        """
        config = self.ledger.get_reserve_config(asset)
        state = project_reserve_state(self.ledger, asset)
        utilization = calculate_utilization(state.total_borrowed, state.total_supplied)
        params = config.rate_params
        data: Dict[str, Any] = dict(reserve_totals(config, state))
        data.update({
            'utilization': utilization,
            'borrow_apr': calculate_borrow_apr(params, utilization),
            'supply_apr': calculate_supply_apr(params, utilization),
            'borrow_rate': calculate_borrow_rate(params, utilization),
            'supply_rate': calculate_supply_rate(params, utilization),
            'liquidity_index': state.liquidity_index,
            'borrow_index': state.borrow_index,
            'rate_params': rate_params_to_dict(params),
        })
        return data
