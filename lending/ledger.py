"""
ledger.py - Stateful Lending Market Store

LendingLedger is the single authoritative store of reserves and user
positions. It is the only module that mutates market state.

Key responsibilities:
    - Implements the MarketView protocol for read-only access by pure functions
    - Commits PendingTransactions atomically (all changes apply or none do)
    - Settles token moves through the TokenGateway, reversing on failure
    - Publishes events to subscribed sinks strictly after commit
    - Tracks logical time and keeps an ordered transaction log (clone_at)
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
import logging

from .core import (
    Move, Transaction, PendingTransaction, LendingEvent,
    TokenGateway, EventSink,
    StaleStateError, TransferFailed,
)
from .interest_rate import RateParams, create_rate_params
from .positions import UserPosition, empty_position
from .reserves import ReserveConfig, ReserveState, ReserveRegistry

logger = logging.getLogger(__name__)


class LendingLedger:
    """
    In-memory lending market with validated, logged commits.

    Implements the MarketView protocol, so the ledger itself is passed to the
    pure compute_* functions.

    Thread Safety:
        Not thread-safe. Serialize all calls through one owner.

    Example:
        ledger = LendingLedger("main", datetime(2025, 1, 1))
        ledger.register_reserve("USDC", 6, ltv=8000, liquidation_threshold=8500,
                                liquidation_bonus=500)
        ledger.execute(compute_supply(ledger, "alice", "USDC", Decimal("1000")))
    """

    def __init__(self, name: str, initial_time: Optional[datetime] = None):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            initial_time: Starting time for the ledger (default: 1970-01-01)
        """
        self.name = name
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self._reserves = ReserveRegistry()
        # user -> asset -> position; empty positions are never stored
        self._positions: Dict[str, Dict[str, UserPosition]] = {}
        self.transaction_log: List[Transaction] = []
        self._next_sequence: int = 0
        self._tokens: Optional[TokenGateway] = None
        self._sinks: List[EventSink] = []

    # ========================================================================
    # MarketView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time of the ledger."""
        return self._current_time

    def get_reserve_config(self, asset: str) -> ReserveConfig:
        return self._reserves.get_config(asset)

    def get_reserve_state(self, asset: str) -> ReserveState:
        """Last committed state; use project_reserve_state() for accrued values."""
        return self._reserves.get_state(asset)

    def list_reserves(self) -> List[str]:
        return self._reserves.list_assets()

    def get_position(self, user: str, asset: str) -> UserPosition:
        return self._positions.get(user, {}).get(asset) or empty_position(user, asset)

    def get_user_positions(self, user: str) -> Dict[str, UserPosition]:
        return dict(self._positions.get(user, {}))

    def list_users(self) -> List[str]:
        return sorted(self._positions)

    @property
    def events(self) -> List[LendingEvent]:
        """Every committed event, in commit order."""
        return [event for tx in self.transaction_log for event in tx.events]

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the ledger's logical clock. Time only moves forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # REGISTRATION AND COLLABORATORS (Mutating)
    # ========================================================================

    def register_reserve(
        self,
        asset: str,
        decimals: int,
        ltv: int,
        liquidation_threshold: int,
        liquidation_bonus: int,
        rate_params: Optional[RateParams] = None,
    ) -> ReserveConfig:
        """
        Register a reserve at the current time.

        Raises:
            ConfigInvariantViolation: If already registered or misconfigured.
        """
        config = self._reserves.register(
            asset, decimals, ltv, liquidation_threshold, liquidation_bonus,
            rate_params or create_rate_params(), self._current_time,
        )
        logger.info(
            "registered reserve %s (decimals=%d, ltv=%d, threshold=%d, bonus=%d)",
            asset, decimals, ltv, liquidation_threshold, liquidation_bonus,
        )
        return config

    def set_token_gateway(self, tokens: Optional[TokenGateway]) -> None:
        """Token collaborator used to settle moves; None records moves only."""
        self._tokens = tokens

    def subscribe(self, sink: EventSink) -> None:
        self._sinks.append(sink)

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        """
        Generate a unique execution ID.

        Format: exec:{ledger_name}:{sequence:012d}:{timestamp_micros}
        """
        micros = int(self._current_time.timestamp() * 1_000_000)
        return f"exec:{self.name}:{sequence:012d}:{micros}"

    def execute(self, pending: PendingTransaction) -> Optional[Transaction]:
        """
        Commit a PendingTransaction atomically.

        Commit order:
            1. Optimistic check: every old_state must match stored state
            2. Token moves, debits first; completed moves are reversed on failure
            3. Reserve and position writes
            4. Sequence number assignment and log append
            5. Event publication to sinks; a failing sink is logged and skipped

        Args:
            pending: PendingTransaction from a compute_* function

        Returns:
            The committed Transaction, or None for an empty pending transaction.

        Raises:
            ValueError: If the pending transaction is timestamped in the future.
            StaleStateError: If state changed since the transaction was built.
            TransferFailed: If a token move fails (nothing is applied).
        """
        if pending.is_empty():
            return None

        if pending.timestamp > self._current_time:
            raise ValueError(
                f"{pending.operation} built at future time {pending.timestamp} > {self._current_time}"
            )

        try:
            self._check_fresh(pending)
            self._settle_moves(pending.moves)
        except (StaleStateError, TransferFailed) as exc:
            logger.info("rejected %s: %s", pending.operation, exc)
            raise

        for rc in pending.reserve_changes:
            self._reserves.set_state(rc.asset, rc.new_state)
        for pc in pending.position_changes:
            self._write_position(pc.user, pc.asset, pc.new_state)

        sequence = self._next_sequence
        self._next_sequence += 1
        events = tuple(
            replace(event, sequence_number=sequence, timestamp=self._current_time)
            for event in pending.events
        )
        tx = Transaction(
            operation=pending.operation,
            reserve_changes=pending.reserve_changes,
            position_changes=pending.position_changes,
            moves=pending.moves,
            events=events,
            exec_id=self._generate_exec_id(sequence),
            ledger_name=self.name,
            execution_time=self._current_time,
            sequence_number=sequence,
        )
        self.transaction_log.append(tx)
        logger.debug("applied %r", tx)

        for sink in self._sinks:
            for event in tx.events:
                try:
                    sink.publish(event)
                except Exception:
                    # committed already; keep notifying the remaining sinks
                    logger.exception("sink %r failed on %s event of %s", sink, event.event_type, tx.exec_id)
        return tx

    def _check_fresh(self, pending: PendingTransaction) -> None:
        for rc in pending.reserve_changes:
            stored = self._reserves.get_state(rc.asset)
            if stored != rc.old_state:
                raise StaleStateError(
                    f"{pending.operation}: reserve {rc.asset} changed since the transaction was built"
                )
        for pc in pending.position_changes:
            stored = self._positions.get(pc.user, {}).get(pc.asset)
            if stored != pc.old_state:
                raise StaleStateError(
                    f"{pending.operation}: position {pc.user}/{pc.asset} changed since the transaction was built"
                )

    def _settle_moves(self, moves) -> None:
        """
        Apply moves through the token gateway, debits before credits.

        If any move fails, the moves already settled are reversed in reverse
        order and the TransferFailed propagates.
        """
        if self._tokens is None:
            return
        ordered = sorted(moves, key=lambda m: not m.is_debit)
        settled: List[Move] = []
        try:
            for move in ordered:
                self._transfer(move, reverse=False)
                settled.append(move)
        except TransferFailed:
            for move in reversed(settled):
                self._transfer(move, reverse=True)
            raise

    def _transfer(self, move: Move, reverse: bool) -> None:
        # Debits pull from the wallet into the pool; credits pay the wallet.
        if move.is_debit != reverse:
            self._tokens.debit(move.wallet, move.asset, move.quantity)
        else:
            self._tokens.credit(move.wallet, move.asset, move.quantity)

    def _write_position(self, user: str, asset: str, position: Optional[UserPosition]) -> None:
        if position is None:
            user_positions = self._positions.get(user)
            if user_positions is not None:
                user_positions.pop(asset, None)
                if not user_positions:
                    del self._positions[user]
        else:
            self._positions.setdefault(user, {})[asset] = position

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> LendingLedger:
        """
        Create an independent copy of this ledger.

        Reserves, positions, the log and the clock are copied. Collaborators
        (token gateway, event sinks) are not: a clone is for what-if analysis
        and never settles tokens or publishes events.
        """
        cloned = LendingLedger.__new__(LendingLedger)
        cloned.name = self.name
        cloned._current_time = self._current_time
        cloned._reserves = self._reserves.copy()
        cloned._positions = {user: dict(assets) for user, assets in self._positions.items()}
        cloned.transaction_log = list(self.transaction_log)
        cloned._next_sequence = self._next_sequence
        cloned._tokens = None
        cloned._sinks = []
        return cloned

    def clone_at(self, target_time: datetime) -> LendingLedger:
        """
        Reconstruct the market as it was at `target_time`.

        Walks the log backwards, restoring every reserve and position
        old_state written after target_time. Reserve registrations are kept.

        Raises:
            ValueError: If target_time is after the current time.
        """
        if target_time > self._current_time:
            raise ValueError(f"Cannot clone into the future: {target_time} > {self._current_time}")
        cloned = self.clone()
        kept = []
        for tx in reversed(cloned.transaction_log):
            if tx.execution_time <= target_time:
                kept.append(tx)
                continue
            for pc in reversed(tx.position_changes):
                cloned._write_position(pc.user, pc.asset, pc.old_state)
            for rc in reversed(tx.reserve_changes):
                cloned._reserves.set_state(rc.asset, rc.old_state)
        cloned.transaction_log = list(reversed(kept))
        cloned._current_time = target_time
        return cloned

    def total_scaled_positions(self, asset: str) -> Dict[str, Decimal]:
        """Sum of stored scaled balances for one asset, for reconciliation."""
        supply = Decimal("0")
        borrow = Decimal("0")
        for assets in self._positions.values():
            position = assets.get(asset)
            if position is not None:
                supply += position.scaled_supply
                borrow += position.scaled_borrow
        return {'scaled_supply': supply, 'scaled_borrow': borrow}
