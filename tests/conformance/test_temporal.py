"""
Temporal Conformance Tests

INVARIANTS:

    liquidity_index and borrow_index never decrease
    the ledger clock never moves backwards
    committed events carry strictly increasing sequence numbers
    accrual moves interest between suppliers and borrowers:
        total_supplied - total_borrowed is unchanged by accrual
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from tests.helpers import T0
from tests.scenarios import ASSETS, build_market, step_strategy, apply_step


def _indices(ledger):
    return {
        asset: (ledger.get_reserve_state(asset).liquidity_index,
                ledger.get_reserve_state(asset).borrow_index)
        for asset in ASSETS
    }


class TestTemporalProperties:

    @given(st.lists(step_strategy, max_size=25))
    @settings(max_examples=50, deadline=None)
    def test_indices_never_decrease(self, steps):
        market = build_market()
        previous = _indices(market.ledger)
        for step in steps:
            apply_step(market, step)
            current = _indices(market.ledger)
            for asset in ASSETS:
                assert current[asset][0] >= previous[asset][0]
                assert current[asset][1] >= previous[asset][1]
            previous = current

    @given(st.lists(step_strategy, max_size=25))
    @settings(max_examples=50, deadline=None)
    def test_clock_and_sequence_ordering(self, steps):
        market = build_market()
        clock = market.ledger.current_time
        for step in steps:
            apply_step(market, step)
            assert market.ledger.current_time >= clock
            clock = market.ledger.current_time

        log = market.ledger.transaction_log
        assert [tx.sequence_number for tx in log] == list(range(len(log)))
        times = [tx.execution_time for tx in log]
        assert times == sorted(times)
        sequences = [event.sequence_number for event in market.events]
        assert sequences == sorted(sequences)

    @given(st.lists(step_strategy, max_size=25),
           st.integers(min_value=1, max_value=365 * 24 * 3600))
    @settings(max_examples=50, deadline=None)
    def test_accrual_conserves_net_liquidity(self, steps, seconds):
        market = build_market()
        for step in steps:
            apply_step(market, step)
        before = {a: market.ledger.get_reserve_state(a).available_liquidity for a in ASSETS}
        market.ledger.advance_time(market.ledger.current_time + timedelta(seconds=seconds))
        market.processor.accrue_all()
        for asset in ASSETS:
            after = market.ledger.get_reserve_state(asset).available_liquidity
            assert abs(after - before[asset]) < Decimal("1e-15")


class TestTemporalExamples:

    def test_time_cannot_move_backwards(self):
        market = build_market()
        market.ledger.advance_time(T0 + timedelta(days=1))
        with pytest.raises(ValueError, match="backwards"):
            market.ledger.advance_time(T0)

    def test_accrual_stamps_reserves_with_current_time(self):
        market = build_market()
        later = T0 + timedelta(days=3)
        market.ledger.advance_time(later)
        market.processor.accrue_all()
        for asset in ASSETS:
            assert market.ledger.get_reserve_state(asset).last_update_timestamp == later

    def test_clone_at_restores_earlier_market(self):
        market = build_market()
        processor = market.processor
        processor.supply("alice", "WETH", Decimal("1"))
        midpoint = T0 + timedelta(days=10)
        market.ledger.advance_time(midpoint)
        processor.borrow("alice", "USDC", Decimal("500"))
        market.ledger.advance_time(midpoint + timedelta(days=10))
        processor.repay("alice", "USDC", Decimal("100"))

        past = market.ledger.clone_at(T0)
        assert past.current_time == T0
        assert past.get_user_positions("alice").keys() == {"WETH"}
        assert past.get_reserve_state("USDC").total_scaled_borrow == 0
        assert len(past.transaction_log) == len(market.ledger.transaction_log) - 2

    def test_clone_at_future_rejected(self):
        market = build_market()
        with pytest.raises(ValueError, match="future"):
            market.ledger.clone_at(T0 + timedelta(seconds=1))
