"""
test_lending_lifecycle.py - End-to-end lending scenario tests

Tests complete account lifecycles through the OperationProcessor:
- Borrowing up to the LTV limit
- Health factor of a mixed account
- Liquidation of an underwater borrower
- Same-asset supply and borrow
- Interest accrual over a year
- Wallet balances and event history along the way
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from lending import (
    OperationProcessor, StaticPriceOracle, InMemoryTokenGateway, EventLog,
    POOL_WALLET, EVENT_SUPPLY, EVENT_BORROW, EVENT_REPAY, EVENT_WITHDRAW, EVENT_LIQUIDATION,
    BorrowExceedsLimit, ExceedsCloseFactor, HealthFactorAboveLiquidationThreshold,
    SelfCollateralBorrowRejected, WithdrawBreaksHealthFactor,
)

from tests.helpers import T0, PRICES, flat_rate_params, make_ledger, fund


FUNDS = Decimal("1000000")


def _wallet(tokens, name, *assets):
    for asset in assets:
        fund(tokens, name, asset, FUNDS)


class TestBorrowLimit:
    """Supplying 1000 USDC at 80% LTV allows exactly 800 USD of borrowing."""

    def test_borrow_up_to_ltv(self, seeded, tokens):
        _wallet(tokens, "alice", "USDC")
        seeded.supply("alice", "USDC", Decimal("1000"))

        with pytest.raises(BorrowExceedsLimit):
            seeded.borrow("alice", "DAI", Decimal("801"))
        seeded.borrow("alice", "DAI", Decimal("800"))

        snapshot = seeded.get_user_account_data("alice")
        assert snapshot.total_collateral_usd == Decimal("1000")
        assert snapshot.total_debt_usd == Decimal("800")
        assert snapshot.available_borrows_usd == Decimal("0")
        assert snapshot.health_factor == Decimal("1.0625")
        assert tokens.balance_of("alice", "DAI") == Decimal("800")
        assert tokens.balance_of("alice", "USDC") == FUNDS - Decimal("1000")

    def test_no_further_borrowing_at_limit(self, seeded, tokens):
        _wallet(tokens, "alice", "USDC")
        seeded.supply("alice", "USDC", Decimal("1000"))
        seeded.borrow("alice", "DAI", Decimal("800"))
        with pytest.raises(BorrowExceedsLimit):
            seeded.borrow("alice", "WETH", Decimal("0.001"))


class TestHealthFactor:

    def test_dai_collateral_usdc_debt(self, seeded, tokens):
        _wallet(tokens, "alice", "DAI")
        seeded.supply("alice", "DAI", Decimal("2000"))
        seeded.borrow("alice", "USDC", Decimal("1000"))

        snapshot = seeded.get_user_account_data("alice")
        assert snapshot.health_factor == Decimal("1.6")
        assert snapshot.liquidation_threshold == Decimal("0.8")
        assert snapshot.ltv == Decimal("0.75")
        assert snapshot.available_borrows_usd == Decimal("500")

    def test_withdraw_guarded_by_health_factor(self, seeded, tokens):
        _wallet(tokens, "alice", "DAI")
        seeded.supply("alice", "DAI", Decimal("2000"))
        seeded.borrow("alice", "USDC", Decimal("1000"))

        # 1250 DAI * 0.8 covers the 1000 USDC debt exactly
        with pytest.raises(WithdrawBreaksHealthFactor):
            seeded.withdraw("alice", "DAI", Decimal("751"))
        seeded.withdraw("alice", "DAI", Decimal("750"))
        assert seeded.get_user_account_data("alice").health_factor == Decimal("1")

    def test_withdraw_leaving_health_factor_just_below_one(self, seeded, tokens):
        _wallet(tokens, "alice", "DAI")
        seeded.supply("alice", "DAI", Decimal("2000"))
        seeded.borrow("alice", "USDC", Decimal("1000"))
        # leaves an exact health factor of 0.9999999999999999999904
        with pytest.raises(WithdrawBreaksHealthFactor):
            seeded.withdraw("alice", "DAI", Decimal("750.000000000000000012"))
        assert seeded.get_user_account_data("alice").health_factor == Decimal("1.6")

    def test_repay_then_withdraw_everything(self, seeded, tokens):
        _wallet(tokens, "alice", "DAI", "USDC")
        seeded.supply("alice", "DAI", Decimal("2000"))
        seeded.borrow("alice", "USDC", Decimal("1000"))
        seeded.repay("alice", "USDC", Decimal("5000"))
        seeded.withdraw("alice", "DAI", Decimal("2000"))

        assert seeded.ledger.get_user_positions("alice") == {}
        assert tokens.balance_of("alice", "DAI") == FUNDS
        assert tokens.balance_of("alice", "USDC") == FUNDS
        snapshot = seeded.get_user_account_data("alice")
        assert snapshot.total_collateral_usd == 0
        assert not snapshot.has_debt


class TestLiquidationLifecycle:

    @pytest.fixture
    def underwater(self, seeded, tokens):
        """bob: 1 WETH collateral, 1000 USDC debt, WETH then falls to 1200."""
        _wallet(tokens, "bob", "WETH")
        _wallet(tokens, "keeper", "USDC")
        seeded.supply("bob", "WETH", Decimal("1"))
        seeded.borrow("bob", "USDC", Decimal("1000"))
        seeded.oracle.update_price("WETH", Decimal("1200"))
        return seeded

    def test_healthy_borrower_cannot_be_liquidated(self, seeded, tokens):
        _wallet(tokens, "bob", "WETH")
        _wallet(tokens, "keeper", "USDC")
        seeded.supply("bob", "WETH", Decimal("1"))
        seeded.borrow("bob", "USDC", Decimal("1000"))
        with pytest.raises(HealthFactorAboveLiquidationThreshold):
            seeded.liquidate("keeper", "bob", "USDC", "WETH", Decimal("100"))

    def test_close_factor_caps_cover(self, underwater):
        assert underwater.get_user_account_data("bob").health_factor == Decimal("0.99")
        with pytest.raises(ExceedsCloseFactor):
            underwater.liquidate("keeper", "bob", "USDC", "WETH", Decimal("501"))

    def test_liquidation_moves_debt_and_collateral(self, underwater, tokens, events):
        tx = underwater.liquidate("keeper", "bob", "USDC", "WETH", Decimal("500"))

        assert underwater.get_user_position("bob", "USDC")["borrowed"] == Decimal("500")
        assert underwater.get_user_position("bob", "WETH")["supplied"] == Decimal("0.5625")
        assert tokens.balance_of("keeper", "USDC") == FUNDS - Decimal("500")
        assert tokens.balance_of("keeper", "WETH") == Decimal("0.4375")
        assert underwater.get_user_account_data("bob").health_factor == Decimal("1.11375")

        event = tx.events[0]
        assert event.event_type == EVENT_LIQUIDATION
        assert event.user == "bob"
        assert event.counterparty == "keeper"
        assert event.liquidated_collateral_amount == Decimal("0.4375")
        assert events.for_user("keeper") == [event]

    def test_recovered_borrower_cannot_be_liquidated_again(self, underwater):
        underwater.liquidate("keeper", "bob", "USDC", "WETH", Decimal("500"))
        with pytest.raises(HealthFactorAboveLiquidationThreshold):
            underwater.liquidate("keeper", "bob", "USDC", "WETH", Decimal("100"))


class TestSameAssetPositions:

    def test_supplier_cannot_borrow_same_asset(self, seeded, tokens):
        _wallet(tokens, "alice", "USDC")
        seeded.supply("alice", "USDC", Decimal("1000"))
        with pytest.raises(SelfCollateralBorrowRejected):
            seeded.borrow("alice", "USDC", Decimal("1"))

    def test_borrower_may_supply_borrowed_asset(self, seeded, tokens):
        _wallet(tokens, "alice", "WETH", "USDC")
        seeded.supply("alice", "WETH", Decimal("1"))
        seeded.borrow("alice", "USDC", Decimal("500"))
        seeded.supply("alice", "USDC", Decimal("500"))
        position = seeded.get_user_position("alice", "USDC")
        assert position == {"supplied": Decimal("500"), "borrowed": Decimal("500")}

    def test_supply_then_withdraw_same_tick(self, seeded, tokens):
        _wallet(tokens, "alice", "USDC")
        before = seeded.get_reserve_state("USDC")
        seeded.supply("alice", "USDC", Decimal("123.456789"))
        seeded.withdraw("alice", "USDC", Decimal("123.456789"))
        assert seeded.ledger.get_user_positions("alice") == {}
        assert seeded.get_reserve_state("USDC").total_scaled_supply == before.total_scaled_supply
        assert tokens.balance_of("alice", "USDC") == FUNDS


class TestInterestOverTime:

    def test_flat_rate_year(self):
        ledger = make_ledger(flat_rate_params("0.1"))
        tokens = InMemoryTokenGateway()
        processor = OperationProcessor(ledger, StaticPriceOracle(PRICES), tokens=tokens)
        _wallet(tokens, "lender", "USDC")
        _wallet(tokens, "alice", "WETH", "USDC")

        processor.supply("lender", "USDC", Decimal("1000"))
        processor.supply("alice", "WETH", Decimal("1"))
        processor.borrow("alice", "USDC", Decimal("500"))

        ledger.advance_time(T0 + timedelta(days=365))
        assert processor.get_user_position("alice", "USDC")["borrowed"] == Decimal("550")
        assert processor.get_user_position("lender", "USDC")["supplied"] == Decimal("1050")

        processor.repay("alice", "USDC", Decimal("550"))
        processor.withdraw("lender", "USDC", Decimal("1050"))
        assert tokens.balance_of("lender", "USDC") == FUNDS + Decimal("50")
        assert tokens.balance_of(POOL_WALLET, "USDC") == Decimal("0")

    def test_reserve_data_reflects_utilization(self, seeded, tokens):
        _wallet(tokens, "alice", "WETH")
        seeded.supply("alice", "WETH", Decimal("1000"))
        seeded.borrow("alice", "USDC", Decimal("250000"))

        data = seeded.get_reserve_data("USDC")
        assert data["utilization"] == Decimal("0.5")
        assert data["borrow_apr"] > 0
        assert data["supply_apr"] < data["borrow_apr"]

        seeded.ledger.advance_time(seeded.ledger.current_time + timedelta(days=30))
        later = seeded.get_reserve_data("USDC")
        assert later["total_borrowed"] > Decimal("250000")
        assert later["total_supplied"] > Decimal("500000")
        assert seeded.get_user_account_data("alice").total_debt_usd > Decimal("250000")


class TestEventHistory:

    def test_user_history(self, seeded, tokens, events):
        _wallet(tokens, "alice", "WETH", "USDC")
        seeded.supply("alice", "WETH", Decimal("1"))
        seeded.borrow("alice", "USDC", Decimal("100"))
        seeded.repay("alice", "USDC", Decimal("100"))
        seeded.withdraw("alice", "WETH", Decimal("1"), to="cold")

        history = events.for_user("alice")
        assert [e.event_type for e in history] == [
            EVENT_SUPPLY, EVENT_BORROW, EVENT_REPAY, EVENT_WITHDRAW,
        ]
        assert [e.timestamp for e in history] == [T0] * 4
        sequences = [e.sequence_number for e in history]
        assert sequences == sorted(sequences)
        assert events.for_user("cold") == [history[-1]]
        assert tokens.balance_of("cold", "WETH") == Decimal("1")

    def test_repay_on_behalf(self, seeded, tokens, events):
        _wallet(tokens, "alice", "WETH")
        _wallet(tokens, "carol", "USDC")
        seeded.supply("alice", "WETH", Decimal("1"))
        seeded.borrow("alice", "USDC", Decimal("100"))
        tx = seeded.repay("carol", "USDC", Decimal("40"), on_behalf_of="alice")

        assert tx.events[0].user == "carol"
        assert tx.events[0].counterparty == "alice"
        assert seeded.get_user_position("alice", "USDC")["borrowed"] == Decimal("60")
        assert tokens.balance_of("carol", "USDC") == FUNDS - Decimal("40")
