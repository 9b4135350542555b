"""
test_liquidation.py - Unit tests for liquidation

Tests:
- Health factor gate
- Close factor cap
- Bonus-adjusted seizure and its rounding
- Insufficient collateral
- Same-asset debt and collateral
- Event fields and token settlement
"""

import pytest
from decimal import Decimal

from lending import (
    POOL_WALLET, EVENT_LIQUIDATION,
    HealthFactorAboveLiquidationThreshold, ExceedsCloseFactor, InsufficientCollateral,
    InvalidAmount, ConfigInvariantViolation, OperationProcessor,
    compute_liquidation, calculate_seized_collateral,
)

from tests.helpers import fund, market_snapshot


@pytest.fixture
def bob_underwater(seeded, tokens, oracle):
    """bob: 1 WETH collateral, 1000 USDC debt, WETH at 1200 (HF 0.99)."""
    fund(tokens, "bob", "WETH", 1)
    seeded.supply("bob", "WETH", Decimal("1"))
    seeded.borrow("bob", "USDC", Decimal("1000"))
    fund(tokens, "keeper", "USDC", 10000)
    oracle.update_price("WETH", 1200)
    return seeded


class TestSeizedCollateral:

    def test_bonus_applied(self):
        seized = calculate_seized_collateral(
            Decimal("500"), Decimal("1"), Decimal("1200"), Decimal("0.05"), 18,
        )
        assert seized == Decimal("0.4375")

    def test_rounds_down(self):
        seized = calculate_seized_collateral(
            Decimal("1"), Decimal("1"), Decimal("3"), Decimal("0"), 6,
        )
        assert seized == Decimal("0.333333")

    def test_cross_price(self):
        # 0.5 WETH at 2000 -> 1000 USD -> 1050 USDC with bonus
        seized = calculate_seized_collateral(
            Decimal("0.5"), Decimal("2000"), Decimal("1"), Decimal("0.05"), 6,
        )
        assert seized == Decimal("1050")


class TestLiquidationGate:

    def test_healthy_account_rejected(self, bob_underwater, oracle):
        oracle.update_price("WETH", 2000)
        with pytest.raises(HealthFactorAboveLiquidationThreshold):
            bob_underwater.liquidate("keeper", "bob", "USDC", "WETH", Decimal("100"))

    def test_debt_free_account_rejected(self, bob_underwater):
        with pytest.raises(HealthFactorAboveLiquidationThreshold):
            bob_underwater.liquidate("keeper", "deployer", "USDC", "WETH", Decimal("1"))

    def test_health_factor_of_exactly_one_rejected(self, seeded, tokens, oracle):
        fund(tokens, "erin", "WETH", 1)
        fund(tokens, "keeper", "USDC", 1000)
        seeded.supply("erin", "WETH", Decimal("1"))
        seeded.borrow("erin", "USDC", Decimal("825"))
        oracle.update_price("WETH", 1000)
        assert seeded.get_user_account_data("erin").health_factor == Decimal("1")
        with pytest.raises(HealthFactorAboveLiquidationThreshold):
            seeded.liquidate("keeper", "erin", "USDC", "WETH", Decimal("100"))

    def test_health_factor_below_one(self, bob_underwater):
        assert bob_underwater.get_user_account_data("bob").health_factor == Decimal("0.99")


class TestCloseFactor:

    def test_over_close_factor_rejected(self, bob_underwater):
        before = market_snapshot(bob_underwater.ledger)
        with pytest.raises(ExceedsCloseFactor):
            bob_underwater.liquidate("keeper", "bob", "USDC", "WETH", Decimal("501"))
        assert market_snapshot(bob_underwater.ledger) == before

    def test_at_close_factor(self, bob_underwater, tokens):
        tx = bob_underwater.liquidate("keeper", "bob", "USDC", "WETH", Decimal("500"))
        assert bob_underwater.get_user_position("bob", "USDC")["borrowed"] == Decimal("500")
        assert bob_underwater.get_user_position("bob", "WETH")["supplied"] == Decimal("0.5625")
        assert tokens.balance_of("keeper", "USDC") == Decimal("9500")
        assert tokens.balance_of("keeper", "WETH") == Decimal("0.4375")
        assert tx.operation == "LIQUIDATION"
        assert len(tx.reserve_changes) == 2
        assert len(tx.position_changes) == 2

    def test_custom_close_factor(self, bob_underwater, ledger, oracle):
        full = OperationProcessor(ledger, oracle, close_factor=1)
        full.liquidate("keeper", "bob", "USDC", "WETH", Decimal("1000"))
        assert full.get_user_position("bob", "USDC")["borrowed"] == Decimal("0")
        # 1000 * 1.05 / 1200
        assert full.get_user_position("bob", "WETH")["supplied"] == Decimal("0.125")

    def test_invalid_close_factor(self, bob_underwater):
        with pytest.raises(ConfigInvariantViolation):
            compute_liquidation(
                bob_underwater.ledger, bob_underwater.oracle, "keeper", "bob",
                "USDC", "WETH", Decimal("1"), close_factor=Decimal("1.5"),
            )

    def test_successive_liquidations_shrink_the_cap(self, bob_underwater):
        bob_underwater.liquidate("keeper", "bob", "USDC", "WETH", Decimal("500"))
        # HF after: 0.5625 * 1200 * 0.825 / 500 = 1.11375, so no second round
        with pytest.raises(HealthFactorAboveLiquidationThreshold):
            bob_underwater.liquidate("keeper", "bob", "USDC", "WETH", Decimal("250"))


class TestSeizureLimits:

    def test_insufficient_collateral(self, bob_underwater, oracle):
        oracle.update_price("WETH", 500)
        with pytest.raises(InsufficientCollateral):
            bob_underwater.liquidate("keeper", "bob", "USDC", "WETH", Decimal("500"))

    def test_collateral_asset_not_supplied(self, bob_underwater):
        with pytest.raises(InsufficientCollateral):
            bob_underwater.liquidate("keeper", "bob", "USDC", "DAI", Decimal("100"))

    def test_dust_cover_seizes_nothing(self, seeded, tokens, oracle):
        fund(tokens, "carol", "USDC", 1000)
        seeded.supply("carol", "USDC", Decimal("1000"))
        seeded.borrow("carol", "WETH", Decimal("0.4"))
        oracle.update_price("WETH", 2200)
        with pytest.raises(InvalidAmount, match="too small"):
            compute_liquidation(
                seeded.ledger, oracle, "keeper", "carol", "WETH", "USDC",
                Decimal("0.000000000000000001"),
            )


class TestSameAssetLiquidation:

    def test_single_reserve_and_position(self, seeded, tokens, oracle):
        fund(tokens, "dave", "USDC", 1000)
        seeded.supply("dave", "USDC", Decimal("1000"))
        seeded.borrow("dave", "DAI", Decimal("800"))
        tokens.approve("dave", "DAI", Decimal("Infinity"))
        seeded.supply("dave", "DAI", Decimal("800"))
        # (100 * 0.85 + 800 * 0.8) / 800 = 0.90625
        oracle.update_price("USDC", Decimal("0.1"))
        fund(tokens, "keeper", "DAI", 400)

        tx = seeded.liquidate("keeper", "dave", "DAI", "DAI", Decimal("400"))

        assert len(tx.reserve_changes) == 1
        assert len(tx.position_changes) == 1
        position = seeded.get_user_position("dave", "DAI")
        assert position["borrowed"] == Decimal("400")
        assert position["supplied"] == Decimal("380")
        assert tokens.balance_of("keeper", "DAI") == Decimal("420")


class TestLiquidationRecord:

    def test_event_fields(self, bob_underwater, events):
        bob_underwater.liquidate("keeper", "bob", "USDC", "WETH", Decimal("500"))
        (event,) = events.of_type(EVENT_LIQUIDATION)
        assert event.user == "bob"
        assert event.counterparty == "keeper"
        assert event.asset == "USDC"
        assert event.amount == Decimal("500")
        assert event.collateral_asset == "WETH"
        assert event.liquidated_collateral_amount == Decimal("0.4375")

    def test_moves(self, bob_underwater):
        pending = compute_liquidation(
            bob_underwater.ledger, bob_underwater.oracle, "keeper", "bob",
            "USDC", "WETH", Decimal("500"),
        )
        debt_move, collateral_move = pending.moves
        assert (debt_move.source, debt_move.dest, debt_move.asset) == ("keeper", POOL_WALLET, "USDC")
        assert (collateral_move.source, collateral_move.dest, collateral_move.asset) == (
            POOL_WALLET, "keeper", "WETH",
        )
