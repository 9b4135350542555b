"""
helpers.py - Shared builders for lending tests

Standard market constants and small helpers imported by conftest fixtures
and by tests that need more than one ledger.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional

from lending import (
    LendingLedger, InMemoryTokenGateway, RateParams,
    create_rate_params, reserve_totals,
)


T0 = datetime(2025, 1, 1)

PRICES = {"USDC": Decimal("1"), "DAI": Decimal("1"), "WETH": Decimal("2000")}

# asset -> (decimals, ltv, liquidation_threshold, liquidation_bonus)
RESERVES = {
    "USDC": (6, 8000, 8500, 500),
    "DAI": (18, 7500, 8000, 500),
    "WETH": (18, 7500, 8250, 500),
}

SEED = Decimal("500000")


def flat_rate_params(apr: str = "0.1") -> RateParams:
    """A curve that charges the same APR at every utilization, no reserve factor."""
    return create_rate_params(
        base_rate=Decimal(apr), slope1=Decimal("0"), slope2=Decimal("0"),
        optimal_utilization=Decimal("0.8"), reserve_factor=Decimal("0"),
    )


def make_ledger(rate_params: Optional[RateParams] = None, name: str = "test") -> LendingLedger:
    """Ledger at T0 with the standard three reserves."""
    ledger = LendingLedger(name, T0)
    for asset, (decimals, ltv, threshold, bonus) in RESERVES.items():
        ledger.register_reserve(asset, decimals, ltv, threshold, bonus, rate_params)
    return ledger


def fund(tokens: InMemoryTokenGateway, wallet: str, asset: str, amount) -> None:
    """Mint tokens to a wallet and approve the pool for all of them."""
    tokens.mint(wallet, asset, amount)
    tokens.approve(wallet, asset, Decimal("Infinity"))


def market_snapshot(ledger: LendingLedger) -> Dict:
    """Everything a failed operation must leave untouched."""
    return {
        "reserves": {a: ledger.get_reserve_state(a) for a in ledger.list_reserves()},
        "positions": {u: ledger.get_user_positions(u) for u in ledger.list_users()},
        "log": len(ledger.transaction_log),
    }


def totals(ledger: LendingLedger, asset: str) -> Dict[str, Decimal]:
    return reserve_totals(ledger.get_reserve_config(asset), ledger.get_reserve_state(asset))
