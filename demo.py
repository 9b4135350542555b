#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: A Lending Market Step by Step

Walks through the lifecycle of a three-asset lending market. Each step builds
on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Foundation  - Loading a market, supplying, reading account data
  4-6:  Borrowing   - Borrow limits, self-collateral, health factor
  7-8:  Time        - Interest accrual through the indices
  9-10: Liquidation - Price shock, close factor, bonus collateral
  11:   Stress      - Monte Carlo liquidation probability

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from pathlib import Path
import sys

from lending import (
    OperationProcessor, InMemoryTokenGateway, EventLog,
    LendingError, POOL_WALLET,
    load_market_config, build_market, configure_logging,
    account_exposures, simulate_price_shocks, analytic_liquidation_probability,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    market_file: Path = Path(__file__).resolve().parent / "examples" / "market.yaml"
    alice_weth: Decimal = Decimal("1")
    alice_borrow_usdc: Decimal = Decimal("1400")
    elapsed_days: int = 365
    shocked_weth_price: Decimal = Decimal("1500")
    weth_volatility: float = 0.8
    stress_horizon_days: float = 7.0
    stress_paths: int = 20_000


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def show_account(processor: OperationProcessor, user: str):
    snap = processor.get_user_account_data(user)
    print(f"  {user}:")
    print(f"    collateral      ${snap.total_collateral_usd:,.2f}")
    print(f"    debt            ${snap.total_debt_usd:,.2f}")
    print(f"    available       ${snap.available_borrows_usd:,.2f}")
    print(f"    health factor   {snap.health_factor:.4f}")


# ============================================================================
# STEPS
# ============================================================================

def step_01_load_market():
    step_header(1, "Load the market", "Build reserves, oracle and seed liquidity from YAML")
    tokens = InMemoryTokenGateway()
    events = EventLog()
    processor = build_market(load_market_config(CONFIG.market_file), tokens=tokens, events=events)
    for asset in processor.ledger.list_reserves():
        data = processor.get_reserve_data(asset)
        print(f"  {asset:5s} supplied={data['total_supplied']:>14,} pool cash={tokens.balance_of(POOL_WALLET, asset):>14,}")
    return processor, tokens, events


def step_02_supply(processor: OperationProcessor, tokens: InMemoryTokenGateway):
    step_header(2, "Supply collateral", "Alice deposits WETH; her scaled balance is amount / liquidity_index")
    tokens.mint("alice", "WETH", CONFIG.alice_weth)
    tokens.approve("alice", "WETH", CONFIG.alice_weth)
    tx = processor.supply("alice", "WETH", CONFIG.alice_weth)
    print(f"  committed {tx.exec_id}")
    print(f"  position: {processor.get_user_position('alice', 'WETH')}")


def step_03_account_data(processor: OperationProcessor):
    step_header(3, "Account data", "Collateral is valued at the oracle price; no debt means infinite health")
    show_account(processor, "alice")


def step_04_borrow(processor: OperationProcessor):
    step_header(4, "Borrow", "Borrow up to collateral * LTV")
    processor.borrow("alice", "USDC", CONFIG.alice_borrow_usdc)
    show_account(processor, "alice")


def step_05_borrow_limit(processor: OperationProcessor):
    step_header(5, "Borrow limit", "A borrow above available_borrows_usd is rejected and changes nothing")
    try:
        processor.borrow("alice", "DAI", Decimal("1000"))
    except LendingError as exc:
        print(f"  rejected: {type(exc).__name__}: {exc}")


def step_06_self_collateral(processor: OperationProcessor):
    step_header(6, "Self-collateral rule", "An asset you supply cannot also be borrowed")
    try:
        processor.borrow("alice", "WETH", Decimal("0.01"))
    except LendingError as exc:
        print(f"  rejected: {type(exc).__name__}: {exc}")


def step_07_advance_time(processor: OperationProcessor):
    step_header(7, "Advance time", "Indices grow; every balance grows with them at no per-user cost")
    before = processor.get_reserve_data("USDC")
    processor.ledger.advance_time(processor.ledger.current_time + timedelta(days=CONFIG.elapsed_days))
    after = processor.get_reserve_data("USDC")
    print(f"  USDC borrow index  {before['borrow_index']:.9f} -> {after['borrow_index']:.9f}")
    print(f"  USDC borrow APR    {after['borrow_apr']:.4%}")
    print(f"  alice USDC debt    {processor.get_user_position('alice', 'USDC')['borrowed']}")


def step_08_accrue(processor: OperationProcessor):
    step_header(8, "Commit accrual", "accrue_all() writes the projected indices and the treasury share")
    for tx in processor.accrue_all():
        asset = tx.reserve_changes[0].asset
        print(f"  {asset:5s} treasury={processor.get_reserve_data(asset)['accrued_to_treasury']}")
    show_account(processor, "alice")


def step_09_price_shock(processor: OperationProcessor):
    step_header(9, "Price shock", "WETH falls; health factor drops below 1")
    processor.oracle.update_price("WETH", CONFIG.shocked_weth_price)
    show_account(processor, "alice")


def step_10_liquidate(processor: OperationProcessor, tokens: InMemoryTokenGateway, events: EventLog):
    step_header(10, "Liquidate", "Repay up to the close factor, seize collateral plus bonus")
    debt = processor.get_user_position("alice", "USDC")["borrowed"]
    cover = (debt * processor.close_factor).quantize(Decimal("0.000001"), rounding="ROUND_DOWN")
    tokens.mint("keeper", "USDC", cover)
    tokens.approve("keeper", "USDC", cover)
    processor.liquidate("keeper", "alice", "USDC", "WETH", cover)
    event = events.of_type("Liquidation")[-1]
    print(f"  keeper repaid {event.amount} USDC, seized {event.liquidated_collateral_amount} WETH")
    show_account(processor, "alice")


def step_11_stress(processor: OperationProcessor):
    step_header(11, "Stress test", "How likely is liquidation over the next week?")
    exposures = account_exposures(processor.ledger, processor.oracle, "alice")
    vols = {"WETH": CONFIG.weth_volatility}
    result = simulate_price_shocks(
        exposures, vols, horizon_days=CONFIG.stress_horizon_days,
        n_paths=CONFIG.stress_paths, seed=7,
    )
    closed = analytic_liquidation_probability(exposures, vols, CONFIG.stress_horizon_days)
    print(f"  Monte Carlo P(liquidation) = {result.liquidation_probability:.4f}")
    print(f"  Closed form P(liquidation) = {closed:.4f}")
    print(f"  HF quantiles 5/50/95%      = {result.hf_p05:.3f} / {result.hf_p50:.3f} / {result.hf_p95:.3f}")


def main():
    """Run the complete tutorial."""
    configure_logging("WARNING")
    print("=" * 70)
    print("       LENDING MARKET - INTERACTIVE TUTORIAL")
    print("=" * 70)
    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    wait_for_enter()

    processor, tokens, events = step_01_load_market()
    wait_for_enter()
    step_02_supply(processor, tokens)
    wait_for_enter()
    step_03_account_data(processor)
    wait_for_enter()
    step_04_borrow(processor)
    wait_for_enter()
    step_05_borrow_limit(processor)
    wait_for_enter()
    step_06_self_collateral(processor)
    wait_for_enter()
    step_07_advance_time(processor)
    wait_for_enter()
    step_08_accrue(processor)
    wait_for_enter()
    step_09_price_shock(processor)
    wait_for_enter()
    step_10_liquidate(processor, tokens, events)
    wait_for_enter()
    step_11_stress(processor)

    print(f"\n  {len(events)} events published; alice history:")
    for event in events.for_user("alice"):
        print(f"    #{event.sequence_number:<3d} {event.event_type:12s} {event.amount} {event.asset}")


if __name__ == "__main__":
    main()
