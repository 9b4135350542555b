"""
tokens.py - In-memory token collaborator

InMemoryTokenGateway stands in for the ERC20-style token contracts the core
settles against: wallets hold balances, grant the pool an allowance, and the
pool pulls (debit) or pays out (credit) tokens.

The pool's own holdings are tracked under POOL_WALLET, so after every commit
balance_of(POOL_WALLET, asset) equals the cash the reserve actually holds.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Any, Dict, Tuple
import logging

from .core import POOL_WALLET, ZERO, InvalidAmount, TransferFailed, to_decimal

logger = logging.getLogger(__name__)


class InMemoryTokenGateway:
    """
    Balances and pool allowances per (wallet, asset).

    Example:
        tokens = InMemoryTokenGateway()
        tokens.mint("alice", "USDC", Decimal("1000"))
        tokens.approve("alice", "USDC", Decimal("1000"))
    """

    def __init__(self):
        self._balances: Dict[str, Dict[str, Decimal]] = defaultdict(lambda: defaultdict(Decimal))
        self._allowances: Dict[Tuple[str, str], Decimal] = defaultdict(Decimal)

    @staticmethod
    def _positive(amount: Any) -> Decimal:
        value = to_decimal(amount)
        if not value.is_finite() or value <= ZERO:
            raise InvalidAmount(f"Token amount must be finite and positive, got {amount}")
        return value

    def mint(self, wallet: str, asset: str, amount: Any) -> None:
        """Create tokens out of thin air (faucet / test setup)."""
        self._balances[wallet][asset] += self._positive(amount)

    def approve(self, wallet: str, asset: str, amount: Any) -> None:
        """
        Set the pool's allowance over a wallet's tokens.

        Decimal("Infinity") grants an unlimited allowance.
        """
        value = to_decimal(amount)
        if value < ZERO:
            raise InvalidAmount(f"Allowance cannot be negative, got {amount}")
        self._allowances[(wallet, asset)] = value

    def balance_of(self, wallet: str, asset: str) -> Decimal:
        return self._balances[wallet][asset]

    def allowance(self, wallet: str, asset: str) -> Decimal:
        return self._allowances[(wallet, asset)]

    def debit(self, wallet: str, asset: str, amount: Decimal) -> None:
        """
        Pull tokens from a wallet into the pool.

        Raises:
            TransferFailed: If the wallet's balance or allowance is too small.
        """
        balance = self._balances[wallet][asset]
        if balance < amount:
            raise TransferFailed(f"{wallet} {asset}: balance {balance} < {amount}")
        allowed = self._allowances[(wallet, asset)]
        if allowed < amount:
            raise TransferFailed(f"{wallet} {asset}: allowance {allowed} < {amount}")
        self._balances[wallet][asset] = balance - amount
        self._allowances[(wallet, asset)] = allowed - amount
        self._balances[POOL_WALLET][asset] += amount
        logger.debug("debit %s %s from %s", amount, asset, wallet)

    def credit(self, wallet: str, asset: str, amount: Decimal) -> None:
        """
        Pay tokens out of the pool to a wallet.

        Raises:
            TransferFailed: If the pool holds less than the amount.
        """
        held = self._balances[POOL_WALLET][asset]
        if held < amount:
            raise TransferFailed(f"pool {asset}: holds {held} < {amount}")
        self._balances[POOL_WALLET][asset] = held - amount
        self._balances[wallet][asset] += amount
        logger.debug("credit %s %s to %s", amount, asset, wallet)

    def snapshot(self) -> Dict[str, Dict[str, Decimal]]:
        """Nonzero balances as plain nested dicts."""
        return {
            wallet: {asset: qty for asset, qty in assets.items() if qty != ZERO}
            for wallet, assets in self._balances.items()
            if any(qty != ZERO for qty in assets.values())
        }

    def __repr__(self):
        return f"InMemoryTokenGateway({len(self._balances)} wallets)"
