"""
pricing_source.py - Price oracle for risk valuation

Provides the reference PriceOracle used by the risk engine and operations.

Classes:
- StaticPriceOracle: Time-independent prices, updated explicitly

All prices are USD per whole token, fixed-point with PRICE_DECIMALS (8)
places. There is no freshness check.
"""

from decimal import Decimal
from typing import Any, Dict, Iterable, Mapping

from .core import PriceUnavailable, PRICE_DECIMALS, ZERO, quantize, to_decimal


class StaticPriceOracle:
    """
    Oracle with static prices (time-independent).

    Prices stay constant until update_price()/update_prices() is called,
    which is how tests and stress scenarios move the market.
    """

    def __init__(self, prices: Mapping[str, Any]):
        """
        Initialize with a static price map.

        Args:
            prices: Dictionary mapping asset symbols to USD prices
        """
        self.prices: Dict[str, Decimal] = {}
        self.update_prices(prices)

    def get_price(self, asset: str) -> Decimal:
        """
        USD price of one whole token.

        Raises:
            PriceUnavailable: If the asset has no price or the price is not positive.
        """
        price = self.prices.get(asset)
        if price is None:
            raise PriceUnavailable(f"No price for {asset}")
        if not price.is_finite() or price <= ZERO:
            raise PriceUnavailable(f"Invalid price for {asset}: {price}")
        return price

    def get_prices(self, assets: Iterable[str]) -> Dict[str, Decimal]:
        """Prices for several assets; raises PriceUnavailable on the first gap."""
        return {asset: self.get_price(asset) for asset in assets}

    def update_price(self, asset: str, price: Any) -> None:
        """Set the price of an asset, quantized to 8 decimals."""
        value = to_decimal(price)
        if value.is_finite():
            value = quantize(value, PRICE_DECIMALS)
        self.prices[asset] = value

    def update_prices(self, prices: Mapping[str, Any]) -> None:
        """Update multiple prices at once."""
        for asset, price in prices.items():
            self.update_price(asset, price)

    def __repr__(self):
        return f"StaticPriceOracle({len(self.prices)} prices)"
