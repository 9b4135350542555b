"""
config.py - Market configuration loader

Reads a YAML market description, validates it into frozen dataclasses and
builds a ready-to-use OperationProcessor.

File layout (see examples/market.yaml):

    market:
      name: main
      start_time: 2025-01-01T00:00:00
      close_factor: 0.5
    reserves:
      USDC:
        decimals: 6
        ltv: 8000
        liquidation_threshold: 8500
        liquidation_bonus: 500
        price: 1
        rates: {slope1: 0.04, slope2: 0.75, optimal_utilization: 0.8, reserve_factor: 0.1}
    accounts:            # optional token balances minted at build time
      deployer: {USDC: 1000000}
    seed_liquidity:      # optional supplies executed at build time
      deployer: {USDC: 500000}
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union
import logging

import yaml

from .core import (
    EventSink, TokenGateway,
    ConfigInvariantViolation, DEFAULT_CLOSE_FACTOR, INFINITY, ZERO, to_decimal,
)
from .interest_rate import RateParams, create_rate_params
from .ledger import LendingLedger
from .operations import OperationProcessor
from .pricing_source import StaticPriceOracle

logger = logging.getLogger(__name__)

RESERVE_KEYS = ('decimals', 'ltv', 'liquidation_threshold', 'liquidation_bonus', 'price')
RATE_KEYS = ('base_rate', 'slope1', 'slope2', 'optimal_utilization', 'reserve_factor')


# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RateConfig:
    base_rate: Decimal = ZERO
    slope1: Decimal = Decimal("0.04")
    slope2: Decimal = Decimal("0.75")
    optimal_utilization: Decimal = Decimal("0.8")
    reserve_factor: Decimal = Decimal("0.1")

    def to_params(self) -> RateParams:
        return create_rate_params(
            base_rate=self.base_rate,
            slope1=self.slope1,
            slope2=self.slope2,
            optimal_utilization=self.optimal_utilization,
            reserve_factor=self.reserve_factor,
        )


@dataclass(frozen=True)
class ReserveSpec:
    asset: str
    decimals: int
    ltv: int
    liquidation_threshold: int
    liquidation_bonus: int
    price: Decimal
    rates: RateConfig = field(default_factory=RateConfig)


@dataclass(frozen=True)
class MarketSettings:
    name: str = "main"
    start_time: datetime = datetime(1970, 1, 1)
    close_factor: Decimal = DEFAULT_CLOSE_FACTOR


@dataclass(frozen=True)
class MarketConfig:
    market: MarketSettings = field(default_factory=MarketSettings)
    reserves: Tuple[ReserveSpec, ...] = ()
    # wallet -> asset -> amount
    accounts: Mapping[str, Mapping[str, Decimal]] = field(default_factory=dict)
    seed_liquidity: Mapping[str, Mapping[str, Decimal]] = field(default_factory=dict)

    @property
    def prices(self) -> Dict[str, Decimal]:
        return {spec.asset: spec.price for spec in self.reserves}


# ---------------------------------------------------------------------------
# YAML -> dataclass builders
# ---------------------------------------------------------------------------

def _require_mapping(value: Any, where: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ConfigInvariantViolation(f"{where} must be a mapping, got {type(value).__name__}")
    return value


def _build_int(raw: Mapping[str, Any], key: str, where: str) -> int:
    value = raw[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigInvariantViolation(f"{where}.{key} must be an integer, got {value!r}")
    return value


def _build_decimal(value: Any, where: str) -> Decimal:
    try:
        result = to_decimal(value)
    except (ArithmeticError, ValueError) as exc:
        raise ConfigInvariantViolation(f"{where} is not a number: {value!r}") from exc
    if not result.is_finite():
        raise ConfigInvariantViolation(f"{where} must be finite, got {value!r}")
    return result


def _build_time(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as exc:
        raise ConfigInvariantViolation(f"market.start_time is not ISO-8601: {value!r}") from exc


def _build_market(raw: Mapping[str, Any]) -> MarketSettings:
    raw = _require_mapping(raw, "market")
    return MarketSettings(
        name=str(raw.get("name", "main")),
        start_time=_build_time(raw.get("start_time", datetime(1970, 1, 1))),
        close_factor=_build_decimal(raw.get("close_factor", DEFAULT_CLOSE_FACTOR), "market.close_factor"),
    )


def _build_rates(raw: Mapping[str, Any], where: str) -> RateConfig:
    raw = _require_mapping(raw, where)
    defaults = RateConfig()
    values = {
        name: _build_decimal(raw.get(name, getattr(defaults, name)), f"{where}.{name}")
        for name in RATE_KEYS
    }
    return RateConfig(**values)


def _build_reserves(raw: Mapping[str, Any]) -> Tuple[ReserveSpec, ...]:
    raw = _require_mapping(raw, "reserves")
    reserves = []
    for asset, cfg in raw.items():
        where = f"reserves.{asset}"
        cfg = _require_mapping(cfg, where)
        missing = [key for key in RESERVE_KEYS if key not in cfg]
        if missing:
            raise ConfigInvariantViolation(f"{where} is missing {', '.join(missing)}")
        reserves.append(ReserveSpec(
            asset=str(asset),
            decimals=_build_int(cfg, "decimals", where),
            ltv=_build_int(cfg, "ltv", where),
            liquidation_threshold=_build_int(cfg, "liquidation_threshold", where),
            liquidation_bonus=_build_int(cfg, "liquidation_bonus", where),
            price=_build_decimal(cfg["price"], f"{where}.price"),
            rates=_build_rates(cfg.get("rates", {}), f"{where}.rates"),
        ))
    return tuple(reserves)


def _build_amounts(raw: Mapping[str, Any], where: str) -> Dict[str, Dict[str, Decimal]]:
    raw = _require_mapping(raw, where)
    amounts: Dict[str, Dict[str, Decimal]] = {}
    for wallet, holdings in raw.items():
        holdings = _require_mapping(holdings, f"{where}.{wallet}")
        amounts[str(wallet)] = {
            str(a): _build_decimal(q, f"{where}.{wallet}.{a}") for a, q in holdings.items()
        }
    return amounts


def _validate(cfg: MarketConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.reserves:
        raise ConfigInvariantViolation("At least one reserve must be configured")
    known = {spec.asset for spec in cfg.reserves}
    for spec in cfg.reserves:
        if not spec.price.is_finite() or spec.price <= ZERO:
            raise ConfigInvariantViolation(f"reserves.{spec.asset}.price must be positive")
    for section, wallets in (("accounts", cfg.accounts), ("seed_liquidity", cfg.seed_liquidity)):
        for wallet, holdings in wallets.items():
            for asset in holdings:
                if asset not in known:
                    raise ConfigInvariantViolation(
                        f"{section}.{wallet} references unknown reserve '{asset}'"
                    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse_market_config(raw: Any) -> MarketConfig:
    """Validate an already-parsed YAML document into a MarketConfig."""
    raw = _require_mapping(raw, "market config")
    cfg = MarketConfig(
        market=_build_market(raw.get("market", {})),
        reserves=_build_reserves(raw.get("reserves", {})),
        accounts=_build_amounts(raw.get("accounts", {}), "accounts"),
        seed_liquidity=_build_amounts(raw.get("seed_liquidity", {}), "seed_liquidity"),
    )
    _validate(cfg)
    return cfg


def load_market_config(config_path: Union[str, Path]) -> MarketConfig:
    """Load and validate a market configuration from YAML.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigInvariantViolation: If the document is malformed.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f)

    cfg = parse_market_config(raw)
    logger.info("Market configuration loaded from %s (%d reserves)", config_path, len(cfg.reserves))
    return cfg


def build_market(
    config: MarketConfig,
    tokens: Optional[TokenGateway] = None,
    events: Optional[EventSink] = None,
) -> OperationProcessor:
    """
    Build an OperationProcessor for a configured market.

    Registers every reserve on a fresh LendingLedger at market.start_time with
    a StaticPriceOracle holding the configured prices. When a token gateway is
    given, configured account balances are minted and granted an unlimited
    pool allowance. Seed liquidity is then supplied.

    Example:
        processor = build_market(load_market_config("examples/market.yaml"))
        processor.get_reserve_data("USDC")["total_supplied"]
    """
    settings = config.market
    ledger = LendingLedger(settings.name, settings.start_time)
    for spec in config.reserves:
        ledger.register_reserve(
            spec.asset, spec.decimals, spec.ltv, spec.liquidation_threshold,
            spec.liquidation_bonus, spec.rates.to_params(),
        )

    processor = OperationProcessor(
        ledger, StaticPriceOracle(config.prices),
        tokens=tokens, events=events, close_factor=settings.close_factor,
    )

    if tokens is not None:
        for wallet, holdings in config.accounts.items():
            for asset, amount in holdings.items():
                tokens.mint(wallet, asset, amount)
                tokens.approve(wallet, asset, INFINITY)

    for wallet, holdings in config.seed_liquidity.items():
        for asset, amount in holdings.items():
            processor.supply(wallet, asset, amount)

    logger.info("Market %s built with reserves %s", settings.name, ledger.list_reserves())
    return processor
