"""Unit tests for market configuration loading."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from pathlib import Path

import pytest
import yaml

from lending import (
    ConfigInvariantViolation, InMemoryTokenGateway, EventLog, POOL_WALLET,
    load_market_config, parse_market_config, build_market,
)

EXAMPLE = Path(__file__).resolve().parents[2] / "examples" / "market.yaml"


def minimal(**overrides):
    raw = {
        "market": {"name": "unit", "start_time": "2025-01-01T00:00:00", "close_factor": 0.5},
        "reserves": {
            "USDC": {"decimals": 6, "ltv": 8000, "liquidation_threshold": 8500,
                     "liquidation_bonus": 500, "price": 1},
            "WETH": {"decimals": 18, "ltv": 7500, "liquidation_threshold": 8250,
                     "liquidation_bonus": 500, "price": 2000,
                     "rates": {"slope1": 0.033, "reserve_factor": 0.15}},
        },
    }
    raw.update(overrides)
    return raw


class TestParseMarketConfig:

    def test_minimal(self) -> None:
        cfg = parse_market_config(minimal())
        assert cfg.market.name == "unit"
        assert cfg.market.start_time == datetime(2025, 1, 1)
        assert cfg.market.close_factor == Decimal("0.5")
        assert [spec.asset for spec in cfg.reserves] == ["USDC", "WETH"]
        assert cfg.prices == {"USDC": Decimal("1"), "WETH": Decimal("2000")}

    def test_rates_fill_defaults(self) -> None:
        weth = parse_market_config(minimal()).reserves[1]
        assert weth.rates.slope1 == Decimal("0.033")
        assert weth.rates.reserve_factor == Decimal("0.15")
        assert weth.rates.slope2 == Decimal("0.75")

    def test_market_section_optional(self) -> None:
        raw = minimal()
        del raw["market"]
        cfg = parse_market_config(raw)
        assert cfg.market.name == "main"
        assert cfg.market.close_factor == Decimal("0.5")

    def test_no_reserves(self) -> None:
        with pytest.raises(ConfigInvariantViolation, match="At least one reserve"):
            parse_market_config(minimal(reserves={}))

    def test_missing_reserve_key(self) -> None:
        raw = minimal()
        del raw["reserves"]["USDC"]["price"]
        with pytest.raises(ConfigInvariantViolation, match="missing price"):
            parse_market_config(raw)

    def test_non_integer_bps(self) -> None:
        raw = minimal()
        raw["reserves"]["USDC"]["ltv"] = 0.8
        with pytest.raises(ConfigInvariantViolation, match="ltv must be an integer"):
            parse_market_config(raw)

    def test_non_positive_price(self) -> None:
        raw = minimal()
        raw["reserves"]["USDC"]["price"] = 0
        with pytest.raises(ConfigInvariantViolation, match="price must be positive"):
            parse_market_config(raw)

    def test_non_numeric_value(self) -> None:
        raw = minimal()
        raw["reserves"]["WETH"]["rates"]["slope2"] = "steep"
        with pytest.raises(ConfigInvariantViolation, match="not a number"):
            parse_market_config(raw)

    def test_bad_start_time(self) -> None:
        with pytest.raises(ConfigInvariantViolation, match="ISO-8601"):
            parse_market_config(minimal(market={"start_time": "yesterday"}))

    def test_unknown_asset_in_accounts(self) -> None:
        with pytest.raises(ConfigInvariantViolation, match="unknown reserve 'DAI'"):
            parse_market_config(minimal(accounts={"alice": {"DAI": 10}}))

    def test_document_must_be_mapping(self) -> None:
        with pytest.raises(ConfigInvariantViolation):
            parse_market_config(["not", "a", "mapping"])


class TestLoadMarketConfig:

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_market_config(tmp_path / "missing.yaml")

    def test_round_trip_through_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "market.yaml"
        path.write_text(yaml.safe_dump(minimal()))
        cfg = load_market_config(path)
        assert len(cfg.reserves) == 2

    def test_example_file(self) -> None:
        cfg = load_market_config(EXAMPLE)
        assert {spec.asset for spec in cfg.reserves} == {"USDC", "DAI", "WETH"}
        assert cfg.seed_liquidity["deployer"]["WETH"] == Decimal("500000")


class TestBuildMarket:

    def test_registers_reserves(self) -> None:
        processor = build_market(parse_market_config(minimal()))
        ledger = processor.ledger
        assert ledger.name == "unit"
        assert ledger.current_time == datetime(2025, 1, 1)
        assert ledger.list_reserves() == ["USDC", "WETH"]
        assert ledger.get_reserve_config("WETH").rate_params.reserve_factor == Decimal("0.15")
        assert processor.oracle.get_price("WETH") == Decimal("2000")

    def test_invalid_risk_parameters(self) -> None:
        raw = minimal()
        raw["reserves"]["USDC"]["ltv"] = 9000
        with pytest.raises(ConfigInvariantViolation, match="ltv"):
            build_market(parse_market_config(raw))

    def test_invalid_close_factor(self) -> None:
        with pytest.raises(ConfigInvariantViolation, match="close_factor"):
            build_market(parse_market_config(minimal(market={"close_factor": 2})))

    def test_example_market_is_seeded(self) -> None:
        tokens = InMemoryTokenGateway()
        events = EventLog()
        processor = build_market(load_market_config(EXAMPLE), tokens=tokens, events=events)
        for asset in ("USDC", "DAI", "WETH"):
            assert processor.get_reserve_data(asset)["total_supplied"] == Decimal("500000")
            assert tokens.balance_of(POOL_WALLET, asset) == Decimal("500000")
            assert tokens.balance_of("deployer", asset) == Decimal("500000")
            assert tokens.balance_of("frontend1", asset) == Decimal("1000000")
        assert len(events) == 3

    def test_seed_without_tokens_records_only(self) -> None:
        raw = minimal(seed_liquidity={"deployer": {"USDC": 1000}})
        processor = build_market(parse_market_config(raw))
        assert processor.get_user_position("deployer", "USDC")["supplied"] == Decimal("1000")
