"""
conftest.py - Shared pytest fixtures for lending tests

Provides common fixtures used across unit, conformance and functional tests:
- Ledgers with the standard USDC / DAI / WETH reserves
- Oracle, token gateway and event log collaborators
- Processors with and without seed liquidity
"""

import pytest

from lending import OperationProcessor, StaticPriceOracle, InMemoryTokenGateway, EventLog

from tests.fake_view import FakeView
from tests.helpers import T0, PRICES, RESERVES, SEED, make_ledger, fund


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def ledger():
    """Fresh ledger with USDC, DAI and WETH reserves."""
    return make_ledger()


@pytest.fixture
def oracle():
    return StaticPriceOracle(PRICES)


@pytest.fixture
def tokens():
    return InMemoryTokenGateway()


@pytest.fixture
def events():
    return EventLog()


@pytest.fixture
def processor(ledger, oracle, tokens, events):
    """Processor wired to tokens and events, no liquidity yet."""
    return OperationProcessor(ledger, oracle, tokens=tokens, events=events)


@pytest.fixture
def seeded(processor, tokens):
    """Processor whose reserves each hold 500,000 supplied by 'deployer'."""
    for asset in RESERVES:
        fund(tokens, "deployer", asset, SEED)
        processor.supply("deployer", asset, SEED)
    return processor


@pytest.fixture
def bare_processor(ledger, oracle):
    """Processor without a token gateway: moves are recorded, not settled."""
    return OperationProcessor(ledger, oracle)


# =============================================================================
# FAKE VIEW FIXTURES
# =============================================================================

@pytest.fixture
def usdc_view():
    """FakeView with one USDC reserve at index 1 and no positions."""
    return FakeView.with_reserves({"USDC": RESERVES["USDC"]}, time=T0)
