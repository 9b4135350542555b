"""
lending - Multi-Asset Lending Market Core

Accounting and risk core of a lending protocol: scaled positions, index
accrual, USD risk aggregation and solvency-gated operations.

Usage:
    from decimal import Decimal
    from lending import (
        LendingLedger, OperationProcessor, StaticPriceOracle, create_rate_params,
    )

    ledger = LendingLedger("main")
    ledger.register_reserve("USDC", 6, ltv=8000, liquidation_threshold=8500,
                            liquidation_bonus=500, rate_params=create_rate_params())
    ledger.register_reserve("WETH", 18, ltv=7500, liquidation_threshold=8250,
                            liquidation_bonus=500)
    oracle = StaticPriceOracle({"USDC": 1, "WETH": 2000})
    processor = OperationProcessor(ledger, oracle)

    processor.supply("deployer", "USDC", Decimal("500000"))
    processor.supply("alice", "WETH", Decimal("1"))
    processor.borrow("alice", "USDC", Decimal("1000"))
    processor.get_user_account_data("alice").health_factor   # 1.65
"""

# Core types
from .core import (
    MarketView,
    PriceOracle,
    TokenGateway,
    EventSink,
    Move,
    ReserveStateChange,
    PositionChange,
    LendingEvent,
    PendingTransaction,
    Transaction,
    build_transaction,
    empty_pending_transaction,
    validate_amount,
    LendingError,
    UnknownAsset,
    InvalidAmount,
    InsufficientBalance,
    InsufficientLiquidity,
    BorrowExceedsLimit,
    WithdrawBreaksHealthFactor,
    SelfCollateralBorrowRejected,
    HealthFactorAboveLiquidationThreshold,
    ExceedsCloseFactor,
    InsufficientCollateral,
    ConfigInvariantViolation,
    PriceUnavailable,
    TransferFailed,
    StaleStateError,
    POOL_WALLET,
    PRICE_DECIMALS,
    USD_DECIMALS,
    INDEX_DECIMALS,
    SECONDS_PER_YEAR,
    DEFAULT_CLOSE_FACTOR,
    EVENT_SUPPLY,
    EVENT_WITHDRAW,
    EVENT_BORROW,
    EVENT_REPAY,
    EVENT_LIQUIDATION,
)

# Interest rate model
from .interest_rate import (
    RateParams,
    create_rate_params,
    calculate_utilization,
    calculate_borrow_apr,
    calculate_supply_apr,
    calculate_borrow_rate,
    calculate_supply_rate,
)

# Reserves
from .reserves import (
    ReserveConfig,
    ReserveState,
    ReserveRegistry,
    create_reserve_config,
    initial_reserve_state,
    reserve_totals,
)

# Accrual
from .accrual import (
    calculate_accrued_state,
    project_reserve_state,
    compute_accrual,
)

# Positions
from .positions import (
    UserPosition,
    true_supply_balance,
    true_borrow_balance,
)

# Risk
from .risk import (
    AccountSnapshot,
    calculate_usd_value,
    calculate_health_factor,
    calculate_account_snapshot,
    compute_account_snapshot,
)

# Operations
from .operations import (
    OperationProcessor,
    compute_supply,
    compute_withdraw,
    compute_borrow,
    compute_repay,
    compute_liquidation,
    calculate_seized_collateral,
    transact,
)

# Ledger
from .ledger import LendingLedger

# Collaborators
from .pricing_source import StaticPriceOracle
from .tokens import InMemoryTokenGateway
from .events import EventLog

# Configuration
from .config import (
    MarketConfig,
    load_market_config,
    parse_market_config,
    build_market,
)

# Stress testing
from .stress import (
    AssetExposure,
    StressResult,
    account_exposures,
    simulate_price_shocks,
    analytic_liquidation_probability,
)

from .logging_setup import configure_logging

__all__ = [
    # Core
    'MarketView', 'PriceOracle', 'TokenGateway', 'EventSink',
    'Move', 'ReserveStateChange', 'PositionChange', 'LendingEvent',
    'PendingTransaction', 'Transaction', 'build_transaction', 'empty_pending_transaction',
    'validate_amount',
    'POOL_WALLET', 'PRICE_DECIMALS', 'USD_DECIMALS', 'INDEX_DECIMALS', 'SECONDS_PER_YEAR',
    'DEFAULT_CLOSE_FACTOR',
    'EVENT_SUPPLY', 'EVENT_WITHDRAW', 'EVENT_BORROW', 'EVENT_REPAY', 'EVENT_LIQUIDATION',
    # Errors
    'LendingError', 'UnknownAsset', 'InvalidAmount', 'InsufficientBalance',
    'InsufficientLiquidity', 'BorrowExceedsLimit', 'WithdrawBreaksHealthFactor',
    'SelfCollateralBorrowRejected', 'HealthFactorAboveLiquidationThreshold',
    'ExceedsCloseFactor', 'InsufficientCollateral', 'ConfigInvariantViolation',
    'PriceUnavailable', 'TransferFailed', 'StaleStateError',
    # Interest rates
    'RateParams', 'create_rate_params', 'calculate_utilization',
    'calculate_borrow_apr', 'calculate_supply_apr',
    'calculate_borrow_rate', 'calculate_supply_rate',
    # Reserves
    'ReserveConfig', 'ReserveState', 'ReserveRegistry', 'create_reserve_config',
    'initial_reserve_state', 'reserve_totals',
    # Accrual
    'calculate_accrued_state', 'project_reserve_state', 'compute_accrual',
    # Positions
    'UserPosition', 'true_supply_balance', 'true_borrow_balance',
    # Risk
    'AccountSnapshot', 'calculate_usd_value', 'calculate_health_factor',
    'calculate_account_snapshot', 'compute_account_snapshot',
    # Operations
    'OperationProcessor', 'compute_supply', 'compute_withdraw', 'compute_borrow',
    'compute_repay', 'compute_liquidation', 'calculate_seized_collateral', 'transact',
    # Ledger and collaborators
    'LendingLedger', 'StaticPriceOracle', 'InMemoryTokenGateway', 'EventLog',
    # Configuration
    'MarketConfig', 'load_market_config', 'parse_market_config', 'build_market',
    # Stress
    'AssetExposure', 'StressResult', 'account_exposures', 'simulate_price_shocks',
    'analytic_liquidation_probability',
    'configure_logging',
]

__version__ = '1.0.0'
