"""
stress.py - Price-Shock Stress Testing of Account Health

Monte Carlo and closed-form estimates of how likely an account is to become
liquidatable over a horizon, given per-asset volatilities.

Prices follow driftless lognormal shocks over the horizon:

    X_i = exp(-0.5 * v_i^2 * t + v_i * sqrt(t) * Z_i),   E[X_i] = 1

and each path's health factor is

    HF = sum(collateral_usd_i * threshold_i * X_i) / sum(debt_usd_i * X_i)

Time is in calendar days (365 days/year), matching the per-second rate model.

Provides:
- account_exposures: per-asset USD exposures of a live account
- simulate_price_shocks: vectorized Monte Carlo over correlated shocks
- analytic_liquidation_probability: closed form for a single volatile
  collateral asset against constant-price debt

All simulation math is float64 numpy; only the exposure extraction touches
the Decimal ledger.
"""

import math
import numpy as np
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence, Tuple
from scipy.special import erf as scipy_erf

from .core import MarketView, PriceOracle, ZERO
from .positions import true_supply_balance, true_borrow_balance
from .risk import calculate_usd_value, fetch_prices, load_account


# Constants
DAYS_PER_YEAR = 365.0
SQRT_2 = math.sqrt(2.0)
HF_QUANTILES = (0.05, 0.5, 0.95)


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class AssetExposure:
    """USD exposure of one account to one asset, at current prices."""
    asset: str
    collateral_usd: float
    debt_usd: float
    liquidation_threshold: float


@dataclass(frozen=True, slots=True)
class StressResult:
    """
    Distribution summary of simulated health factors.

    Health factor quantiles are inf when the account carries no debt.
    """
    liquidation_probability: float
    hf_p05: float
    hf_p50: float
    hf_p95: float
    n_paths: int


# ============================================================================
# EXPOSURE EXTRACTION
# ============================================================================

def account_exposures(view: MarketView, oracle: PriceOracle, user: str) -> Tuple[AssetExposure, ...]:
    """
    Per-asset exposures of a user at view.current_time.

    Assets with no balance are skipped; the result is sorted by asset.
    """
    positions, configs, states = load_account(view, user)
    prices = fetch_prices(oracle, positions, configs, states)
    exposures = []
    for asset in sorted(prices):
        config = configs[asset]
        state = states[asset]
        supplied = true_supply_balance(positions[asset], state.liquidity_index, config.decimals)
        borrowed = true_borrow_balance(positions[asset], state.borrow_index, config.decimals)
        exposures.append(AssetExposure(
            asset=asset,
            collateral_usd=float(calculate_usd_value(supplied, prices[asset])) if supplied > ZERO else 0.0,
            debt_usd=float(calculate_usd_value(borrowed, prices[asset])) if borrowed > ZERO else 0.0,
            liquidation_threshold=float(config.liquidation_threshold_fraction),
        ))
    return tuple(exposures)


# ============================================================================
# MONTE CARLO
# ============================================================================

def _validate_stress_inputs(
    volatilities: np.ndarray,
    horizon_days: float,
    n_paths: int,
) -> None:
    if not np.all(np.isfinite(volatilities)) or np.any(volatilities < 0):
        raise ValueError(f"Volatilities must be finite and non-negative, got {volatilities}")
    if not math.isfinite(horizon_days) or horizon_days <= 0:
        raise ValueError(f"horizon_days must be positive, got {horizon_days}")
    if n_paths < 1:
        raise ValueError(f"n_paths must be at least 1, got {n_paths}")


def simulate_price_shocks(
    exposures: Sequence[AssetExposure],
    volatilities: Mapping[str, float],
    horizon_days: float = 1.0,
    n_paths: int = 10_000,
    seed: Optional[int] = None,
    correlation: Optional[np.ndarray] = None,
) -> StressResult:
    """
    Simulate health factors under random price shocks.

    Args:
        exposures: Output of account_exposures (or hand-built)
        volatilities: Annualized volatility per asset; missing assets are
            treated as constant-price (v = 0)
        horizon_days: Shock horizon in calendar days
        n_paths: Number of Monte Carlo paths
        seed: Seed for numpy's default_rng, for reproducible runs
        correlation: Optional correlation matrix ordered like exposures

    Returns:
        StressResult

    Example:
        exposures = account_exposures(ledger, oracle, "bob")
        result = simulate_price_shocks(exposures, {"WETH": 0.8}, horizon_days=7, seed=42)
        result.liquidation_probability
    """
    n_assets = len(exposures)
    vols = np.array([float(volatilities.get(e.asset, 0.0)) for e in exposures], dtype=float)
    _validate_stress_inputs(vols, horizon_days, n_paths)

    weighted = np.array([e.collateral_usd * e.liquidation_threshold for e in exposures], dtype=float)
    debt = np.array([e.debt_usd for e in exposures], dtype=float)
    if n_assets == 0 or not np.any(debt > 0):
        return StressResult(0.0, math.inf, math.inf, math.inf, n_paths)

    t = horizon_days / DAYS_PER_YEAR
    rng = np.random.default_rng(seed)
    z = rng.standard_normal((n_paths, n_assets))
    if correlation is not None:
        corr = np.asarray(correlation, dtype=float)
        if corr.shape != (n_assets, n_assets):
            raise ValueError(f"correlation must be {n_assets}x{n_assets}, got {corr.shape}")
        z = z @ np.linalg.cholesky(corr).T

    shocks = np.exp(-0.5 * vols * vols * t + vols * np.sqrt(t) * z)
    shocked_weighted = shocks @ weighted
    shocked_debt = shocks @ debt
    hf = shocked_weighted / shocked_debt

    p05, p50, p95 = np.quantile(hf, HF_QUANTILES)
    return StressResult(
        liquidation_probability=float(np.mean(hf < 1.0)),
        hf_p05=float(p05),
        hf_p50=float(p50),
        hf_p95=float(p95),
        n_paths=n_paths,
    )


# ============================================================================
# CLOSED FORM
# ============================================================================

def normal_cdf(x: float) -> float:
    """Standard normal cumulative distribution function."""
    return float(0.5 * (1.0 + scipy_erf(x / SQRT_2)))


def analytic_liquidation_probability(
    exposures: Sequence[AssetExposure],
    volatilities: Mapping[str, float],
    horizon_days: float = 1.0,
) -> float:
    """
    Exact liquidation probability when only one collateral asset is volatile.

    With debt in constant-price assets, HF < 1 iff X < D / W, so

        P = N((ln(D / W) + 0.5 * v^2 * t) / (v * sqrt(t)))

    where W is the volatile asset's threshold-weighted collateral and D is the
    debt net of the constant-price weighted collateral.

    Raises:
        ValueError: If more than one asset is volatile, or the volatile asset
            also carries debt.
    """
    vols = np.array([float(volatilities.get(e.asset, 0.0)) for e in exposures], dtype=float)
    _validate_stress_inputs(vols, horizon_days, 1)

    volatile = [e for e, v in zip(exposures, vols) if v > 0]
    if len(volatile) > 1:
        raise ValueError("Closed form needs at most one volatile asset")
    debt = sum(e.debt_usd for e in exposures)
    if debt <= 0:
        return 0.0
    stable_weighted = sum(
        e.collateral_usd * e.liquidation_threshold for e, v in zip(exposures, vols) if v == 0
    )
    if not volatile:
        return 1.0 if stable_weighted < debt else 0.0

    exposure = volatile[0]
    if exposure.debt_usd > 0:
        raise ValueError(f"Volatile asset {exposure.asset} also carries debt")
    weighted = exposure.collateral_usd * exposure.liquidation_threshold
    remaining = debt - stable_weighted
    if remaining <= 0:
        return 0.0
    if weighted <= 0:
        return 1.0

    v = float(volatilities[exposure.asset])
    t = horizon_days / DAYS_PER_YEAR
    return normal_cdf((math.log(remaining / weighted) + 0.5 * v * v * t) / (v * math.sqrt(t)))
