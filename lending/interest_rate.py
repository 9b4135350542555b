"""
interest_rate.py - Utilization-Driven Interest Rate Model

Pure functions mapping reserve utilization to borrow and supply rates.

The curve is piecewise-linear with one kink at the optimal utilization:

    u <= optimal:  borrow_apr = base + slope1 * u / optimal
    u >  optimal:  borrow_apr = base + slope1 + slope2 * (u - optimal) / (1 - optimal)

    supply_apr = borrow_apr * u * (1 - reserve_factor)

Both segments meet at u = optimal, so the curve is continuous, and with
non-negative slopes it is monotonically non-decreasing in utilization.
Rates are configured per year and returned per second.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict

from .core import (
    ConfigInvariantViolation,
    ONE, ZERO, SECONDS_PER_YEAR,
    to_decimal,
)


@dataclass(frozen=True, slots=True)
class RateParams:
    """
    Immutable per-reserve rate curve configuration.

    All values are annual Decimal fractions (0.04 = 4% APR).
    """
    base_rate: Decimal
    slope1: Decimal
    slope2: Decimal
    optimal_utilization: Decimal
    reserve_factor: Decimal

    def __post_init__(self):
        """Convert float values to Decimal to ensure type consistency."""
        for name in ('base_rate', 'slope1', 'slope2', 'optimal_utilization', 'reserve_factor'):
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                object.__setattr__(self, name, to_decimal(value))


def create_rate_params(
    base_rate: Any = ZERO,
    slope1: Any = Decimal("0.04"),
    slope2: Any = Decimal("0.75"),
    optimal_utilization: Any = Decimal("0.8"),
    reserve_factor: Any = Decimal("0.1"),
) -> RateParams:
    """
    Create validated rate parameters.

    Raises:
        ConfigInvariantViolation: If any rate or slope is negative, the kink is
            outside (0, 1], or the reserve factor is outside [0, 1).

    Example:
        params = create_rate_params(
            base_rate=Decimal("0"),
            slope1=Decimal("0.04"),
            slope2=Decimal("0.75"),
            optimal_utilization=Decimal("0.8"),
            reserve_factor=Decimal("0.1"),
        )
    """
    params = RateParams(
        base_rate=base_rate,
        slope1=slope1,
        slope2=slope2,
        optimal_utilization=optimal_utilization,
        reserve_factor=reserve_factor,
    )
    validate_rate_params(params)
    return params


def validate_rate_params(params: RateParams) -> None:
    """Check the invariants that keep the curve monotone and continuous."""
    for name in ('base_rate', 'slope1', 'slope2'):
        value = getattr(params, name)
        if not value.is_finite() or value < ZERO:
            raise ConfigInvariantViolation(f"{name} must be a non-negative number, got {value}")
    if not (ZERO < params.optimal_utilization <= ONE):
        raise ConfigInvariantViolation(
            f"optimal_utilization must be in (0, 1], got {params.optimal_utilization}"
        )
    if not (ZERO <= params.reserve_factor < ONE):
        raise ConfigInvariantViolation(
            f"reserve_factor must be in [0, 1), got {params.reserve_factor}"
        )


def calculate_utilization(total_borrowed: Decimal, total_supplied: Decimal) -> Decimal:
    """
    Fraction of supplied liquidity currently lent out.

    Returns Decimal("0") for an empty reserve and never exceeds 1.
    """
    if total_supplied <= ZERO:
        return ZERO
    utilization = total_borrowed / total_supplied
    return min(utilization, ONE)


def calculate_borrow_apr(params: RateParams, utilization: Decimal) -> Decimal:
    """Annual borrow rate on the kinked curve."""
    optimal = params.optimal_utilization
    if utilization <= optimal:
        return params.base_rate + params.slope1 * utilization / optimal
    excess = (utilization - optimal) / (ONE - optimal)
    return params.base_rate + params.slope1 + params.slope2 * excess


def calculate_supply_apr(params: RateParams, utilization: Decimal) -> Decimal:
    """Annual supply rate: borrow interest shared pro rata, minus the reserve factor."""
    return calculate_borrow_apr(params, utilization) * utilization * (ONE - params.reserve_factor)


def calculate_borrow_rate(params: RateParams, utilization: Decimal) -> Decimal:
    """Per-second borrow rate."""
    return calculate_borrow_apr(params, utilization) / SECONDS_PER_YEAR


def calculate_supply_rate(params: RateParams, utilization: Decimal) -> Decimal:
    """Per-second supply rate = borrow_rate * utilization * (1 - reserve_factor)."""
    return calculate_borrow_rate(params, utilization) * utilization * (ONE - params.reserve_factor)


def rate_params_to_dict(params: RateParams) -> Dict[str, Decimal]:
    return {
        'base_rate': params.base_rate,
        'slope1': params.slope1,
        'slope2': params.slope2,
        'optimal_utilization': params.optimal_utilization,
        'reserve_factor': params.reserve_factor,
    }
