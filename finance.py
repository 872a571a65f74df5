from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date
from enum import Enum
from numbers import Integral, Real
from typing import Iterable

import numpy as np
import numpy_financial as npf
import pandas as pd

logger = logging.getLogger(__name__)

IRR_INITIAL_GUESS = 0.10
IRR_MAX_ITERATIONS = 100
IRR_TOLERANCE = 0.0001
IRR_MIN_RATE = -0.99
IRR_MAX_RATE = 10.0


class FinanceDomainError(ValueError):
    """Inputs for which a financial computation is undefined."""


class PaymentFrequency(str, Enum):
    MONTHLY = "monthly"
    ANNUAL = "annual"


def require_finite(name: str, value) -> float:
    if isinstance(value, bool) or not isinstance(value, Real) or not math.isfinite(value):
        raise FinanceDomainError(f"{name} must be a finite number, got {value!r}")
    return float(value)


def require_int(name: str, value, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise FinanceDomainError(f"{name} must be an integer, got {value!r}")
    if minimum is not None and value < minimum:
        raise FinanceDomainError(f"{name} must be >= {minimum}, got {value!r}")
    return int(value)


@dataclass(frozen=True)
class AmortizationRow:
    period: int
    due_date: date
    interest_portion: float
    principal_portion: float
    installment_total: float
    remaining_balance: float
    cumulative_cost: float


@dataclass(frozen=True)
class InvestmentParameters:
    """Loan/investment terms of one scenario.

    The financed amount is also the initial investment outflow at t=0.
    """

    principal: float
    annual_rate: float  # 16.5 = 16.5% p.a.
    term_periods: int  # years; scaled x12 for monthly schedules
    grace_years: int = 0
    payment_frequency: PaymentFrequency = PaymentFrequency.ANNUAL
    study_start_year: int = 2025
    projection_years: int | None = None

    def __post_init__(self):
        principal = require_finite("principal", self.principal)
        if principal <= 0:
            raise FinanceDomainError(f"principal must be positive, got {principal!r}")
        rate = require_finite("annual_rate", self.annual_rate)
        if rate <= -100:
            raise FinanceDomainError(f"annual_rate must be greater than -100%, got {rate!r}")
        require_int("term_periods", self.term_periods, minimum=1)
        require_int("grace_years", self.grace_years, minimum=0)
        require_int("study_start_year", self.study_start_year)
        if self.projection_years is not None:
            require_int("projection_years", self.projection_years, minimum=1)
        try:
            frequency = PaymentFrequency(self.payment_frequency)
        except ValueError:
            raise FinanceDomainError(f"unknown payment_frequency {self.payment_frequency!r}") from None
        object.__setattr__(self, "principal", principal)
        object.__setattr__(self, "annual_rate", rate)
        object.__setattr__(self, "payment_frequency", frequency)

    @property
    def fixed_principal_portion(self) -> float:
        return self.principal / self.term_periods

    @property
    def first_repayment_index(self) -> int:
        return self.grace_years + 1

    @property
    def last_repayment_index(self) -> int:
        return self.first_repayment_index + self.term_periods - 1

    def in_repayment(self, index: int) -> bool:
        return self.first_repayment_index <= index <= self.last_repayment_index

    def schedule(self) -> list[AmortizationRow]:
        """Return the contractual payment schedule.

        Monthly loans use equal installments (Price system), annual loans a
        constant principal portion (SAC). Periods are 1-indexed.
        """
        if self.payment_frequency is PaymentFrequency.MONTHLY:
            return _equal_installment_schedule(self)
        return _constant_amortization_schedule(self)


def _equal_installment_schedule(p: InvestmentParameters) -> list[AmortizationRow]:
    r = p.annual_rate / 100.0 / 12.0
    n = p.term_periods * 12
    # pmt falls back to principal / n when r == 0
    installment = float(npf.pmt(r, n, -p.principal))
    start = pd.Timestamp(year=p.study_start_year, month=1, day=1)

    rows = []
    balance = p.principal
    for period in range(1, n + 1):
        interest = balance * r
        principal_paid = installment - interest
        balance -= principal_paid
        rows.append(AmortizationRow(
            period=period,
            due_date=(start + pd.DateOffset(months=period)).date(),
            interest_portion=interest,
            principal_portion=principal_paid,
            installment_total=installment,
            remaining_balance=max(0.0, balance),
            # installment x periods paid, not a running sum of the rows
            cumulative_cost=installment * period,
        ))
    return rows


def _constant_amortization_schedule(p: InvestmentParameters) -> list[AmortizationRow]:
    r = p.annual_rate / 100.0
    n = p.term_periods
    principal_paid = p.fixed_principal_portion

    rows = []
    balance = p.principal
    cumulative = 0.0
    for period in range(1, n + 1):
        interest = balance * r
        installment = principal_paid + interest
        balance = 0.0 if period == n else balance - principal_paid
        cumulative += installment
        rows.append(AmortizationRow(
            period=period,
            due_date=date(p.study_start_year + period, 1, 1),
            interest_portion=interest,
            principal_portion=principal_paid,
            installment_total=installment,
            remaining_balance=max(0.0, balance),
            cumulative_cost=cumulative,
        ))
    return rows


def _as_flows(cashflows: Iterable[float]) -> np.ndarray:
    flows = np.asarray(list(cashflows), dtype=float)
    if flows.ndim != 1 or flows.size == 0:
        raise FinanceDomainError("cashflows must be a non-empty sequence of numbers")
    if not np.all(np.isfinite(flows)):
        raise FinanceDomainError("cashflows must not contain NaN or infinite values")
    return flows


def _discount_factors(discount_rate: float, periods: int) -> np.ndarray:
    rate = require_finite("discount_rate", discount_rate)
    if rate <= -100:
        raise FinanceDomainError(f"discount_rate must be greater than -100%, got {rate!r}")
    return (1.0 + rate / 100.0) ** np.arange(periods)


def npv(discount_rate: float, cashflows: Iterable[float]) -> float:
    """NPV with cashflows[0] at t=0. ``discount_rate`` is a percentage."""
    flows = _as_flows(cashflows)
    return float(np.sum(flows / _discount_factors(discount_rate, flows.size)))


class IrrStatus(str, Enum):
    CONVERGED = "converged"
    MAX_ITERATIONS = "max_iterations"
    FAILED = "failed"


@dataclass(frozen=True)
class IrrResult:
    rate: float | None  # percent
    status: IrrStatus
    iterations: int

    @property
    def converged(self) -> bool:
        return self.status is IrrStatus.CONVERGED


def irr(
    cashflows: Iterable[float],
    guess: float = IRR_INITIAL_GUESS,
    max_iterations: int = IRR_MAX_ITERATIONS,
    tolerance: float = IRR_TOLERANCE,
) -> IrrResult:
    """Newton-Raphson IRR.

    ``guess`` is a fraction (0.10 = 10%); the returned rate is a percentage.
    When the iteration cap is hit the last estimate is returned with status
    MAX_ITERATIONS. A zero derivative or a non-finite NPV ends the search with
    status FAILED and no rate.
    """
    flows = _as_flows(cashflows)
    if flows.size < 2:
        raise FinanceDomainError("IRR needs at least two cash flows")
    require_int("max_iterations", max_iterations, minimum=1)
    t = np.arange(flows.size)

    r = require_finite("guess", guess)
    for iteration in range(1, max_iterations + 1):
        with np.errstate(divide="ignore", over="ignore", invalid="ignore"):
            f = float(np.sum(flows / (1 + r) ** t))
            df = float(-np.sum(t[1:] * flows[1:] / (1 + r) ** (t[1:] + 1)))
        if not (math.isfinite(f) and math.isfinite(df)):
            logger.warning("IRR search hit a non-finite NPV at rate %.6f", r)
            return IrrResult(None, IrrStatus.FAILED, iteration)
        if abs(f) < tolerance:
            logger.debug("IRR converged to %.6f after %d iterations", r, iteration)
            return IrrResult(r * 100.0, IrrStatus.CONVERGED, iteration)
        if df == 0:
            logger.warning("IRR search stopped: NPV derivative is zero at rate %.6f", r)
            return IrrResult(None, IrrStatus.FAILED, iteration)
        r -= f / df
        r = min(max(r, IRR_MIN_RATE), IRR_MAX_RATE)

    logger.warning("IRR did not converge after %d iterations, last estimate %.6f", max_iterations, r)
    return IrrResult(r * 100.0, IrrStatus.MAX_ITERATIONS, max_iterations)


@dataclass(frozen=True)
class PaybackResult:
    periods: int | None
    fractional: float | None

    @property
    def found(self) -> bool:
        return self.periods is not None


NO_PAYBACK = PaybackResult(None, None)


def discounted_payback(discount_rate: float, cashflows: Iterable[float]) -> PaybackResult:
    """Period in which the accumulated discounted flow turns non-negative.

    cashflows[0] is the investment outflow. ``periods`` counts the flows after
    t=0 needed to recover it; ``fractional`` interpolates linearly inside the
    recovering period.
    """
    flows = _as_flows(cashflows)
    if flows[0] >= 0:
        raise FinanceDomainError(f"cashflows[0] must be an investment outflow, got {flows[0]!r}")
    discounted = flows / _discount_factors(discount_rate, flows.size)

    accumulated = discounted[0]
    for t in range(1, flows.size):
        prior = accumulated
        accumulated += discounted[t]
        if accumulated >= 0:
            return PaybackResult(t, float((t - 1) + abs(prior) / discounted[t]))
    return NO_PAYBACK
