from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Sequence

import numpy as np
import pandas as pd

from config import BASE_CASE_YEARS, DEFAULTS, settings
from finance import (
    AmortizationRow,
    FinanceDomainError,
    InvestmentParameters,
    IrrResult,
    PaybackResult,
    discounted_payback,
    irr,
    npv,
    require_finite,
    require_int,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class YearlyAssumption:
    """Operating assumptions for one projected year.

    ``derived_output`` is always computed from the herd inputs, never stored.
    """

    year: int
    unit_count: int  # animals
    yield_per_unit_per_day: float  # litres per animal per day
    days_in_year: int = 365  # shorter for a partial first year
    loss_percent: float = 0.0  # 0..100
    sell_price: float = 0.0
    production_cost: float = 0.0
    extra_revenue: float = 0.0  # e.g. sale of animals

    def __post_init__(self):
        require_int("year", self.year)
        require_int("unit_count", self.unit_count, minimum=0)
        require_int("days_in_year", self.days_in_year, minimum=0)
        if self.days_in_year > 366:
            raise FinanceDomainError(f"days_in_year must be <= 366, got {self.days_in_year!r}")
        if require_finite("yield_per_unit_per_day", self.yield_per_unit_per_day) < 0:
            raise FinanceDomainError(f"yield_per_unit_per_day must be >= 0, got {self.yield_per_unit_per_day!r}")
        loss = require_finite("loss_percent", self.loss_percent)
        if not 0 <= loss <= 100:
            raise FinanceDomainError(f"loss_percent must be within 0..100, got {loss!r}")
        require_finite("sell_price", self.sell_price)
        require_finite("production_cost", self.production_cost)
        require_finite("extra_revenue", self.extra_revenue)

    @property
    def derived_output(self) -> float:
        return self.unit_count * self.yield_per_unit_per_day * self.days_in_year

    def with_changes(self, **changes) -> YearlyAssumption:
        return replace(self, **changes)


@dataclass(frozen=True)
class CashFlowResult:
    index: int
    year: int
    derived_output: float
    effective_output: float
    unit_margin: float
    gross_cash_generation: float
    principal_due: float
    interest_due: float
    extra_revenue: float
    net_cash_flow: float


def validate_assumptions(params: InvestmentParameters, assumptions: Sequence[YearlyAssumption]) -> None:
    if not assumptions:
        raise FinanceDomainError("at least one projected year is required")
    if params.projection_years is not None and len(assumptions) != params.projection_years:
        raise FinanceDomainError(
            f"expected {params.projection_years} projected years, got {len(assumptions)}"
        )
    for i, a in enumerate(assumptions):
        expected = params.study_start_year + i
        if a.year != expected:
            raise FinanceDomainError(f"assumption {i} is for year {a.year}, expected {expected}")


def debt_service(params: InvestmentParameters, index: int) -> tuple[float, float]:
    """(principal, interest) due in projection year ``index``.

    Always SAC on yearly steps, whatever the contractual payment frequency.
    """
    if not params.in_repayment(index):
        return 0.0, 0.0
    years_paid = max(0, index - params.first_repayment_index)
    outstanding = params.principal - params.fixed_principal_portion * years_paid
    return params.fixed_principal_portion, outstanding * params.annual_rate / 100.0


def project_cash_flows(
    params: InvestmentParameters, assumptions: Sequence[YearlyAssumption]
) -> tuple[CashFlowResult, ...]:
    """Net cash flow to equity per projected year (index 0 = study start year)."""
    validate_assumptions(params, assumptions)

    results = []
    for i, a in enumerate(assumptions):
        effective_output = a.derived_output * (1 - a.loss_percent / 100.0)
        unit_margin = a.sell_price - a.production_cost
        gross = effective_output * unit_margin
        principal_due, interest_due = debt_service(params, i)
        results.append(CashFlowResult(
            index=i,
            year=a.year,
            derived_output=a.derived_output,
            effective_output=effective_output,
            unit_margin=unit_margin,
            gross_cash_generation=gross,
            principal_due=principal_due,
            interest_due=interest_due,
            extra_revenue=float(a.extra_revenue),
            net_cash_flow=gross - principal_due - interest_due + a.extra_revenue,
        ))
    return tuple(results)


def investment_cash_flows(params: InvestmentParameters, results: Sequence[CashFlowResult]) -> tuple[float, ...]:
    """Projected flows with the investment outflow prepended at t=0."""
    return (-params.principal, *(r.net_cash_flow for r in results))


@dataclass(frozen=True)
class EvaluationResult:
    discount_rate: float  # percent
    npv: float
    irr: IrrResult
    payback: PaybackResult


def evaluate(discount_rate: float, flows: Sequence[float]) -> EvaluationResult:
    return EvaluationResult(
        discount_rate=float(discount_rate),
        npv=npv(discount_rate, flows),
        irr=irr(flows),
        payback=discounted_payback(discount_rate, flows),
    )


@dataclass(frozen=True)
class Scenario:
    name: str
    parameters: InvestmentParameters
    assumptions: tuple[YearlyAssumption, ...] = field(default_factory=tuple)
    discount_rate: float | None = None  # percent; None = loan rate

    def __post_init__(self):
        object.__setattr__(self, "assumptions", tuple(self.assumptions))

    @property
    def effective_discount_rate(self) -> float:
        if self.discount_rate is None:
            return self.parameters.annual_rate
        return self.discount_rate


@dataclass(frozen=True)
class ScenarioResult:
    scenario: Scenario
    schedule: tuple[AmortizationRow, ...]
    cash_flows: tuple[CashFlowResult, ...]
    flows: tuple[float, ...]
    evaluation: EvaluationResult


def run_scenario(scenario: Scenario) -> ScenarioResult:
    """Recompute every derived structure of a scenario from its inputs."""
    p = scenario.parameters
    cash_flows = project_cash_flows(p, scenario.assumptions)
    flows = investment_cash_flows(p, cash_flows)
    evaluation = evaluate(scenario.effective_discount_rate, flows)
    logger.debug(
        "scenario %r: npv=%.2f irr=%s payback=%s",
        scenario.name, evaluation.npv, evaluation.irr.rate, evaluation.payback.fractional,
    )
    return ScenarioResult(
        scenario=scenario,
        schedule=tuple(p.schedule()),
        cash_flows=cash_flows,
        flows=flows,
        evaluation=evaluation,
    )


_WHOLE_FIELDS = ("year", "unit_count", "days_in_year")


def assumptions_from_frame(df: pd.DataFrame) -> tuple[YearlyAssumption, ...]:
    """Year table with YearlyAssumption field names as columns, one row per year.

    Empty cells and fractional counts are rejected rather than coerced.
    """
    years = []
    for i, row in enumerate(df.to_dict("records")):
        values = {}
        for f in fields(YearlyAssumption):
            value = require_finite(f"{f.name} in row {i}", row.get(f.name))
            if f.name in _WHOLE_FIELDS:
                if not value.is_integer():
                    raise FinanceDomainError(f"{f.name} in row {i} must be a whole number, got {value!r}")
                value = int(value)
            values[f.name] = value
        years.append(YearlyAssumption(**values))
    return tuple(years)


def default_assumptions(start_year: int, years: int) -> tuple[YearlyAssumption, ...]:
    return tuple(
        YearlyAssumption(
            year=start_year + i,
            unit_count=settings.DEFAULT_UNIT_COUNT,
            yield_per_unit_per_day=settings.DEFAULT_YIELD_PER_UNIT_PER_DAY,
            days_in_year=settings.DEFAULT_DAYS_IN_YEAR,
            sell_price=settings.FALLBACK_SELL_PRICE,
            production_cost=settings.FALLBACK_UNIT_COST,
        )
        for i in range(years)
    )


def base_case_scenario() -> Scenario:
    params = InvestmentParameters(
        principal=DEFAULTS["principal"],
        annual_rate=DEFAULTS["annual_rate"],
        term_periods=DEFAULTS["term_periods"],
        grace_years=DEFAULTS["grace_years"],
        payment_frequency=DEFAULTS["payment_frequency"],
        study_start_year=DEFAULTS["study_start_year"],
        projection_years=DEFAULTS["projection_years"],
    )
    assumptions = tuple(
        YearlyAssumption(year, animals, yield_, days, loss, price, cost, extra)
        for year, animals, yield_, days, loss, price, cost, extra in BASE_CASE_YEARS
    )
    return Scenario(name=DEFAULTS["name"], parameters=params, assumptions=assumptions)


def schedule_table(schedule: Sequence[AmortizationRow]) -> pd.DataFrame:
    columns = [f.name for f in fields(AmortizationRow)]
    return pd.DataFrame([asdict(row) for row in schedule], columns=columns)


def cash_flow_table(result: ScenarioResult) -> pd.DataFrame:
    """FCFE analysis table, one row per period t = 0..N.

    Row 0 carries the investment outflow; row t >= 1 is projection year t-1.
    """
    p = result.scenario.parameters
    ev = result.evaluation
    periods = len(result.flows)
    idx = np.arange(0, periods)

    df = pd.DataFrame({
        "period": idx,
        "year": p.study_start_year + np.maximum(idx - 1, 0),
        "discount_factor": (1 + ev.discount_rate / 100.0) ** idx,
        "investment": 0.0,
        "gross_cash_generation": 0.0,
        "extra_revenue": 0.0,
        "principal_due": 0.0,
        "interest_due": 0.0,
        "net_cash_flow": np.asarray(result.flows, dtype=float),
    })
    df.loc[0, "investment"] = -p.principal
    for r in result.cash_flows:
        t = r.index + 1
        df.loc[t, "gross_cash_generation"] = r.gross_cash_generation
        df.loc[t, "extra_revenue"] = r.extra_revenue
        df.loc[t, "principal_due"] = r.principal_due
        df.loc[t, "interest_due"] = r.interest_due

    df["accumulated_cash_flow"] = df["net_cash_flow"].cumsum()
    df["discounted_cash_flow"] = df["net_cash_flow"] / df["discount_factor"]
    df["accumulated_discounted"] = df["discounted_cash_flow"].cumsum()

    if ev.irr.rate is not None:
        df["irr_check"] = df["net_cash_flow"] / (1 + ev.irr.rate / 100.0) ** idx
    else:
        df["irr_check"] = np.nan

    df["payback"] = np.nan
    if ev.payback.found:
        df.loc[ev.payback.periods, "payback"] = ev.payback.fractional
    return df


def summary_metrics(result: ScenarioResult) -> dict:
    p = result.scenario.parameters
    ev = result.evaluation
    margins = [r.unit_margin for r in result.cash_flows]

    return {
        "scenario": result.scenario.name,
        "discount_rate_pct": ev.discount_rate,
        "npv": ev.npv,
        "viable": ev.npv >= 0,
        "irr_pct": ev.irr.rate,
        "irr_status": ev.irr.status.value,
        "irr_exceeds_rate": ev.irr.rate is not None and ev.irr.rate >= p.annual_rate,
        "payback_periods": ev.payback.periods,
        "payback_fractional": ev.payback.fractional,
        "average_unit_margin": float(np.mean(margins)) if margins else None,
        "total_principal_paid": sum(row.principal_portion for row in result.schedule),
        "total_interest_paid": sum(row.interest_portion for row in result.schedule),
        "min_net_cash_flow": min(r.net_cash_flow for r in result.cash_flows),
    }
