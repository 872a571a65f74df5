from __future__ import annotations

import logging
from dataclasses import fields, replace
from typing import Iterable

import pandas as pd

from finance import FinanceDomainError, InvestmentParameters
from model import (
    Scenario,
    YearlyAssumption,
    default_assumptions,
    run_scenario,
    summary_metrics,
)

logger = logging.getLogger(__name__)

PARAMETER_LEVERS = {f.name for f in fields(InvestmentParameters)}
YEAR_LEVERS = {f.name for f in fields(YearlyAssumption)} - {"year"}


class ScenarioBook:
    """Named scenarios edited side by side; one of them is selected."""

    def __init__(self, scenarios: Iterable[Scenario] = ()):
        self._scenarios: dict[str, Scenario] = {}
        self._selected: str | None = None
        for s in scenarios:
            self.add(s)

    def __len__(self) -> int:
        return len(self._scenarios)

    def __iter__(self):
        return iter(self._scenarios.values())

    def __getitem__(self, name: str) -> Scenario:
        return self._scenarios[name]

    @property
    def names(self) -> list[str]:
        return list(self._scenarios)

    @property
    def selected(self) -> Scenario | None:
        return self._scenarios.get(self._selected) if self._selected else None

    def select(self, name: str) -> Scenario:
        scenario = self._scenarios[name]
        self._selected = name
        return scenario

    def add(self, scenario: Scenario) -> Scenario:
        if scenario.name in self._scenarios:
            raise ValueError(f"scenario {scenario.name!r} already exists")
        self._scenarios[scenario.name] = scenario
        if self._selected is None:
            self._selected = scenario.name
        return scenario

    def create(self, template: InvestmentParameters) -> Scenario:
        """Add "Cenário N" with the template terms and a default year table, and select it."""
        n = len(self._scenarios) + 1
        name = f"Cenário {n}"
        while name in self._scenarios:
            n += 1
            name = f"Cenário {n}"
        years = template.projection_years or 1
        scenario = self.add(Scenario(
            name=name,
            parameters=template,
            assumptions=default_assumptions(template.study_start_year, years),
        ))
        self._selected = name
        return scenario

    def remove(self, name: str) -> None:
        if name not in self._scenarios:
            raise KeyError(name)
        if len(self._scenarios) == 1:
            raise ValueError("the last scenario cannot be removed")
        del self._scenarios[name]
        if self._selected == name:
            self._selected = next(iter(self._scenarios))

    def update_parameters(self, name: str, **changes) -> Scenario:
        """Change investment terms; a new start year or length resets the year table."""
        scenario = self._scenarios[name]
        params = replace(scenario.parameters, **changes)
        assumptions = scenario.assumptions
        old = scenario.parameters
        if (params.projection_years, params.study_start_year) != (old.projection_years, old.study_start_year):
            assumptions = default_assumptions(params.study_start_year, params.projection_years or len(assumptions))
        updated = replace(scenario, parameters=params, assumptions=assumptions)
        self._scenarios[name] = updated
        return updated

    def update_scenario(self, name: str, **changes) -> Scenario:
        """Replace the year table or discount rate of a scenario."""
        if "name" in changes:
            raise ValueError("use rename() to change a scenario name")
        updated = replace(self._scenarios[name], **changes)
        self._scenarios[name] = updated
        return updated

    def update_year(self, name: str, index: int, **changes) -> Scenario:
        scenario = self._scenarios[name]
        assumptions = list(scenario.assumptions)
        assumptions[index] = assumptions[index].with_changes(**changes)
        updated = replace(scenario, assumptions=tuple(assumptions))
        self._scenarios[name] = updated
        return updated

    def rename(self, name: str, new_name: str) -> Scenario:
        if new_name in self._scenarios:
            raise ValueError(f"scenario {new_name!r} already exists")
        scenario = replace(self._scenarios[name], name=new_name)
        self._scenarios = {
            (new_name if k == name else k): (scenario if k == name else v) for k, v in self._scenarios.items()
        }
        if self._selected == name:
            self._selected = new_name
        return scenario


def compare_scenarios(scenarios: Iterable[Scenario]) -> pd.DataFrame:
    """One row of summary metrics per scenario.

    A scenario with invalid inputs gets its error in the ``error`` column.
    """
    rows = []
    for scenario in scenarios:
        try:
            row = summary_metrics(run_scenario(scenario))
            row["error"] = None
        except FinanceDomainError as exc:
            logger.warning("scenario %r failed: %s", scenario.name, exc)
            row = {"scenario": scenario.name, "error": str(exc)}
        rows.append(row)
    return pd.DataFrame(rows)


def apply_lever(scenario: Scenario, lever: str, value) -> Scenario:
    """Copy of ``scenario`` with one input changed.

    Year fields are set on every projected year.
    """
    if lever == "discount_rate":
        return replace(scenario, discount_rate=value)
    if lever in PARAMETER_LEVERS:
        return replace(scenario, parameters=replace(scenario.parameters, **{lever: value}))
    if lever in YEAR_LEVERS:
        return replace(scenario, assumptions=tuple(a.with_changes(**{lever: value}) for a in scenario.assumptions))
    raise ValueError(f"unknown lever {lever!r}")


def _lever_base(scenario: Scenario, lever: str):
    if lever == "discount_rate":
        return scenario.effective_discount_rate
    if lever in PARAMETER_LEVERS:
        return getattr(scenario.parameters, lever)
    values = {getattr(a, lever) for a in scenario.assumptions}
    return values.pop() if len(values) == 1 else None


def _metrics(base: Scenario, lever: str, value) -> dict:
    try:
        return summary_metrics(run_scenario(apply_lever(base, lever, value)))
    except FinanceDomainError as exc:
        logger.warning("sensitivity run %s=%r for %r failed: %s", lever, value, base.name, exc)
        return {}


def one_way_sensitivity(base: Scenario, levers: dict[str, tuple[float, float]]) -> pd.DataFrame:
    """One-way sensitivity for scalar scenario inputs.

    levers: mapping of lever name -> (low, high), where a lever is an
    InvestmentParameters field, a YearlyAssumption field (applied to all
    years) or ``discount_rate``.
    Returns a table with base/low/high metrics.
    """
    base_m = summary_metrics(run_scenario(base))
    base_irr = base_m.get("irr_pct")
    base_npv = base_m.get("npv")

    rows = []
    for lever, (low, high) in levers.items():
        m_low = _metrics(base, lever, low)
        m_high = _metrics(base, lever, high)

        rows.append({
            "lever": lever,
            "base": _lever_base(base, lever),
            "low": low,
            "high": high,
            "irr_base": base_irr,
            "irr_low": m_low.get("irr_pct"),
            "irr_high": m_high.get("irr_pct"),
            "npv_base": base_npv,
            "npv_low": m_low.get("npv"),
            "npv_high": m_high.get("npv"),
        })

    df = pd.DataFrame(rows)
    if df.empty:
        return df

    def _delta(a, b):
        if a is None or b is None or pd.isna(a) or pd.isna(b):
            return None
        return a - b

    df["irr_low_delta"] = df.apply(lambda r: _delta(r["irr_low"], r["irr_base"]), axis=1)
    df["irr_high_delta"] = df.apply(lambda r: _delta(r["irr_high"], r["irr_base"]), axis=1)
    df["npv_low_delta"] = df.apply(lambda r: _delta(r["npv_low"], r["npv_base"]), axis=1)
    df["npv_high_delta"] = df.apply(lambda r: _delta(r["npv_high"], r["npv_base"]), axis=1)

    return df
