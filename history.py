from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, Sequence

import pandas as pd

from config import settings
from model import YearlyAssumption

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class YearAverages:
    year: int
    total_revenue: float
    total_cost: float
    total_output: float  # litres
    average_sell_price: float
    average_unit_cost: float

    @property
    def margin(self) -> float:
        return self.average_sell_price - self.average_unit_cost


class AveragesLookup(Protocol):
    def averages_for_year(self, year: int) -> YearAverages | None: ...


class LedgerAverages:
    """Average price and cost per litre from the revenue and expense ledgers.

    revenues: columns ``date``, ``total_amount`` (cents), ``quantity`` (hundredths of a litre)
    expenses: columns ``date``, ``amount`` (cents)
    """

    def __init__(self, revenues: pd.DataFrame, expenses: pd.DataFrame):
        self.revenues = revenues.assign(date=pd.to_datetime(revenues["date"]))
        self.expenses = expenses.assign(date=pd.to_datetime(expenses["date"]))

    def averages_for_year(self, year: int) -> YearAverages:
        rev = self.revenues[self.revenues["date"].dt.year == year]
        exp = self.expenses[self.expenses["date"].dt.year == year]

        total_revenue = float(rev["total_amount"].sum()) / 100.0
        total_output = float(rev["quantity"].sum()) / 100.0
        total_cost = float(exp["amount"].sum()) / 100.0

        return YearAverages(
            year=year,
            total_revenue=total_revenue,
            total_cost=total_cost,
            total_output=total_output,
            average_sell_price=total_revenue / total_output if total_output > 0 else 0.0,
            average_unit_cost=total_cost / total_output if total_output > 0 else 0.0,
        )


def seed_first_year(
    assumptions: Sequence[YearlyAssumption], lookup: AveragesLookup
) -> tuple[YearlyAssumption, ...]:
    """Replace year 0 price and cost with the historical averages for that year.

    Missing or zero averages fall back to the configured constants.
    """
    if not assumptions:
        return ()
    first = assumptions[0]
    averages = lookup.averages_for_year(first.year)

    price = averages.average_sell_price if averages else 0.0
    cost = averages.average_unit_cost if averages else 0.0
    seeded = first.with_changes(
        sell_price=price or settings.FALLBACK_SELL_PRICE,
        production_cost=cost or settings.FALLBACK_UNIT_COST,
    )
    logger.info(
        "seeded %d from history: price=%.4f cost=%.4f", first.year, seeded.sell_price, seeded.production_cost
    )
    return (seeded, *assumptions[1:])
