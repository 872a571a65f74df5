import pytest

from finance import InvestmentParameters
from model import YearlyAssumption, base_case_scenario


@pytest.fixture
def base_scenario():
    return base_case_scenario()


@pytest.fixture
def annual_params():
    return InvestmentParameters(
        principal=6_000_000.0,
        annual_rate=16.5,
        term_periods=5,
        grace_years=0,
        payment_frequency="annual",
        study_start_year=2025,
    )


@pytest.fixture
def flat_years():
    """Nine identical years: 100 animals x 10 L x 365 days at a 1.00 margin."""
    return tuple(
        YearlyAssumption(
            year=2025 + i,
            unit_count=100,
            yield_per_unit_per_day=10.0,
            days_in_year=365,
            sell_price=3.0,
            production_cost=2.0,
        )
        for i in range(9)
    )
