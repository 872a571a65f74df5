import math
from datetime import date

import numpy_financial as npf
import pytest

from finance import (
    FinanceDomainError,
    InvestmentParameters,
    IrrStatus,
    PaymentFrequency,
    discounted_payback,
    irr,
    npv,
)


def _params(**overrides):
    values = dict(
        principal=6_000_000.0,
        annual_rate=16.5,
        term_periods=5,
        grace_years=0,
        payment_frequency=PaymentFrequency.ANNUAL,
        study_start_year=2025,
    )
    values.update(overrides)
    return InvestmentParameters(**values)


# --- amortization: constant amortization (annual) ---

def test_annual_schedule_has_constant_principal_and_declining_interest():
    rows = _params().schedule()

    assert len(rows) == 5
    assert [r.period for r in rows] == [1, 2, 3, 4, 5]
    assert all(r.principal_portion == pytest.approx(1_200_000.0) for r in rows)
    assert [r.interest_portion for r in rows] == pytest.approx([990_000, 792_000, 594_000, 396_000, 198_000])
    assert rows[0].installment_total == pytest.approx(2_190_000.0)
    assert rows[0].remaining_balance == pytest.approx(4_800_000.0)


def test_annual_schedule_repays_principal_exactly():
    rows = _params(principal=1_000_000.0, term_periods=7).schedule()

    assert sum(r.principal_portion for r in rows) == pytest.approx(1_000_000.0)
    assert rows[-1].remaining_balance == 0.0
    balances = [r.remaining_balance for r in rows]
    assert balances == sorted(balances, reverse=True)


def test_annual_cumulative_cost_is_running_sum():
    rows = _params().schedule()

    running = 0.0
    for r in rows:
        running += r.installment_total
        assert r.cumulative_cost == pytest.approx(running)
    assert rows[1].cumulative_cost == pytest.approx(4_182_000.0)


def test_annual_due_dates_are_january_first_of_following_years():
    rows = _params().schedule()

    assert rows[0].due_date == date(2026, 1, 1)
    assert rows[-1].due_date == date(2030, 1, 1)


def test_single_period_repays_everything():
    rows = _params(term_periods=1).schedule()

    assert len(rows) == 1
    assert rows[0].principal_portion == pytest.approx(6_000_000.0)
    assert rows[0].remaining_balance == 0.0


def test_annual_zero_rate_has_no_interest():
    rows = _params(annual_rate=0).schedule()

    assert all(r.interest_portion == 0 for r in rows)
    assert all(r.installment_total == pytest.approx(1_200_000.0) for r in rows)


# --- amortization: equal installments (monthly) ---

def test_monthly_schedule_has_constant_installment():
    rows = _params(payment_frequency="monthly").schedule()
    expected = float(npf.pmt(16.5 / 100 / 12, 60, -6_000_000.0))

    assert len(rows) == 60
    assert all(r.installment_total == pytest.approx(expected) for r in rows)
    for r in rows:
        assert r.interest_portion + r.principal_portion == pytest.approx(r.installment_total)


def test_monthly_schedule_amortizes_the_principal():
    rows = _params(payment_frequency="monthly").schedule()

    assert rows[0].interest_portion == pytest.approx(6_000_000.0 * 0.165 / 12)
    assert sum(r.principal_portion for r in rows) == pytest.approx(6_000_000.0, rel=1e-9)
    assert rows[-1].remaining_balance == pytest.approx(0.0, abs=1e-4)
    assert all(r.remaining_balance >= 0 for r in rows)
    assert all(a.remaining_balance >= b.remaining_balance for a, b in zip(rows, rows[1:]))


def test_monthly_cumulative_cost_is_installment_times_period():
    rows = _params(payment_frequency="monthly").schedule()

    for r in rows:
        assert r.cumulative_cost == pytest.approx(r.installment_total * r.period)


def test_monthly_due_dates_advance_one_month():
    rows = _params(payment_frequency="monthly").schedule()

    assert rows[0].due_date == date(2025, 2, 1)
    assert rows[10].due_date == date(2025, 12, 1)
    assert rows[11].due_date == date(2026, 1, 1)
    assert rows[-1].due_date == date(2030, 1, 1)


def test_monthly_zero_rate_splits_principal_evenly():
    rows = _params(principal=120_000.0, annual_rate=0, term_periods=1, payment_frequency="monthly").schedule()

    assert len(rows) == 12
    assert all(r.installment_total == pytest.approx(10_000.0) for r in rows)
    assert all(r.interest_portion == 0 for r in rows)
    assert all(not math.isnan(r.remaining_balance) for r in rows)


# --- parameter validation ---

@pytest.mark.parametrize("overrides", [
    {"term_periods": 0},
    {"term_periods": -1},
    {"term_periods": 2.5},
    {"principal": 0},
    {"principal": -10.0},
    {"principal": float("nan")},
    {"annual_rate": -100},
    {"annual_rate": float("inf")},
    {"grace_years": -1},
    {"payment_frequency": "weekly"},
    {"projection_years": 0},
])
def test_invalid_parameters_are_rejected(overrides):
    with pytest.raises(FinanceDomainError):
        _params(**overrides)


def test_repayment_window_follows_grace_years():
    p = _params(grace_years=2, term_periods=3)

    assert p.first_repayment_index == 3
    assert p.last_repayment_index == 5
    assert [i for i in range(8) if p.in_repayment(i)] == [3, 4, 5]


# --- NPV ---

def test_npv_at_zero_rate_is_plain_sum():
    flows = [-100.0, 50.0, 60.0, -5.0]
    assert npv(0, flows) == pytest.approx(5.0)


def test_npv_matches_numpy_financial():
    flows = [-6_000_000.0, 1_500_000.0, 2_000_000.0, 2_500_000.0, 3_000_000.0]
    assert npv(16.5, flows) == pytest.approx(float(npf.npv(0.165, flows)))


@pytest.mark.parametrize("rate", [-100, -150, float("nan")])
def test_npv_rejects_undefined_rates(rate):
    with pytest.raises(FinanceDomainError):
        npv(rate, [-100.0, 110.0])


@pytest.mark.parametrize("flows", [[], [-100.0, float("nan")], [-100.0, float("inf")]])
def test_npv_rejects_malformed_flows(flows):
    with pytest.raises(FinanceDomainError):
        npv(10, flows)


# --- IRR ---

def test_irr_single_period():
    result = irr([-100.0, 110.0])

    assert result.converged
    assert result.rate == pytest.approx(10.0, abs=1e-6)


def test_irr_matches_numpy_financial_and_zeroes_npv():
    flows = [-1000.0, 300.0, 400.0, 500.0, 200.0]
    result = irr(flows)

    assert result.status is IrrStatus.CONVERGED
    assert result.rate == pytest.approx(float(npf.irr(flows)) * 100, abs=1e-4)
    assert npv(result.rate, flows) == pytest.approx(0.0, abs=0.01)


def test_irr_all_zero_flows_fails():
    result = irr([-100.0, 0.0, 0.0, 0.0])

    assert result.status is IrrStatus.FAILED
    assert result.rate is None
    assert not result.converged


def test_all_zero_projection_loses_the_investment():
    flows = [-6_000_000.0] + [0.0] * 9

    assert npv(16.5, flows) == pytest.approx(-6_000_000.0)
    assert not irr(flows).converged
    assert not discounted_payback(16.5, flows).found


def test_irr_exhausted_iterations_returns_last_estimate():
    result = irr([100.0, 100.0])

    assert result.status is IrrStatus.MAX_ITERATIONS
    assert result.iterations == 100
    assert result.rate == pytest.approx(1000.0)


def test_irr_needs_two_flows():
    with pytest.raises(FinanceDomainError):
        irr([-100.0])


# --- payback ---

def test_payback_interpolates_inside_period():
    result = discounted_payback(0, [-100.0, 30.0, 30.0, 60.0])

    assert result.found
    assert result.periods == 3
    assert result.fractional == pytest.approx(2 + 40 / 60)


def test_payback_with_discounting():
    result = discounted_payback(10, [-100.0, 55.0, 121.0])

    assert result.periods == 2
    assert result.fractional == pytest.approx(1.5)


def test_payback_on_exact_recovery():
    result = discounted_payback(0, [-100.0, 100.0])

    assert result.periods == 1
    assert result.fractional == pytest.approx(1.0)


def test_payback_not_found():
    result = discounted_payback(0, [-100.0, 10.0, 10.0])

    assert not result.found
    assert result.periods is None
    assert result.fractional is None


def test_payback_requires_initial_outflow():
    with pytest.raises(FinanceDomainError):
        discounted_payback(10, [100.0, 10.0])
