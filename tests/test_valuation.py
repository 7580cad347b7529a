from decimal import Decimal

import pandas as pd
import pytest

from bullet_bond_engine.bonds import BondTerms
from bullet_bond_engine.cashflows import CashFlowPeriod, CashFlowSchedule, PeriodKind, build_schedule
from bullet_bond_engine.utils import RateUnit
from bullet_bond_engine.valuation import (
    approximate_price_change,
    compute_convexity,
    compute_duration,
    compute_price,
    compute_tcea,
    discounted_cash_flows,
    modified_duration,
    value_schedule,
)


@pytest.fixture(scope="module")
def issue_date():
    return pd.Timestamp("2025-03-15")


@pytest.fixture(scope="module")
def annual_3y(issue_date):
    return BondTerms(face_value=1000, coupon_rate=8, term_years=3, frequency=1, issue_date=issue_date)


@pytest.fixture(scope="module")
def annual_schedule(annual_3y):
    return build_schedule(annual_3y)


@pytest.fixture(scope="module")
def semiannual_schedule(issue_date):
    terms = BondTerms(face_value=1000, coupon_rate=10, term_years=1, frequency=2, issue_date=issue_date)
    return build_schedule(terms)


@pytest.fixture(scope="module")
def empty_schedule(issue_date):
    zero = Decimal(0)
    periods = [
        CashFlowPeriod(0, issue_date, zero, zero, zero, Decimal(1000), Decimal(-1000), PeriodKind.DISBURSEMENT),
        CashFlowPeriod(1, issue_date + pd.DateOffset(months=12), zero, zero, zero, Decimal(1000), zero, PeriodKind.TOTAL_GRACE),
        CashFlowPeriod(2, issue_date + pd.DateOffset(months=24), zero, zero, zero, zero, zero, PeriodKind.MATURITY),
    ]
    return CashFlowSchedule(periods=tuple(periods), frequency=1, face_value=Decimal(1000))


def test_tcea(issue_date, annual_3y):
    assert compute_tcea(annual_3y) == Decimal("0.08")

    semi = BondTerms(face_value=1000, coupon_rate=10, term_years=1, frequency=2, issue_date=issue_date)
    assert compute_tcea(semi) == Decimal("0.1025")

    monthly = BondTerms(face_value=1000, coupon_rate=12, term_years=1, frequency=12, issue_date=issue_date)
    assert compute_tcea(monthly) == Decimal("0.12682503"), "rounded to 8 places"


def test_tcea_ignores_grace(issue_date, annual_3y):
    graced = BondTerms(face_value=1000, coupon_rate=8, term_years=3, frequency=1, issue_date=issue_date,
                       total_grace_periods=1, partial_grace_periods=1)
    assert compute_tcea(graced) == compute_tcea(annual_3y)


def test_price_at_coupon_rate_is_par(annual_schedule, semiannual_schedule):
    assert compute_price(annual_schedule, Decimal("0.08")) == Decimal("1000.00")
    assert compute_price(semiannual_schedule, Decimal("10.25")) == Decimal("1000.00"), "percent via heuristic"


def test_price_known_value(annual_schedule):
    # 80/1.1 + 80/1.21 + 1080/1.331
    assert compute_price(annual_schedule, Decimal("0.10"), RateUnit.DECIMAL) == Decimal("950.26")


def test_price_strictly_decreasing_in_rate(annual_schedule):
    rates = [Decimal(x) for x in ("0.01", "0.03", "0.05", "0.08", "0.12", "0.2", "0.5")]
    prices = [compute_price(annual_schedule, r, RateUnit.DECIMAL) for r in rates]
    assert all(a > b for a, b in zip(prices, prices[1:])), "price must fall as the discount rate rises"


def test_macaulay_duration(annual_schedule, semiannual_schedule):
    assert compute_duration(annual_schedule, Decimal("0.08")) == Decimal("2.7833")
    assert compute_duration(semiannual_schedule, Decimal("0.1025"), RateUnit.DECIMAL) == Decimal("0.9762"), "in years"


def test_duration_below_maturity_for_coupon_bond(annual_schedule):
    d = compute_duration(annual_schedule, Decimal("0.08"))
    assert Decimal(0) < d < Decimal(3)


def test_convexity(annual_schedule):
    c = compute_convexity(annual_schedule, Decimal("0.08"))
    assert abs(c - Decimal("9.3002")) <= Decimal("0.0001")
    assert c.as_tuple().exponent == -4, "rounded to 4 places"


def test_metrics_zero_without_positive_flows(empty_schedule):
    assert compute_price(empty_schedule, Decimal("0.08")) == 0
    assert compute_duration(empty_schedule, Decimal("0.08")) == 0
    assert compute_convexity(empty_schedule, Decimal("0.08")) == 0


def test_discounted_cash_flows_frame(annual_schedule):
    df = discounted_cash_flows(annual_schedule, Decimal("0.08"))
    assert len(df) == 3
    assert {"period", "time_factor", "discount_factor", "present_value", "weighted_pv"}.issubset(df.columns)
    total = sum(df["present_value"])
    assert abs(total - Decimal(1000)) < Decimal("0.0001")
    assert df["discount_factor"].tolist() == sorted(df["discount_factor"].tolist(), reverse=True)


def test_modified_duration(annual_schedule):
    d = compute_duration(annual_schedule, Decimal("0.08"))
    assert modified_duration(d, Decimal("0.08"), 1) == Decimal("2.5771")


def test_price_change_approximation_tracks_repricing(annual_schedule):
    rate = Decimal("0.08")
    price = compute_price(annual_schedule, rate)
    d = compute_duration(annual_schedule, rate)
    c = compute_convexity(annual_schedule, rate)

    shift = Decimal("0.01")
    actual = compute_price(annual_schedule, rate + shift, RateUnit.DECIMAL) - price
    approx = approximate_price_change(price, d, c, rate, 1, shift)
    first_order = approximate_price_change(price, d, c, rate, 1, shift, use_convexity=False)

    assert approx < 0
    assert abs(approx - actual) < Decimal("0.1")
    assert abs(approx - actual) <= abs(first_order - actual), "convexity term improves the estimate"


def test_value_schedule(annual_schedule, annual_3y):
    res = value_schedule(annual_schedule, annual_3y, 8)
    assert res.discount_rate == Decimal("0.08")
    assert res.tcea == Decimal("0.08")
    assert res.max_price == Decimal("1000.00")
    assert res.duration == Decimal("2.7833")
