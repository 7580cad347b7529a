from decimal import Decimal

import numpy as np
import pandas as pd
import pytest

from bullet_bond_engine.bonds import AmortizationMethod, Bond, BondTerms
from bullet_bond_engine.exceptions import InvalidArgumentError


@pytest.fixture(scope="module")
def issue_date():
    return pd.Timestamp("2025-03-15")


def make_terms(default_date, **overrides):
    params = dict(
        face_value=1000,
        coupon_rate=8,
        term_years=3,
        frequency=1,
        issue_date=default_date,
    )
    params.update(overrides)
    return BondTerms(**params)


def test_terms_coerce_inputs(issue_date):
    terms = make_terms(issue_date, face_value=1000.0, coupon_rate="8.5", issue_date="2025-03-15")
    assert terms.face_value == Decimal("1000.0")
    assert isinstance(terms.face_value, Decimal)
    assert terms.coupon_rate == Decimal("8.5")
    assert terms.issue_date == pd.Timestamp("2025-03-15")
    assert terms.amortization_method is AmortizationMethod.AMERICAN


def test_terms_derived_fields(issue_date):
    terms = make_terms(issue_date, term_years=5, frequency=4, total_grace_periods=2)
    assert terms.total_periods == 20
    assert terms.has_grace
    assert not make_terms(issue_date).has_grace


@pytest.mark.parametrize("name", ["AMERICAN", "americano", "Bullet", None, ""])
def test_amortization_method_aliases(name):
    assert AmortizationMethod.parse(name) is AmortizationMethod.AMERICAN


def test_amortization_method_unknown():
    with pytest.raises(InvalidArgumentError):
        AmortizationMethod.parse("FRENCH")


@pytest.mark.parametrize(
    "overrides",
    [
        {"face_value": 0},
        {"face_value": -100},
        {"coupon_rate": -1},
        {"coupon_rate": None},
        {"term_years": 0},
        {"frequency": 0},
        {"frequency": 5},
        {"total_grace_periods": -1},
        {"total_grace_periods": 2, "partial_grace_periods": 1},
        {"total_grace_periods": 3},
        {"issue_date": None},
        {"term_years": True},
        {"term_years": 3.0},
        {"frequency": None},
        {"partial_grace_periods": None},
        {"amortization_method": "GERMAN"},
    ],
)
def test_invalid_terms_fail_fast(issue_date, overrides):
    with pytest.raises(InvalidArgumentError):
        make_terms(issue_date, **overrides)


def test_terms_are_immutable(issue_date):
    terms = make_terms(issue_date)
    with pytest.raises(AttributeError):
        terms.face_value = Decimal(5)


def test_bond_starts_without_derived_fields(issue_date):
    bond = Bond(terms=make_terms(issue_date), bond_id="B1", name="Test bond")
    assert bond.tcea is None
    assert bond.duration is None
    assert bond.schedule is None


def test_terms_accept_numpy_integers(issue_date):
    terms = make_terms(issue_date, term_years=np.int64(3), frequency=np.int64(2), total_grace_periods=np.int32(1))
    assert terms.total_periods == 6
    assert type(terms.term_years) is int
    assert type(terms.frequency) is int
    assert type(terms.total_grace_periods) is int
