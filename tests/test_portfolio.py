from decimal import Decimal

import numpy as np
import pandas as pd
import pytest

from bullet_bond_engine.portfolio import (
    build_cashflow_table,
    filter_by_coupon_range,
    make_sample_bonds,
    qc_flags_for_row,
    terms_from_row,
    value_bond_frame,
)


@pytest.fixture(scope="module")
def issue_date():
    return pd.Timestamp("2026-02-13")


@pytest.fixture(scope="module")
def sample(issue_date):
    return make_sample_bonds(n=12, issue_date=issue_date, seed=7)


@pytest.fixture(scope="module")
def mixed(issue_date):
    """Two valid bonds and three that fail QC."""
    return pd.DataFrame(
        {
            "bond_id": ["OK_1", "OK_2", "BAD_FREQ", "BAD_GRACE", "BAD_FACE"],
            "face_value": [1000.0, 5000.0, 1000.0, 1000.0, 0.0],
            "coupon_rate": [8.0, 6.5, 8.0, 8.0, 8.0],
            "term_years": [3, 2, 3, 1, 3],
            "frequency": [1, 2, 5, 2, 1],
            "issue_date": issue_date,
            "total_grace_periods": [0, 1, 0, 1, 0],
            "partial_grace_periods": [0, 0, 0, 1, 0],
        }
    )


def test_sample_bonds_pass_qc(sample):
    assert len(sample) == 12
    assert all(qc_flags_for_row(r) == [] for _, r in sample.iterrows())


def test_qc_flags(mixed):
    flags = {r["bond_id"]: qc_flags_for_row(r) for _, r in mixed.iterrows()}
    assert flags["OK_1"] == []
    assert flags["OK_2"] == []
    assert "BAD_FREQ" in flags["BAD_FREQ"]
    assert "BAD_GRACE" in flags["BAD_GRACE"]
    assert "BAD_FACE" in flags["BAD_FACE"]


def test_terms_from_row(mixed):
    terms = terms_from_row(mixed.iloc[1])
    assert terms.face_value == Decimal("5000.0")
    assert terms.coupon_rate == Decimal("6.5")
    assert terms.total_periods == 4
    assert terms.total_grace_periods == 1


def test_value_bond_frame_prices_at_tcea(sample):
    out = value_bond_frame(sample)
    assert len(out) == len(sample)
    assert (out["flags"] == "").all()
    for _, r in out.iterrows():
        assert abs(r["price"] - Decimal(1000)) <= Decimal("0.01"), f"{r['bond_id']} should price at par at its TCEA"
        assert r["duration"] > 0
        assert r["discount_rate"] == r["tcea"]


def test_value_bond_frame_uses_discount_rate_column(mixed):
    df = mixed.copy()
    df["discount_rate"] = [0.10, np.nan, 0.10, 0.10, 0.10]
    out = value_bond_frame(df).set_index("bond_id")

    assert out.loc["OK_1", "price"] == Decimal("950.26")
    assert out.loc["OK_1", "discount_rate"] == Decimal("0.1")
    assert out.loc["OK_2", "discount_rate"] == out.loc["OK_2", "tcea"], "missing rate falls back to TCEA"
    assert pd.isna(out.loc["BAD_FREQ", "price"])
    assert out.loc["BAD_GRACE", "flags"] == "BAD_GRACE"


def test_build_cashflow_table_skips_flagged(mixed):
    table = build_cashflow_table(mixed)
    assert set(table["bond_id"]) == {"OK_1", "OK_2"}
    assert len(table) == (3 + 1) + (4 + 1)
    last = table[table["bond_id"] == "OK_1"].iloc[-1]
    assert last["balance"] == 0
    assert last["cash_flow"] == Decimal(1080)


def test_build_cashflow_table_empty_raises(mixed):
    with pytest.raises(ValueError):
        build_cashflow_table(mixed[mixed["bond_id"].str.startswith("BAD")])


def test_filter_by_coupon_range(mixed):
    assert filter_by_coupon_range(mixed, 7.0)["bond_id"].tolist() == ["OK_1", "BAD_FREQ", "BAD_GRACE", "BAD_FACE"]
    assert filter_by_coupon_range(mixed, 6.0, 7.0)["bond_id"].tolist() == ["OK_2"]
