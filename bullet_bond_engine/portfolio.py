from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np
import pandas as pd

from .bonds import BondTerms
from .cashflows import build_schedule, schedule_to_frame
from .config import DEFAULT_PRECISION, PrecisionConfig
from .utils import RateUnit
from .valuation import compute_tcea, value_schedule

logger = logging.getLogger(__name__)


def _grace(row: pd.Series, col: str) -> int:
    v = row.get(col, 0)
    return 0 if pd.isna(v) else int(v)


def qc_flags_for_row(row: pd.Series) -> List[str]:
    flags: List[str] = []

    if not float(row["face_value"]) > 0:
        flags.append("BAD_FACE")

    term = int(row["term_years"])
    if term <= 0:
        flags.append("BAD_TERM")

    freq = int(row["frequency"])
    if freq <= 0 or 12 % freq != 0:
        flags.append("BAD_FREQ")

    coupon = float(row["coupon_rate"])
    if coupon < 0.0 or coupon > 100.0:
        flags.append("BAD_COUPON")

    total, partial = _grace(row, "total_grace_periods"), _grace(row, "partial_grace_periods")
    if total < 0 or partial < 0 or (term > 0 and freq > 0 and total + partial >= term * freq):
        flags.append("BAD_GRACE")

    return flags


def terms_from_row(row: pd.Series) -> BondTerms:
    method = row.get("amortization_method", None)
    return BondTerms(
        face_value=row["face_value"],
        coupon_rate=row["coupon_rate"],
        term_years=int(row["term_years"]),
        frequency=int(row["frequency"]),
        issue_date=pd.Timestamp(row["issue_date"]),
        total_grace_periods=_grace(row, "total_grace_periods"),
        partial_grace_periods=_grace(row, "partial_grace_periods"),
        amortization_method=None if method is None or pd.isna(method) else method,
    )


def build_cashflow_table(bonds: pd.DataFrame, config: PrecisionConfig = DEFAULT_PRECISION) -> pd.DataFrame:
    """Long table: one row per (bond_id, period). Rows failing QC are skipped."""
    frames = []
    for _, r in bonds.iterrows():
        flags = qc_flags_for_row(r)
        if flags:
            logger.warning("Skipping bond %s: %s", r["bond_id"], "|".join(flags))
            continue

        sched = schedule_to_frame(build_schedule(terms_from_row(r), config))
        sched.insert(0, "bond_id", str(r["bond_id"]))
        frames.append(sched)

    if not frames:
        raise ValueError("Cashflow table is empty. Check bond terms.")
    return pd.concat(frames, ignore_index=True)


def value_bond_frame(bonds: pd.DataFrame, config: PrecisionConfig = DEFAULT_PRECISION) -> pd.DataFrame:
    """
    TCEA, duration, convexity and price per bond.

    Discounts at the optional `discount_rate` column (decimal) or, when it is
    missing, at the bond's own TCEA. Flagged rows keep NaN metrics.
    """
    has_rate = "discount_rate" in bonds.columns

    rows = []
    for _, r in bonds.iterrows():
        flags = qc_flags_for_row(r)
        out = {"bond_id": str(r["bond_id"]), "tcea": np.nan, "duration": np.nan,
               "convexity": np.nan, "price": np.nan, "discount_rate": np.nan}

        if not flags:
            terms = terms_from_row(r)
            rate = r["discount_rate"] if has_rate and not pd.isna(r["discount_rate"]) else compute_tcea(terms, config)
            res = value_schedule(build_schedule(terms, config), terms, rate, RateUnit.DECIMAL, config)
            out.update(
                tcea=res.tcea,
                duration=res.duration,
                convexity=res.convexity,
                price=res.max_price,
                discount_rate=res.discount_rate,
            )

        out["flags"] = "|".join(flags) if flags else ""
        rows.append(out)

    return pd.DataFrame(rows)


def filter_by_coupon_range(bonds: pd.DataFrame, min_rate: float, max_rate: Optional[float] = None) -> pd.DataFrame:
    """Bonds with min_rate <= coupon_rate (<= max_rate when given). Rates in percent."""
    mask = bonds["coupon_rate"].astype(float) >= float(min_rate)
    if max_rate is not None:
        mask &= bonds["coupon_rate"].astype(float) <= float(max_rate)
    return bonds[mask].reset_index(drop=True)


def make_sample_bonds(
    n: int = 20,
    issue_date: pd.Timestamp | None = None,
    seed: int = 7,
) -> pd.DataFrame:
    """
    Synthetic bullet-bond listing for demos and tests.

    - Terms: 1..10 years, frequency drawn from 1/2/4/12
    - Coupons: 4%..12% (percent, 2 decimals)
    - Grace: up to 2 total and 2 partial periods, always ending before maturity
    - Face: 1000
    """
    if issue_date is None:
        issue_date = pd.Timestamp.today().normalize()
    issue_date = pd.Timestamp(issue_date)

    rng = np.random.default_rng(seed)

    years = rng.integers(1, 11, size=n)
    freqs = rng.choice([1, 2, 4, 12], size=n, p=[0.3, 0.4, 0.2, 0.1])
    coupons = np.round(rng.uniform(4.0, 12.0, size=n), 2)

    total = rng.integers(0, 3, size=n)
    partial = rng.integers(0, 3, size=n)
    periods = years * freqs
    total = np.minimum(total, periods - 1)
    partial = np.minimum(partial, periods - 1 - total)

    return pd.DataFrame({
        "bond_id": [f"BOND_{i:03d}" for i in range(n)],
        "face_value": 1000.0,
        "coupon_rate": coupons,
        "term_years": years,
        "frequency": freqs,
        "issue_date": issue_date,
        "total_grace_periods": total,
        "partial_grace_periods": partial,
        "currency": "PEN",
    })
