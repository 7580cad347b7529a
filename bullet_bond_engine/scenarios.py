from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional, Sequence, Union

import numpy as np
import pandas as pd

from .cashflows import CashFlowSchedule
from .config import DEFAULT_PRECISION, PrecisionConfig
from .utils import Number, RateUnit, normalize_rate, to_decimal
from .valuation import approximate_price_change, compute_convexity, compute_duration, compute_price

DEFAULT_SHIFTS_BP = (-100, -50, -25, 25, 50, 100)


def run_rate_scenarios(
    schedule: CashFlowSchedule,
    base_rate: Number,
    shifts_bp: Sequence[int] = DEFAULT_SHIFTS_BP,
    unit: Union[RateUnit, str] = RateUnit.AUTO,
    config: PrecisionConfig = DEFAULT_PRECISION,
) -> pd.DataFrame:
    """
    Reprice the schedule under flat shifts of the annual discount rate and
    compare against the duration and duration+convexity approximations.
    """
    r = normalize_rate(base_rate, unit, config)
    base = compute_price(schedule, r, RateUnit.DECIMAL, config)
    dur = compute_duration(schedule, r, RateUnit.DECIMAL, config)
    conv = compute_convexity(schedule, r, RateUnit.DECIMAL, config)

    rows = []
    for bp in shifts_bp:
        shift = Decimal(bp) / Decimal(10000)
        px = compute_price(schedule, r + shift, RateUnit.DECIMAL, config)

        first = approximate_price_change(
            base, dur, conv, r, schedule.frequency, shift, RateUnit.DECIMAL, config, use_convexity=False
        )
        second = approximate_price_change(base, dur, conv, r, schedule.frequency, shift, RateUnit.DECIMAL, config)

        rows.append(
            {
                "shift_bp": bp,
                "rate": r + shift,
                "base_price": base,
                "price": px,
                "pnl": px - base,
                "approx_duration": base + first,
                "approx_duration_convexity": base + second,
            }
        )

    out = pd.DataFrame(rows)
    return out.sort_values("shift_bp").reset_index(drop=True)


def price_yield_table(
    schedule: CashFlowSchedule,
    rates: Optional[Iterable[float]] = None,
    config: PrecisionConfig = DEFAULT_PRECISION,
) -> pd.DataFrame:
    """Price across annual decimal rates (default 0%..30% in 1% steps)."""
    if rates is None:
        rates = np.linspace(0.0, 0.30, 31)

    grid = [float(x) for x in rates]
    prices = [float(compute_price(schedule, to_decimal(round(x, 10)), RateUnit.DECIMAL, config)) for x in grid]
    return pd.DataFrame({"rate": grid, "price": prices})
