from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, localcontext
from typing import List, Optional, Tuple, Union

import pandas as pd

from .bonds import BondTerms
from .cashflows import CashFlowSchedule
from .config import DEFAULT_PRECISION, PrecisionConfig
from .utils import HUNDRED, ONE, Number, RateUnit, normalize_rate, periodic_rate_from_annual, to_decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValuationResult:
    tcea: Decimal
    duration: Decimal
    convexity: Decimal
    max_price: Optional[Decimal] = None
    discount_rate: Optional[Decimal] = None


def compute_tcea(terms: BondTerms, config: PrecisionConfig = DEFAULT_PRECISION) -> Decimal:
    """
    Issuer's effective annual cost (1 + j/m)^m - 1 from the nominal coupon.
    Grace periods do not enter this figure.
    """
    m = terms.frequency
    with localcontext(config.context()):
        j = terms.coupon_rate / HUNDRED
        out = (ONE + j / Decimal(m)) ** m - ONE
    return config.rate(out)


def _present_values(
    schedule: CashFlowSchedule,
    discount_rate: Number,
    unit: Union[RateUnit, str],
    config: PrecisionConfig,
) -> Tuple[Decimal, List[Tuple[int, Decimal]]]:
    """Periodic rate and (period, PV) for each strictly positive flow after period 0."""
    p = periodic_rate_from_annual(discount_rate, schedule.frequency, unit, config)

    pvs: List[Tuple[int, Decimal]] = []
    with localcontext(config.context()):
        base = ONE + p
        for t, cf in schedule.positive_flows():
            pvs.append((t, config.quantize(cf / base ** t)))
    return p, pvs


def compute_price(
    schedule: CashFlowSchedule,
    discount_rate: Number,
    unit: Union[RateUnit, str] = RateUnit.AUTO,
    config: PrecisionConfig = DEFAULT_PRECISION,
) -> Decimal:
    """Present value of the future flows at an annual effective rate (max purchase price)."""
    _, pvs = _present_values(schedule, discount_rate, unit, config)
    with localcontext(config.context()):
        total = sum((pv for _, pv in pvs), Decimal(0))
    return config.money(total)


def compute_duration(
    schedule: CashFlowSchedule,
    discount_rate: Number,
    unit: Union[RateUnit, str] = RateUnit.AUTO,
    config: PrecisionConfig = DEFAULT_PRECISION,
) -> Decimal:
    """Macaulay duration in years. 0 when nothing positive is left to discount."""
    _, pvs = _present_values(schedule, discount_rate, unit, config)

    with localcontext(config.context()):
        total = sum((pv for _, pv in pvs), Decimal(0))
        if total == 0:
            return config.metric(Decimal(0))

        weighted = sum((Decimal(t) * pv for t, pv in pvs), Decimal(0))
        in_periods = config.quantize(weighted / total)
        out = in_periods / Decimal(schedule.frequency)
    return config.metric(out)


def compute_convexity(
    schedule: CashFlowSchedule,
    discount_rate: Number,
    unit: Union[RateUnit, str] = RateUnit.AUTO,
    config: PrecisionConfig = DEFAULT_PRECISION,
) -> Decimal:
    """
    Convexity in years^2:
      sum(t(t+1) PV_t) / (P (1+p)^2) / m^2
    0 when the price is not positive.
    """
    p, pvs = _present_values(schedule, discount_rate, unit, config)

    with localcontext(config.context()):
        price = sum((pv for _, pv in pvs), Decimal(0))
        if price <= 0:
            return config.metric(Decimal(0))

        numerator = sum((Decimal(t * (t + 1)) * pv for t, pv in pvs), Decimal(0))
        in_periods = config.quantize(numerator / (price * (ONE + p) ** 2))
        out = in_periods / Decimal(schedule.frequency ** 2)
    return config.metric(out)


def discounted_cash_flows(
    schedule: CashFlowSchedule,
    discount_rate: Number,
    unit: Union[RateUnit, str] = RateUnit.AUTO,
    config: PrecisionConfig = DEFAULT_PRECISION,
) -> pd.DataFrame:
    """
    Per-period discounting detail for periods 1..N.
    Non-positive flows are listed with a zero present value.
    """
    p = periodic_rate_from_annual(discount_rate, schedule.frequency, unit, config)
    f = Decimal(schedule.frequency)

    rows = []
    with localcontext(config.context()):
        for period in schedule.periods[1:]:
            t = period.period
            df = config.quantize(ONE / (ONE + p) ** t)
            pv = config.quantize(period.cash_flow / (ONE + p) ** t) if period.cash_flow > 0 else Decimal(0)
            rows.append((t, period.date, period.cash_flow, config.quantize(Decimal(t) / f), df, pv, Decimal(t) * pv))

    return pd.DataFrame(
        rows,
        columns=["period", "date", "cash_flow", "time_factor", "discount_factor", "present_value", "weighted_pv"],
    )


def modified_duration(
    duration: Number,
    discount_rate: Number,
    frequency: int,
    unit: Union[RateUnit, str] = RateUnit.AUTO,
    config: PrecisionConfig = DEFAULT_PRECISION,
) -> Decimal:
    p = periodic_rate_from_annual(discount_rate, frequency, unit, config)
    with localcontext(config.context()):
        out = to_decimal(duration, "duration") / (ONE + p)
    return config.metric(out)


def approximate_price_change(
    price: Number,
    duration: Number,
    convexity: Number,
    discount_rate: Number,
    frequency: int,
    shift: Number,
    unit: Union[RateUnit, str] = RateUnit.AUTO,
    config: PrecisionConfig = DEFAULT_PRECISION,
    use_convexity: bool = True,
) -> Decimal:
    """
    Second-order price change for a flat shift of the annual effective rate
    (shift is a decimal, 0.01 = 100bp):
      dP ~ P * (-D_mod * dy + 0.5 * C * dy^2)
    Duration and convexity are per nominal yield (m * periodic rate), so dy
    is the matching change m * (p(r + shift) - p(r)).
    """
    d_mod = modified_duration(duration, discount_rate, frequency, unit, config)
    r = normalize_rate(discount_rate, unit, config)
    p0 = periodic_rate_from_annual(r, frequency, RateUnit.DECIMAL, config)
    p1 = periodic_rate_from_annual(r + to_decimal(shift, "shift"), frequency, RateUnit.DECIMAL, config)
    with localcontext(config.context()):
        dy = Decimal(int(frequency)) * (p1 - p0)
        rel = -d_mod * dy
        if use_convexity:
            rel += Decimal("0.5") * to_decimal(convexity, "convexity") * dy * dy
        out = to_decimal(price, "price") * rel
    return config.money(out)


def value_schedule(
    schedule: CashFlowSchedule,
    terms: BondTerms,
    discount_rate: Number,
    unit: Union[RateUnit, str] = RateUnit.AUTO,
    config: PrecisionConfig = DEFAULT_PRECISION,
) -> ValuationResult:
    r = normalize_rate(discount_rate, unit, config)
    result = ValuationResult(
        tcea=compute_tcea(terms, config),
        duration=compute_duration(schedule, r, RateUnit.DECIMAL, config),
        convexity=compute_convexity(schedule, r, RateUnit.DECIMAL, config),
        max_price=compute_price(schedule, r, RateUnit.DECIMAL, config),
        discount_rate=r,
    )
    if result.max_price == 0:
        logger.warning("Schedule has no positive flows after period 0; metrics set to 0")
    return result
