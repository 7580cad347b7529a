from __future__ import annotations

from decimal import Decimal, InvalidOperation, localcontext
from enum import Enum
from functools import lru_cache
from typing import Sequence, Tuple, Union

import pandas as pd

from .config import DEFAULT_PRECISION, PrecisionConfig
from .exceptions import InvalidArgumentError

Number = Union[Decimal, int, float, str]

ONE = Decimal(1)
HUNDRED = Decimal(100)


class RateUnit(str, Enum):
    """
    How a boundary rate should be read.

    AUTO keeps the legacy convention: a value above the percent threshold
    (0.1) is taken as a percentage. The comparison is signed, so negative
    rates are always read as decimals.
    """
    AUTO = "AUTO"
    PERCENT = "PERCENT"
    DECIMAL = "DECIMAL"


class RateType(str, Enum):
    NOMINAL_ANNUAL = "TNA"
    EFFECTIVE_ANNUAL = "TEA"
    EFFECTIVE_PERIODIC = "TEP"


def to_decimal(value: Number, name: str = "value") -> Decimal:
    """Coerce to Decimal. Floats (and numpy scalars) go through str() so 0.1 stays 0.1."""
    if value is None:
        raise InvalidArgumentError(f"{name} is required")
    if isinstance(value, Decimal):
        out = value
    else:
        try:
            out = Decimal(value) if isinstance(value, (int, str)) else Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError) as exc:
            raise InvalidArgumentError(f"{name} is not a number: {value!r}") from exc
    if not out.is_finite():
        raise InvalidArgumentError(f"{name} must be finite: {value!r}")
    return out


def _as_unit(unit: Union[RateUnit, str]) -> RateUnit:
    try:
        return RateUnit(str(unit.value if isinstance(unit, RateUnit) else unit).upper())
    except ValueError as exc:
        raise InvalidArgumentError(f"Unsupported rate unit: {unit!r}") from exc


def normalize_rate(
    rate: Number,
    unit: Union[RateUnit, str] = RateUnit.AUTO,
    config: PrecisionConfig = DEFAULT_PRECISION,
) -> Decimal:
    """Return the rate as a decimal fraction (0.085 for 8.5%)."""
    r = to_decimal(rate, "rate")
    unit = _as_unit(unit)

    if unit is RateUnit.PERCENT or (unit is RateUnit.AUTO and r > config.percent_threshold):
        with localcontext(config.context()):
            r = r / HUNDRED
    return config.quantize(r)


def periodic_rate_from_annual(
    annual_rate: Number,
    frequency: int,
    unit: Union[RateUnit, str] = RateUnit.AUTO,
    config: PrecisionConfig = DEFAULT_PRECISION,
) -> Decimal:
    """Effective periodic rate (1 + TEA)^(1/m) - 1."""
    if frequency is None or int(frequency) <= 0:
        raise InvalidArgumentError("frequency must be positive")

    r = normalize_rate(annual_rate, unit, config)
    with localcontext(config.context()):
        base = ONE + r
        if base <= 0:
            raise InvalidArgumentError(f"annual rate must exceed -100%: {r}")
        out = base ** (ONE / Decimal(int(frequency))) - ONE
    return config.quantize(out)


def annual_effective_from_nominal(
    nominal_rate: Number,
    compoundings_per_year: int,
    periods: int | None = None,
    unit: Union[RateUnit, str] = RateUnit.AUTO,
    config: PrecisionConfig = DEFAULT_PRECISION,
) -> Decimal:
    """
    (1 + j/m)^n - 1 with n = m by default.

    Pass periods to compound over a horizon other than one year.
    """
    if compoundings_per_year is None or int(compoundings_per_year) <= 0:
        raise InvalidArgumentError("compoundings_per_year must be positive")

    m = int(compoundings_per_year)
    n = m if periods is None else int(periods)
    j = normalize_rate(nominal_rate, unit, config)
    with localcontext(config.context()):
        out = (ONE + j / Decimal(m)) ** n - ONE
    return config.quantize(out)


def convert_rate(
    rate: Number,
    source: Union[RateType, str],
    target: Union[RateType, str],
    compoundings_per_year: int,
    unit: Union[RateUnit, str] = RateUnit.AUTO,
    config: PrecisionConfig = DEFAULT_PRECISION,
) -> Decimal:
    """
    Convert between nominal annual (TNA), effective annual (TEA) and
    effective periodic (TEP) rates. All conversions pivot through TEA.
    """
    try:
        source, target = RateType(source), RateType(target)
    except ValueError as exc:
        raise InvalidArgumentError(f"Unsupported rate type: {source!r} -> {target!r}") from exc
    if compoundings_per_year is None or int(compoundings_per_year) <= 0:
        raise InvalidArgumentError("compoundings_per_year must be positive")

    m = Decimal(int(compoundings_per_year))
    r = normalize_rate(rate, unit, config)

    with localcontext(config.context()):
        if source is RateType.NOMINAL_ANNUAL:
            tea = (ONE + r / m) ** int(m) - ONE
        elif source is RateType.EFFECTIVE_PERIODIC:
            tea = (ONE + r) ** int(m) - ONE
        else:
            tea = r

        if target is RateType.EFFECTIVE_ANNUAL:
            out = tea
        else:
            if ONE + tea <= 0:
                raise InvalidArgumentError(f"effective rate must exceed -100%: {tea}")
            tep = (ONE + tea) ** (ONE / m) - ONE
            out = tep * m if target is RateType.NOMINAL_ANNUAL else tep

    return config.quantize(out)


def future_value(
    principal: Number,
    rate: Number,
    periods: int,
    unit: Union[RateUnit, str] = RateUnit.AUTO,
    config: PrecisionConfig = DEFAULT_PRECISION,
) -> Decimal:
    p = to_decimal(principal, "principal")
    r = normalize_rate(rate, unit, config)
    with localcontext(config.context()):
        out = p * (ONE + r) ** int(periods)
    return config.quantize(out)


def present_value(
    amount: Number,
    rate: Number,
    periods: int,
    unit: Union[RateUnit, str] = RateUnit.AUTO,
    config: PrecisionConfig = DEFAULT_PRECISION,
) -> Decimal:
    a = to_decimal(amount, "amount")
    r = normalize_rate(rate, unit, config)
    with localcontext(config.context()):
        out = a / (ONE + r) ** int(periods)
    return config.quantize(out)


def equivalent_value(
    amounts: Sequence[Number],
    periods: Sequence[int],
    rate: Number,
    unit: Union[RateUnit, str] = RateUnit.AUTO,
    config: PrecisionConfig = DEFAULT_PRECISION,
) -> Decimal:
    """Sum of amount_i / (1 + rate)^period_i (value of the stream at t=0)."""
    if len(amounts) != len(periods):
        raise InvalidArgumentError(
            f"amounts and periods must have the same length: {len(amounts)} != {len(periods)}"
        )

    r = normalize_rate(rate, unit, config)
    total = Decimal(0)
    with localcontext(config.context()):
        for amount, t in zip(amounts, periods):
            total += to_decimal(amount, "amount") / (ONE + r) ** int(t)
    return config.quantize(total)


def months_per_period(frequency: int) -> int:
    """Fixed month step between payments. Frequency must divide 12."""
    if frequency is None or int(frequency) <= 0:
        raise InvalidArgumentError("frequency must be positive")
    if 12 % int(frequency) != 0:
        raise InvalidArgumentError(f"frequency {frequency} does not divide 12 months evenly")
    return 12 // int(frequency)


def period_date(issue_date: pd.Timestamp, period: int, frequency: int) -> pd.Timestamp:
    """Payment date of a period: issue date + period * 12/frequency months."""
    return pd.Timestamp(issue_date) + pd.DateOffset(months=int(period) * months_per_period(frequency))


@lru_cache(maxsize=10_000)
def cached_period_dates(issue_date: pd.Timestamp, periods: int, frequency: int) -> Tuple[pd.Timestamp, ...]:
    """Dates for periods 0..periods, cached by (issue_date, periods, frequency)."""
    return tuple(period_date(issue_date, i, frequency) for i in range(int(periods) + 1))
