from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, localcontext
from enum import Enum
from itertools import accumulate
from typing import Callable, Dict, Iterator, List, Sequence, Tuple

import pandas as pd

from .bonds import AmortizationMethod, BondTerms
from .config import DEFAULT_PRECISION, PrecisionConfig
from .utils import HUNDRED, cached_period_dates

logger = logging.getLogger(__name__)

ZERO = Decimal(0)


class PeriodKind(str, Enum):
    DISBURSEMENT = "DISBURSEMENT"
    TOTAL_GRACE = "TOTAL_GRACE"
    PARTIAL_GRACE = "PARTIAL_GRACE"
    REGULAR = "REGULAR"
    MATURITY = "MATURITY"


@dataclass(frozen=True)
class CashFlowPeriod:
    period: int
    date: pd.Timestamp
    installment: Decimal
    interest: Decimal
    amortization: Decimal
    balance: Decimal
    cash_flow: Decimal
    kind: PeriodKind


@dataclass(frozen=True)
class CashFlowSchedule:
    """Ordered periods 0..N plus what is needed to discount them."""
    periods: Tuple[CashFlowPeriod, ...]
    frequency: int
    face_value: Decimal

    def __len__(self) -> int:
        return len(self.periods)

    def __iter__(self) -> Iterator[CashFlowPeriod]:
        return iter(self.periods)

    def __getitem__(self, i: int) -> CashFlowPeriod:
        return self.periods[i]

    @property
    def total_periods(self) -> int:
        return len(self.periods) - 1

    def positive_flows(self) -> List[Tuple[int, Decimal]]:
        """(period, cash_flow) for periods >= 1 with a strictly positive flow."""
        return [(p.period, p.cash_flow) for p in self.periods if p.period > 0 and p.cash_flow > 0]


def classify_period(period: int, terms: BondTerms) -> PeriodKind:
    if period == 0:
        return PeriodKind.DISBURSEMENT
    if period <= terms.total_grace_periods:
        return PeriodKind.TOTAL_GRACE
    if period <= terms.total_grace_periods + terms.partial_grace_periods:
        return PeriodKind.PARTIAL_GRACE
    if period == terms.total_periods:
        return PeriodKind.MATURITY
    return PeriodKind.REGULAR


def identify_amortization_profile(terms: BondTerms) -> str:
    """AMERICAN_PURE, or AMERICAN_WITH_GRACE when any grace window is set."""
    suffix = "WITH_GRACE" if terms.has_grace else "PURE"
    return f"{terms.amortization_method.value}_{suffix}"


StepFn = Callable[[CashFlowPeriod, int], CashFlowPeriod]


def _american_step(
    terms: BondTerms,
    periodic_rate: Decimal,
    dates: Sequence[pd.Timestamp],
    config: PrecisionConfig,
) -> StepFn:
    """
    One period of the bullet schedule: interest on the previous balance,
    principal only at maturity. Total grace capitalizes interest.
    """
    def step(prev: CashFlowPeriod, i: int) -> CashFlowPeriod:
        kind = classify_period(i, terms)

        with localcontext(config.context()):
            interest = config.quantize(prev.balance * periodic_rate)

            if kind is PeriodKind.TOTAL_GRACE:
                amortization = ZERO
                installment = ZERO
                cash_flow = ZERO
                balance = config.quantize(prev.balance + interest)
            elif kind is PeriodKind.MATURITY:
                amortization = prev.balance
                installment = interest + amortization
                cash_flow = installment
                balance = ZERO
            else:
                amortization = ZERO
                installment = interest
                cash_flow = interest
                balance = prev.balance

        return CashFlowPeriod(
            period=i,
            date=dates[i],
            installment=installment,
            interest=interest,
            amortization=amortization,
            balance=balance,
            cash_flow=cash_flow,
            kind=kind,
        )

    return step


SCHEDULE_STEPS: Dict[AmortizationMethod, Callable[..., StepFn]] = {
    AmortizationMethod.AMERICAN: _american_step,
}


def coupon_periodic_rate(terms: BondTerms, config: PrecisionConfig = DEFAULT_PRECISION) -> Decimal:
    """Coupon rate per period: (coupon% / 100) / frequency, not compounded."""
    with localcontext(config.context()):
        return config.quantize(terms.coupon_rate / HUNDRED / Decimal(terms.frequency))


def build_schedule(terms: BondTerms, config: PrecisionConfig = DEFAULT_PRECISION) -> CashFlowSchedule:
    """
    Full period ledger 0..N (N = term_years * frequency).

    Built as a left fold: each period is computed from the previous one
    only, starting from the disbursement row.
    """
    try:
        make_step = SCHEDULE_STEPS[terms.amortization_method]
    except KeyError:
        raise NotImplementedError(f"No schedule builder for {terms.amortization_method!r}")

    n = terms.total_periods
    rate = coupon_periodic_rate(terms, config)
    dates = cached_period_dates(terms.issue_date, n, terms.frequency)

    opening = CashFlowPeriod(
        period=0,
        date=dates[0],
        installment=ZERO,
        interest=ZERO,
        amortization=ZERO,
        balance=terms.face_value,
        cash_flow=-terms.face_value,
        kind=PeriodKind.DISBURSEMENT,
    )

    periods = tuple(accumulate(range(1, n + 1), make_step(terms, rate, dates, config), initial=opening))

    logger.debug(
        "Built %s schedule: %d periods, periodic rate %s, grace %d/%d",
        identify_amortization_profile(terms), n, rate,
        terms.total_grace_periods, terms.partial_grace_periods,
    )
    return CashFlowSchedule(periods=periods, frequency=terms.frequency, face_value=terms.face_value)


def schedule_to_frame(schedule: CashFlowSchedule) -> pd.DataFrame:
    return pd.DataFrame(
        [
            (p.period, p.date, p.kind.value, p.installment, p.interest, p.amortization, p.balance, p.cash_flow)
            for p in schedule
        ],
        columns=["period", "date", "kind", "installment", "interest", "amortization", "balance", "cash_flow"],
    )
