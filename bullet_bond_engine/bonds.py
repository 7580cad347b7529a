from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from numbers import Integral
from typing import Optional, TYPE_CHECKING

import pandas as pd

from .exceptions import InvalidArgumentError
from .utils import months_per_period, to_decimal

if TYPE_CHECKING:
    from .cashflows import CashFlowSchedule


def _as_int(value, name: str) -> int:
    # numpy integers from pandas rows are fine; bools are not counts
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise InvalidArgumentError(f"{name} must be an integer, got {value!r}")
    return int(value)


class AmortizationMethod(str, Enum):
    AMERICAN = "AMERICAN"

    @classmethod
    def parse(cls, value) -> "AmortizationMethod":
        if isinstance(value, cls):
            return value
        if value is None or str(value).strip() == "":
            return cls.AMERICAN

        key = str(value).strip().upper()
        aliases = {"AMERICAN": cls.AMERICAN, "AMERICANO": cls.AMERICAN, "BULLET": cls.AMERICAN}
        if key not in aliases:
            raise InvalidArgumentError(f"Unsupported amortization method: {value!r}")
        return aliases[key]


@dataclass(frozen=True)
class BondTerms:
    """
    Issuer-defined bond parameters. coupon_rate is a percentage (8.5 = 8.5%).
    Grace windows are counted in payment periods from period 1.
    """
    face_value: Decimal
    coupon_rate: Decimal
    term_years: int
    frequency: int
    issue_date: pd.Timestamp
    total_grace_periods: int = 0
    partial_grace_periods: int = 0
    amortization_method: AmortizationMethod = AmortizationMethod.AMERICAN

    def __post_init__(self):
        object.__setattr__(self, "face_value", to_decimal(self.face_value, "face_value"))
        object.__setattr__(self, "coupon_rate", to_decimal(self.coupon_rate, "coupon_rate"))
        object.__setattr__(self, "amortization_method", AmortizationMethod.parse(self.amortization_method))
        if self.issue_date is None:
            raise InvalidArgumentError("issue_date is required")
        object.__setattr__(self, "issue_date", pd.Timestamp(self.issue_date))
        for name in ("term_years", "frequency", "total_grace_periods", "partial_grace_periods"):
            object.__setattr__(self, name, _as_int(getattr(self, name), name))
        validate_terms(self)

    @property
    def total_periods(self) -> int:
        return self.term_years * self.frequency

    @property
    def has_grace(self) -> bool:
        return self.total_grace_periods > 0 or self.partial_grace_periods > 0


def validate_terms(terms: BondTerms) -> None:
    if terms.face_value <= 0:
        raise InvalidArgumentError("face_value must be positive")
    if terms.coupon_rate < 0:
        raise InvalidArgumentError("coupon_rate must not be negative")
    if terms.term_years <= 0:
        raise InvalidArgumentError("term_years must be a positive integer")
    if terms.frequency <= 0:
        raise InvalidArgumentError("frequency must be a positive integer")
    months_per_period(terms.frequency)

    if terms.total_grace_periods < 0 or terms.partial_grace_periods < 0:
        raise InvalidArgumentError("grace periods must be >= 0")
    # principal is repaid at period N, so grace has to end before it
    if terms.total_grace_periods + terms.partial_grace_periods >= terms.total_periods:
        raise InvalidArgumentError(
            f"grace periods ({terms.total_grace_periods} total + {terms.partial_grace_periods} partial) "
            f"must end before maturity period {terms.total_periods}"
        )


@dataclass
class Bond:
    """
    Issuer-owned bond record. Derived fields are filled by
    BondCalculator.process_bond_calculations; schedule is a cache and may
    always be rebuilt from terms.
    """
    terms: BondTerms
    bond_id: Optional[str] = None
    name: str = ""
    description: str = ""
    currency: str = "PEN"
    issuer: Optional[str] = None

    tcea: Optional[Decimal] = None
    duration: Optional[Decimal] = None
    convexity: Optional[Decimal] = None
    discount_rate: Optional[Decimal] = None
    schedule: Optional["CashFlowSchedule"] = None
