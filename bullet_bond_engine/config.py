from __future__ import annotations

from dataclasses import dataclass
from decimal import Context, Decimal, ROUND_HALF_UP
from typing import Optional


@dataclass(frozen=True)
class PrecisionConfig:
    """
    Fixed-point settings threaded through every calculation.

    - scale: fractional digits kept on intermediate values
    - precision: significant digits of the arithmetic context
    - rate_places / money_places / metric_places: output rounding for
      TCEA/TREA, prices and amounts, duration/convexity
    - percent_threshold: magnitude above which an untagged rate is read as a percentage
    """
    scale: int = 10
    precision: int = 28
    rounding: str = ROUND_HALF_UP
    rate_places: int = 8
    money_places: int = 2
    metric_places: int = 4
    percent_threshold: Decimal = Decimal("0.1")

    def context(self) -> Context:
        return Context(prec=self.precision, rounding=self.rounding)

    def quantize(self, value: Decimal, places: Optional[int] = None) -> Decimal:
        places = self.scale if places is None else places
        return value.quantize(Decimal(1).scaleb(-places), rounding=self.rounding, context=self.context())

    def money(self, value: Decimal) -> Decimal:
        return self.quantize(value, self.money_places)

    def rate(self, value: Decimal) -> Decimal:
        return self.quantize(value, self.rate_places)

    def metric(self, value: Decimal) -> Decimal:
        return self.quantize(value, self.metric_places)


@dataclass(frozen=True)
class SolverConfig:
    """
    IRR search settings. Bounds are annual effective rates (decimal).

    method: "bisection" or "brentq" for the general case.
    closed_form: try the linear/quadratic solutions first for 1- and 2-period schedules.
    """
    lower: Decimal = Decimal("-0.5")
    upper: Decimal = Decimal("2.0")
    max_iter: int = 100
    tol: Decimal = Decimal("0.0001")
    method: str = "bisection"
    closed_form: bool = True


DEFAULT_PRECISION = PrecisionConfig()
DEFAULT_SOLVER = SolverConfig()
