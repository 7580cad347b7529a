from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Optional, Union

from .bonds import Bond, BondTerms
from .cashflows import CashFlowSchedule, build_schedule, coupon_periodic_rate, identify_amortization_profile
from .config import DEFAULT_PRECISION, DEFAULT_SOLVER, PrecisionConfig, SolverConfig
from .exceptions import InvalidArgumentError
from .solver import IrrResult, solve_trea
from .utils import Number, RateUnit, normalize_rate, periodic_rate_from_annual
from .valuation import ValuationResult, compute_price, compute_tcea, value_schedule

logger = logging.getLogger(__name__)

BondLike = Union[Bond, BondTerms]


@dataclass(frozen=True)
class InvestmentEvaluation:
    """
    Investor-side result for one bond and one required return.
    Refers to the bond by id only.
    """
    bond_id: Optional[str]
    expected_rate: Decimal
    trea: Decimal
    max_price: Decimal
    calculated_on: date
    investor: Optional[str] = None
    amortization_profile: str = ""
    converged: bool = True
    solver_method: str = ""


def _terms_of(bond: BondLike) -> BondTerms:
    if isinstance(bond, Bond):
        return bond.terms
    if isinstance(bond, BondTerms):
        return bond
    raise InvalidArgumentError(f"Expected Bond or BondTerms, got {type(bond).__name__}")


def _bond_id(bond: BondLike) -> Optional[str]:
    return bond.bond_id if isinstance(bond, Bond) else None


def process_bond_calculations(bond: Bond, precision: PrecisionConfig = DEFAULT_PRECISION) -> ValuationResult:
    """
    Fill the issuer-side derived fields of a bond: TCEA, schedule, and
    duration/convexity discounted at the TCEA.
    """
    if not isinstance(bond, Bond):
        raise InvalidArgumentError("process_bond_calculations expects a Bond")

    tcea = compute_tcea(bond.terms, precision)
    schedule = build_schedule(bond.terms, precision)
    result = value_schedule(schedule, bond.terms, tcea, RateUnit.DECIMAL, precision)

    bond.tcea = result.tcea
    bond.schedule = schedule
    bond.duration = result.duration
    bond.convexity = result.convexity
    bond.discount_rate = tcea

    logger.debug(
        "Processed bond %s: tcea=%s duration=%s convexity=%s",
        bond.bond_id, result.tcea, result.duration, result.convexity,
    )
    return result


def max_price(
    bond: BondLike,
    rate: Number,
    unit: Union[RateUnit, str] = RateUnit.AUTO,
    precision: PrecisionConfig = DEFAULT_PRECISION,
) -> Decimal:
    """Most an investor should pay to earn `rate` (annual effective)."""
    schedule = build_schedule(_terms_of(bond), precision)
    return compute_price(schedule, rate, unit, precision)


def evaluate_investment(
    bond: BondLike,
    expected_rate: Number,
    unit: Union[RateUnit, str] = RateUnit.AUTO,
    investor: Optional[str] = None,
    calculated_on: Optional[date] = None,
    precision: PrecisionConfig = DEFAULT_PRECISION,
    solver: SolverConfig = DEFAULT_SOLVER,
) -> InvestmentEvaluation:
    """
    Max price at the investor's expected rate and the TREA realized at
    that price. Since the price is the PV at that same rate, TREA recovers
    the expected rate up to rounding.
    """
    terms = _terms_of(bond)
    r = normalize_rate(expected_rate, unit, precision)
    schedule = build_schedule(terms, precision)
    price = compute_price(schedule, r, RateUnit.DECIMAL, precision)

    if price <= 0:
        logger.warning("Bond %s has no positive flows to price; TREA set to 0", _bond_id(bond))
        trea, converged, method = precision.rate(Decimal(0)), False, ""
    else:
        irr = solve_trea(schedule, price, solver, precision)
        trea, converged, method = precision.rate(irr.rate), irr.converged, irr.method

    return InvestmentEvaluation(
        bond_id=_bond_id(bond),
        expected_rate=r,
        trea=trea,
        max_price=price,
        calculated_on=calculated_on or date.today(),
        investor=investor,
        amortization_profile=identify_amortization_profile(terms),
        converged=converged,
        solver_method=method,
    )


def refresh_evaluation(
    evaluation: InvestmentEvaluation,
    bond: BondLike,
    calculated_on: Optional[date] = None,
    precision: PrecisionConfig = DEFAULT_PRECISION,
    solver: SolverConfig = DEFAULT_SOLVER,
) -> InvestmentEvaluation:
    """Recompute price and TREA of a stored evaluation against the bond's current terms."""
    fresh = evaluate_investment(
        bond,
        evaluation.expected_rate,
        RateUnit.DECIMAL,
        investor=evaluation.investor,
        calculated_on=calculated_on,
        precision=precision,
        solver=solver,
    )
    return replace(evaluation, **{
        k: getattr(fresh, k)
        for k in ("trea", "max_price", "calculated_on", "amortization_profile", "converged", "solver_method")
    })


def evaluate_purchase(
    bond: BondLike,
    price: Number,
    precision: PrecisionConfig = DEFAULT_PRECISION,
    solver: SolverConfig = DEFAULT_SOLVER,
) -> IrrResult:
    """TREA actually earned when buying at a given price."""
    schedule = build_schedule(_terms_of(bond), precision)
    return solve_trea(schedule, price, solver, precision)


def price_report(
    bond: BondLike,
    rate: Number,
    unit: Union[RateUnit, str] = RateUnit.AUTO,
    precision: PrecisionConfig = DEFAULT_PRECISION,
) -> str:
    """Plain-text breakdown of the inputs behind a max-price figure."""
    terms = _terms_of(bond)
    r = normalize_rate(rate, unit, precision)
    p = periodic_rate_from_annual(r, terms.frequency, RateUnit.DECIMAL, precision)
    schedule = build_schedule(terms, precision)
    coupon = precision.money(terms.face_value * coupon_periodic_rate(terms, precision))
    price = compute_price(schedule, r, RateUnit.DECIMAL, precision)

    lines = [
        "Parameters:",
        f"- Face value: {precision.money(terms.face_value)}",
        f"- Coupon rate: {terms.coupon_rate}%",
        f"- Frequency: {terms.frequency}",
        f"- Total periods: {terms.total_periods}",
        f"- Total grace periods: {terms.total_grace_periods}",
        f"- Partial grace periods: {terms.partial_grace_periods}",
        f"- Method: {identify_amortization_profile(terms)}",
        f"- Discount rate (TEA): {r * 100:.4f}%",
        f"- Periodic rate: {p * 100:.6f}%",
        f"- Periodic coupon: {coupon}",
        "",
        f"Price: {price}",
    ]
    return "\n".join(lines)


class BondCalculator:
    """Holds precision/solver settings and runs the bond calculations with them."""

    def __init__(self, precision: PrecisionConfig = DEFAULT_PRECISION, solver: SolverConfig = DEFAULT_SOLVER):
        self.precision = precision
        self.solver = solver

    def schedule(self, bond: BondLike) -> CashFlowSchedule:
        return build_schedule(_terms_of(bond), self.precision)

    def tcea(self, bond: BondLike) -> Decimal:
        return compute_tcea(_terms_of(bond), self.precision)

    def process_bond_calculations(self, bond: Bond) -> ValuationResult:
        return process_bond_calculations(bond, self.precision)

    def max_price(self, bond: BondLike, rate: Number, unit: Union[RateUnit, str] = RateUnit.AUTO) -> Decimal:
        return max_price(bond, rate, unit, self.precision)

    def evaluate_investment(
        self,
        bond: BondLike,
        expected_rate: Number,
        unit: Union[RateUnit, str] = RateUnit.AUTO,
        investor: Optional[str] = None,
        calculated_on: Optional[date] = None,
    ) -> InvestmentEvaluation:
        return evaluate_investment(bond, expected_rate, unit, investor, calculated_on, self.precision, self.solver)

    def refresh_evaluation(
        self,
        evaluation: InvestmentEvaluation,
        bond: BondLike,
        calculated_on: Optional[date] = None,
    ) -> InvestmentEvaluation:
        return refresh_evaluation(evaluation, bond, calculated_on, self.precision, self.solver)

    def evaluate_purchase(self, bond: BondLike, price: Number) -> IrrResult:
        return evaluate_purchase(bond, price, self.precision, self.solver)

    def price_report(self, bond: BondLike, rate: Number, unit: Union[RateUnit, str] = RateUnit.AUTO) -> str:
        return price_report(bond, rate, unit, self.precision)
