from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, localcontext
from typing import Optional

from scipy.optimize import brentq

from .cashflows import CashFlowSchedule
from .config import DEFAULT_PRECISION, DEFAULT_SOLVER, PrecisionConfig, SolverConfig
from .exceptions import InvalidArgumentError
from .utils import ONE, Number, to_decimal

logger = logging.getLogger(__name__)

SOLVER_METHODS = ("bisection", "brentq")


@dataclass(frozen=True)
class IrrResult:
    """
    rate: annual effective rate (decimal) that zeroes NPV.
    converged is False when the search hit its iteration cap; rate is then
    the midpoint of the last bracket and should be treated as approximate.
    """
    rate: Decimal
    method: str
    iterations: int
    converged: bool
    residual: Decimal


def net_present_value(
    schedule: CashFlowSchedule,
    rate: Number,
    price: Number,
    config: PrecisionConfig = DEFAULT_PRECISION,
) -> Decimal:
    """
    -price + PV of the positive flows at an annual decimal rate.
    The periodic rate is kept at full context precision so the residual is
    continuous in the rate.
    """
    r = to_decimal(rate, "rate")
    with localcontext(config.context()):
        if ONE + r <= 0:
            raise InvalidArgumentError(f"annual rate must exceed -100%: {r}")
        base = (ONE + r) ** (ONE / Decimal(schedule.frequency))
        pv = sum((cf / base ** t for t, cf in schedule.positive_flows()), Decimal(0))
        out = pv - to_decimal(price, "price")
    return config.quantize(out)


def solve_closed_form(
    schedule: CashFlowSchedule,
    price: Decimal,
    config: PrecisionConfig = DEFAULT_PRECISION,
) -> Optional[Decimal]:
    """
    Exact IRR for 1- and 2-period schedules, with x = 1 + periodic rate:
      1 period:  P x = F1
      2 periods: P x^2 - F1 x - F2 = 0, root x > 1
    Returns None when no valid root exists (caller falls back to search).
    """
    n = schedule.total_periods
    if n not in (1, 2):
        return None

    flows = {t: cf for t, cf in schedule.positive_flows()}
    f1 = flows.get(1, Decimal(0))

    with localcontext(config.context()):
        if n == 1:
            if f1 <= 0:
                return None
            x = f1 / price
        else:
            f2 = flows.get(2, Decimal(0))
            disc = f1 * f1 + 4 * price * f2
            if disc < 0:
                return None
            x = (f1 + disc.sqrt()) / (2 * price)
            if x <= ONE:
                return None
        rate = x ** schedule.frequency - ONE

    return config.quantize(rate)


def solve_bisection(
    schedule: CashFlowSchedule,
    price: Decimal,
    solver: SolverConfig = DEFAULT_SOLVER,
    config: PrecisionConfig = DEFAULT_PRECISION,
) -> IrrResult:
    """
    Bisection on [solver.lower, solver.upper]. NPV(mid) > 0 means the rate
    is above mid. Inputs without a root in the bracket are not detected:
    the last midpoint comes back with converged=False.
    """
    lo, hi = solver.lower, solver.upper

    for i in range(1, solver.max_iter + 1):
        with localcontext(config.context()):
            mid = (lo + hi) / 2
        npv = net_present_value(schedule, mid, price, config)

        if abs(npv) < solver.tol:
            return IrrResult(config.quantize(mid), "bisection", i, True, npv)

        if npv > 0:
            lo = mid
        else:
            hi = mid

    with localcontext(config.context()):
        mid = config.quantize((lo + hi) / 2)
    residual = net_present_value(schedule, mid, price, config)
    logger.warning(
        "IRR bisection did not converge after %d iterations (rate=%s, residual=%s)",
        solver.max_iter, mid, residual,
    )
    return IrrResult(mid, "bisection", solver.max_iter, False, residual)


def solve_brentq(
    schedule: CashFlowSchedule,
    price: Decimal,
    solver: SolverConfig = DEFAULT_SOLVER,
    config: PrecisionConfig = DEFAULT_PRECISION,
) -> IrrResult:
    """Brent's method on the same bracket; falls back to bisection when the bracket has no sign change."""

    def residual(r: float) -> float:
        return float(net_present_value(schedule, to_decimal(r), price, config))

    a, b = float(solver.lower), float(solver.upper)
    if residual(a) * residual(b) > 0:
        logger.warning("IRR not bracketed on [%s, %s]; falling back to bisection", a, b)
        return solve_bisection(schedule, price, solver, config)

    root, info = brentq(residual, a, b, xtol=1e-12, maxiter=solver.max_iter, full_output=True, disp=False)
    rate = config.quantize(to_decimal(root))
    npv = net_present_value(schedule, rate, price, config)

    if not info.converged:
        logger.warning("brentq did not converge after %d iterations (rate=%s)", info.iterations, rate)
    return IrrResult(rate, "brentq", int(info.iterations), bool(info.converged), npv)


def solve_trea(
    schedule: CashFlowSchedule,
    price: Number,
    solver: SolverConfig = DEFAULT_SOLVER,
    config: PrecisionConfig = DEFAULT_PRECISION,
) -> IrrResult:
    """
    Investor's effective annual return (TREA) for a purchase price.

    Closed form for 1- and 2-period schedules, otherwise the configured
    search method.
    """
    price = to_decimal(price, "price")
    if price <= 0:
        raise InvalidArgumentError("purchase price must be positive")
    if solver.method not in SOLVER_METHODS:
        raise InvalidArgumentError(f"Unknown solver method: {solver.method!r}")

    if solver.closed_form:
        rate = solve_closed_form(schedule, price, config)
        if rate is not None:
            return IrrResult(rate, "closed_form", 0, True, net_present_value(schedule, rate, price, config))
        if schedule.total_periods <= 2:
            logger.debug("No closed-form root for price %s; using %s", price, solver.method)

    if solver.method == "brentq":
        return solve_brentq(schedule, price, solver, config)
    return solve_bisection(schedule, price, solver, config)
