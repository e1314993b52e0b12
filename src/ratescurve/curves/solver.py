"""Pillar root-finding: Newton-Raphson with a Brent fallback."""

from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple
import logging
import math

from scipy.optimize import brentq

from .. import numeric

logger = logging.getLogger(__name__)

PILLAR_VAR = "__pillar__"


@dataclass
class RootResult:
    root: float
    iterations: int
    residual: float
    slope: Optional[float]
    method: str


class RootFindingError(RuntimeError):
    """Raised when neither Newton nor Brent finds the root."""

    def __init__(self, message: str, residual: float, iterations: int):
        super().__init__(message)
        self.residual = residual
        self.iterations = iterations


def newton_with_brent(
    residual: Callable[[Any], Any],
    initial_guess: float,
    bracket: Tuple[float, float],
    *,
    tol: float,
    max_iter: int,
    use_derivative: bool = True,
) -> RootResult:
    """
    Solve residual(x) = 0 for x inside bracket.

    Newton steps take their slope from evaluating ``residual`` on a
    dual number seeded in x. Newton stops and hands over to Brent when a
    step leaves the bracket, the slope vanishes or the cap is reached.

    Args:
        residual: Function of one variable, float or dual in, float or dual out
        initial_guess: Starting point for Newton
        bracket: (lower, upper) search interval
        tol: Absolute tolerance on the residual
        max_iter: Iteration cap for each method
        use_derivative: If False skip Newton (residual cannot take duals)

    Raises:
        RootFindingError: No sign change in the bracket or Brent did not converge
    """
    lower, upper = bracket
    x = min(max(float(initial_guess), lower), upper)
    last = math.inf
    iterations = 0

    if use_derivative:
        for iterations in range(1, max_iter + 1):
            value, slope = _value_and_slope(residual, x)
            last = value
            logger.debug("Newton iter %s: x=%s value=%s slope=%s", iterations, x, value, slope)
            if abs(value) <= tol:
                return RootResult(x, iterations, value, slope, "newton")
            if slope == 0.0 or not math.isfinite(slope) or not math.isfinite(value):
                logger.debug("Degenerate slope; leaving Newton at iter %s", iterations)
                break
            x_new = x - value / slope
            if not lower <= x_new <= upper:
                logger.debug("Newton step %s left bracket [%s, %s]", x_new, lower, upper)
                break
            if abs(x_new - x) <= 1e-16 * max(1.0, abs(x)):
                return RootResult(x_new, iterations, value, slope, "newton")
            x = x_new

    if use_derivative:
        logger.warning(
            "Newton did not converge after %s iterations (residual %.3e); falling back to Brent",
            iterations, last
        )

    def func(v: float) -> float:
        return numeric.real(residual(v))

    f_lower, f_upper = func(lower), func(upper)
    if f_lower * f_upper > 0:
        if math.isinf(last):
            last = f_lower if abs(f_lower) < abs(f_upper) else f_upper
        raise RootFindingError("no sign change in bracket", last, iterations)

    try:
        root, info = brentq(func, lower, upper, xtol=1e-15, maxiter=max_iter, full_output=True)
    except (ValueError, RuntimeError) as exc:
        raise RootFindingError(str(exc), last, iterations) from exc

    slope = _value_and_slope(residual, root)[1] if use_derivative else None
    value = func(root)
    return RootResult(root, iterations + info.iterations, value, slope, "brent")


def _value_and_slope(residual: Callable[[Any], Any], x: float) -> Tuple[float, float]:
    result = residual(numeric.seed(x, PILLAR_VAR))
    return numeric.real(result), numeric.partial(result, PILLAR_VAR)


__all__ = ["RootResult", "RootFindingError", "newton_with_brent", "PILLAR_VAR"]
