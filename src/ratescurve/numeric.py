"""
Numeric helpers shared by float and dual-number evaluation.

Curve and instrument code is written once and evaluated either on plain
floats or on ``rateslib.dual.Dual`` numbers, which carry first-order
derivatives with respect to named variables. These helpers are the only
place that needs to know which of the two it is looking at.
"""

from typing import Any, Sequence
import math

import numpy as np
from rateslib.dual import Dual, dual_exp, dual_log


def is_dual(x: Any) -> bool:
    return isinstance(x, Dual)


def real(x: Any) -> float:
    """Value part of a float or dual number."""
    if isinstance(x, Dual):
        return float(x.real)
    return float(x)


def exp(x: Any) -> Any:
    if isinstance(x, Dual):
        return dual_exp(x)
    return math.exp(x)


def log(x: Any) -> Any:
    if isinstance(x, Dual):
        return dual_log(x)
    return math.log(x)


def seed(value: float, var: str) -> Dual:
    """Dual number with unit derivative in ``var``."""
    return Dual(float(value), [var], [1.0])


def partial(x: Any, var: str) -> float:
    """Derivative of ``x`` with respect to ``var``; zero if ``x`` does not depend on it."""
    if not isinstance(x, Dual):
        return 0.0
    for name, value in zip(x.vars, x.dual):
        if name == var:
            return float(value)
    return 0.0


def gradient(x: Any, variables: Sequence[str]) -> np.ndarray:
    """Derivatives of ``x`` with respect to each of ``variables``, in order."""
    if not isinstance(x, Dual):
        return np.zeros(len(variables))
    lookup = dict(zip(x.vars, x.dual))
    return np.array([float(lookup.get(var, 0.0)) for var in variables])


__all__ = ["Dual", "is_dual", "real", "exp", "log", "seed", "partial", "gradient"]
