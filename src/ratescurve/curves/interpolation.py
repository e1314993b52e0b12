"""
Interpolation methods for yield curves.

Provides:
- CurveInterpolation: tag naming the interpolation scheme of a curve
- LinearInterpolator: linear on continuously-compounded zero rates
- LogLinearInterpolator: linear on log discount factors (flat forwards)
- MonotoneConvexInterpolator: Hagan-West monotone convex on log discount factors
- CubicSplineInterpolator: natural cubic spline on zero rates

All interpolators take year fractions as x-coordinates. Node values may
be floats or dual numbers, so the arithmetic avoids numpy on values and
only uses numpy for the time grid and the (float) spline system.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, List, Optional, Sequence
import numpy as np

from .. import numeric


class CurveInterpolation(Enum):
    """Interpolation scheme of an interpolated curve."""
    LINEAR = "linear"
    LOG_LINEAR = "log_linear"
    MONOTONE_CONVEX = "monotone_convex"
    CUBIC_SPLINE = "cubic_spline"

    @classmethod
    def from_string(cls, s: str) -> "CurveInterpolation":
        key = s.lower().replace("-", "_").replace(" ", "_")
        aliases = {
            "linear": cls.LINEAR,
            "lin": cls.LINEAR,
            "log_linear": cls.LOG_LINEAR,
            "loglinear": cls.LOG_LINEAR,
            "monotone_convex": cls.MONOTONE_CONVEX,
            "hagan_west": cls.MONOTONE_CONVEX,
            "cubic_spline": cls.CUBIC_SPLINE,
            "cubic": cls.CUBIC_SPLINE,
            "spline": cls.CUBIC_SPLINE,
        }
        if key in aliases:
            return aliases[key]
        raise ValueError(f"Unknown interpolation method: {s}")

    @property
    def on_zero_rates(self) -> bool:
        """True if the scheme interpolates zero rates, False for log discount factors."""
        return self in (CurveInterpolation.LINEAR, CurveInterpolation.CUBIC_SPLINE)


class Interpolator(ABC):
    """Abstract base class for curve interpolation."""

    def __init__(self):
        self.times: Optional[np.ndarray] = None
        self.values: List[Any] = []

    @abstractmethod
    def fit(self, times: Sequence[float], values: Sequence[Any]) -> None:
        """
        Fit the interpolator to node points.

        Args:
            times: Year fractions, strictly increasing
            values: Node values in the interpolator's input space
        """

    @abstractmethod
    def interpolate(self, t: float) -> Any:
        """Value at ``t``, which must lie within the fitted range."""

    def __call__(self, t: float) -> Any:
        return self.interpolate(t)

    def _check(self, times: Sequence[float], values: Sequence[Any]) -> None:
        if len(times) != len(values):
            raise ValueError("Times and values must have same length")
        if len(times) < 2:
            raise ValueError("Need at least 2 points for interpolation")
        self.times = np.asarray(times, dtype=np.float64)
        if np.any(np.diff(self.times) <= 0):
            raise ValueError("Interpolation times must be strictly increasing")

    def _segment(self, t: float) -> int:
        """Index i of the segment [times[i], times[i+1]] containing t."""
        if self.times is None:
            raise RuntimeError("Interpolator not fitted")
        idx = int(np.searchsorted(self.times, t, side='right')) - 1
        return max(0, min(idx, len(self.times) - 2))


class LinearInterpolator(Interpolator):
    """Piecewise linear interpolation between nodes."""

    def fit(self, times: Sequence[float], values: Sequence[Any]) -> None:
        self._check(times, values)
        self.values = list(values)

    def interpolate(self, t: float) -> Any:
        i = self._segment(t)
        t0, t1 = float(self.times[i]), float(self.times[i + 1])
        w = (t - t0) / (t1 - t0)
        return self.values[i] + w * (self.values[i + 1] - self.values[i])


class LogLinearInterpolator(LinearInterpolator):
    """
    Log-linear interpolation on discount factors.

    Fitted on discount factors, returns the interpolated log discount
    factor. Equivalent to piecewise constant forward rates.
    """

    def fit(self, times: Sequence[float], discount_factors: Sequence[Any]) -> None:
        if any(numeric.real(df) <= 0 for df in discount_factors):
            raise ValueError("Discount factors must be positive")
        super().fit(times, [numeric.log(df) for df in discount_factors])


class CubicSplineInterpolator(Interpolator):
    """
    Natural cubic spline (second derivative zero at both ends).

    The tridiagonal system only depends on the time grid, so it is
    inverted in floats and applied to the (possibly dual) right-hand side.
    """

    def __init__(self):
        super().__init__()
        self.coefficients: List[tuple] = []

    def fit(self, times: Sequence[float], values: Sequence[Any]) -> None:
        self._check(times, values)
        self.values = list(values)
        n = len(self.values)
        h = np.diff(self.times)

        if n == 2:
            slope = (self.values[1] - self.values[0]) / float(h[0])
            self.coefficients = [(self.values[0], slope, 0.0, 0.0)]
            return

        A = np.zeros((n, n))
        A[0, 0] = 1.0
        A[n - 1, n - 1] = 1.0
        rhs: List[Any] = [0.0] * n
        for i in range(1, n - 1):
            A[i, i - 1] = h[i - 1]
            A[i, i] = 2.0 * (h[i - 1] + h[i])
            A[i, i + 1] = h[i]
            rhs[i] = 6.0 * (
                (self.values[i + 1] - self.values[i]) / float(h[i])
                - (self.values[i] - self.values[i - 1]) / float(h[i - 1])
            )

        inverse = np.linalg.solve(A, np.eye(n))
        M = []
        for i in range(n):
            total: Any = 0.0
            for j in range(1, n - 1):
                total = total + float(inverse[i, j]) * rhs[j]
            M.append(total)

        # S_i(x) = a + b*dx + c*dx^2 + d*dx^3 on [t_i, t_i+1]
        self.coefficients = []
        for i in range(n - 1):
            hi = float(h[i])
            a = self.values[i]
            b = (self.values[i + 1] - self.values[i]) / hi - hi * (M[i + 1] + 2.0 * M[i]) / 6.0
            c = M[i] / 2.0
            d = (M[i + 1] - M[i]) / (6.0 * hi)
            self.coefficients.append((a, b, c, d))

    def interpolate(self, t: float) -> Any:
        i = self._segment(t)
        dx = t - float(self.times[i])
        a, b, c, d = self.coefficients[i]
        return a + dx * (b + dx * (c + dx * d))


class MonotoneConvexInterpolator(Interpolator):
    """
    Hagan-West monotone convex interpolation.

    Fitted on discount factors, returns the interpolated log discount
    factor. Instantaneous forwards on each segment are the discrete
    forward plus a correction g(x) chosen from four regions so that the
    forward curve stays monotone between nodes; the correction integrates
    to zero over the segment, so nodes are reproduced exactly. Node
    forwards are not collared, which allows negative forwards.
    """

    def __init__(self):
        super().__init__()
        self.discrete: List[Any] = []
        self.node_forwards: List[Any] = []

    def fit(self, times: Sequence[float], discount_factors: Sequence[Any]) -> None:
        self._check(times, discount_factors)
        if any(numeric.real(df) <= 0 for df in discount_factors):
            raise ValueError("Discount factors must be positive")
        self.values = [numeric.log(df) for df in discount_factors]
        t = [float(x) for x in self.times]
        n = len(t) - 1

        # discrete[i] is the flat forward on (t_i, t_i+1)
        self.discrete = [
            -(self.values[i + 1] - self.values[i]) / (t[i + 1] - t[i]) for i in range(n)
        ]
        if n == 1:
            self.node_forwards = [self.discrete[0], self.discrete[0]]
            return

        f: List[Any] = [0.0] * (n + 1)
        for i in range(1, n):
            span = t[i + 1] - t[i - 1]
            f[i] = (
                (t[i] - t[i - 1]) / span * self.discrete[i]
                + (t[i + 1] - t[i]) / span * self.discrete[i - 1]
            )
        f[0] = self.discrete[0] - 0.5 * (f[1] - self.discrete[0])
        f[n] = self.discrete[n - 1] - 0.5 * (f[n - 1] - self.discrete[n - 1])
        self.node_forwards = f

    def interpolate(self, t: float) -> Any:
        i = self._segment(t)
        t0, t1 = float(self.times[i]), float(self.times[i + 1])
        h = t1 - t0
        x = (t - t0) / h
        fd = self.discrete[i]
        g0 = self.node_forwards[i] - fd
        g1 = self.node_forwards[i + 1] - fd
        return self.values[i] - h * (fd * x + _integrated_correction(g0, g1, x))


def _integrated_correction(g0: Any, g1: Any, x: float) -> Any:
    """G(x), the integral over [0, x] of the monotone convex forward correction."""
    if x <= 0.0 or x >= 1.0:
        return 0.0
    r0, r1 = numeric.real(g0), numeric.real(g1)
    if r0 == 0.0 and r1 == 0.0:
        return 0.0

    if (r0 < 0 and -0.5 * r0 <= r1 <= -2.0 * r0) or (r0 > 0 and -0.5 * r0 >= r1 >= -2.0 * r0):
        # region (i): quadratic
        return g0 * (x - 2.0 * x * x + x ** 3) + g1 * (x ** 3 - x * x)

    if (r0 < 0 and r1 > -2.0 * r0) or (r0 > 0 and r1 < -2.0 * r0):
        # region (ii): flat then quadratic
        eta = (g1 + 2.0 * g0) / (g1 - g0)
        if x <= numeric.real(eta):
            return g0 * x
        u = x - eta
        return g0 * x + (g1 - g0) * u * u * u / (3.0 * (1.0 - eta) * (1.0 - eta))

    if (r0 > 0 and 0 > r1 > -0.5 * r0) or (r0 < 0 and 0 < r1 < -0.5 * r0):
        # region (iii): quadratic then flat
        eta = 3.0 * g1 / (g1 - g0)
        if x >= numeric.real(eta):
            return g1 * x + (g0 - g1) * eta / 3.0
        u = eta - x
        return g1 * x + (g0 - g1) * (eta * eta * eta - u * u * u) / (3.0 * eta * eta)

    # region (iv): g0 and g1 share a sign
    eta = g1 / (g1 + g0)
    A = -g0 * g1 / (g0 + g1)
    if x <= numeric.real(eta):
        u = eta - x
        return A * x + (g0 - A) * (eta * eta * eta - u * u * u) / (3.0 * eta * eta)
    u = x - eta
    return (
        A * x
        + (g0 - A) * eta / 3.0
        + (g1 - A) * u * u * u / (3.0 * (1.0 - eta) * (1.0 - eta))
    )


def create_interpolator(method) -> Interpolator:
    """
    Create an interpolator for an interpolation tag or name.

    Args:
        method: CurveInterpolation or one of its string aliases

    Returns:
        Unfitted Interpolator instance
    """
    if isinstance(method, str):
        method = CurveInterpolation.from_string(method)

    return {
        CurveInterpolation.LINEAR: LinearInterpolator,
        CurveInterpolation.LOG_LINEAR: LogLinearInterpolator,
        CurveInterpolation.MONOTONE_CONVEX: MonotoneConvexInterpolator,
        CurveInterpolation.CUBIC_SPLINE: CubicSplineInterpolator,
    }[method]()


__all__ = [
    "CurveInterpolation",
    "Interpolator",
    "LinearInterpolator",
    "LogLinearInterpolator",
    "CubicSplineInterpolator",
    "MonotoneConvexInterpolator",
    "create_interpolator",
]
