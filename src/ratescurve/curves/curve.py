"""
Yield curve representation and operations.

The YieldCurve interface provides:
- Discount factor P(0,t)
- Zero rate z(t) under a compounding convention
- Forward rate f(t1, t2) from the two endpoint discount factors

Implementations:
- FlatCurve: a single continuously-compounded rate
- InterpolatedCurve: discount factor pillars joined by a CurveInterpolation

Times are year fractions from the anchor date. Tenors and calendar dates
are accepted wherever a time is. Curves are immutable once constructed
and safe to share between threads.
"""

from abc import ABC, abstractmethod
from datetime import date
from enum import Enum
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union
import numpy as np

from .. import numeric
from ..conventions import CompoundingConvention, DayCount, year_fraction
from ..dates import Tenor, resolve_time
from ..errors import OutOfDomainError
from .interpolation import CurveInterpolation, create_interpolator


CurveTime = Union[float, int, Tenor, date]


class Extrapolation(Enum):
    """Behaviour of an interpolated curve beyond its last pillar."""
    FLAT = "flat"    # zero rate held at the last pillar's value
    ERROR = "error"  # OutOfDomainError

    @classmethod
    def from_string(cls, s: str) -> "Extrapolation":
        try:
            return cls(s.lower())
        except ValueError:
            raise ValueError(f"Unknown extrapolation policy: {s}") from None


class YieldCurve(ABC):
    """
    Abstract yield curve.

    Subclasses implement ``discount_factor`` on curve time; zero and
    forward rates are derived from it.

    Attributes:
        anchor_date: Valuation date (time 0), needed to query by date
        day_count: Day count turning dates into curve time
    """

    def __init__(self, anchor_date: Optional[date] = None, day_count: DayCount = DayCount.ACT_365):
        self.anchor_date = anchor_date
        self.day_count = day_count

    def to_time(self, t: CurveTime) -> float:
        """Convert a float, Tenor or date into curve time."""
        if isinstance(t, date):
            if self.anchor_date is None:
                raise ValueError("Curve has no anchor date; query by year fraction or Tenor")
            if t < self.anchor_date:
                raise OutOfDomainError(-float((self.anchor_date - t).days), 0.0)
            return year_fraction(self.anchor_date, t, self.day_count)
        return resolve_time(t)

    @abstractmethod
    def discount_factor(self, t: CurveTime) -> Any:
        """Discount factor P(0,t)."""

    def value_at(self, t: CurveTime) -> Any:
        """Value of the curve's stored quantity at t (the discount factor)."""
        return self.discount_factor(t)

    def zero_rate(
        self,
        t: CurveTime,
        compounding: CompoundingConvention = CompoundingConvention.CONTINUOUS
    ) -> Any:
        """
        Zero rate to time t.

        Args:
            t: Time, Tenor or date
            compounding: Compounding convention of the returned rate

        Returns:
            Zero rate; at t=0 the short end rate of the curve
        """
        time = self.to_time(t)
        if time == 0.0:
            return _convert_continuous(self._short_rate(), compounding)
        df = self.discount_factor(time)
        return _rate_from_growth(1.0 / df, time, compounding)

    def forward_rate(
        self,
        t1: CurveTime,
        t2: CurveTime,
        compounding: CompoundingConvention = CompoundingConvention.CONTINUOUS
    ) -> Any:
        """
        Forward rate between t1 and t2 from the two endpoint discount factors.

        Raises:
            ValueError: If t2 is not after t1
        """
        start, end = self.to_time(t1), self.to_time(t2)
        if end <= start:
            raise ValueError(f"Forward end ({end}) must be after start ({start})")
        growth = self.discount_factor(start) / self.discount_factor(end)
        return _rate_from_growth(growth, end - start, compounding)

    def _short_rate(self) -> Any:
        """Continuously-compounded rate at the anchor; one-day rate by default."""
        tiny = 1.0 / 365.0
        return -numeric.log(self.discount_factor(tiny)) / tiny

    @abstractmethod
    def to_float(self) -> "YieldCurve":
        """Copy of the curve with any dual-number values reduced to floats."""


class FlatCurve(YieldCurve):
    """
    Curve with a single continuously-compounded zero rate.

    P(0,t) = exp(-rate * t) for every t >= 0.
    """

    def __init__(
        self,
        rate: Any,
        anchor_date: Optional[date] = None,
        day_count: DayCount = DayCount.ACT_365
    ):
        super().__init__(anchor_date, day_count)
        self.rate = rate

    def discount_factor(self, t: CurveTime) -> Any:
        time = self.to_time(t)
        if time == 0.0:
            return 1.0
        return numeric.exp(-self.rate * time)

    def _short_rate(self) -> Any:
        return self.rate

    def to_float(self) -> "FlatCurve":
        if not numeric.is_dual(self.rate):
            return self
        return FlatCurve(numeric.real(self.rate), self.anchor_date, self.day_count)

    def __repr__(self) -> str:
        return f"FlatCurve(rate={numeric.real(self.rate):.6f})"


class InterpolatedCurve(YieldCurve):
    """
    Curve defined by discount factor pillars and an interpolation scheme.

    An implicit node (0, 1) anchors the curve. Zero-rate schemes give the
    anchor node the first pillar's zero rate, so the short end is flat.
    Querying exactly at a pillar time returns the stored value.

    Attributes:
        times: Pillar times, strictly increasing, all > 0
        values: Pillar discount factors (floats or dual numbers)
        labels: Optional pillar labels, one per pillar
        interpolation: CurveInterpolation scheme
        extrapolation: Behaviour beyond the last pillar
    """

    def __init__(
        self,
        pillars: Iterable[Tuple[Union[float, Tenor], Any]],
        interpolation: Union[CurveInterpolation, str],
        extrapolation: Union[Extrapolation, str],
        anchor_date: Optional[date] = None,
        day_count: DayCount = DayCount.ACT_365,
        labels: Optional[Sequence[str]] = None,
    ):
        super().__init__(anchor_date, day_count)
        if isinstance(interpolation, str):
            interpolation = CurveInterpolation.from_string(interpolation)
        if isinstance(extrapolation, str):
            extrapolation = Extrapolation.from_string(extrapolation)
        self.interpolation = interpolation
        self.extrapolation = extrapolation

        pairs = [(resolve_time(t), v) for t, v in pillars]
        if not pairs:
            raise ValueError("Need at least one pillar to build a curve")
        times = [t for t, _ in pairs]
        if times[0] <= 0.0:
            raise ValueError(f"Pillar times must be positive, got {times[0]}")
        if any(b <= a for a, b in zip(times, times[1:])):
            raise ValueError(f"Pillar times must be strictly increasing: {times}")
        for t, v in pairs:
            if not numeric.real(v) > 0.0:
                raise ValueError(f"Discount factor at t={t} must be positive, got {numeric.real(v)}")
        if labels is not None and len(labels) != len(pairs):
            raise ValueError("Need one label per pillar")

        self.times: Tuple[float, ...] = tuple(times)
        self.values: Tuple[Any, ...] = tuple(v for _, v in pairs)
        self.labels: Optional[Tuple[str, ...]] = tuple(labels) if labels is not None else None
        self._grid = np.asarray(self.times)

        node_times = [0.0] + list(self.times)
        self._interpolator = create_interpolator(interpolation)
        if interpolation.on_zero_rates:
            zeros = [-numeric.log(v) / t for t, v in zip(self.times, self.values)]
            self._interpolator.fit(node_times, [zeros[0]] + zeros)
        else:
            self._interpolator.fit(node_times, [1.0] + list(self.values))

    @property
    def max_time(self) -> float:
        return self.times[-1]

    @property
    def pillars(self) -> List[Tuple[float, Any]]:
        return list(zip(self.times, self.values))

    @property
    def is_dual(self) -> bool:
        return any(numeric.is_dual(v) for v in self.values)

    def discount_factor(self, t: CurveTime) -> Any:
        time = self.to_time(t)
        if time == 0.0:
            return 1.0

        idx = int(np.searchsorted(self._grid, time))
        if idx < len(self.times) and self.times[idx] == time:
            return self.values[idx]

        if time > self.max_time:
            if self.extrapolation == Extrapolation.ERROR:
                raise OutOfDomainError(time, 0.0, self.max_time)
            # flat zero rate: P(t) = P(T)^(t/T)
            return numeric.exp(numeric.log(self.values[-1]) * (time / self.max_time))

        y = self._interpolator(time)
        if self.interpolation.on_zero_rates:
            return numeric.exp(-y * time)
        return numeric.exp(y)

    def _short_rate(self) -> Any:
        return -numeric.log(self.values[0]) / self.times[0]

    def with_values(self, values: Sequence[Any]) -> "InterpolatedCurve":
        """Same pillar grid and settings with new pillar values."""
        return InterpolatedCurve(
            zip(self.times, values),
            self.interpolation,
            self.extrapolation,
            self.anchor_date,
            self.day_count,
            self.labels,
        )

    def to_float(self) -> "InterpolatedCurve":
        if not self.is_dual:
            return self
        return self.with_values([numeric.real(v) for v in self.values])

    def __repr__(self) -> str:
        return (
            f"InterpolatedCurve(pillars={len(self.times)}, "
            f"interpolation={self.interpolation.value}, "
            f"extrapolation={self.extrapolation.value})"
        )


def _rate_from_growth(growth: Any, tau: float, compounding: CompoundingConvention) -> Any:
    """Rate that grows 1 into ``growth`` over ``tau`` years."""
    if compounding == CompoundingConvention.CONTINUOUS:
        return numeric.log(growth) / tau
    if compounding == CompoundingConvention.SIMPLE:
        return (growth - 1.0) / tau
    n = compounding.periods_per_year
    return n * (numeric.exp(numeric.log(growth) / (n * tau)) - 1.0)


def _convert_continuous(rate: Any, compounding: CompoundingConvention) -> Any:
    """Instantaneous continuous rate expressed in another convention (limit t -> 0)."""
    n = compounding.periods_per_year
    if n is None:
        return rate
    return n * (numeric.exp(rate / n) - 1.0)


__all__ = [
    "CurveTime",
    "Extrapolation",
    "YieldCurve",
    "FlatCurve",
    "InterpolatedCurve",
]
