"""
Curve bootstrapping engine.

Implements the sequential bootstrap of a single curve:
1. Sort instruments by pillar time
2. Solve each pillar discount factor with the earlier pillars held fixed
3. Verify that every instrument reprices on the finished curve

Instruments that look past their own pillar are either rejected or
handled by repeating whole bootstrap passes, as the configuration says.
The same code runs on float and on dual-number quotes; in the dual case
each solved pillar carries its derivatives with respect to the quotes.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
import logging

import pandas as pd

from .. import numeric
from ..conventions import DayCount
from ..dates import Tenor, resolve_time
from ..errors import ConvergenceFailure, NonTriangularInstrumentSet, StructuralError
from .config import BootstrapConfig, NonTriangularPolicy
from .curve import CurveTime, Extrapolation, InterpolatedCurve, YieldCurve
from .instruments import (
    BootstrapInstrument,
    CurveMarket,
    deposit,
    fra,
    future,
    irs,
    ois_swap,
)
from .solver import RootFindingError, newton_with_brent

logger = logging.getLogger(__name__)

# Slack on pillar time when checking how far an instrument looks ahead
_TIME_EPS = 1e-12


@dataclass(frozen=True)
class BootstrapResult:
    """
    Result of a single-curve bootstrap.

    Attributes:
        curve: The built curve
        pillar_labels: Label of the instrument calibrating each pillar
        repricing_errors: Repriced value minus quote, by instrument label
        iterations: Root-finder iterations, by instrument label
        passes: Bootstrap passes run (more than one only when iterating)
        name: Curve name, if built as part of a curve set
    """
    curve: InterpolatedCurve
    pillar_labels: Tuple[str, ...]
    repricing_errors: Dict[str, float] = field(default_factory=dict)
    iterations: Dict[str, int] = field(default_factory=dict)
    passes: int = 1
    name: Optional[str] = None

    @property
    def times(self) -> Tuple[float, ...]:
        return self.curve.times

    @property
    def values(self) -> Tuple[Any, ...]:
        return self.curve.values

    @property
    def max_error(self) -> float:
        return max((abs(e) for e in self.repricing_errors.values()), default=0.0)

    def to_frame(self) -> pd.DataFrame:
        """Pillar table: time, discount factor, zero rate, repricing error, iterations."""
        rows = []
        for label, t, v in zip(self.pillar_labels, self.times, self.values):
            df = numeric.real(v)
            rows.append({
                "instrument": label,
                "time": t,
                "discount_factor": df,
                "zero_rate": numeric.real(self.curve.zero_rate(t)),
                "repricing_error": self.repricing_errors.get(label, 0.0),
                "iterations": self.iterations.get(label, 0),
            })
        return pd.DataFrame(rows).set_index("instrument")


class _ProbeCurve(YieldCurve):
    """Delegating curve that records the latest time it was queried at."""

    def __init__(self, inner: YieldCurve):
        super().__init__(inner.anchor_date, inner.day_count)
        self.inner = inner
        self.latest = 0.0

    def discount_factor(self, t: CurveTime) -> Any:
        time = self.to_time(t)
        self.latest = max(self.latest, time)
        return self.inner.discount_factor(time)

    def to_float(self) -> YieldCurve:
        return self.inner.to_float()


class SequentialBootstrapper:
    """
    Bootstrap one curve from its calibration instruments.

    Attributes:
        config: BootstrapConfig (interpolation, extrapolation, solver settings)
    """

    def __init__(self, config: BootstrapConfig):
        self.config = config

    def bootstrap(
        self,
        instruments: Sequence[BootstrapInstrument],
        market: Optional[Mapping[str, YieldCurve]] = None,
        pillars: Optional[Sequence[Union[Tenor, float]]] = None,
        name: str = "curve",
    ) -> BootstrapResult:
        """
        Build a curve that reprices every instrument within tolerance.

        Args:
            instruments: Calibration set, one instrument per pillar
            market: Already-built curves this curve depends on
            pillars: Explicit pillar grid (defaults to instrument maturities)
            name: Curve name used in errors and logs

        Returns:
            BootstrapResult with the curve and diagnostics

        Raises:
            StructuralError: Empty set, duplicate pillars or labels
            NonTriangularInstrumentSet: Instruments not sequentially solvable
            ConvergenceFailure: A pillar could not be solved
        """
        ordered, times = self._order(list(instruments), pillars, name)
        anchor_date, day_count = self._anchor(ordered, name)
        if not isinstance(market, CurveMarket):
            market = CurveMarket(name, market)
        real_market = market.to_float()

        logger.info(
            "Bootstrapping curve '%s': %s instruments, %s interpolation, %s",
            name, len(ordered), self.config.interpolation.value,
            self.config.non_triangular.value
        )

        if self.config.non_triangular == NonTriangularPolicy.FAIL:
            values, _, iterations = self._pass(
                ordered, times, market, real_market, name, check=True
            )
            passes = 1
        else:
            values, iterations, passes = self._iterate(ordered, times, market, real_market, name)

        labels = tuple(inst.label for inst in ordered)
        curve = InterpolatedCurve(
            zip(times, values),
            self.config.interpolation,
            self.config.extrapolation,
            anchor_date=anchor_date,
            day_count=day_count,
            labels=labels,
        )
        errors = self._verify(curve, ordered, market, name)

        logger.info(
            "Curve '%s' built in %s pass(es); max repricing error %.3e",
            name, passes, max((abs(e) for e in errors.values()), default=0.0)
        )
        return BootstrapResult(
            curve=curve,
            pillar_labels=labels,
            repricing_errors=errors,
            iterations=iterations,
            passes=passes,
            name=name,
        )

    def _order(
        self,
        instruments: List[BootstrapInstrument],
        pillars: Optional[Sequence[Union[Tenor, float]]],
        name: str
    ) -> Tuple[List[BootstrapInstrument], Tuple[float, ...]]:
        if not instruments:
            raise StructuralError(f"Curve '{name}' has no instruments")

        seen = set()
        for inst in instruments:
            if inst.label in seen:
                raise StructuralError(f"Curve '{name}': duplicate instrument label '{inst.label}'")
            seen.add(inst.label)

        ordered = sorted(instruments, key=lambda inst: inst.maturity)
        if pillars is None:
            times = [inst.maturity for inst in ordered]
        else:
            if len(pillars) != len(instruments):
                raise StructuralError(
                    f"Curve '{name}': {len(pillars)} pillars for {len(instruments)} instruments"
                )
            times = sorted(resolve_time(p) for p in pillars)

        if times[0] <= 0.0:
            raise StructuralError(f"Curve '{name}': pillar times must be positive")
        for k in range(1, len(times)):
            if times[k] - times[k - 1] <= _TIME_EPS:
                raise StructuralError(
                    f"Curve '{name}': instruments '{ordered[k - 1].label}' and "
                    f"'{ordered[k].label}' share pillar time {times[k]:.6f}"
                )
        return ordered, tuple(times)

    @staticmethod
    def _anchor(ordered: List[BootstrapInstrument], name: str) -> Tuple[Optional[date], DayCount]:
        tenors = [inst.tenor for inst in ordered if isinstance(inst.tenor, Tenor)]
        if not tenors:
            return None, DayCount.ACT_365
        if len({(t.valuation_date, t.day_count) for t in tenors}) > 1:
            raise StructuralError(
                f"Curve '{name}': instruments use different valuation dates or day counts"
            )
        return tenors[0].valuation_date, tenors[0].day_count

    def _trial_curve(self, times: Sequence[float], values: Sequence[Any]) -> InterpolatedCurve:
        # Flat extrapolation while solving; the published curve applies the configured policy
        return InterpolatedCurve(
            zip(times, values), self.config.interpolation, Extrapolation.FLAT
        )

    def _pass(
        self,
        ordered: List[BootstrapInstrument],
        times: Tuple[float, ...],
        market: CurveMarket,
        real_market: CurveMarket,
        name: str,
        previous: Optional[Tuple[List[Any], List[float]]] = None,
        check: bool = False,
    ) -> Tuple[List[Any], List[float], Dict[str, int]]:
        """
        One bootstrap pass over all pillars.

        Without ``previous`` each pillar only sees the pillars before it.
        With ``previous`` (iterating) it also sees the later pillars of the
        previous pass.
        """
        full_values: List[Any] = []
        real_values: List[float] = []
        iterations: Dict[str, int] = {}
        last = len(ordered) - 1

        for k, inst in enumerate(ordered):
            grid = times if previous is not None else times[:k + 1]
            later_full = previous[0][k + 1:] if previous is not None else []
            later_real = previous[1][k + 1:] if previous is not None else []

            if previous is not None:
                guess = previous[1][k]
            elif k == 0:
                guess = 1.0
            else:
                guess = numeric.exp(numeric.log(real_values[-1]) * times[k] / times[k - 1])

            if check and k < last:
                self._check_triangular(inst, grid, real_values + [guess], times[k], real_market, name)

            real_quote = numeric.real(inst.quote)

            def real_residual(x):
                curve = self._trial_curve(grid, real_values + [x] + later_real)
                return inst.reprice(curve, real_market) - real_quote

            def full_residual(x):
                curve = self._trial_curve(grid, full_values + [x] + later_full)
                return inst.reprice(curve, market) - inst.quote

            try:
                root = newton_with_brent(
                    real_residual,
                    guess,
                    self.config.bracket,
                    tol=self.config.tolerance,
                    max_iter=self.config.max_iterations,
                    use_derivative=inst.supports_dual,
                )
            except RootFindingError as exc:
                logger.error("Curve '%s': pillar for '%s' failed: %s", name, inst.label, exc)
                raise ConvergenceFailure(
                    inst.label, times[k], exc.residual, exc.iterations, curve=name, reason=str(exc)
                ) from exc

            # Newton polish in the quote's number type; with dual quotes this
            # step gives the pillar its derivatives (implicit function theorem)
            value = root.root
            if root.slope:
                value = root.root - full_residual(root.root) / root.slope

            residual = numeric.real(full_residual(value))
            if abs(residual) > self.config.tolerance:
                raise ConvergenceFailure(
                    inst.label, times[k], residual, root.iterations, curve=name,
                    reason="residual above tolerance"
                )

            logger.debug(
                "Curve '%s': pillar %s (t=%.6f) df=%.14f via %s in %s iterations",
                name, inst.label, times[k], numeric.real(value), root.method, root.iterations
            )
            full_values.append(value)
            real_values.append(numeric.real(value))
            iterations[inst.label] = root.iterations

        return full_values, real_values, iterations

    def _check_triangular(
        self,
        inst: BootstrapInstrument,
        grid: Sequence[float],
        values: Sequence[float],
        pillar: float,
        real_market: CurveMarket,
        name: str
    ) -> None:
        probe = _ProbeCurve(self._trial_curve(grid, values))
        inst.reprice(probe, real_market)
        if probe.latest > pillar + _TIME_EPS:
            raise NonTriangularInstrumentSet(
                name, [inst.label],
                f"prices off t={probe.latest:.6f}, after its pillar t={pillar:.6f}"
            )

    def _iterate(
        self,
        ordered: List[BootstrapInstrument],
        times: Tuple[float, ...],
        market: CurveMarket,
        real_market: CurveMarket,
        name: str
    ) -> Tuple[List[Any], Dict[str, int], int]:
        previous = None
        for passes in range(1, self.config.max_passes + 1):
            full, real, iterations = self._pass(ordered, times, market, real_market, name, previous)
            if previous is not None:
                change = max(abs(a - b) for a, b in zip(real, previous[1]))
                logger.debug("Curve '%s': pass %s, max pillar change %.3e", name, passes, change)
                if change <= self.config.tolerance:
                    return full, iterations, passes
            previous = (full, real)

        raise NonTriangularInstrumentSet(
            name, [inst.label for inst in ordered],
            f"pillars still moving after {self.config.max_passes} passes"
        )

    def _verify(
        self,
        curve: InterpolatedCurve,
        ordered: List[BootstrapInstrument],
        market: CurveMarket,
        name: str
    ) -> Dict[str, float]:
        errors = {}
        offenders = []
        for inst in ordered:
            error = numeric.real(inst.reprice(curve, market) - inst.quote)
            errors[inst.label] = error
            if abs(error) > 100 * self.config.tolerance:
                offenders.append(inst.label)
        if offenders:
            raise NonTriangularInstrumentSet(
                name, offenders, "repricing moved once later pillars were added"
            )
        return errors


def bootstrap_from_quotes(
    valuation_date: date,
    quotes: List[Dict],
    config: BootstrapConfig
) -> BootstrapResult:
    """
    Convenience function to bootstrap a single curve from quote dictionaries.

    Args:
        valuation_date: Curve anchor date
        quotes: List of dicts with keys instrument_type, tenor, quote, ...
        config: Bootstrap configuration

    Returns:
        BootstrapResult

    Example quote format:
        {"instrument_type": "DEPOSIT", "tenor": "1M", "quote": 0.053}
        {"instrument_type": "FRA", "start_tenor": "3M", "tenor": "6M", "quote": 0.052}
        {"instrument_type": "FUT", "start_tenor": "6M", "tenor": "9M", "quote": 94.9}
        {"instrument_type": "OIS", "tenor": "2Y", "quote": 0.0481, "pay_freq": 1}
    """
    instruments = []
    for q in quotes:
        inst_type = q.get("instrument_type", "").upper()
        tenor = Tenor(q["tenor"], valuation_date)
        quote = float(q["quote"])
        day_count = DayCount.from_string(q.get("day_count", "ACT/360"))

        if inst_type == "DEPOSIT":
            instruments.append(deposit(tenor, quote, day_count))
        elif inst_type == "OIS":
            instruments.append(ois_swap(tenor, quote, int(q.get("pay_freq", 1)), day_count))
        elif inst_type == "IRS":
            instruments.append(irs(tenor, quote, int(q.get("pay_freq", 2))))
        elif inst_type in ("FRA", "FUT", "FUTURE"):
            start = Tenor(q["start_tenor"], valuation_date)
            if inst_type == "FRA":
                instruments.append(fra(start, tenor, quote, day_count))
            else:
                instruments.append(future(start, tenor, quote, q.get("convexity", 0.0), day_count))
        else:
            raise ValueError(f"Unknown instrument type: {inst_type!r}")

    return SequentialBootstrapper(config).bootstrap(instruments)


__all__ = [
    "BootstrapResult",
    "SequentialBootstrapper",
    "bootstrap_from_quotes",
]
