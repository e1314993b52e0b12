"""
Curve instruments for bootstrapping.

A BootstrapInstrument pairs a pillar tenor and an observed quote with a
repricing function ``reprice(curve, market) -> price``. The bootstrapper
solves the pillar so that the repriced value matches the quote.

Factories for the standard calibration instruments:
- deposit: simple-interest money market deposit (quote: rate)
- fra: forward rate agreement (quote: rate)
- future: interest rate future with convexity adjustment (quote: 100 - 100*rate)
- ois_swap: overnight index swap, single curve (quote: par rate)
- irs: vanilla swap projecting off the curve being built, optionally
  discounting off another curve of the set (quote: par rate)

Repricing functions are module-level and bound with functools.partial, so
they only use arithmetic that works on floats and dual numbers alike.
"""

from dataclasses import dataclass, field, replace
from functools import partial
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Tuple, Union

from ..conventions import DayCount, year_fraction
from ..dates import DateUtils, Tenor, resolve_time
from ..errors import StructuralError
from .curve import YieldCurve


class CurveMarket(Mapping):
    """
    Read-only view of the curves a curve under construction depends on.

    Looking up a curve that was not declared as a dependency raises
    StructuralError rather than KeyError.
    """

    def __init__(self, owner: str, curves: Optional[Mapping[str, YieldCurve]] = None):
        self.owner = owner
        self._curves: Dict[str, YieldCurve] = dict(curves or {})

    def __getitem__(self, name: str) -> YieldCurve:
        try:
            return self._curves[name]
        except KeyError:
            raise StructuralError(
                f"Curve '{self.owner}' did not declare a dependency on '{name}'"
            ) from None

    def __contains__(self, name: object) -> bool:
        return name in self._curves

    def __iter__(self) -> Iterator[str]:
        return iter(self._curves)

    def __len__(self) -> int:
        return len(self._curves)

    def to_float(self) -> "CurveMarket":
        """Same view with dual-valued curves reduced to floats."""
        return CurveMarket(self.owner, {k: c.to_float() for k, c in self._curves.items()})


Reprice = Callable[[YieldCurve, Mapping[str, YieldCurve]], Any]


@dataclass(frozen=True)
class BootstrapInstrument:
    """
    Calibration instrument.

    Attributes:
        tenor: Pillar position (Tenor or year fraction)
        quote: Observed market quote (float, or dual number for sensitivities)
        reprice: Model price of the instrument on a candidate curve
        label: Unique name within a curve definition
        kind: Instrument family ("DEP", "FRA", "FUT", "OIS", "IRS", ...)
        terms: Contract parameters that affect the repricing
        supports_dual: Whether ``reprice`` accepts dual-number curves
    """
    tenor: Union[Tenor, float]
    quote: Any
    reprice: Reprice
    label: str = ""
    kind: str = "CUSTOM"
    terms: Mapping[str, Any] = field(default_factory=dict)
    supports_dual: bool = True

    def __post_init__(self):
        if not self.label:
            object.__setattr__(self, "label", f"{self.kind} {_tenor_label(self.tenor)}")

    @property
    def maturity(self) -> float:
        """Pillar time in years."""
        return resolve_time(self.tenor)

    def price(self, curve: YieldCurve, market: Optional[Mapping[str, YieldCurve]] = None) -> Any:
        return self.reprice(curve, market if market is not None else CurveMarket(self.label))

    def residual(self, curve: YieldCurve, market: Optional[Mapping[str, YieldCurve]] = None) -> Any:
        """Repriced value minus quote."""
        return self.price(curve, market) - self.quote

    def with_quote(self, quote: Any) -> "BootstrapInstrument":
        return replace(self, quote=quote)


def deposit(
    tenor: Union[Tenor, float],
    rate: Any,
    day_count: DayCount = DayCount.ACT_360,
    label: Optional[str] = None
) -> BootstrapInstrument:
    """
    Money market deposit starting at the anchor.

    Pricing: R = (1 / P(T) - 1) / tau
    """
    end = resolve_time(tenor)
    if isinstance(tenor, Tenor):
        accrual = year_fraction(tenor.valuation_date, tenor.maturity_date, day_count)
    else:
        accrual = end
    terms = {"end": end, "accrual": accrual}
    return BootstrapInstrument(
        tenor, rate, partial(deposit_rate, **terms),
        label=label or "", kind="DEP", terms=terms
    )


def fra(
    start: Union[Tenor, float],
    end: Union[Tenor, float],
    rate: Any,
    day_count: DayCount = DayCount.ACT_360,
    label: Optional[str] = None
) -> BootstrapInstrument:
    """
    Forward rate agreement on [start, end]; the pillar is the end.

    Pricing: F = (P(start) / P(end) - 1) / tau
    """
    terms = _period_terms(start, end, day_count)
    return BootstrapInstrument(
        end, rate, partial(forward_rate, **terms),
        label=label or f"FRA {_tenor_label(start)}x{_tenor_label(end)}",
        kind="FRA", terms=terms
    )


def future(
    start: Union[Tenor, float],
    end: Union[Tenor, float],
    price: Any,
    convexity: float = 0.0,
    day_count: DayCount = DayCount.ACT_360,
    label: Optional[str] = None
) -> BootstrapInstrument:
    """
    Interest rate future on [start, end], quoted as a price.

    Pricing: 100 - 100 * (F + convexity), where the convexity adjustment
    converts the curve forward into a futures rate.
    """
    terms = _period_terms(start, end, day_count)
    terms["convexity"] = float(convexity)
    return BootstrapInstrument(
        end, price, partial(future_price, **terms),
        label=label or f"FUT {_tenor_label(start)}x{_tenor_label(end)}",
        kind="FUT", terms=terms
    )


def ois_swap(
    tenor: Union[Tenor, float],
    rate: Any,
    frequency: int = 1,
    day_count: DayCount = DayCount.ACT_360,
    label: Optional[str] = None
) -> BootstrapInstrument:
    """
    Spot-starting OIS discounted and projected on the curve being built.

    Pricing: S = (1 - P(T_n)) / sum(tau_i * P(T_i))
    """
    _, payments, accruals = _leg(tenor, frequency, day_count)
    terms = {"payment_times": payments, "accruals": accruals}
    return BootstrapInstrument(
        tenor, rate, partial(ois_par_rate, **terms),
        label=label or "", kind="OIS", terms=terms
    )


def irs(
    tenor: Union[Tenor, float],
    rate: Any,
    frequency: int = 2,
    day_count: DayCount = DayCount.THIRTY_360,
    float_frequency: int = 4,
    float_day_count: DayCount = DayCount.ACT_360,
    discount_curve: Optional[str] = None,
    label: Optional[str] = None
) -> BootstrapInstrument:
    """
    Spot-starting fixed/float swap.

    The floating leg projects forwards off the curve being built. Both
    legs discount off ``discount_curve`` when given (which must be a
    declared dependency), otherwise off the curve being built.

    Pricing: S = sum(tau_j * F_j * D(T_j)) / sum(tau_i * D(T_i))
    """
    _, fixed_times, fixed_accruals = _leg(tenor, frequency, day_count)
    float_starts, float_ends, float_accruals = _leg(tenor, float_frequency, float_day_count)
    terms = {
        "fixed_times": fixed_times,
        "fixed_accruals": fixed_accruals,
        "float_starts": float_starts,
        "float_ends": float_ends,
        "float_accruals": float_accruals,
        "discount_curve": discount_curve,
    }
    return BootstrapInstrument(
        tenor, rate, partial(irs_par_rate, **terms),
        label=label or "", kind="IRS", terms=terms
    )


def deposit_rate(curve, market, *, end, accrual):
    return (1.0 / curve.discount_factor(end) - 1.0) / accrual


def forward_rate(curve, market, *, start, end, accrual):
    return (curve.discount_factor(start) / curve.discount_factor(end) - 1.0) / accrual


def future_price(curve, market, *, start, end, accrual, convexity):
    rate = forward_rate(curve, market, start=start, end=end, accrual=accrual) + convexity
    return 100.0 - 100.0 * rate


def ois_par_rate(curve, market, *, payment_times, accruals):
    annuity = sum(a * curve.discount_factor(t) for t, a in zip(payment_times, accruals))
    return (1.0 - curve.discount_factor(payment_times[-1])) / annuity


def irs_par_rate(
    curve, market, *,
    fixed_times, fixed_accruals, float_starts, float_ends, float_accruals, discount_curve
):
    disc = market[discount_curve] if discount_curve else curve
    floating = sum(
        disc.discount_factor(e) * (curve.discount_factor(s) / curve.discount_factor(e) - 1.0)
        for s, e in zip(float_starts, float_ends)
    )
    annuity = sum(a * disc.discount_factor(t) for t, a in zip(fixed_times, fixed_accruals))
    return floating / annuity


def _tenor_label(t: Union[Tenor, float]) -> str:
    if isinstance(t, Tenor):
        return t.period
    return f"{float(t):g}Y"


def _period_terms(start, end, day_count: DayCount) -> Dict[str, float]:
    t_start, t_end = resolve_time(start), resolve_time(end)
    if t_end <= t_start:
        raise ValueError(f"Period end ({t_end}) must be after start ({t_start})")
    if isinstance(start, Tenor) and isinstance(end, Tenor):
        accrual = year_fraction(start.maturity_date, end.maturity_date, day_count)
    else:
        accrual = t_end - t_start
    return {"start": t_start, "end": t_end, "accrual": accrual}


def _leg(
    tenor: Union[Tenor, float],
    frequency: int,
    day_count: DayCount
) -> Tuple[Tuple[float, ...], Tuple[float, ...], Tuple[float, ...]]:
    """Accrual start times, payment times and accrual fractions of a spot-starting leg."""
    if isinstance(tenor, Tenor):
        dates = DateUtils.generate_schedule(tenor.valuation_date, tenor.maturity_date, frequency)
        starts = [tenor.valuation_date] + dates[:-1]
        to_time = partial(year_fraction, tenor.valuation_date, day_count=tenor.day_count)
        return (
            tuple(to_time(d) for d in starts),
            tuple(to_time(d) for d in dates),
            tuple(year_fraction(s, e, day_count) for s, e in zip(starts, dates)),
        )

    maturity = resolve_time(tenor)
    if maturity <= 0.0:
        raise ValueError("Swap maturity must be positive")
    step = 1.0 / frequency
    ends = []
    k = 0
    while maturity - k * step > 1e-9:
        ends.insert(0, maturity - k * step)
        k += 1
    starts = [0.0] + ends[:-1]
    return tuple(starts), tuple(ends), tuple(e - s for s, e in zip(starts, ends))


__all__ = [
    "BootstrapInstrument",
    "CurveMarket",
    "deposit",
    "fra",
    "future",
    "ois_swap",
    "irs",
]
