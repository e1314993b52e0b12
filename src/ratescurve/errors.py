"""
Error types raised by curve construction.

Structural problems (bad instrument sets, cyclic curve graphs) are
detected before any root-finding starts and subclass ``ValueError``.
Numerical problems (a pillar that cannot be solved) subclass
``RuntimeError``. Every error derives from ``CurveError``.
"""

from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple


class CurveError(Exception):
    """Base class for curve construction errors."""


class StructuralError(CurveError, ValueError):
    """The inputs describe a problem that cannot be solved as posed."""


class CyclicDependencyError(StructuralError):
    """Curve dependency graph contains a cycle."""

    def __init__(self, cycle: Sequence[str]):
        self.cycle: Tuple[str, ...] = tuple(cycle)
        super().__init__(f"Cyclic curve dependency: {' -> '.join(self.cycle)}")


class NonTriangularInstrumentSet(StructuralError):
    """An instrument depends on pillars later than its own."""

    def __init__(self, curve: str, instruments: Iterable[str], detail: str = ""):
        self.curve = curve
        self.instruments: Tuple[str, ...] = tuple(instruments)
        message = (
            f"Curve '{curve}': instruments {list(self.instruments)} "
            f"are not sequentially solvable"
        )
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class ConvergenceFailure(CurveError, RuntimeError):
    """A pillar could not be solved within tolerance and iteration cap."""

    def __init__(
        self,
        instrument: str,
        maturity: float,
        residual: float,
        iterations: int,
        curve: Optional[str] = None,
        reason: str = "",
    ):
        self.instrument = instrument
        self.maturity = maturity
        self.residual = residual
        self.iterations = iterations
        self.curve = curve
        where = f" on curve '{curve}'" if curve else ""
        message = (
            f"Failed to solve pillar for instrument '{instrument}' "
            f"(t={maturity:.6f}){where}: residual={residual:.3e} "
            f"after {iterations} iterations"
        )
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


BootstrapFailure = ConvergenceFailure


class OutOfDomainError(CurveError, ValueError):
    """A curve was queried outside the range it is defined on."""

    def __init__(self, time: float, lower: float, upper: Optional[float] = None):
        self.time = time
        self.lower = lower
        self.upper = upper
        if upper is None:
            message = f"Time {time} is before the curve anchor ({lower})"
        else:
            message = f"Time {time} outside curve domain [{lower}, {upper}]"
        super().__init__(message)


class CurveSetBuildError(CurveError):
    """
    One or more curves of a curve set failed to build.

    Attributes:
        built: Curves that did build, by name (kept for diagnostics)
        failed: Exception raised by each failed curve
        blocked: Curves not started, mapped to the upstream curves that failed
        aborted: Curves not started because a structural failure stopped the build
    """

    def __init__(
        self,
        built: Mapping[str, object],
        failed: Mapping[str, BaseException],
        blocked: Optional[Mapping[str, Tuple[str, ...]]] = None,
        aborted: Sequence[str] = (),
    ):
        self.built: Dict[str, object] = dict(built)
        self.failed: Dict[str, BaseException] = dict(failed)
        self.blocked: Dict[str, Tuple[str, ...]] = dict(blocked or {})
        self.aborted: Tuple[str, ...] = tuple(aborted)
        parts = [f"{name}: {exc}" for name, exc in self.failed.items()]
        message = f"{len(self.failed)} curve(s) failed: " + "; ".join(parts)
        if self.blocked:
            message += f"; blocked: {sorted(self.blocked)}"
        if self.aborted:
            message += f"; aborted: {list(self.aborted)}"
        super().__init__(message)


__all__ = [
    "CurveError",
    "StructuralError",
    "CyclicDependencyError",
    "NonTriangularInstrumentSet",
    "ConvergenceFailure",
    "BootstrapFailure",
    "OutOfDomainError",
    "CurveSetBuildError",
]
