"""
ratescurve: Yield Curve Bootstrapping & Sensitivity Engine

A library for:
- Bootstrapping discount curves from deposits, FRAs, futures and swaps
- Building sets of interdependent curves in dependency order, optionally in parallel
- Sharing built curve sets between concurrent callers through a single-flight cache
- Computing curve sensitivities to quotes with dual numbers, cross-checked by bumping

Pricing models that consume the curves are out of scope.
"""

__version__ = "0.1.0"

# Core modules
from .conventions import DayCount, BusinessDayConvention, CompoundingConvention, year_fraction
from .dates import DateUtils, Tenor, resolve_time
from .errors import (
    CurveError,
    StructuralError,
    CyclicDependencyError,
    NonTriangularInstrumentSet,
    ConvergenceFailure,
    BootstrapFailure,
    OutOfDomainError,
    CurveSetBuildError,
)

# Curves
from .curves import (
    YieldCurve,
    FlatCurve,
    InterpolatedCurve,
    Extrapolation,
    CurveInterpolation,
    BootstrapConfig,
    NonTriangularPolicy,
    BootstrapInstrument,
    SequentialBootstrapper,
    BootstrapResult,
    CurveDefinition,
    CurveSet,
    MultiCurveBuilder,
    ParallelCurveSetBuilder,
    CachedBootstrapper,
)

# Risk
from .risk import SensitivityBootstrapper, SensitivityResult, SensitivityMode

__all__ = [
    "__version__",
    "DayCount",
    "BusinessDayConvention",
    "CompoundingConvention",
    "year_fraction",
    "DateUtils",
    "Tenor",
    "resolve_time",
    "CurveError",
    "StructuralError",
    "CyclicDependencyError",
    "NonTriangularInstrumentSet",
    "ConvergenceFailure",
    "BootstrapFailure",
    "OutOfDomainError",
    "CurveSetBuildError",
    "YieldCurve",
    "FlatCurve",
    "InterpolatedCurve",
    "Extrapolation",
    "CurveInterpolation",
    "BootstrapConfig",
    "NonTriangularPolicy",
    "BootstrapInstrument",
    "SequentialBootstrapper",
    "BootstrapResult",
    "CurveDefinition",
    "CurveSet",
    "MultiCurveBuilder",
    "ParallelCurveSetBuilder",
    "CachedBootstrapper",
    "SensitivityBootstrapper",
    "SensitivityResult",
    "SensitivityMode",
]
