"""
Curves package - yield curve construction.

Provides:
- YieldCurve, FlatCurve, InterpolatedCurve: curve representations
- SequentialBootstrapper: bootstrap a single curve from instruments
- MultiCurveBuilder / ParallelCurveSetBuilder: build interdependent curve sets
- CachedBootstrapper: single-flight, LRU-bounded memoization of curve set builds
"""

from .curve import YieldCurve, FlatCurve, InterpolatedCurve, Extrapolation
from .interpolation import (
    CurveInterpolation,
    Interpolator,
    LinearInterpolator,
    LogLinearInterpolator,
    MonotoneConvexInterpolator,
    CubicSplineInterpolator,
    create_interpolator,
)
from .config import BootstrapConfig, NonTriangularPolicy
from .instruments import (
    BootstrapInstrument,
    CurveMarket,
    deposit,
    fra,
    future,
    ois_swap,
    irs,
)
from .bootstrap import SequentialBootstrapper, BootstrapResult, bootstrap_from_quotes
from .multi_curve import (
    CurveDefinition,
    CurveGraph,
    CurveSet,
    CurveBuilder,
    MultiCurveBuilder,
    ParallelCurveSetBuilder,
)
from .cache import CachedBootstrapper, SingleFlightCache, fingerprint

__all__ = [
    "YieldCurve",
    "FlatCurve",
    "InterpolatedCurve",
    "Extrapolation",
    "CurveInterpolation",
    "Interpolator",
    "LinearInterpolator",
    "LogLinearInterpolator",
    "MonotoneConvexInterpolator",
    "CubicSplineInterpolator",
    "create_interpolator",
    "BootstrapConfig",
    "NonTriangularPolicy",
    "BootstrapInstrument",
    "CurveMarket",
    "deposit",
    "fra",
    "future",
    "ois_swap",
    "irs",
    "SequentialBootstrapper",
    "BootstrapResult",
    "bootstrap_from_quotes",
    "CurveDefinition",
    "CurveGraph",
    "CurveSet",
    "CurveBuilder",
    "MultiCurveBuilder",
    "ParallelCurveSetBuilder",
    "CachedBootstrapper",
    "SingleFlightCache",
    "fingerprint",
]
