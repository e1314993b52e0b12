"""
Bootstrap configuration.

Extrapolation and non-triangular handling have no defaults: the caller
states them for every build.
"""

from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any, Dict, Tuple, Union

from .curve import Extrapolation
from .interpolation import CurveInterpolation


class NonTriangularPolicy(Enum):
    """What to do when an instrument depends on pillars after its own."""
    FAIL = "fail"        # raise NonTriangularInstrumentSet
    ITERATE = "iterate"  # repeat bootstrap passes until pillars settle

    @classmethod
    def from_string(cls, s: str) -> "NonTriangularPolicy":
        try:
            return cls(s.lower())
        except ValueError:
            raise ValueError(f"Unknown non-triangular policy: {s}") from None


@dataclass(frozen=True)
class BootstrapConfig:
    """
    Settings for a curve build.

    Attributes:
        extrapolation: Behaviour of built curves beyond the last pillar
        non_triangular: Handling of instruments that look past their own pillar
        interpolation: Interpolation scheme of built curves
        tolerance: Maximum absolute repricing residual per instrument
        max_iterations: Iteration cap per pillar solve (Newton and Brent each)
        max_passes: Pass cap for NonTriangularPolicy.ITERATE
        min_discount_factor: Lower end of the pillar search bracket
        max_discount_factor: Upper end of the bracket when negative rates are allowed
        allow_negative_rates: If False, pillar discount factors are capped at 1.0
    """
    extrapolation: Extrapolation
    non_triangular: NonTriangularPolicy
    interpolation: CurveInterpolation = CurveInterpolation.LOG_LINEAR
    tolerance: float = 1e-12
    max_iterations: int = 100
    max_passes: int = 50
    min_discount_factor: float = 1e-6
    max_discount_factor: float = 2.0
    allow_negative_rates: bool = True

    def __post_init__(self):
        for name, enum in (
            ("extrapolation", Extrapolation),
            ("non_triangular", NonTriangularPolicy),
            ("interpolation", CurveInterpolation),
        ):
            value = getattr(self, name)
            if isinstance(value, str):
                object.__setattr__(self, name, enum.from_string(value))
        if self.tolerance <= 0:
            raise ValueError(f"Tolerance must be positive, got {self.tolerance}")
        if self.max_iterations < 1 or self.max_passes < 1:
            raise ValueError("Iteration and pass caps must be at least 1")
        if not 0.0 < self.min_discount_factor < self.max_discount_factor:
            raise ValueError(
                f"Invalid discount factor bracket "
                f"[{self.min_discount_factor}, {self.max_discount_factor}]"
            )

    @property
    def bracket(self) -> Tuple[float, float]:
        """Search bracket for pillar discount factors."""
        upper = self.max_discount_factor if self.allow_negative_rates else 1.0
        return self.min_discount_factor, upper

    @classmethod
    def high_precision(
        cls,
        extrapolation: Union[Extrapolation, str],
        non_triangular: Union[NonTriangularPolicy, str],
        **overrides: Any
    ) -> "BootstrapConfig":
        """Tight tolerance and a generous iteration cap."""
        settings = {"tolerance": 1e-14, "max_iterations": 500}
        settings.update(overrides)
        return cls(extrapolation, non_triangular, **settings)

    @classmethod
    def fast(
        cls,
        extrapolation: Union[Extrapolation, str],
        non_triangular: Union[NonTriangularPolicy, str],
        **overrides: Any
    ) -> "BootstrapConfig":
        """Loose tolerance for quick, approximate builds."""
        settings = {"tolerance": 1e-8, "max_iterations": 50}
        settings.update(overrides)
        return cls(extrapolation, non_triangular, **settings)

    def with_interpolation(self, interpolation: Union[CurveInterpolation, str]) -> "BootstrapConfig":
        return replace(self, interpolation=interpolation)

    def with_tolerance(self, tolerance: float) -> "BootstrapConfig":
        return replace(self, tolerance=tolerance)

    def to_dict(self) -> Dict[str, Any]:
        """Plain dictionary with enums replaced by their values."""
        return {
            key: value.value if isinstance(value, Enum) else value
            for key, value in asdict(self).items()
        }


__all__ = ["BootstrapConfig", "NonTriangularPolicy"]
