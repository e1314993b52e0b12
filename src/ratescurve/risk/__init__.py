"""
Risk package - curve sensitivities to market quotes.

Provides:
- Dual-number Jacobian of curve pillars with respect to quotes
- Bump-and-revalue Jacobian and cross-check
- Quote risk of any price computed off a curve set
"""

from .sensitivities import (
    SensitivityBootstrapper,
    SensitivityResult,
    SensitivityCheck,
    SensitivityMode,
    Measure,
)

__all__ = [
    "SensitivityBootstrapper",
    "SensitivityResult",
    "SensitivityCheck",
    "SensitivityMode",
    "Measure",
]
