"""
Curve sensitivities to input quotes.

Provides:
- SensitivityBootstrapper: Jacobian of curve pillars with respect to quotes
- SensitivityResult: the Jacobian with its row and column keys
- SensitivityCheck: comparison of the dual-number and bump Jacobians

The dual-number path reruns the ordinary build with every quote replaced
by a dual number seeded in its own variable. Each solved pillar then
carries its derivatives with respect to every quote, including quotes of
the curves it depends on. Bump-and-revalue (central differences) serves
as a cross-check and as the fallback for instruments whose repricing
cannot take dual numbers.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence, Tuple
import logging

import numpy as np
import pandas as pd

from .. import numeric
from ..curves.config import BootstrapConfig
from ..curves.multi_curve import CurveBuilder, CurveDefinition, CurveSet, MultiCurveBuilder

logger = logging.getLogger(__name__)

Key = Tuple[str, str]


class SensitivityMode(Enum):
    """How derivatives are computed."""
    AUTO = "auto"    # dual numbers, bumping when instruments cannot take duals
    DUAL = "dual"
    BUMP = "bump"


class Measure(Enum):
    """Curve output being differentiated."""
    DISCOUNT_FACTOR = "discount_factor"
    ZERO_RATE = "zero_rate"


@dataclass(frozen=True, eq=False)
class SensitivityResult:
    """
    Jacobian of curve pillars with respect to input quotes.

    Attributes:
        inputs: (curve, instrument label) of each quote, one per column
        outputs: (curve, pillar label) of each pillar, one per row
        times: Pillar time of each row
        matrix: d output / d quote, shape (len(outputs), len(inputs))
        method: "dual" or "bump"
        measure: Measure differentiated
    """
    inputs: Tuple[Key, ...]
    outputs: Tuple[Key, ...]
    times: Tuple[float, ...]
    matrix: np.ndarray
    method: str
    measure: Measure = Measure.DISCOUNT_FACTOR

    def __getitem__(self, output: Key) -> pd.Series:
        """Row of the Jacobian for one pillar, indexed by input."""
        row = self.outputs.index(output)
        return pd.Series(self.matrix[row], index=self._input_index(), name=output)

    def sensitivity(self, output: Key, input_key: Key) -> float:
        return float(self.matrix[self.outputs.index(output), self.inputs.index(input_key)])

    def to_frame(self) -> pd.DataFrame:
        index = pd.MultiIndex.from_tuples(self.outputs, names=["curve", "pillar"])
        return pd.DataFrame(self.matrix, index=index, columns=self._input_index())

    def _input_index(self) -> pd.MultiIndex:
        return pd.MultiIndex.from_tuples(self.inputs, names=["curve", "instrument"])


@dataclass(frozen=True)
class SensitivityCheck:
    """Agreement between dual-number and bump-and-revalue Jacobians."""
    max_abs_diff: float
    max_rel_diff: float
    passed: bool
    dual: SensitivityResult
    bump: SensitivityResult


class SensitivityBootstrapper:
    """
    Computes Jacobians of built curves with respect to market quotes.

    Attributes:
        config: Build configuration
        builder: Curve set builder run for every evaluation
        bump_size: Absolute quote bump for central differences
        mode: SensitivityMode used by ``build``
        measure: Measure differentiated

    Example:
        >>> sens = SensitivityBootstrapper(config)
        >>> result = sens.jacobian([CurveDefinition("OIS", instruments)])
        >>> result[("OIS", "OIS 2Y")]
    """

    def __init__(
        self,
        config: BootstrapConfig,
        builder: Optional[CurveBuilder] = None,
        bump_size: float = 1e-6,
        mode: SensitivityMode = SensitivityMode.AUTO,
        measure: Measure = Measure.DISCOUNT_FACTOR,
    ):
        if bump_size <= 0:
            raise ValueError("Bump size must be positive")
        self.config = config
        self.builder = builder if builder is not None else MultiCurveBuilder(config)
        self.bump_size = bump_size
        self.mode = mode
        self.measure = measure

    def build(self, definitions: Sequence[CurveDefinition]) -> SensitivityResult:
        """Jacobian by the configured mode."""
        if self.mode == SensitivityMode.BUMP:
            return self.bump_and_revalue(definitions)
        if self.mode == SensitivityMode.DUAL:
            return self.jacobian(definitions)
        if not _dual_capable(definitions):
            logger.warning("Instruments without dual support; using bump-and-revalue")
            return self.bump_and_revalue(definitions)
        try:
            return self.jacobian(definitions)
        except TypeError as exc:
            logger.warning("Dual-number build failed (%s); using bump-and-revalue", exc)
            return self.bump_and_revalue(definitions)

    def jacobian(self, definitions: Sequence[CurveDefinition]) -> SensitivityResult:
        """
        Jacobian from a single build on dual-number quotes.

        Raises:
            TypeError: If an instrument does not support dual numbers
        """
        if not _dual_capable(definitions):
            raise TypeError("Dual-number Jacobian requires instruments with dual support")
        inputs = _input_keys(definitions)
        curve_set = self.builder.build(_seeded(definitions))
        outputs, times, values = self._outputs(curve_set)
        variables = [_var(key) for key in inputs]
        matrix = np.array([numeric.gradient(v, variables) for v in values]).reshape(
            len(values), len(inputs)
        )
        logger.info("Dual Jacobian: %s pillars x %s quotes", len(outputs), len(inputs))
        return SensitivityResult(inputs, outputs, times, matrix, "dual", self.measure)

    def bump_and_revalue(self, definitions: Sequence[CurveDefinition]) -> SensitivityResult:
        """Jacobian by central differences, two builds per quote."""
        inputs = _input_keys(definitions)
        outputs, times, _ = self._outputs(self.builder.build(definitions))
        matrix = np.zeros((len(outputs), len(inputs)))
        h = self.bump_size

        for j, key in enumerate(inputs):
            _, _, up = self._outputs(self.builder.build(_bumped(definitions, key, h)))
            _, _, down = self._outputs(self.builder.build(_bumped(definitions, key, -h)))
            matrix[:, j] = [(numeric.real(u) - numeric.real(d)) / (2.0 * h) for u, d in zip(up, down)]

        logger.info("Bumped Jacobian: %s pillars x %s quotes", len(outputs), len(inputs))
        return SensitivityResult(inputs, outputs, times, matrix, "bump", self.measure)

    def verify(
        self,
        definitions: Sequence[CurveDefinition],
        rtol: float = 1e-6,
        atol: float = 1e-8
    ) -> SensitivityCheck:
        """Compare the dual-number Jacobian with bump-and-revalue."""
        dual = self.jacobian(definitions)
        bump = self.bump_and_revalue(definitions)
        diff = np.abs(dual.matrix - bump.matrix)
        scale = np.maximum(np.abs(bump.matrix), atol)
        max_abs = float(diff.max()) if diff.size else 0.0
        max_rel = float((diff / scale).max()) if diff.size else 0.0
        passed = bool(np.allclose(dual.matrix, bump.matrix, rtol=rtol, atol=atol))
        if not passed:
            logger.warning(
                "Sensitivity check failed: max abs diff %.3e, max rel diff %.3e", max_abs, max_rel
            )
        return SensitivityCheck(max_abs, max_rel, passed, dual, bump)

    def quote_risk(
        self,
        definitions: Sequence[CurveDefinition],
        pricer: Callable[[CurveSet], Any]
    ) -> pd.Series:
        """
        Sensitivity of a price to every input quote.

        Args:
            definitions: Curve set definitions
            pricer: Prices something off a curve set; must use arithmetic
                that works on dual numbers for the dual path

        Returns:
            Series of d price / d quote indexed by (curve, instrument)
        """
        inputs = _input_keys(definitions)
        index = pd.MultiIndex.from_tuples(inputs, names=["curve", "instrument"])

        use_dual = self.mode != SensitivityMode.BUMP and _dual_capable(definitions)
        if use_dual:
            try:
                price = pricer(self.builder.build(_seeded(definitions)))
                return pd.Series(numeric.gradient(price, [_var(k) for k in inputs]), index=index)
            except TypeError as exc:
                if self.mode == SensitivityMode.DUAL:
                    raise
                logger.warning("Dual-number pricing failed (%s); using bump-and-revalue", exc)

        h = self.bump_size
        risks = []
        for key in inputs:
            up = numeric.real(pricer(self.builder.build(_bumped(definitions, key, h))))
            down = numeric.real(pricer(self.builder.build(_bumped(definitions, key, -h))))
            risks.append((up - down) / (2.0 * h))
        return pd.Series(risks, index=index)

    def _outputs(self, curve_set: CurveSet) -> Tuple[Tuple[Key, ...], Tuple[float, ...], List[Any]]:
        outputs: List[Key] = []
        times: List[float] = []
        values: List[Any] = []
        for name in curve_set.order:
            result = curve_set.results[name]
            for label, t, v in zip(result.pillar_labels, result.times, result.values):
                outputs.append((name, label))
                times.append(t)
                if self.measure == Measure.ZERO_RATE:
                    v = -numeric.log(v) / t
                values.append(v)
        return tuple(outputs), tuple(times), values


def _input_keys(definitions: Sequence[CurveDefinition]) -> Tuple[Key, ...]:
    return tuple((d.name, inst.label) for d in definitions for inst in d.instruments)


def _var(key: Key) -> str:
    return f"{key[0]}/{key[1]}"


def _dual_capable(definitions: Sequence[CurveDefinition]) -> bool:
    return all(inst.supports_dual for d in definitions for inst in d.instruments)


def _seeded(definitions: Sequence[CurveDefinition]) -> List[CurveDefinition]:
    """Definitions with every quote replaced by a dual number in its own variable."""
    return [
        d.with_instruments([
            inst.with_quote(numeric.seed(numeric.real(inst.quote), _var((d.name, inst.label))))
            for inst in d.instruments
        ])
        for d in definitions
    ]


def _bumped(definitions: Sequence[CurveDefinition], key: Key, delta: float) -> List[CurveDefinition]:
    """Definitions with one quote shifted by delta."""
    bumped = []
    for d in definitions:
        if d.name != key[0]:
            bumped.append(d)
            continue
        bumped.append(d.with_instruments([
            inst.with_quote(numeric.real(inst.quote) + delta) if inst.label == key[1] else inst
            for inst in d.instruments
        ]))
    return bumped


__all__ = [
    "SensitivityMode",
    "Measure",
    "SensitivityResult",
    "SensitivityCheck",
    "SensitivityBootstrapper",
]
