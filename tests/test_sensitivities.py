"""
Unit tests for curve sensitivities.
"""

from dataclasses import replace

import numpy as np
import pandas as pd
import pytest

from ratescurve.curves import (
    BootstrapConfig,
    CachedBootstrapper,
    CurveDefinition,
    Extrapolation,
    MultiCurveBuilder,
    NonTriangularPolicy,
    ParallelCurveSetBuilder,
    deposit,
    irs,
    ois_swap,
)
from ratescurve.risk import Measure, SensitivityBootstrapper, SensitivityMode


@pytest.fixture
def config():
    return BootstrapConfig(Extrapolation.FLAT, NonTriangularPolicy.FAIL)


@pytest.fixture
def ois():
    return CurveDefinition("OIS", [
        deposit(0.25, 0.0500),
        ois_swap(1.0, 0.0480),
        ois_swap(2.0, 0.0450),
        ois_swap(5.0, 0.0410),
    ])


@pytest.fixture
def sofr():
    return CurveDefinition("SOFR", [
        deposit(0.25, 0.0520),
        irs(1.0, 0.0500, discount_curve="OIS"),
        irs(2.0, 0.0470, discount_curve="OIS"),
        irs(5.0, 0.0430, discount_curve="OIS"),
    ], depends_on=["OIS"])


def without_dual(definition):
    return definition.with_instruments(
        [replace(inst, supports_dual=False) for inst in definition.instruments]
    )


class TestJacobian:
    """Tests for the dual-number Jacobian."""

    def test_single_deposit_closed_form(self, config):
        """dP/dR = -tau / (1 + R tau)^2 for a deposit pillar."""
        result = SensitivityBootstrapper(config).jacobian(
            [CurveDefinition("C", [deposit(1.0, 0.05)])]
        )
        assert result.method == "dual"
        assert result.matrix.shape == (1, 1)
        assert abs(result.matrix[0, 0] + 1.0 / 1.05 ** 2) < 1e-12

    def test_keys_and_shape(self, config, ois):
        """Rows are pillars, columns are quotes."""
        result = SensitivityBootstrapper(config).jacobian([ois])

        assert result.outputs[0] == ("OIS", "DEP 0.25Y")
        assert result.inputs[-1] == ("OIS", "OIS 5Y")
        assert result.matrix.shape == (4, 4)
        assert result.times == (0.25, 1.0, 2.0, 5.0)

    def test_lower_triangular(self, config, ois):
        """A pillar does not depend on quotes of later instruments."""
        matrix = SensitivityBootstrapper(config).jacobian([ois]).matrix
        assert np.all(np.triu(matrix, 1) == 0.0)
        assert np.all(np.diag(matrix) < 0.0)

    def test_row_series(self, config, ois):
        """Indexing by output gives a Series over inputs."""
        result = SensitivityBootstrapper(config).jacobian([ois])
        row = result[("OIS", "OIS 2Y")]

        assert isinstance(row, pd.Series)
        assert row.index.names == ["curve", "instrument"]
        assert row[("OIS", "OIS 2Y")] == result.sensitivity(("OIS", "OIS 2Y"), ("OIS", "OIS 2Y"))
        assert row[("OIS", "OIS 5Y")] == 0.0

    def test_frame(self, config, ois):
        """to_frame has pillar rows and quote columns."""
        frame = SensitivityBootstrapper(config).jacobian([ois]).to_frame()
        assert frame.shape == (4, 4)
        assert frame.index.names == ["curve", "pillar"]

    def test_requires_dual_support(self, config, ois):
        """Instruments without dual support cannot use the dual path."""
        with pytest.raises(TypeError):
            SensitivityBootstrapper(config).jacobian([without_dual(ois)])

    def test_bump_size_validation(self, config):
        """Bump size must be positive."""
        with pytest.raises(ValueError):
            SensitivityBootstrapper(config, bump_size=0.0)


class TestVerify:
    """Dual-number Jacobians agree with bump-and-revalue."""

    def test_single_curve(self, config, ois):
        """Single-curve Jacobian matches central differences."""
        check = SensitivityBootstrapper(config).verify([ois])
        assert check.passed
        assert check.max_abs_diff < 1e-7
        assert check.dual.method == "dual"
        assert check.bump.method == "bump"

    def test_cross_curve(self, config, ois, sofr):
        """Projection pillars carry sensitivities to discount curve quotes."""
        check = SensitivityBootstrapper(config).verify([ois, sofr])
        assert check.passed

        result = check.dual
        assert result.matrix.shape == (8, 8)
        assert result.sensitivity(("SOFR", "IRS 5Y"), ("OIS", "OIS 5Y")) != 0.0
        # discount curve pillars do not see projection quotes
        assert result.sensitivity(("OIS", "OIS 5Y"), ("SOFR", "IRS 5Y")) == 0.0

    def test_parallel_builder(self, config, ois, sofr):
        """The parallel builder gives the same Jacobian."""
        sequential = SensitivityBootstrapper(config).jacobian([ois, sofr])
        parallel = SensitivityBootstrapper(
            config, builder=ParallelCurveSetBuilder(config, max_workers=2)
        ).jacobian([ois, sofr])
        assert np.allclose(sequential.matrix, parallel.matrix, rtol=0.0, atol=1e-14)

    @pytest.mark.parametrize("method", ["linear", "log_linear"])
    def test_interpolation_schemes(self, config, ois, method):
        """Agreement holds for each local scheme."""
        cfg = config.with_interpolation(method)
        assert SensitivityBootstrapper(cfg, MultiCurveBuilder(cfg)).verify([ois]).passed

    @pytest.mark.parametrize("method", ["monotone_convex", "cubic_spline"])
    def test_iterated_schemes(self, ois, method):
        """Agreement holds when pillars are iterated."""
        cfg = BootstrapConfig("flat", "iterate", interpolation=method)
        assert SensitivityBootstrapper(cfg).verify([ois]).passed

    def test_zero_rate_measure(self, config, ois):
        """Zero rate sensitivities agree as well."""
        sens = SensitivityBootstrapper(config, measure=Measure.ZERO_RATE)
        check = sens.verify([ois])
        assert check.passed
        assert check.dual.measure == Measure.ZERO_RATE
        # a deposit's zero rate moves with its own quote
        assert check.dual.sensitivity(("OIS", "DEP 0.25Y"), ("OIS", "DEP 0.25Y")) > 0.0


class TestModes:
    """Tests for mode selection and fallback."""

    def test_auto_uses_dual(self, config, ois):
        """AUTO prefers dual numbers."""
        assert SensitivityBootstrapper(config).build([ois]).method == "dual"

    def test_auto_falls_back(self, config, ois):
        """AUTO bumps when an instrument lacks dual support."""
        dual = SensitivityBootstrapper(config).build([ois])
        bumped = SensitivityBootstrapper(config).build([without_dual(ois)])

        assert bumped.method == "bump"
        assert np.allclose(dual.matrix, bumped.matrix, rtol=1e-6, atol=1e-8)

    def test_dual_mode_raises(self, config, ois):
        """DUAL mode does not fall back."""
        sens = SensitivityBootstrapper(config, mode=SensitivityMode.DUAL)
        with pytest.raises(TypeError):
            sens.build([without_dual(ois)])

    def test_bump_mode(self, config, ois):
        """BUMP mode always bumps."""
        sens = SensitivityBootstrapper(config, mode=SensitivityMode.BUMP)
        assert sens.build([ois]).method == "bump"

    def test_cached_builder_bumps(self, config, ois):
        """Cached builds reject dual quotes, so AUTO bumps and reuses the base build."""
        cached = CachedBootstrapper(MultiCurveBuilder(config))
        result = SensitivityBootstrapper(config, builder=cached).build([ois])

        assert result.method == "bump"
        assert cached.stats()["size"] == 1 + 2 * len(ois.instruments)


class TestQuoteRisk:
    """Tests for price sensitivities to quotes."""

    @staticmethod
    def pricer(curve_set):
        return 1e6 * curve_set["SOFR"].discount_factor(3.5) * curve_set["OIS"].discount_factor(1.5)

    def test_dual_matches_bump(self, config, ois, sofr):
        """Dual and bumped quote risk agree."""
        dual = SensitivityBootstrapper(config).quote_risk([ois, sofr], self.pricer)
        bump = SensitivityBootstrapper(config, mode=SensitivityMode.BUMP).quote_risk(
            [ois, sofr], self.pricer
        )

        assert list(dual.index) == list(bump.index)
        assert np.allclose(dual.values, bump.values, rtol=1e-6, atol=1e-4)

    def test_index(self, config, ois):
        """Risk is indexed by (curve, instrument)."""
        risk = SensitivityBootstrapper(config).quote_risk(
            [ois], lambda cs: cs["OIS"].discount_factor(2.0)
        )
        assert risk.index.names == ["curve", "instrument"]
        assert risk[("OIS", "OIS 5Y")] == 0.0
        assert risk[("OIS", "OIS 2Y")] < 0.0
