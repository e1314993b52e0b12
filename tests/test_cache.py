"""
Unit tests for memoized curve set builds.
"""

from concurrent.futures import ThreadPoolExecutor
from functools import partial
import threading
import time

import pytest
from rateslib.dual import Dual

from ratescurve import numeric
from ratescurve.curves import (
    BootstrapConfig,
    BootstrapInstrument,
    CachedBootstrapper,
    CurveDefinition,
    Extrapolation,
    MultiCurveBuilder,
    NonTriangularPolicy,
    ParallelCurveSetBuilder,
    SequentialBootstrapper,
    SingleFlightCache,
    deposit,
    fingerprint,
    ois_swap,
)
from ratescurve.errors import CurveSetBuildError


@pytest.fixture
def config():
    return BootstrapConfig(Extrapolation.FLAT, NonTriangularPolicy.FAIL)


def ois_definition(rate=0.045):
    return CurveDefinition("OIS", [
        deposit(0.5, rate),
        ois_swap(1.0, rate),
        ois_swap(3.0, rate - 0.002),
    ])


def eur_definition():
    return CurveDefinition("EUR", [deposit(1.0, 0.03), ois_swap(5.0, 0.028)])


def compounded_zero(curve, market, *, time, freq):
    """Zero rate at a fixed time compounded freq times a year."""
    return freq * (numeric.exp(-numeric.log(curve.discount_factor(time)) / (freq * time)) - 1.0)


def make_zero(freq):
    def zero(curve, market):
        return compounded_zero(curve, market, time=2.0, freq=freq)
    return zero


def zero_definition(reprice):
    return CurveDefinition("Z", [BootstrapInstrument(2.0, 0.05, reprice, label="Z2")])


def wait_for(condition, timeout=10.0):
    deadline = time.monotonic() + timeout
    while not condition():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        time.sleep(0.001)


class CountingFactory:
    """Bootstrapper factory that counts single-curve builds."""

    def __init__(self):
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self, config):
        with self._lock:
            self.calls += 1
        return SequentialBootstrapper(config)


class TestFingerprint:
    """Tests for build fingerprints."""

    def test_deterministic(self, config):
        """Equal inputs give equal fingerprints."""
        assert fingerprint([ois_definition()], config) == fingerprint([ois_definition()], config)

    def test_order_independent(self, config):
        """Definition and instrument order do not matter."""
        ois = ois_definition()
        reordered = ois.with_instruments(list(reversed(ois.instruments)))
        assert fingerprint([ois, eur_definition()], config) == fingerprint(
            [eur_definition(), reordered], config
        )

    def test_sensitive_to_inputs(self, config):
        """Quotes, curves and configuration change the fingerprint."""
        base = fingerprint([ois_definition()], config)
        assert fingerprint([ois_definition(0.046)], config) != base
        assert fingerprint([ois_definition(), eur_definition()], config) != base
        assert fingerprint([ois_definition()], config.with_tolerance(1e-10)) != base
        assert fingerprint([ois_definition()], config.with_interpolation("linear")) != base

    def test_sensitive_to_contract_terms(self, config):
        """Same label and quote with a different schedule is a different build."""
        annual = CurveDefinition("OIS", [ois_swap(2.0, 0.04, frequency=1)])
        semi = CurveDefinition("OIS", [ois_swap(2.0, 0.04, frequency=2)])
        assert fingerprint([annual], config) != fingerprint([semi], config)

    def test_dual_quotes_rejected(self, config):
        """Dual-number quotes cannot be fingerprinted."""
        ois = ois_definition()
        seeded = ois.with_instruments([
            inst.with_quote(Dual(inst.quote, ["q"], [1.0])) for inst in ois.instruments
        ])
        with pytest.raises(TypeError):
            fingerprint([seeded], config)

    def test_partial_arguments(self, config):
        """Partials differing only in bound keywords are different builds."""
        annual = zero_definition(partial(compounded_zero, time=2.0, freq=1))
        quarterly = zero_definition(partial(compounded_zero, time=2.0, freq=4))
        assert fingerprint([annual], config) != fingerprint([quarterly], config)
        assert fingerprint([annual], config) == fingerprint(
            [zero_definition(partial(compounded_zero, time=2.0, freq=1))], config
        )

    def test_closure_state(self, config):
        """Closures differing only in captured values are different builds."""
        annual = zero_definition(make_zero(1))
        quarterly = zero_definition(make_zero(4))
        assert fingerprint([annual], config) != fingerprint([quarterly], config)
        assert fingerprint([annual], config) == fingerprint([zero_definition(make_zero(1))], config)

    def test_lambda_rejected(self, config):
        """Lambdas cannot be told apart and are refused."""
        definition = zero_definition(lambda curve, market: curve.discount_factor(2.0))
        with pytest.raises(TypeError):
            fingerprint([definition], config)


class TestSingleFlightCache:
    """Tests for SingleFlightCache."""

    def test_hit_after_miss(self):
        """Second request is served from the cache."""
        cache = SingleFlightCache()
        calls = []
        assert cache.get_or_compute("k", lambda: calls.append(1) or "v") == "v"
        assert cache.get_or_compute("k", lambda: calls.append(1) or "w") == "v"

        stats = cache.stats()
        assert len(calls) == 1
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5
        assert "k" in cache
        assert cache.get("k") == "v"
        assert cache.get("missing") is None

    def test_concurrent_requests_compute_once(self):
        """Concurrent callers of one key share a single computation."""
        cache = SingleFlightCache()
        release = threading.Event()
        calls = []
        n = 8

        def compute():
            calls.append(1)
            release.wait(10.0)
            return "curve"

        with ThreadPoolExecutor(max_workers=n) as pool:
            futures = [pool.submit(cache.get_or_compute, "k", compute) for _ in range(n)]
            wait_for(lambda: cache.stats()["waits"] == n - 1)
            release.set()
            results = [f.result() for f in futures]

        assert results == ["curve"] * n
        assert len(calls) == 1
        stats = cache.stats()
        assert stats["builds"] == 1
        assert stats["in_flight"] == 0

    def test_failure_shared_and_not_cached(self):
        """Waiters see the owner's exception; the next call recomputes."""
        cache = SingleFlightCache()
        release = threading.Event()
        n = 4

        def failing():
            release.wait(10.0)
            raise ValueError("boom")

        with ThreadPoolExecutor(max_workers=n) as pool:
            futures = [pool.submit(cache.get_or_compute, "k", failing) for _ in range(n)]
            wait_for(lambda: cache.stats()["waits"] == n - 1)
            release.set()
            for f in futures:
                with pytest.raises(ValueError):
                    f.result()

        assert "k" not in cache
        assert cache.stats()["failures"] == 1
        assert cache.get_or_compute("k", lambda: "ok") == "ok"

    def test_lru_eviction(self):
        """Least recently used entries go first."""
        cache = SingleFlightCache(capacity=2)
        cache.get_or_compute("a", lambda: 1)
        cache.get_or_compute("b", lambda: 2)
        cache.get_or_compute("a", lambda: 1)
        cache.get_or_compute("c", lambda: 3)

        assert "a" in cache
        assert "b" not in cache
        assert "c" in cache
        assert len(cache) == 2
        assert cache.stats()["evictions"] == 1

    def test_clear(self):
        """clear drops completed entries."""
        cache = SingleFlightCache()
        cache.get_or_compute("a", lambda: 1)
        cache.clear()
        assert len(cache) == 0

    def test_capacity_validation(self):
        """Capacity must be positive."""
        with pytest.raises(ValueError):
            SingleFlightCache(capacity=0)


class TestCachedBootstrapper:
    """Tests for CachedBootstrapper."""

    def test_reuses_curve_set(self, config):
        """Identical builds return the cached curve set."""
        factory = CountingFactory()
        cached = CachedBootstrapper(MultiCurveBuilder(config, factory))

        first = cached.build([ois_definition(), eur_definition()])
        second = cached.build([eur_definition(), ois_definition()])

        assert first is second
        assert factory.calls == 2
        assert cached.stats()["hits"] == 1

    def test_different_quotes_rebuild(self, config):
        """A changed quote misses the cache."""
        cached = CachedBootstrapper(MultiCurveBuilder(config))
        low = cached.build([ois_definition(0.045)])
        high = cached.build([ois_definition(0.046)])

        assert low is not high
        assert high["OIS"].discount_factor(3.0) < low["OIS"].discount_factor(3.0)
        assert cached.stats()["misses"] == 2

    def test_concurrent_builds_single_flight(self, config):
        """Concurrent identical builds run the bootstrap once."""
        factory = CountingFactory()
        cached = CachedBootstrapper(ParallelCurveSetBuilder(config, factory))
        definitions = [ois_definition(), eur_definition()]

        with ThreadPoolExecutor(max_workers=6) as pool:
            results = list(pool.map(lambda _: cached.build(definitions), range(6)))

        assert all(r is results[0] for r in results)
        assert factory.calls == 2
        assert cached.stats()["builds"] == 1

    def test_failed_build_not_cached(self, config):
        """Failures propagate and are retried on the next call."""
        factory = CountingFactory()
        cached = CachedBootstrapper(MultiCurveBuilder(config, factory))
        bad = [CurveDefinition("BAD", [deposit(1.0, -0.9)])]

        for _ in range(2):
            with pytest.raises(CurveSetBuildError):
                cached.build(bad)
        assert factory.calls == 2
        assert cached.stats()["failures"] == 2
        assert cached.stats()["size"] == 0

    def test_clear(self, config):
        """clear forces a rebuild."""
        factory = CountingFactory()
        cached = CachedBootstrapper(MultiCurveBuilder(config, factory))
        cached.build([ois_definition()])
        cached.clear()
        cached.build([ois_definition()])
        assert factory.calls == 2

    @pytest.mark.parametrize("make", [
        lambda freq: partial(compounded_zero, time=2.0, freq=freq),
        make_zero,
    ])
    def test_bound_state_not_shared(self, config, make):
        """Instruments differing only in bound pricing state build separately."""
        cached = CachedBootstrapper(MultiCurveBuilder(config))
        annual = cached.build([zero_definition(make(1))])
        quarterly = cached.build([zero_definition(make(4))])
        direct = MultiCurveBuilder(config).build([zero_definition(make(4))])

        assert annual is not quarterly
        assert abs(quarterly["Z"].discount_factor(2.0) - direct["Z"].discount_factor(2.0)) < 1e-12
        assert abs(annual["Z"].discount_factor(2.0) - 1.05 ** -2) < 1e-12
