"""
Memoized curve set builds.

Provides:
- fingerprint: stable hash of everything that determines a build's output
- SingleFlightCache: at most one computation per key, LRU-bounded results
- CachedBootstrapper: curve set builder that reuses results by fingerprint

Concurrent requests for the same fingerprint share one build: the first
caller computes, the others wait for its result (or its exception).
Failed builds are never stored.
"""

from collections import OrderedDict
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import date
from enum import Enum
from functools import partial
from types import FunctionType
from typing import Any, Callable, Dict, Hashable, Optional, Sequence
import hashlib
import json
import logging
import threading

from .. import numeric
from ..dates import Tenor
from .config import BootstrapConfig
from .multi_curve import CurveBuilder, CurveDefinition, CurveSet

logger = logging.getLogger(__name__)


def fingerprint(definitions: Sequence[CurveDefinition], config: BootstrapConfig) -> str:
    """
    SHA-256 of a canonical JSON description of a curve set build.

    Covers curve names, dependencies, pillar grids and per-curve settings,
    each instrument's label, kind, pillar time, quote, contract terms and
    repricing function, and the builder configuration. Definition order
    does not matter.

    Raises:
        TypeError: If a quote is a dual number (sensitivity builds are not cached)
            or a repricing function carries state that cannot be encoded
    """
    document = {
        "config": config.to_dict(),
        "curves": [_describe_curve(d) for d in sorted(definitions, key=lambda d: d.name)],
    }
    payload = json.dumps(document, sort_keys=True, default=_encode, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _describe_curve(definition: CurveDefinition) -> Dict[str, Any]:
    return {
        "name": definition.name,
        "depends_on": sorted(set(definition.depends_on)),
        "pillars": None if definition.pillars is None else [_encode(p) for p in definition.pillars],
        "config": None if definition.config is None else definition.config.to_dict(),
        "instruments": [
            {
                "label": inst.label,
                "kind": inst.kind,
                "maturity": inst.maturity,
                "quote": _quote(inst.quote, inst.label),
                "terms": _canonical(dict(inst.terms)),
                "reprice": _function_id(inst.reprice),
            }
            for inst in sorted(definition.instruments, key=lambda i: i.label)
        ],
    }


def _quote(value: Any, label: str) -> float:
    if numeric.is_dual(value):
        raise TypeError(f"Cannot fingerprint dual-number quote of '{label}'")
    return float(value)


def _function_id(func: Callable) -> Dict[str, Any]:
    """
    Identity of a repricing function, including any state bound into it.

    Partials contribute their arguments; plain functions contribute their
    defaults and closure cells. Lambdas and other callables cannot be told
    apart by name alone.

    Raises:
        TypeError: If the function cannot be identified reliably
    """
    if isinstance(func, partial):
        return {
            "func": _function_id(func.func),
            "args": _canonical(func.args),
            "keywords": _canonical(func.keywords),
        }
    if not isinstance(func, FunctionType):
        raise TypeError(f"Cannot fingerprint repricing callable of type {type(func).__name__}")
    if func.__name__ == "<lambda>":
        raise TypeError(f"Cannot fingerprint lambda repricing function in {func.__module__}")

    cells = [cell.cell_contents for cell in func.__closure__ or ()]
    return {
        "name": f"{func.__module__}.{func.__qualname__}",
        "defaults": _canonical(func.__defaults__ or ()),
        "kwdefaults": _canonical(func.__kwdefaults__ or {}),
        "closure": _canonical(cells),
    }


def _canonical(value: Any) -> Any:
    """JSON-ready form of a bound argument."""
    if value is None or isinstance(value, (str, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _canonical(v) for k, v in value.items()}
    if isinstance(value, (FunctionType, partial)):
        return _function_id(value)
    return _encode(value)


def _encode(value: Any) -> Any:
    """JSON fallback for the value types instruments and configs carry."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Tenor):
        return {
            "period": value.period,
            "valuation_date": value.valuation_date.isoformat(),
            "day_count": value.day_count.value,
        }
    if isinstance(value, (int, float)):
        return value
    if numeric.is_dual(value):
        raise TypeError("Cannot fingerprint dual-number values")
    raise TypeError(f"Cannot fingerprint value of type {type(value).__name__}")


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    waits: int = 0
    builds: int = 0
    failures: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses + self.waits
        return (self.hits + self.waits) / total if total else 0.0


class SingleFlightCache:
    """
    Thread-safe LRU cache where each key is computed at most once at a time.

    The lock guards bookkeeping only; computations run outside it.

    Attributes:
        capacity: Maximum number of completed results kept
    """

    def __init__(self, capacity: int = 128):
        if capacity < 1:
            raise ValueError("Cache capacity must be at least 1")
        self.capacity = capacity
        self._lock = threading.Lock()
        self._entries: "OrderedDict[Hashable, Any]" = OrderedDict()
        self._in_flight: Dict[Hashable, Future] = {}
        self._stats = CacheStats()

    def get_or_compute(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        """
        Return the cached value for key, computing it if needed.

        Raises:
            Whatever ``compute`` raised, to the computing caller and every waiter
        """
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
                self._stats.hits += 1
                return self._entries[key]
            future = self._in_flight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._in_flight[key] = future
                self._stats.misses += 1
            else:
                self._stats.waits += 1

        if not owner:
            logger.debug("Waiting on in-flight build %s", _short(key))
            return future.result()

        try:
            value = compute()
        except BaseException as exc:
            with self._lock:
                del self._in_flight[key]
                self._stats.failures += 1
            future.set_exception(exc)
            raise

        with self._lock:
            del self._in_flight[key]
            self._entries[key] = value
            self._stats.builds += 1
            self._evict()
        future.set_result(value)
        return value

    def get(self, key: Hashable) -> Optional[Any]:
        """Completed value for key, or None (does not wait on in-flight builds)."""
        with self._lock:
            if key not in self._entries:
                return None
            self._entries.move_to_end(key)
            return self._entries[key]

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        """Drop completed entries; in-flight builds are unaffected."""
        with self._lock:
            self._entries.clear()

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "size": len(self._entries),
                "capacity": self.capacity,
                "in_flight": len(self._in_flight),
                "hits": self._stats.hits,
                "misses": self._stats.misses,
                "waits": self._stats.waits,
                "builds": self._stats.builds,
                "failures": self._stats.failures,
                "evictions": self._stats.evictions,
                "hit_rate": self._stats.hit_rate,
            }

    def _evict(self) -> None:
        """Evict least recently used entries over capacity (caller holds lock)."""
        while len(self._entries) > self.capacity:
            key, _ = self._entries.popitem(last=False)
            self._stats.evictions += 1
            logger.debug("Evicted curve set %s", _short(key))


class CachedBootstrapper(CurveBuilder):
    """
    Curve set builder that memoizes another builder by fingerprint.

    Attributes:
        builder: The wrapped builder (sequential or parallel)
        cache: SingleFlightCache holding built curve sets
    """

    def __init__(self, builder: CurveBuilder, capacity: int = 128):
        super().__init__(builder.config, builder.bootstrapper_factory)
        self.builder = builder
        self.cache = SingleFlightCache(capacity)

    def build(self, definitions: Sequence[CurveDefinition]) -> CurveSet:
        key = fingerprint(definitions, self.builder.config)
        return self.cache.get_or_compute(key, lambda: self.builder.build(definitions))

    def clear(self) -> None:
        self.cache.clear()

    def stats(self) -> Dict[str, Any]:
        return self.cache.stats()


def _short(key: Hashable) -> str:
    return str(key)[:12]


__all__ = [
    "fingerprint",
    "CacheStats",
    "SingleFlightCache",
    "CachedBootstrapper",
]
