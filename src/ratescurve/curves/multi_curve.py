"""
Multi-curve construction.

Provides:
- CurveDefinition: a named curve, its instruments and the curves it depends on
- CurveGraph: dependency graph with cycle detection and topological order
- CurveSet: immutable mapping of built curves
- MultiCurveBuilder: builds a curve set one curve at a time in dependency order
- ParallelCurveSetBuilder: builds independent curves concurrently

Both builders run each curve through the same bootstrapper, so they
produce identical curve sets. Numerical failures are collected and
reported together; a curve whose dependency failed is not started.
"""

from abc import ABC, abstractmethod
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from types import MappingProxyType
from typing import (
    Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Set, Tuple, Union
)
import logging

import pandas as pd

from .. import numeric
from ..dates import Tenor
from ..errors import CurveError, CurveSetBuildError, CyclicDependencyError, StructuralError
from .bootstrap import BootstrapResult, SequentialBootstrapper
from .config import BootstrapConfig
from .curve import YieldCurve
from .instruments import BootstrapInstrument, CurveMarket

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CurveDefinition:
    """
    Definition of one curve in a curve set.

    Attributes:
        name: Unique curve name
        instruments: Calibration instruments
        depends_on: Names of curves this curve's instruments read from
        pillars: Optional explicit pillar grid
        config: Optional per-curve configuration overriding the builder's
    """
    name: str
    instruments: Tuple[BootstrapInstrument, ...]
    depends_on: Tuple[str, ...] = ()
    pillars: Optional[Tuple[Union[Tenor, float], ...]] = None
    config: Optional[BootstrapConfig] = None

    def __post_init__(self):
        object.__setattr__(self, "instruments", tuple(self.instruments))
        object.__setattr__(self, "depends_on", tuple(self.depends_on))
        if self.pillars is not None:
            object.__setattr__(self, "pillars", tuple(self.pillars))

    def with_instruments(self, instruments: Sequence[BootstrapInstrument]) -> "CurveDefinition":
        return CurveDefinition(self.name, tuple(instruments), self.depends_on, self.pillars, self.config)


class CurveGraph:
    """
    Dependency graph over curve definitions.

    Edges point from a curve to the curves it depends on. The graph is
    validated on construction: duplicate names and undefined dependencies
    raise StructuralError, cycles raise CyclicDependencyError.
    """

    def __init__(self, definitions: Sequence[CurveDefinition]):
        self.definitions: Dict[str, CurveDefinition] = {}
        for definition in definitions:
            if definition.name in self.definitions:
                raise StructuralError(f"Curve '{definition.name}' is defined more than once")
            self.definitions[definition.name] = definition

        for definition in self.definitions.values():
            for dep in definition.depends_on:
                if dep not in self.definitions:
                    raise StructuralError(
                        f"Curve '{definition.name}' depends on undefined curve '{dep}'"
                    )
                if dep == definition.name:
                    raise CyclicDependencyError([dep, dep])

        self.order: Tuple[str, ...] = tuple(self.topological_order())

    def dependencies(self, name: str) -> Tuple[str, ...]:
        return self.definitions[name].depends_on

    def dependents(self, name: str) -> List[str]:
        return [n for n, d in self.definitions.items() if name in d.depends_on]

    def topological_order(self) -> List[str]:
        """
        Kahn's algorithm; ties broken by definition order.

        Raises:
            CyclicDependencyError: If the graph has a cycle
        """
        in_degree = {name: len(set(d.depends_on)) for name, d in self.definitions.items()}
        queue = deque(name for name, degree in in_degree.items() if degree == 0)
        order = []

        while queue:
            name = queue.popleft()
            order.append(name)
            for dependent in self.dependents(name):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)

        if len(order) != len(self.definitions):
            remaining = [n for n in self.definitions if n not in set(order)]
            raise CyclicDependencyError(self._find_cycle(remaining))
        return order

    def _find_cycle(self, remaining: List[str]) -> List[str]:
        """Walk dependencies among unresolved curves until a name repeats."""
        unresolved = set(remaining)
        path = [remaining[0]]
        while True:
            step = next(d for d in self.dependencies(path[-1]) if d in unresolved)
            if step in path:
                return path[path.index(step):] + [step]
            path.append(step)


class CurveSet(Mapping):
    """
    Immutable mapping of curve name to built curve.

    Attributes:
        results: BootstrapResult of each curve
        order: Names in the order they were (or could have been) built
    """

    def __init__(self, results: Mapping[str, BootstrapResult], order: Sequence[str]):
        self.order: Tuple[str, ...] = tuple(order)
        self.results: Mapping[str, BootstrapResult] = MappingProxyType(
            {name: results[name] for name in self.order}
        )

    def __getitem__(self, name: str) -> YieldCurve:
        return self.results[name].curve

    def __iter__(self) -> Iterator[str]:
        return iter(self.order)

    def __len__(self) -> int:
        return len(self.order)

    def to_frame(self, times: Sequence[float]) -> pd.DataFrame:
        """Discount factors of every curve at the given times."""
        data = {
            name: [numeric.real(self[name].discount_factor(t)) for t in times]
            for name in self.order
        }
        return pd.DataFrame(data, index=pd.Index(list(times), name="time"))

    def __repr__(self) -> str:
        return f"CurveSet({list(self.order)})"


BootstrapperFactory = Callable[[BootstrapConfig], Any]


class CurveBuilder(ABC):
    """
    Base class for curve set builders.

    Attributes:
        config: Default configuration for curves without their own
        bootstrapper_factory: Creates the single-curve bootstrapper for a config
    """

    def __init__(
        self,
        config: BootstrapConfig,
        bootstrapper_factory: BootstrapperFactory = SequentialBootstrapper
    ):
        self.config = config
        self.bootstrapper_factory = bootstrapper_factory

    @abstractmethod
    def build(self, definitions: Sequence[CurveDefinition]) -> CurveSet:
        """Build every curve of the set."""

    def build_curve(
        self,
        definition: CurveDefinition,
        built: Mapping[str, BootstrapResult]
    ) -> BootstrapResult:
        """Bootstrap one curve against its already-built dependencies."""
        config = definition.config or self.config
        market = CurveMarket(
            definition.name, {dep: built[dep].curve for dep in definition.depends_on}
        )
        bootstrapper = self.bootstrapper_factory(config)
        return bootstrapper.bootstrap(
            definition.instruments, market=market, pillars=definition.pillars, name=definition.name
        )


class MultiCurveBuilder(CurveBuilder):
    """Builds curves one at a time in topological order."""

    def build(self, definitions: Sequence[CurveDefinition]) -> CurveSet:
        graph = CurveGraph(definitions)
        logger.info("Building curve set %s sequentially", list(graph.order))

        built: Dict[str, BootstrapResult] = {}
        failed: Dict[str, BaseException] = {}
        blocked: Dict[str, Tuple[str, ...]] = {}
        aborted: List[str] = []
        stop = False

        for name in graph.order:
            upstream = _failed_upstream(graph, name, failed, blocked)
            if upstream:
                blocked[name] = upstream
                logger.warning("Curve '%s' blocked by failed dependencies %s", name, list(upstream))
                continue
            if stop:
                aborted.append(name)
                continue
            try:
                built[name] = self.build_curve(graph.definitions[name], built)
            except CurveError as exc:
                logger.error("Curve '%s' failed: %s", name, exc)
                failed[name] = exc
                stop = isinstance(exc, StructuralError)

        return _finish(graph, built, failed, blocked, aborted)


class ParallelCurveSetBuilder(CurveBuilder):
    """
    Builds curves on a thread pool as soon as their dependencies are built.

    Attributes:
        max_workers: Thread pool size (None lets the executor choose)
    """

    def __init__(
        self,
        config: BootstrapConfig,
        bootstrapper_factory: BootstrapperFactory = SequentialBootstrapper,
        max_workers: Optional[int] = None
    ):
        super().__init__(config, bootstrapper_factory)
        self.max_workers = max_workers

    def build(self, definitions: Sequence[CurveDefinition]) -> CurveSet:
        graph = CurveGraph(definitions)
        logger.info(
            "Building curve set %s on up to %s workers", list(graph.order), self.max_workers
        )

        built: Dict[str, BootstrapResult] = {}
        failed: Dict[str, BaseException] = {}
        blocked: Dict[str, Tuple[str, ...]] = {}
        started: Set[str] = set()
        unexpected: Optional[BaseException] = None
        stop = False

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            pending: Dict[Future, str] = {}

            def launch_ready() -> None:
                for name in graph.order:
                    if name in started or name in blocked:
                        continue
                    upstream = _failed_upstream(graph, name, failed, blocked)
                    if upstream:
                        blocked[name] = upstream
                        logger.warning(
                            "Curve '%s' blocked by failed dependencies %s", name, list(upstream)
                        )
                    elif all(dep in built for dep in graph.dependencies(name)):
                        started.add(name)
                        snapshot = dict(built)
                        future = pool.submit(self.build_curve, graph.definitions[name], snapshot)
                        pending[future] = name

            launch_ready()
            while pending:
                done, _ = wait(list(pending), return_when=FIRST_COMPLETED)
                for future in done:
                    name = pending.pop(future)
                    try:
                        built[name] = future.result()
                        logger.debug("Curve '%s' built", name)
                    except CurveError as exc:
                        logger.error("Curve '%s' failed: %s", name, exc)
                        failed[name] = exc
                        stop = stop or isinstance(exc, StructuralError)
                    except Exception as exc:
                        failed[name] = exc
                        unexpected = unexpected or exc
                        stop = True
                if not stop:
                    launch_ready()

        if unexpected is not None:
            raise unexpected

        aborted: List[str] = []
        for name in graph.order:
            if name in started or name in blocked:
                continue
            upstream = _failed_upstream(graph, name, failed, blocked)
            if upstream:
                blocked[name] = upstream
            else:
                aborted.append(name)
        return _finish(graph, built, failed, blocked, aborted)

    def build_batch(self, requests: Sequence[Sequence[CurveDefinition]]) -> List[CurveSet]:
        """
        Build several independent curve sets concurrently.

        Returns:
            Curve sets in request order

        Raises:
            The first failing request's exception, once every request has finished
        """
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = [pool.submit(self.build, request) for request in requests]
            wait(futures)
        return [future.result() for future in futures]


def _failed_upstream(
    graph: CurveGraph,
    name: str,
    failed: Mapping[str, BaseException],
    blocked: Mapping[str, Tuple[str, ...]]
) -> Tuple[str, ...]:
    """Failed curves that ``name`` depends on, directly or through blocked curves."""
    upstream: List[str] = []
    for dep in graph.dependencies(name):
        if dep in failed:
            upstream.append(dep)
        elif dep in blocked:
            upstream.extend(blocked[dep])
    return tuple(dict.fromkeys(upstream))


def _finish(
    graph: CurveGraph,
    built: Dict[str, BootstrapResult],
    failed: Dict[str, BaseException],
    blocked: Dict[str, Tuple[str, ...]],
    aborted: List[str]
) -> CurveSet:
    if failed:
        raise CurveSetBuildError(
            {name: built[name] for name in graph.order if name in built},
            failed, blocked, aborted
        )
    curve_set = CurveSet(built, graph.order)
    logger.info("Curve set %s built", list(curve_set.order))
    return curve_set


__all__ = [
    "CurveDefinition",
    "CurveGraph",
    "CurveSet",
    "CurveBuilder",
    "MultiCurveBuilder",
    "ParallelCurveSetBuilder",
]
