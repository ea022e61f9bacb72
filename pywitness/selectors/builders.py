"""Builders for path selectors.

Every builder is configured by an explicit :class:`SelectorConfig` value.
Builders that should share statistics and a stopping strategy (for example
the members of an interleaved selector) are given the same
:class:`PathSelectorContext`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from pywitness.config import SelectorSettings
from pywitness.engine.graph import InterProceduralGraph
from pywitness.errors import ConfigurationError
from pywitness.selectors.selectors import (
    BFSSelector,
    CoveredNewSelector,
    DepthSelector,
    DFSSelector,
    InterleavedSelector,
    MinimalDistanceToUncoveredSelector,
    PathSelector,
    RandomPathSelector,
    RandomSelector,
    RPSelector,
    ScoringSelector,
    VisitCountingSelector,
)
from pywitness.selectors.statistics import DistanceStatistics, EdgeVisitCountingStatistics
from pywitness.selectors.strategies import (
    ChoosingStrategy,
    DistanceChoosingStrategy,
    ScoringStrategy,
    StepsLimitStoppingStrategy,
    StoppingStrategy,
    VisitCountingChoosingStrategy,
)


class PathSelectorType(Enum):
    BFS = "bfs"
    DFS = "dfs"
    RANDOM = "random"
    RANDOM_PATH = "random_path"
    RP = "rp"
    MINIMAL_DISTANCE = "minimal_distance"
    VISIT_COUNTING = "visit_counting"
    COVERED_NEW = "covered_new"
    DEPTH = "depth"
    SCORING = "scoring"
    INTERLEAVED = "interleaved"


class StrategyOption(Enum):
    DISTANCE = "distance"
    VISIT_COUNTING = "visit_counting"


@dataclass(frozen=True)
class SelectorConfig:
    """Options of one selector.

    Attributes:
        strategy: Choosing strategy for the selectors that take one.
        step_limit: Traversal events before exploration stops; None to rely
            on a stopping strategy already present in the context.
        seed: Seed of the random selectors; None for a non-deterministic run.
    """

    strategy: StrategyOption = StrategyOption.DISTANCE
    step_limit: int | None = None
    seed: int | None = 42

    @classmethod
    def from_settings(cls, settings: SelectorSettings) -> SelectorConfig:
        settings.validate()
        return cls(StrategyOption(settings.strategy), settings.step_limit, settings.seed)


class PathSelectorContext:
    """Statistics and stopping strategy shared by selectors over one graph.

    Statistics are created on first use and attached to the graph until
    :meth:`close`.
    """

    def __init__(self, graph: InterProceduralGraph, stopping_strategy: StoppingStrategy | None = None):
        self.graph = graph
        self.stopping_strategy = stopping_strategy
        self._distance: DistanceStatistics | None = None
        self._visit_counting: EdgeVisitCountingStatistics | None = None

    def distance_statistics(self) -> DistanceStatistics:
        if self._distance is None:
            self._distance = DistanceStatistics(self.graph)
        return self._distance

    def visit_counting_statistics(self) -> EdgeVisitCountingStatistics:
        if self._visit_counting is None:
            self._visit_counting = EdgeVisitCountingStatistics(self.graph)
        return self._visit_counting

    def choosing_strategy(self, option: StrategyOption) -> ChoosingStrategy:
        if option is StrategyOption.VISIT_COUNTING:
            return VisitCountingChoosingStrategy(self.visit_counting_statistics())
        return DistanceChoosingStrategy(self.distance_statistics())

    def stopping(self, step_limit: int | None) -> StoppingStrategy | None:
        """The shared stopping strategy, created from ``step_limit`` if missing."""
        if self.stopping_strategy is None and step_limit is not None:
            if step_limit <= 0:
                raise ConfigurationError("step_limit must be positive", "step_limit")
            self.stopping_strategy = StepsLimitStoppingStrategy(self.graph, step_limit)
        return self.stopping_strategy

    def close(self) -> None:
        if self._distance is not None:
            self._distance.close()
        if self._visit_counting is not None:
            self._visit_counting.close()
        if self.stopping_strategy is not None:
            self.stopping_strategy.close()


class PathSelectorBuilder(ABC):
    """Base builder.

    Args:
        graph: Graph whose events drive the selector's statistics.
        config: Selector options.
        context: Shared context; a private one is created and owned by the
            built selector when omitted.
    """

    def __init__(
        self,
        graph: InterProceduralGraph,
        config: SelectorConfig | None = None,
        context: PathSelectorContext | None = None,
    ):
        self.graph = graph
        self.config = config or SelectorConfig()
        self._owns_context = context is None
        self.context = context or PathSelectorContext(graph)

    def _stopping(self) -> StoppingStrategy:
        stopping = self.context.stopping(self.config.step_limit)
        if stopping is None:
            raise ConfigurationError(
                f"{type(self).__name__} needs a stopping strategy: set step_limit or share a context that has one",
                "step_limit",
            )
        return stopping

    def _choosing(self) -> ChoosingStrategy:
        return self.context.choosing_strategy(self.config.strategy)

    def build(self) -> PathSelector:
        """Build the selector; raises ConfigurationError without a stopping strategy."""
        stopping = self._stopping()
        selector = self._build(stopping)
        if self._owns_context:
            selector.resources.append(self.context)
        return selector

    @abstractmethod
    def _build(self, stopping: StoppingStrategy) -> PathSelector:
        """Create the selector around an existing stopping strategy."""


class BFSSelectorBuilder(PathSelectorBuilder):
    def _build(self, stopping: StoppingStrategy) -> PathSelector:
        return BFSSelector(self._choosing(), stopping)


class DFSSelectorBuilder(PathSelectorBuilder):
    def _build(self, stopping: StoppingStrategy) -> PathSelector:
        return DFSSelector(self._choosing(), stopping)


class RandomSelectorBuilder(PathSelectorBuilder):
    def _build(self, stopping: StoppingStrategy) -> PathSelector:
        return RandomSelector(self._choosing(), stopping, self.config.seed)


class RandomPathSelectorBuilder(PathSelectorBuilder):
    def _build(self, stopping: StoppingStrategy) -> PathSelector:
        return RandomPathSelector(self._choosing(), stopping, self.config.seed)


class RPSelectorBuilder(PathSelectorBuilder):
    def _build(self, stopping: StoppingStrategy) -> PathSelector:
        return RPSelector(self._choosing(), stopping, self.config.seed)


class MinimalDistanceSelectorBuilder(PathSelectorBuilder):
    def _build(self, stopping: StoppingStrategy) -> PathSelector:
        return MinimalDistanceToUncoveredSelector(
            DistanceChoosingStrategy(self.context.distance_statistics()), stopping
        )


class VisitCountingSelectorBuilder(PathSelectorBuilder):
    def _build(self, stopping: StoppingStrategy) -> PathSelector:
        return VisitCountingSelector(
            VisitCountingChoosingStrategy(self.context.visit_counting_statistics()), stopping
        )


class CoveredNewSelectorBuilder(PathSelectorBuilder):
    """Builder for :class:`CoveredNewSelector`; always weighs by distance to uncovered code."""

    def _build(self, stopping: StoppingStrategy) -> PathSelector:
        return CoveredNewSelector(
            DistanceChoosingStrategy(self.context.distance_statistics()), stopping, self.config.seed
        )


class DepthSelectorBuilder(PathSelectorBuilder):
    def _build(self, stopping: StoppingStrategy) -> PathSelector:
        return DepthSelector(self._choosing(), stopping)


class ScoringSelectorBuilder(PathSelectorBuilder):
    """Builder for :class:`ScoringSelector`; the scoring strategy is required."""

    def __init__(
        self,
        graph: InterProceduralGraph,
        scoring_strategy: ScoringStrategy,
        config: SelectorConfig | None = None,
        context: PathSelectorContext | None = None,
    ):
        super().__init__(graph, config, context)
        self.scoring_strategy = scoring_strategy

    def _build(self, stopping: StoppingStrategy) -> PathSelector:
        return ScoringSelector(self.scoring_strategy, self.context.distance_statistics(), stopping)


class InterleavedSelectorBuilder(PathSelectorBuilder):
    """Builder for :class:`InterleavedSelector`.

    Args:
        members: Kind and options of every member selector, in pick order.
            Members are built over this builder's context, so they share its
            statistics and its stopping strategy.
    """

    def __init__(
        self,
        graph: InterProceduralGraph,
        members: list[tuple[PathSelectorType, SelectorConfig]],
        config: SelectorConfig | None = None,
        context: PathSelectorContext | None = None,
    ):
        super().__init__(graph, config, context)
        self.members = members

    def _build(self, stopping: StoppingStrategy) -> PathSelector:
        if not self.members:
            raise ConfigurationError("interleaved selector needs at least one member", "members")
        selectors = []
        for kind, member_config in self.members:
            if kind in (PathSelectorType.INTERLEAVED, PathSelectorType.SCORING):
                raise ConfigurationError(f"{kind.value} selector cannot be interleaved", "members")
            builder = _BUILDERS[kind](self.graph, member_config, self.context)
            selectors.append(builder.build())
        return InterleavedSelector(selectors, stopping)


_BUILDERS: dict[PathSelectorType, type[PathSelectorBuilder]] = {
    PathSelectorType.BFS: BFSSelectorBuilder,
    PathSelectorType.DFS: DFSSelectorBuilder,
    PathSelectorType.RANDOM: RandomSelectorBuilder,
    PathSelectorType.RANDOM_PATH: RandomPathSelectorBuilder,
    PathSelectorType.RP: RPSelectorBuilder,
    PathSelectorType.MINIMAL_DISTANCE: MinimalDistanceSelectorBuilder,
    PathSelectorType.VISIT_COUNTING: VisitCountingSelectorBuilder,
    PathSelectorType.COVERED_NEW: CoveredNewSelectorBuilder,
    PathSelectorType.DEPTH: DepthSelectorBuilder,
}


def bfs_selector(graph, config=None, context=None) -> PathSelector:
    return BFSSelectorBuilder(graph, config, context).build()


def dfs_selector(graph, config=None, context=None) -> PathSelector:
    return DFSSelectorBuilder(graph, config, context).build()


def random_selector(graph, config=None, context=None) -> PathSelector:
    return RandomSelectorBuilder(graph, config, context).build()


def random_path_selector(graph, config=None, context=None) -> PathSelector:
    return RandomPathSelectorBuilder(graph, config, context).build()


def rp_selector(graph, config=None, context=None) -> PathSelector:
    return RPSelectorBuilder(graph, config, context).build()


def minimal_distance_selector(graph, config=None, context=None) -> PathSelector:
    return MinimalDistanceSelectorBuilder(graph, config, context).build()


def visit_counting_selector(graph, config=None, context=None) -> PathSelector:
    return VisitCountingSelectorBuilder(graph, config, context).build()


def covered_new_selector(graph, config=None, context=None) -> PathSelector:
    return CoveredNewSelectorBuilder(graph, config, context).build()


def depth_selector(graph, config=None, context=None) -> PathSelector:
    return DepthSelectorBuilder(graph, config, context).build()


def scoring_selector(graph, scoring_strategy, config=None, context=None) -> PathSelector:
    return ScoringSelectorBuilder(graph, scoring_strategy, config, context).build()


def interleaved_selector(graph, members, config=None, context=None) -> PathSelector:
    return InterleavedSelectorBuilder(graph, members, config, context).build()


def path_selector(
    kind: PathSelectorType | str,
    graph: InterProceduralGraph,
    config: SelectorConfig | None = None,
    context: PathSelectorContext | None = None,
) -> PathSelector:
    """Factory function for path selectors.

    Scoring selectors need a scoring strategy and are built with
    :func:`scoring_selector`; an interleaved selector built here cycles
    through minimal-distance and random-path members.
    """
    kind = PathSelectorType(kind)
    if kind is PathSelectorType.SCORING:
        raise ConfigurationError("scoring selectors need a scoring strategy", "path_selector_type")
    if kind is PathSelectorType.INTERLEAVED:
        config = config or SelectorConfig()
        members = [
            (PathSelectorType.MINIMAL_DISTANCE, SelectorConfig(config.strategy, None, config.seed)),
            (PathSelectorType.RANDOM_PATH, SelectorConfig(config.strategy, None, config.seed)),
        ]
        return interleaved_selector(graph, members, config, context)
    return _BUILDERS[kind](graph, config, context).build()


def selector_from_settings(graph: InterProceduralGraph, settings: SelectorSettings) -> PathSelector:
    """Selector described by the ``[selector]`` configuration section."""
    return path_selector(settings.path_selector_type, graph, SelectorConfig.from_settings(settings))


__all__ = [
    "PathSelectorType",
    "StrategyOption",
    "SelectorConfig",
    "PathSelectorContext",
    "PathSelectorBuilder",
    "BFSSelectorBuilder",
    "DFSSelectorBuilder",
    "RandomSelectorBuilder",
    "RandomPathSelectorBuilder",
    "RPSelectorBuilder",
    "MinimalDistanceSelectorBuilder",
    "VisitCountingSelectorBuilder",
    "CoveredNewSelectorBuilder",
    "DepthSelectorBuilder",
    "ScoringSelectorBuilder",
    "InterleavedSelectorBuilder",
    "bfs_selector",
    "dfs_selector",
    "random_selector",
    "random_path_selector",
    "rp_selector",
    "minimal_distance_selector",
    "visit_counting_selector",
    "covered_new_selector",
    "depth_selector",
    "scoring_selector",
    "interleaved_selector",
    "path_selector",
    "selector_from_settings",
]
