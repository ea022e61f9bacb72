"""Exploration statistics fed by graph traversal events."""

from __future__ import annotations

import math
from collections import Counter
from typing import TYPE_CHECKING

from pywitness.engine.graph import InterProceduralGraph, TraversalListener
from pywitness.logging import get_logger


if TYPE_CHECKING:
    from pywitness.core.state import Edge, ExecutionState, Location
    from pywitness.engine.program import MethodBody


class DistanceStatistics(TraversalListener):
    """Shortest distance from every location to code not yet covered.

    Distances are recomputed whenever a traversal covers a new location or
    a method joins the graph, so they always describe the current coverage.
    """

    def __init__(self, graph: InterProceduralGraph):
        self.graph = graph
        self.recomputations = 0
        self._distances: dict[Location, int] = {}
        self._recompute()
        graph.attach(self)

    def _recompute(self) -> None:
        self._distances = self.graph.distances_to(self.graph.uncovered())
        self.recomputations += 1

    def on_traversed(self, edge: Edge, newly_covered: bool) -> None:
        if newly_covered:
            self._recompute()

    def on_method_added(self, body: MethodBody) -> None:
        self._recompute()

    def distance_to_uncovered(self, location: Location | None) -> float:
        if location is None:
            return math.inf
        return float(self._distances.get(location, math.inf))

    def distance(self, state: ExecutionState) -> float:
        return self.distance_to_uncovered(state.location)

    def close(self) -> None:
        self.graph.detach(self)


class EdgeVisitCountingStatistics(TraversalListener):
    """Number of times every edge has been traversed."""

    def __init__(self, graph: InterProceduralGraph):
        self.graph = graph
        self._counts: Counter[Edge] = Counter()
        graph.attach(self)

    def on_traversed(self, edge: Edge, newly_covered: bool) -> None:
        self._counts[edge] += 1
        get_logger().trace(f"edge {edge} visited {self._counts[edge]} times", category="selector")

    def count(self, edge: Edge | None) -> int:
        if edge is None:
            return 0
        return self._counts[edge]

    def visits(self, state: ExecutionState) -> int:
        return self.count(state.last_edge)

    def total(self) -> int:
        return sum(self._counts.values())

    def close(self) -> None:
        self.graph.detach(self)


__all__ = ["DistanceStatistics", "EdgeVisitCountingStatistics"]
