"""Tests for the traversal-driven exploration statistics."""

from __future__ import annotations

import math

from pywitness.core.memory import HeapRegistry, Memory
from pywitness.core.state import ExecutionState
from pywitness.engine.graph import InterProceduralGraph
from pywitness.selectors.statistics import DistanceStatistics, EdgeVisitCountingStatistics
from pywitness.testing.programs import CHECK, guarded_program


def check_graph() -> tuple[InterProceduralGraph, str]:
    program = guarded_program()
    graph = InterProceduralGraph(program)
    graph.join(program.method(CHECK))
    return graph, CHECK.signature


def test_uncovered_locations_are_at_distance_zero():
    graph, sig = check_graph()
    stats = DistanceStatistics(graph)

    assert stats.distance_to_uncovered((sig, 0)) == 0
    assert stats.distance_to_uncovered(None) == math.inf
    assert stats.distance_to_uncovered(("missing", 0)) == math.inf


def test_distances_follow_new_coverage():
    graph, sig = check_graph()
    stats = DistanceStatistics(graph)

    graph.traverse(((sig, 0), (sig, 1)))

    assert stats.recomputations == 2
    assert stats.distance_to_uncovered((sig, 0)) == 1
    graph.traverse(((sig, 0), (sig, 1)))
    assert stats.recomputations == 2


def test_covering_only_the_source_recomputes():
    graph, sig = check_graph()
    graph.mark_covered((sig, 1))
    stats = DistanceStatistics(graph)
    assert stats.distance_to_uncovered((sig, 0)) == 0

    graph.traverse(((sig, 0), (sig, 1)))

    assert stats.recomputations == 2
    assert stats.distance_to_uncovered((sig, 0)) == 1


def test_joining_a_method_recomputes():
    program = guarded_program()
    graph = InterProceduralGraph(program)
    stats = DistanceStatistics(graph)
    assert stats.distance_to_uncovered((CHECK.signature, 0)) == math.inf

    graph.join(program.method(CHECK))

    assert stats.recomputations == 2
    assert stats.distance_to_uncovered((CHECK.signature, 0)) == 0


def test_closed_statistics_stop_listening():
    graph, sig = check_graph()
    stats = DistanceStatistics(graph)
    stats.close()

    graph.traverse(((sig, 0), (sig, 2)))

    assert stats.recomputations == 1


def test_edge_visits_are_counted():
    graph, sig = check_graph()
    stats = EdgeVisitCountingStatistics(graph)
    edge = ((sig, 0), (sig, 2))

    graph.traverse(edge)
    graph.traverse(edge)
    graph.traverse(((sig, 2), (sig, 3)))

    assert stats.count(edge) == 2
    assert stats.count(None) == 0
    assert stats.total() == 3
    state = ExecutionState(frames=[], memory=Memory(HeapRegistry()), last_edge=edge)
    assert stats.visits(state) == 2
