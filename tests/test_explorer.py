"""
Tests for the reference symbolic explorer.

The sample programs are small enough that every selector exhausts the
frontier, so the set of terminal executions does not depend on the order
states are picked in.
"""

from __future__ import annotations

import pytest
import z3

from pywitness.api import explore
from pywitness.config import PATH_SELECTOR_TYPES
from pywitness.core.types import ExecutableId
from pywitness.engine.explorer import PostCondition, SymbolicExplorer
from pywitness.engine.graph import InterProceduralGraph
from pywitness.engine.program import MethodBody, Return
from pywitness.logging import LogLevel
from pywitness.selectors.builders import SelectorConfig, bfs_selector
from pywitness.testing.programs import (
    CHECK,
    GUARDED,
    GUARDED_INIT,
    LIST_INIT,
    SET_VALUE,
    STORE_INIT,
    SUM,
    guarded_program,
    wrapper_program,
)


def returned(result):
    value = result.state.return_value
    return None if value is None else result.holder.value(value.expr)


class ReturnsTwo(PostCondition):
    def constraints(self, state):
        return [state.return_value.expr == 2]


def test_check_has_four_executions(guarded, config):
    results = explore(guarded, CHECK, config)

    assert len(results) == 4
    assert sum(r.exceptional for r in results) == 1
    assert sorted(returned(r) for r in results if not r.exceptional) == [0, 1, 2]


@pytest.mark.parametrize("kind", PATH_SELECTOR_TYPES)
def test_every_selector_finds_every_execution(kind, config):
    results = explore(guarded_program(), CHECK, config.with_selector(path_selector_type=kind))

    assert len(results) == 4
    assert sorted(returned(r) for r in results if not r.exceptional) == [0, 1, 2]


def test_step_limit_stops_exploration(guarded, config):
    results = explore(guarded, CHECK, config.with_selector(step_limit=1))

    assert len(results) == 1
    assert results[0].exceptional


def test_long_paths_are_truncated(guarded, config, logger):
    config.engine.max_path_length = 1
    results = explore(guarded, CHECK, config)

    assert all(r.exceptional for r in results)
    assert logger.get_count("states.truncated") > 0


def test_summary_carries_the_state_counters(guarded, config, logger):
    explore(guarded, CHECK, config)

    (summary,) = [e for e in logger.get_entries(LogLevel.VERBOSE, "engine") if "executions" in e.message]
    assert summary.context == logger.counters("states.")
    assert summary.context["states.exceptional"] == 1


def test_post_condition_filters_executions(guarded, config):
    explorer = SymbolicExplorer(guarded, config)
    selector = bfs_selector(explorer.graph, SelectorConfig(step_limit=100))
    try:
        results = list(explorer.run(CHECK, selector, ReturnsTwo()))
    finally:
        selector.close()

    assert len(results) == 1
    assert returned(results[0]) == 2
    assert results[0].holder.value(results[0].parameters[1].expr) > 10


def test_instance_methods_get_a_non_null_receiver(explorer):
    state = explorer.initial_state(SET_VALUE)

    receiver, value = state.parameters
    assert receiver.type == GUARDED
    assert value.type.is_primitive
    assert any(z3.eq(c, receiver.addr < 0) for c in state.hard)


def test_static_methods_take_nullable_references(explorer):
    state = explorer.initial_state(CHECK)

    g, _ = state.parameters
    assert any(z3.eq(c, g.addr <= 0) for c in state.hard)


def test_array_inputs_prefer_short_lengths(guarded, config):
    results = explore(guarded, SUM, config)

    assert len(results) == 3
    assert sum(r.exceptional for r in results) == 2
    normal = next(r for r in results if not r.exceptional)
    array = normal.parameters[0]
    length = normal.holder.value(normal.state.memory.read_length(array.addr))
    assert 2 <= length <= config.engine.preferred_array_length


def test_branches_increase_fork_depth(explorer):
    selector = bfs_selector(explorer.graph, SelectorConfig(step_limit=100))
    try:
        results = list(explorer.run(CHECK, selector))
    finally:
        selector.close()

    assert max(r.state.depth for r in results) >= 2


def test_overlay_keeps_added_methods_private(guarded):
    overlay = guarded.overlay()
    extra = ExecutableId(GUARDED, "extra", (), is_static=True)
    overlay.add_method(MethodBody(extra, (), [Return()]))

    assert overlay.has_method(extra)
    assert not guarded.has_method(extra)
    assert len(guarded.class_decl(GUARDED).methods) == len(guarded.executables())
    assert overlay.remove_method(extra) is not None
    assert overlay.executables() == guarded.executables()


def test_graph_links_calls_and_returns():
    program = wrapper_program()
    graph = InterProceduralGraph(program)
    graph.join(program.method(LIST_INIT))

    caller = LIST_INIT.signature
    callee = STORE_INIT.signature
    assert {body.signature for body in graph.methods()} == {caller, callee}
    assert (callee, 0) in graph.successors((caller, 1))
    callee_exit = graph.exit_location(program.method(STORE_INIT))
    assert (caller, 2) in graph.successors(callee_exit)


def test_graph_distances_follow_predecessors(guarded):
    graph = InterProceduralGraph(guarded)
    graph.join(guarded.method(CHECK))
    sig = CHECK.signature

    distances = graph.distances_to({(sig, 4)})

    assert distances[(sig, 4)] == 0
    assert distances[(sig, 2)] == 1
    assert distances[(sig, 0)] == 2
    assert (sig, 1) not in distances


def test_traversal_marks_both_ends_covered(guarded):
    graph = InterProceduralGraph(guarded)
    body = guarded.method(GUARDED_INIT)
    graph.join(body)

    edge = ((body.signature, 0), graph.exit_location(body))

    assert graph.traverse(edge) is True
    assert graph.uncovered() == set()
    assert graph.traverse(edge) is False
    assert graph.traversals == 2


def test_states_count_steps_since_new_coverage(explorer):
    graph = explorer.graph
    graph.join(explorer.program.method(CHECK))
    for location in graph.locations():
        graph.mark_covered(location)
    selector = bfs_selector(graph, SelectorConfig(step_limit=100))
    try:
        results = list(explorer.run(CHECK, selector))
    finally:
        selector.close()

    assert all(r.state.steps_since_new_coverage > 0 for r in results if not r.exceptional)
