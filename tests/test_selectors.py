"""
Tests for path selectors, their builders and the strategies they use.
"""

from __future__ import annotations

import math

import pytest
import z3
from hypothesis import given, settings
from hypothesis import strategies as st

from pywitness.config import SelectorSettings
from pywitness.constraints.models import PrimitiveModel
from pywitness.constraints.variables import Parameter
from pywitness.core.memory import HeapRegistry, Memory
from pywitness.core.solver import Solver
from pywitness.core.state import ExecutionState, Frame
from pywitness.core.types import INT, PrimitiveValue
from pywitness.engine.graph import InterProceduralGraph
from pywitness.engine.program import MethodBody, Program
from pywitness.errors import ConfigurationError
from pywitness.selectors.builders import (
    DFSSelectorBuilder,
    PathSelectorContext,
    PathSelectorType,
    SelectorConfig,
    bfs_selector,
    covered_new_selector,
    depth_selector,
    interleaved_selector,
    path_selector,
    random_path_selector,
    scoring_selector,
    selector_from_settings,
)
from pywitness.selectors.selectors import (
    BFSSelector,
    CoveredNewSelector,
    DepthSelector,
    DFSSelector,
    InterleavedSelector,
    MinimalDistanceToUncoveredSelector,
    RandomPathSelector,
    VisitCountingSelector,
)
from pywitness.selectors.strategies import (
    MISSING_PENALTY,
    ChoosingStrategy,
    ModelScoringStrategy,
    StepsLimitStoppingStrategy,
)
from pywitness.testing.programs import CHECK
from pywitness.testing.strategies import fork_depths, seeds


class ByDepth(ChoosingStrategy):
    def priority(self, state):
        return float(state.depth)


def make_state(state_id: int, depth: int = 0) -> ExecutionState:
    return ExecutionState(frames=[], memory=Memory(HeapRegistry()), state_id=state_id, depth=depth)


def empty_graph() -> InterProceduralGraph:
    return InterProceduralGraph(Program())


def drain(selector) -> list[int]:
    picked = []
    while not selector.is_empty():
        picked.append(selector.pick().state_id)
    return picked


class TestFrontierOrder:
    def test_bfs_runs_earlier_batches_first(self):
        selector = BFSSelector(ByDepth(), StepsLimitStoppingStrategy(empty_graph(), 10))
        selector.offer([make_state(1, depth=1), make_state(0, depth=0)])
        assert selector.pick().state_id == 0
        selector.offer([make_state(2)])
        assert drain(selector) == [1, 2]

    def test_dfs_runs_latest_batch_first(self):
        selector = DFSSelector(ByDepth(), StepsLimitStoppingStrategy(empty_graph(), 10))
        selector.offer([make_state(1, depth=1), make_state(0, depth=0)])
        assert selector.pick().state_id == 0
        selector.offer([make_state(2)])
        assert drain(selector) == [2, 1]

    def test_pick_on_empty_frontier_returns_none(self):
        selector = BFSSelector(ByDepth(), StepsLimitStoppingStrategy(empty_graph(), 10))
        assert selector.pick() is None
        assert selector.is_empty()

    def test_remove_uses_identity(self):
        selector = DFSSelector(ByDepth(), StepsLimitStoppingStrategy(empty_graph(), 10))
        first, twin = make_state(1), make_state(1)
        selector.offer([first])
        assert not selector.remove(twin)
        assert selector.remove(first)
        assert selector.size() == 0

    def test_depth_selector_runs_shallow_states_first(self):
        selector = depth_selector(empty_graph(), SelectorConfig(step_limit=10))
        selector.offer([make_state(0, depth=3), make_state(1, depth=1), make_state(2, depth=1), make_state(3)])

        assert drain(selector) == [3, 1, 2, 0]
        selector.close()


class TestRandomSelectors:
    @settings(max_examples=25, deadline=None)
    @given(seed=seeds(), depths=fork_depths())
    def test_equal_seeds_give_equal_pick_sequences(self, seed, depths):
        runs = []
        for _ in range(2):
            selector = random_path_selector(empty_graph(), SelectorConfig(step_limit=100, seed=seed))
            selector.offer([make_state(i, depth=d) for i, d in enumerate(depths)])
            runs.append(drain(selector))
            selector.close()
        assert runs[0] == runs[1]
        assert sorted(runs[0]) == list(range(len(depths)))

    def test_shallow_states_are_preferred(self):
        selector = random_path_selector(empty_graph(), SelectorConfig(step_limit=100, seed=7))
        shallow_first = 0
        for round_ in range(200):
            selector.offer([make_state(2 * round_, depth=0), make_state(2 * round_ + 1, depth=6)])
            if selector.pick().state_id % 2 == 0:
                shallow_first += 1
            selector.pick()
        assert shallow_first > 150

    def test_states_that_just_covered_code_are_preferred(self):
        selector = covered_new_selector(empty_graph(), SelectorConfig(step_limit=100, seed=7))
        fresh_first = 0
        for round_ in range(200):
            stale = make_state(2 * round_ + 1)
            stale.steps_since_new_coverage = 9
            selector.offer([make_state(2 * round_), stale])
            if selector.pick().state_id % 2 == 0:
                fresh_first += 1
            selector.pick()
        assert fresh_first > 180
        selector.close()


class TestBuilders:
    def test_missing_stopping_strategy_is_rejected(self):
        with pytest.raises(ConfigurationError) as excinfo:
            bfs_selector(empty_graph())
        assert excinfo.value.option == "step_limit"

    def test_non_positive_step_limit_is_rejected(self):
        with pytest.raises(ConfigurationError):
            bfs_selector(empty_graph(), SelectorConfig(step_limit=0))

    def test_shared_context_supplies_the_stopping_strategy(self):
        graph = empty_graph()
        context = PathSelectorContext(graph)
        stopping = context.stopping(5)
        selector = bfs_selector(graph, SelectorConfig(), context)
        assert selector.stopping_strategy is stopping
        assert selector.resources == []
        context.close()

    def test_scoring_needs_a_strategy(self):
        with pytest.raises(ConfigurationError):
            path_selector("scoring", empty_graph(), SelectorConfig(step_limit=5))

    def test_default_interleaving(self):
        selector = path_selector(PathSelectorType.INTERLEAVED, empty_graph(), SelectorConfig(step_limit=5))
        assert isinstance(selector, InterleavedSelector)
        assert [type(s) for s in selector.selectors] == [MinimalDistanceToUncoveredSelector, RandomPathSelector]
        assert all(s.stopping_strategy is selector.stopping_strategy for s in selector.selectors)
        selector.close()

    def test_scoring_members_cannot_be_interleaved(self):
        members = [(PathSelectorType.BFS, SelectorConfig()), (PathSelectorType.SCORING, SelectorConfig())]
        with pytest.raises(ConfigurationError):
            interleaved_selector(empty_graph(), members, SelectorConfig(step_limit=5))

    def test_builder_classes_own_their_context(self):
        selector = DFSSelectorBuilder(empty_graph(), SelectorConfig(step_limit=3)).build()
        assert isinstance(selector, DFSSelector)
        assert len(selector.resources) == 1
        selector.close()

    def test_selector_from_settings(self):
        settings_ = SelectorSettings(path_selector_type="visit_counting", step_limit=10)
        selector = selector_from_settings(empty_graph(), settings_)
        assert isinstance(selector, VisitCountingSelector)
        selector.close()

    def test_unknown_settings_are_rejected(self):
        with pytest.raises(ConfigurationError) as excinfo:
            SelectorConfig.from_settings(SelectorSettings(path_selector_type="astar"))
        assert excinfo.value.option == "path_selector_type"

    def test_close_detaches_owned_statistics(self):
        graph = InterProceduralGraph(Program())
        selector = bfs_selector(graph, SelectorConfig(step_limit=2))
        selector.close()
        graph.traverse((("m", 0), ("m", 1)))
        graph.traverse((("m", 1), ("m", 2)))
        assert not selector.should_stop()


class TestStopping:
    def test_steps_limit_counts_traversals(self):
        graph = empty_graph()
        stopping = StepsLimitStoppingStrategy(graph, 2)
        graph.traverse((("m", 0), ("m", 1)))
        assert not stopping.should_stop()
        graph.traverse((("m", 1), ("m", 2)))
        assert stopping.should_stop()

    def test_selector_stops_with_its_strategy(self):
        graph = empty_graph()
        selector = bfs_selector(graph, SelectorConfig(step_limit=1))
        assert not selector.should_stop()
        graph.traverse((("m", 0), ("m", 1)))
        assert selector.should_stop()
        selector.close()


class TestInterleaved:
    def test_picked_states_leave_every_member(self):
        members = [(PathSelectorType.BFS, SelectorConfig()), (PathSelectorType.DFS, SelectorConfig())]
        selector = interleaved_selector(empty_graph(), members, SelectorConfig(step_limit=10))
        selector.offer([make_state(i) for i in range(3)])

        first = selector.pick()
        assert first.state_id == 0
        assert [member.size() for member in selector.selectors] == [2, 2]
        second = selector.pick()
        assert second.state_id == 2
        assert drain(selector) == [1]
        assert selector.pick() is None
        selector.close()

    def test_covered_new_and_depth_members(self):
        members = [(PathSelectorType.COVERED_NEW, SelectorConfig(seed=1)), (PathSelectorType.DEPTH, SelectorConfig())]
        selector = interleaved_selector(empty_graph(), members, SelectorConfig(step_limit=10))
        selector.offer([make_state(0, depth=2), make_state(1)])

        assert [type(s) for s in selector.selectors] == [CoveredNewSelector, DepthSelector]
        assert sorted(drain(selector)) == [0, 1]
        selector.close()


def scored_state(state_id: int, *constraints) -> tuple[ExecutionState, z3.ArithRef]:
    x = z3.Int(f"x{state_id}")
    state = make_state(state_id)
    frame = Frame(MethodBody(CHECK, ("g", "x"), []))
    frame.locals["p0"] = PrimitiveValue(INT, x)
    state.frames.append(frame)
    for constraint in constraints:
        state.add_constraint(constraint(x))
    return state, x


class TestScoring:
    def target(self, value: int) -> dict:
        return {"p0": PrimitiveModel(Parameter("t", INT), set(), value)}

    def test_score_is_negative_distance(self):
        state, _ = scored_state(1, lambda x: x == 7)
        strategy = ModelScoringStrategy(self.target(10), Solver())
        assert strategy.score(state) == -3.0
        assert strategy.priority(state) == 3.0

    def test_unsatisfiable_states_score_minus_infinity(self):
        state, _ = scored_state(2, lambda x: x > 0, lambda x: x < 0)
        strategy = ModelScoringStrategy(self.target(10), Solver())
        assert strategy.score(state) == -math.inf

    def test_unbound_locals_are_penalized(self):
        state, _ = scored_state(3, lambda x: x == 10)
        strategy = ModelScoringStrategy({"p1": PrimitiveModel(Parameter("t", INT), set(), 1)}, Solver())
        assert strategy.score(state) == -MISSING_PENALTY

    def test_scoring_selector_runs_best_state_first(self):
        far, _ = scored_state(4, lambda x: x == 100)
        dead, _ = scored_state(5, lambda x: x > 0, lambda x: x < 0)
        near, _ = scored_state(6, lambda x: x == 9)
        strategy = ModelScoringStrategy(self.target(10), Solver())
        selector = scoring_selector(empty_graph(), strategy, SelectorConfig(step_limit=10))
        selector.offer([far, dead, near])
        assert drain(selector) == [6, 4, 5]
        selector.close()

    @given(st.integers(-50, 50), st.integers(-50, 50))
    @settings(max_examples=20, deadline=None)
    def test_closer_values_score_higher(self, value, target):
        state, _ = scored_state(7, lambda x: x == value)
        strategy = ModelScoringStrategy(self.target(target), Solver())
        assert strategy.score(state) == -abs(value - target)
