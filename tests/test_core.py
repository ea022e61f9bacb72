"""
Tests for the solver oracle, the symbolic heap and execution states.
"""

from __future__ import annotations

import z3
from hypothesis import given, settings
from hypothesis import strategies as st

from pywitness.core.memory import NULL_ADDR, HeapRegistry, Memory, MemoryState
from pywitness.core.solver import Solver, SolverStatusSAT, SolverStatusUNSAT
from pywitness.core.state import ExecutionState
from pywitness.core.types import INT, PrimitiveValue, array_of
from pywitness.testing.programs import GUARDED, LIMIT, VALUE
from pywitness.testing.strategies import z3_comparisons


class TestSolver:
    def test_sat_answer_carries_values(self):
        x = z3.Int("x")

        status = Solver().check([x > 3, x < 5])

        assert isinstance(status, SolverStatusSAT)
        assert status.value(x) == 4
        assert status.value(x == 4) is True

    def test_unsat(self):
        x = z3.Int("x")

        status = Solver().check([x > 3, x < 2])

        assert isinstance(status, SolverStatusUNSAT)
        assert not status.is_sat

    def test_soft_constraints_are_kept_when_possible(self):
        x = z3.Int("x")

        status = Solver().check([x >= 0], soft=[x == 7])

        assert status.value(x) == 7
        assert len(status.soft) == 1

    def test_conflicting_soft_constraints_are_dropped(self):
        x = z3.Int("x")
        solver = Solver()

        status = solver.check([x > 10], soft=[x < 5])

        assert status.is_sat
        assert status.soft == []
        assert status.value(x) > 10
        assert solver.get_stats()["queries"] == 2

    def test_soft_constraints_can_be_ignored(self):
        x = z3.Int("x")

        status = Solver().check([x >= 0], soft=[x == 7], respect_soft=False)

        assert status.soft == []

    @settings(max_examples=40, deadline=None)
    @given(st.lists(z3_comparisons(), min_size=1, max_size=4))
    def test_models_satisfy_every_hard_constraint(self, constraints):
        status = Solver().check(constraints)

        if status.is_sat:
            assert all(status.value(c) is True for c in constraints)
        else:
            plain = z3.Solver()
            plain.add(constraints)
            assert plain.check() == z3.unsat


class TestMemory:
    def test_allocation_zeroes_fields(self):
        memory = Memory(HeapRegistry())

        first = memory.allocate([VALUE, LIMIT])
        second = memory.allocate()

        assert first.as_long() == 1
        assert second.as_long() == 2
        assert z3.simplify(memory.read_field(first, VALUE)).as_long() == 0

    def test_arrays_know_their_length(self):
        memory = Memory(HeapRegistry())

        addr = memory.allocate_array(INT, z3.IntVal(3))

        assert z3.simplify(memory.read_length(addr)).as_long() == 3
        assert z3.simplify(memory.read_element(addr, z3.IntVal(2), INT)).as_long() == 0

    def test_snapshots(self):
        registry = HeapRegistry()
        memory = Memory(registry)
        g = registry.fresh("g", GUARDED)
        memory.write_field(g, VALUE, z3.IntVal(9))

        assert memory.field_array(VALUE, MemoryState.INITIAL).eq(registry.field_array(VALUE))
        assert not memory.field_array(VALUE).eq(registry.field_array(VALUE))

    def test_copies_are_independent(self):
        registry = HeapRegistry()
        memory = Memory(registry)
        values = registry.fresh("values", array_of(INT))
        copy = memory.copy()

        copy.write_element(values, z3.IntVal(0), INT, z3.IntVal(5))
        copy.allocate()

        assert memory.contents_array(INT).eq(registry.contents_array(INT))
        assert memory.allocate().as_long() == 1

    def test_statics_keep_their_initial_value(self):
        memory = Memory(HeapRegistry())
        before = memory.read_static(LIMIT)

        memory.write_static(LIMIT, PrimitiveValue(INT, before.expr + 1))

        assert memory.static_value(LIMIT, MemoryState.INITIAL) is before
        assert memory.static_value(LIMIT, MemoryState.CURRENT) is not before
        assert memory.static_fields() == [LIMIT]
        assert before.expr.decl().name() == "static$Guarded$limit"

    def test_fresh_names_are_unique(self):
        registry = HeapRegistry()

        first = registry.fresh("x", INT)
        second = registry.fresh("x", INT)

        assert str(first) == "x"
        assert str(second) != "x"
        assert registry.type_of(str(second)) == INT

    def test_null_is_address_zero(self):
        assert NULL_ADDR == 0


class TestState:
    def test_fork_copies_containers(self):
        state = ExecutionState(frames=[], memory=Memory(HeapRegistry()))
        state.add_constraint(z3.Int("x") > 0)

        child = state.fork(1)
        child.add_constraint(z3.Int("x") < 5)

        assert len(state.hard) == 1
        assert len(child.hard) == 2
        assert child.state_id == 1
        assert child.memory is not state.memory

    def test_check_is_cached_until_constraints_change(self):
        solver = Solver()
        state = ExecutionState(frames=[], memory=Memory(HeapRegistry()))
        state.add_constraint(z3.Int("x") > 0)

        first = state.check(solver)
        assert state.check(solver) is first
        assert solver.get_stats()["queries"] == 1

        state.add_constraint(z3.Int("x") < 0)
        assert not state.check(solver).is_sat

    def test_terminal_states(self):
        state = ExecutionState(frames=[], memory=Memory(HeapRegistry()))

        assert state.is_terminal
        assert not state.is_exceptional
        assert state.location is None
        state.exception = "null dereference"
        assert state.is_exceptional
