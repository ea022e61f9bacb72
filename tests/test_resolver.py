"""
Tests for constraint-to-model resolution.

Executions come from exploring the sample programs; each test picks the
execution it is about by its return value or by its input models.
"""

from __future__ import annotations

import z3
from hypothesis import given, settings
from hypothesis import strategies as st

from pywitness.api import explore, resolve_both_snapshots
from pywitness.constraints.models import (
    ListModel,
    MapModel,
    NullModel,
    ObjectModel,
    PrimitiveModel,
    ReferenceToModel,
    SetModel,
)
from pywitness.constraints.var_builder import VarBuilder
from pywitness.constraints.variables import ArrayAccess, ArrayLength, FieldAccess, Parameter
from pywitness.core.memory import HeapRegistry, Memory, MemoryState
from pywitness.core.types import INT, array_of
from pywitness.testing.programs import (
    CHECK,
    CONTAINS_SELF,
    GUARDED,
    HAS_DATA,
    INCREMENT,
    LIMIT,
    LIST_DATA,
    LIST_SPARSE,
    MAP_FIRST,
    RAISE_LIMIT,
    SAME,
    SET_SPARSE,
    SET_THIRD,
    SET_VALUE,
    THIRD,
    VALUE,
)
from pywitness.testing.strategies import constraints_over, parameters


def returned(result):
    value = result.state.return_value
    return None if value is None else result.holder.value(value.expr)


def execution(program, executable, config, predicate):
    for result in explore(program, executable, config):
        if predicate(result):
            return result, result.resolve()
    raise AssertionError(f"no matching execution of {executable.signature}")


def normal_returning(value):
    return lambda r: not r.exceptional and returned(r) == value


class TestObjects:
    def test_field_constraints_become_field_models(self, guarded, config):
        _, resolved = execution(guarded, CHECK, config, normal_returning(2))
        g, x = resolved.before.parameters

        assert isinstance(g, ObjectModel)
        assert g.address < 0
        assert g.fields[VALUE].concrete == 5
        assert isinstance(x, PrimitiveModel)
        assert x.concrete > 10
        assert x.constraints

    def test_null_inputs_resolve_to_null_models(self, guarded, config):
        _, resolved = execution(guarded, CHECK, config, lambda r: r.exceptional)

        assert isinstance(resolved.before.parameters[0], NullModel)

    def test_after_snapshot_sees_writes(self, guarded, config):
        def incremented(result):
            if result.exceptional:
                return False
            g = result.resolve().before.parameters[0]
            return g.fields[VALUE].concrete > 0

        _, resolved = execution(guarded, INCREMENT, config, incremented)
        before = resolved.before.parameters[0].fields[VALUE].concrete
        after = resolved.after.parameters[0].fields[VALUE].concrete

        assert after == before + 1

    def test_unconstrained_writes_show_up_after(self, guarded, config):
        _, resolved = execution(guarded, SET_VALUE, config, lambda r: not r.exceptional)
        before, v = resolved.before.parameters
        after = resolved.after.parameters[0]

        assert VALUE not in before.fields
        assert VALUE in after.fields
        assert after.fields[VALUE].concrete == v.concrete

    def test_aliased_inputs_become_back_references(self, guarded, config):
        _, resolved = execution(guarded, SAME, config, normal_returning(1))
        a, b = resolved.before.parameters

        assert isinstance(a, ObjectModel)
        assert isinstance(b, ReferenceToModel)
        assert b.address == a.address
        assert resolved.before.deref(b) is a

    def test_distinct_inputs_stay_distinct(self, guarded, config):
        _, resolved = execution(guarded, SAME, config, normal_returning(0))
        a, b = resolved.before.parameters

        assert not isinstance(b, ReferenceToModel)

    def test_statics_are_resolved_in_both_snapshots(self, guarded, config):
        result, resolved = execution(guarded, RAISE_LIMIT, config, lambda r: not r.exceptional)
        delta = resolved.before.parameters[0].concrete

        assert delta >= 0
        before = resolved.before.statics[LIMIT].concrete
        assert resolved.after.statics[LIMIT].concrete == before + delta

    def test_statics_can_be_left_out(self, guarded, config):
        result, _ = execution(guarded, RAISE_LIMIT, config, lambda r: not r.exceptional)

        resolved = resolve_both_snapshots(result, statics=[])

        assert resolved.before.statics == {}
        assert len(resolved.before.parameters) == 1


class TestWrappers:
    def test_list_elements_are_dense(self, wrappers, config):
        _, resolved = execution(wrappers, THIRD, config, normal_returning(1))
        model = resolved.before.parameters[0]

        assert isinstance(model, ListModel)
        assert len(model.elements) == model.length.concrete
        elements = model.indexed()
        assert elements[2].concrete > 3
        assert all(isinstance(e, NullModel) for i, e in elements.items() if i != 2)

    def test_set_keeps_only_observed_elements(self, wrappers, config):
        _, resolved = execution(wrappers, SET_THIRD, config, normal_returning(1))
        model = resolved.before.parameters[0]

        assert isinstance(model, SetModel)
        assert list(model.indexed()) == [2]
        assert model.indexed()[2].concrete > 3

    def test_list_gaps_between_observed_indices_are_null(self, wrappers, config):
        _, resolved = execution(wrappers, LIST_SPARSE, config, normal_returning(1))
        model = resolved.before.parameters[0]

        assert isinstance(model, ListModel)
        assert len(model.elements) == model.length.concrete >= 4
        elements = model.indexed()
        assert sorted(elements) == list(range(model.length.concrete))
        assert elements[1].concrete == 5
        assert elements[3].concrete == 7
        assert all(isinstance(e, NullModel) for i, e in elements.items() if i not in (1, 3))

    def test_set_keeps_exactly_the_observed_indices(self, wrappers, config):
        _, resolved = execution(wrappers, SET_SPARSE, config, normal_returning(1))
        model = resolved.before.parameters[0]

        assert isinstance(model, SetModel)
        assert {i: e.concrete for i, e in model.indexed().items()} == {1: 5, 3: 7}

    def test_self_containing_list_refers_back_to_itself(self, wrappers, config):
        _, resolved = execution(wrappers, CONTAINS_SELF, config, normal_returning(1))
        model = resolved.before.parameters[0]

        assert isinstance(model, ListModel)
        first = model.indexed()[0]
        assert isinstance(first, ReferenceToModel)
        assert first.address == model.address
        assert resolved.before.deref(first) is model
        assert resolved.after.deref(resolved.after.parameters[0].indexed()[0]) is resolved.after.parameters[0]

    def test_map_entries_pair_keys_and_values(self, wrappers, config):
        def key_found(result):
            if result.exceptional:
                return False
            model = result.resolve().before.parameters[0]
            return isinstance(model, MapModel) and model.entries and model.entries[0][0].concrete == 7

        _, resolved = execution(wrappers, MAP_FIRST, config, key_found)
        model = resolved.before.parameters[0]

        assert len(model.entries) == model.length.concrete

    def test_unobserved_storage_degrades_to_object(self, wrappers, config):
        _, resolved = execution(wrappers, HAS_DATA, config, normal_returning(0))
        model = resolved.before.parameters[0]

        assert isinstance(model, ObjectModel)
        assert isinstance(model.fields[LIST_DATA], NullModel)


class TestVarBuilder:
    def test_heap_reads_become_variables(self):
        registry = HeapRegistry()
        memory = Memory(registry)
        builder = VarBuilder(registry)
        g = registry.fresh("g", GUARDED)
        values = registry.fresh("values", array_of(INT))

        field = builder.variable(memory.read_field(g, VALUE))
        element = builder.variable(memory.read_element(values, z3.IntVal(1), INT))
        length = builder.variable(memory.read_length(values))

        assert field == FieldAccess(Parameter("g", GUARDED), VALUE)
        assert isinstance(element, ArrayAccess)
        assert element.instance == Parameter("values", array_of(INT))
        assert length == ArrayLength(Parameter("values", array_of(INT)))

    def test_variables_read_back_from_either_snapshot(self):
        registry = HeapRegistry()
        memory = Memory(registry)
        builder = VarBuilder(registry)
        g = registry.fresh("g", GUARDED)
        memory.write_field(g, VALUE, z3.IntVal(3))
        variable = FieldAccess(Parameter("g", GUARDED), VALUE)

        current = builder.to_expr(variable, memory, MemoryState.CURRENT)
        initial = builder.to_expr(variable, memory, MemoryState.INITIAL)

        assert z3.simplify(current).eq(z3.IntVal(3))
        assert initial.eq(z3.Select(registry.field_array(VALUE), g))

    @settings(max_examples=30, deadline=None)
    @given(st.lists(parameters(), min_size=1, max_size=4, unique_by=lambda p: p.name).flatmap(constraints_over))
    def test_atoms_survive_a_trip_through_z3(self, constraint):
        registry = HeapRegistry()
        memory = Memory(registry)
        builder = VarBuilder(registry)

        atom = builder.constraint_expr(constraint, memory, MemoryState.CURRENT)
        rebuilt = builder.constraint(atom)

        assert rebuilt == constraint
