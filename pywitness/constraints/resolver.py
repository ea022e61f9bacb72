"""Constraint-to-model resolution.

Given a satisfying solver answer for a path, :class:`ConstraintResolver`
rebuilds a model of every requested value:

- aliasing is recovered by grouping all address-valued subterms of the path
  constraints by the concrete address the solver gave them;
- each value keeps the atomic constraints that mention it or any alias
  (its *local atoms*), rewritten onto one canonical variable;
- objects, arrays and collection wrappers are unpacked recursively, and an
  address seen twice in one pass yields a back-reference.

Each pass reads the heap through one snapshot (``INITIAL`` or ``CURRENT``),
so resolving the same parameters twice gives their state before and after
the execution.
"""

from __future__ import annotations

import itertools
from contextlib import contextmanager
from typing import Iterator

import z3

from pywitness.constraints.models import (
    ArrayModel,
    ConstrainedExecution,
    ListModel,
    MapModel,
    Model,
    NullModel,
    ObjectModel,
    PrimitiveModel,
    ReferenceToModel,
    ResolvedModels,
    SetModel,
)
from pywitness.constraints.var_builder import VarBuilder, collect_atoms, subterm_ids, subterms
from pywitness.constraints.variables import (
    ArrayAccess,
    ArrayLength,
    Constraint,
    ConstraintVariable,
    FieldAccess,
    NullConstant,
    NumericConstant,
    Parameter,
    eq,
    flatten,
    ge,
    lt,
)
from pywitness.core.memory import NULL_ADDR, Memory, MemoryState
from pywitness.core.solver import SolverStatusSAT
from pywitness.core.types import (
    INT,
    OBJECT,
    Concrete,
    FieldId,
    ListWrapper,
    MapWrapper,
    SetWrapper,
    SymbolicValue,
)
from pywitness.logging import get_logger

AddressTable = dict[int, dict[int, z3.ExprRef]]


class ConstraintResolver:
    """Resolves symbolic values of one state into models.

    Args:
        memory: Heap of the state the values belong to.
        holder: Satisfying solver answer for the state's path constraints.
        use_soft_constraints: Also read atoms and aliases from the soft
            constraints the answer satisfied.
        var_builder: Shared builder; a fresh one over ``memory.registry`` by
            default.
    """

    def __init__(
        self,
        memory: Memory,
        holder: SolverStatusSAT,
        use_soft_constraints: bool = False,
        var_builder: VarBuilder | None = None,
    ):
        self.memory = memory
        self.holder = holder
        self.use_soft_constraints = use_soft_constraints
        self.var_builder = var_builder or VarBuilder(memory.registry)
        self.state = MemoryState.CURRENT
        self._resolved: dict[int, Model] = {}
        self._back_mapping: dict[ConstraintVariable, z3.ExprRef] = {}
        self._addrs: AddressTable = {}
        self._atom_table: list[tuple[set[int], Constraint]] | None = None
        self._fresh = itertools.count()

    def _path_constraints(self) -> list[z3.BoolRef]:
        constraints = list(self.holder.hard)
        if self.use_soft_constraints:
            constraints.extend(self.holder.soft)
        return constraints

    def _atoms(self) -> list[tuple[set[int], Constraint]]:
        if self._atom_table is None:
            table = []
            seen: set[int] = set()
            for constraint in self._path_constraints():
                for atom in collect_atoms(constraint):
                    if atom.get_id() in seen:
                        continue
                    seen.add(atom.get_id())
                    converted = self.var_builder.constraint(atom)
                    if converted is not None:
                        table.append((subterm_ids(atom), converted))
            self._atom_table = table
        return self._atom_table

    def collect_addresses(self) -> AddressTable:
        """Group address-valued subterms of the path by concrete address."""
        addrs: AddressTable = {}
        for constraint in self._path_constraints():
            for term in subterms(constraint):
                if not z3.is_int(term) or z3.is_int_value(term):
                    continue
                variable = self.var_builder.variable(term)
                if variable is None or variable.type.is_primitive:
                    continue
                if not isinstance(variable, (Parameter, FieldAccess, ArrayAccess)):
                    continue
                addr = self.holder.concrete_addr(term)
                addrs.setdefault(addr, {})[term.get_id()] = term
        return addrs

    def resolve_both_snapshots(
        self,
        parameters: list[SymbolicValue],
        statics: list[FieldId] | None = None,
    ) -> ConstrainedExecution:
        """Resolve ``parameters`` (and statics) before and after execution."""
        if statics is None:
            statics = self.memory.static_fields()
        addrs = self.collect_addresses()
        with get_logger().timer("resolve both snapshots", category="resolver"):
            before = self._resolve_pass(parameters, statics, addrs, MemoryState.INITIAL)
            after = self._resolve_pass(parameters, statics, addrs, MemoryState.CURRENT)
        return ConstrainedExecution(before, after)

    def resolve_models(self, parameters: list[SymbolicValue]) -> ConstrainedExecution:
        return self.resolve_both_snapshots(parameters)

    def resolve(
        self,
        values: list[SymbolicValue],
        addresses: AddressTable | None = None,
        state: MemoryState = MemoryState.CURRENT,
    ) -> ResolvedModels:
        """Resolve ``values`` against a single snapshot."""
        if addresses is None:
            addresses = self.collect_addresses()
        return self._resolve_pass(values, [], addresses, state)

    def resolve_model(self, value: SymbolicValue, state: MemoryState = MemoryState.CURRENT) -> Model:
        return self.resolve([value], state=state).parameters[0]

    def _resolve_pass(
        self,
        parameters: list[SymbolicValue],
        statics: list[FieldId],
        addrs: AddressTable,
        state: MemoryState,
    ) -> ResolvedModels:
        with self._memory_state(state, addrs):
            models = [self._resolve_value(value) for value in parameters]
            static_models: dict[FieldId, Model] = {}
            for field in statics:
                value_state = MemoryState.STATIC_INITIAL if state is MemoryState.INITIAL else state
                value = self.memory.static_value(field, value_state)
                with self._static_memory_state(value_state):
                    static_models[field] = self._resolve_value(value)
            arena = dict(self._resolved)
        get_logger().trace(
            f"{state.name}: {len(models)} parameters, {len(static_models)} statics, "
            f"{len(arena)} addresses",
            category="resolver",
        )
        return ResolvedModels(models, static_models, arena)

    @contextmanager
    def _memory_state(self, state: MemoryState, addrs: AddressTable) -> Iterator[None]:
        self.state = state
        self._addrs = addrs
        self._resolved.clear()
        self._back_mapping.clear()
        try:
            yield
        finally:
            self._resolved.clear()
            self._back_mapping.clear()
            self.state = MemoryState.CURRENT

    @contextmanager
    def _static_memory_state(self, state: MemoryState) -> Iterator[None]:
        previous = self.state
        self.state = state
        try:
            yield
        finally:
            self.state = previous

    def _expr(self, variable: ConstraintVariable) -> z3.ExprRef:
        return self.var_builder.to_expr(variable, self.memory, self.state, self._back_mapping)

    def _addr(self, variable: ConstraintVariable) -> int:
        return self.holder.concrete_addr(self._expr(variable))

    def _local_atoms(self, expr_ids: set[int]) -> set[Constraint]:
        return {constraint for ids, constraint in self._atoms() if ids & expr_ids}

    def _alias_terms(self, addr: int) -> dict[int, z3.ExprRef]:
        if addr == NULL_ADDR:
            return {}
        return self._addrs.get(addr, {})

    def _alias_variables(self, addr: int) -> set[ConstraintVariable]:
        found = set()
        for term in self._alias_terms(addr).values():
            variable = self.var_builder.variable(term)
            if variable is not None:
                found.add(variable)
        return found

    def _resolve_value(self, value: SymbolicValue) -> Model:
        variable = self.var_builder.variable(value.expr)
        if variable is None or isinstance(variable, NumericConstant):
            variable = Parameter(f"$value{next(self._fresh)}", value.type)
            self._back_mapping[variable] = value.expr
        if value.type.is_primitive:
            atoms = self._local_atoms(subterm_ids(value.expr))
            return self._build_model(variable, atoms, set())
        addr = self._addr(variable)
        ids = set(self._alias_terms(addr))
        if not z3.is_int_value(value.expr):
            ids.add(value.expr.get_id())
        atoms = self._local_atoms(ids)
        return self._build_model(variable, atoms, self._alias_variables(addr), value.concrete)

    def _build_model(
        self,
        variable: ConstraintVariable,
        atoms: set[Constraint],
        aliases: set[ConstraintVariable],
        concrete: Concrete | None = None,
    ) -> Model:
        if variable.type.is_primitive:
            return self._build_primitive_model(variable, atoms, aliases)
        addr = self._addr(variable)
        if addr == NULL_ADDR:
            return NullModel(variable)
        if addr in self._resolved:
            return ReferenceToModel(variable, self._ref_constraints(variable, atoms, aliases), addr)
        if variable.type.is_array:
            model = ArrayModel(variable, self._ref_constraints(variable, atoms, aliases), addr)
            self._resolved[addr] = model
            self._fill_array(model, variable, atoms, aliases)
            return model
        if concrete is None:
            concrete = self.memory.registry.concrete_for(variable.type)
        if isinstance(concrete, (ListWrapper, SetWrapper)):
            return self._build_list_model(variable, atoms, aliases, addr, concrete)
        if isinstance(concrete, MapWrapper):
            return self._build_map_model(variable, atoms, aliases, addr, concrete)
        return self._build_object_model(variable, atoms, aliases, addr)

    def _rewrite(
        self,
        variable: ConstraintVariable,
        atoms: set[Constraint],
        aliases: set[ConstraintVariable],
    ) -> set[Constraint]:
        all_aliases = aliases | {variable}
        mapping = {alias: variable for alias in aliases if alias != variable}
        return {
            constraint.substitute(mapping) if mapping else constraint
            for constraint in atoms
            if constraint.mentions(lambda v: v in all_aliases)
        }

    _ref_constraints = _rewrite

    def _build_primitive_model(
        self,
        variable: ConstraintVariable,
        atoms: set[Constraint],
        aliases: set[ConstraintVariable],
    ) -> PrimitiveModel:
        constraints = self._rewrite(variable, atoms, aliases)
        return PrimitiveModel(variable, constraints, self.holder.value(self._expr(variable)))

    def _reference_context(
        self, variable: ConstraintVariable, atoms: set[Constraint], aliases: set[ConstraintVariable]
    ) -> tuple[set[Constraint], set[ConstraintVariable]]:
        """Widen atoms and aliases of a nested reference by its address class."""
        if variable.type.is_primitive:
            return atoms, aliases
        addr = self._addr(variable)
        terms = self._alias_terms(addr)
        if not terms:
            return atoms, aliases
        return atoms | self._local_atoms(set(terms)), aliases | self._alias_variables(addr)

    def _build_object_model(
        self,
        variable: ConstraintVariable,
        atoms: set[Constraint],
        aliases: set[ConstraintVariable],
        addr: int,
    ) -> ObjectModel:
        model = ObjectModel(variable, self._ref_constraints(variable, atoms, aliases), addr)
        self._resolved[addr] = model
        all_aliases = aliases | {variable}
        accesses = flatten(
            atoms, lambda v: isinstance(v, FieldAccess) and v.instance in all_aliases
        )
        by_field: dict[FieldId, set[ConstraintVariable]] = {}
        for access in accesses:
            by_field.setdefault(access.field, set()).add(access)
        if self.state is MemoryState.CURRENT:
            for field in self._written_fields(addr):
                by_field.setdefault(field, set())
        for field in sorted(by_field, key=str):
            field_variable = FieldAccess(variable, field)
            field_atoms, field_aliases = self._reference_context(
                field_variable, atoms, by_field[field]
            )
            model.fields[field] = self._build_model(field_variable, field_atoms, field_aliases)
        return model

    def _written_fields(self, addr: int) -> list[FieldId]:
        """Fields the path stored to at ``addr``, constrained or not."""
        return [
            field
            for field, targets in self.memory.written_fields().items()
            if any(self.holder.concrete_addr(target) == addr for target in targets)
        ]

    def _fill_array(
        self,
        model: ArrayModel,
        variable: ConstraintVariable,
        atoms: set[Constraint],
        aliases: set[ConstraintVariable],
    ) -> None:
        all_aliases = aliases | {variable}
        lengths = flatten(
            atoms, lambda v: isinstance(v, ArrayLength) and v.instance in all_aliases
        )
        length_variable = ArrayLength(variable)
        model.length = self._build_primitive_model(length_variable, atoms, lengths)
        length = max(0, model.length.concrete)
        accesses = flatten(
            atoms, lambda v: isinstance(v, ArrayAccess) and v.instance in all_aliases
        )
        groups: dict[int, set[ConstraintVariable]] = {}
        for access in accesses:
            position = self.holder.value(self._expr(access.index))
            if 0 <= position < length:
                groups.setdefault(position, set()).add(access)
        element_type = variable.type.element or OBJECT
        for position in sorted(groups):
            found = groups[position]
            index_variable = Parameter(f"{variable}$index{position}", INT)
            self._back_mapping[index_variable] = z3.IntVal(position)
            indices = {access.index for access in found}
            index_model = PrimitiveModel(
                index_variable, {eq(index_variable, index) for index in indices}, position
            )
            element_variable = ArrayAccess(variable, index_variable, element_type)
            element_atoms, element_aliases = self._reference_context(
                element_variable, atoms, set(found)
            )
            element = self._build_model(element_variable, element_atoms, element_aliases)
            element.constraints |= {eq(index, index_variable) for index in indices}
            element.constraints |= {ge(index_variable, NumericConstant(0)), lt(index_variable, length_variable)}
            model.elements.append((index_model, element))

    def _holder_field(
        self, atoms: set[Constraint], instances: set[ConstraintVariable], name: str
    ) -> FieldId | None:
        for access in flatten(
            atoms,
            lambda v: isinstance(v, FieldAccess) and v.instance in instances and v.field.name == name,
        ):
            return access.field
        return None

    def _storage_array(
        self,
        variable: ConstraintVariable,
        atoms: set[Constraint],
        aliases: set[ConstraintVariable],
        holder_name: str,
        storage_name: str,
    ) -> ArrayModel | None:
        all_aliases = aliases | {variable}
        holder = self._holder_field(atoms, all_aliases, holder_name)
        if holder is None:
            return None
        holders = {FieldAccess(alias, holder) for alias in all_aliases}
        storage = self._holder_field(atoms, holders, storage_name)
        if storage is None:
            return None
        storage_variable = FieldAccess(FieldAccess(variable, holder), storage)
        storage_aliases = {FieldAccess(h, storage) for h in holders}
        addr = self._addr(storage_variable)
        known = self._resolved.get(addr)
        if isinstance(known, ArrayModel):
            return known
        array = ArrayModel(storage_variable, set(), addr)
        if addr != NULL_ADDR:
            self._resolved[addr] = array
        self._fill_array(array, storage_variable, atoms, storage_aliases)
        return array

    def _build_list_model(
        self,
        variable: ConstraintVariable,
        atoms: set[Constraint],
        aliases: set[ConstraintVariable],
        addr: int,
        concrete: ListWrapper | SetWrapper,
    ) -> Model:
        model_type = ListModel if isinstance(concrete, ListWrapper) else SetModel
        model = model_type(variable, self._ref_constraints(variable, atoms, aliases), addr)
        self._resolved[addr] = model
        array = self._storage_array(
            variable, atoms, aliases, concrete.element_holder, concrete.storage
        )
        if array is None:
            get_logger().debug(f"{variable}: wrapper storage not observed", category="resolver")
            return self._build_object_model(variable, atoms, aliases, addr)
        model.length = array.length
        if isinstance(concrete, SetWrapper):
            model.elements = list(array.elements)
            return model
        indexed = {index.concrete: (index, element) for index, element in array.elements}
        for position in range(array.length.concrete):
            if position in indexed:
                model.elements.append(indexed[position])
            else:
                model.elements.append(
                    (
                        PrimitiveModel(NumericConstant(position), set(), position),
                        NullModel(NullConstant()),
                    )
                )
        return model

    def _build_map_model(
        self,
        variable: ConstraintVariable,
        atoms: set[Constraint],
        aliases: set[ConstraintVariable],
        addr: int,
        concrete: MapWrapper,
    ) -> Model:
        model = MapModel(variable, self._ref_constraints(variable, atoms, aliases), addr)
        self._resolved[addr] = model
        keys = self._storage_array(variable, atoms, aliases, concrete.keys, concrete.storage)
        if keys is None:
            get_logger().debug(f"{variable}: map keys not observed", category="resolver")
            return self._build_object_model(variable, atoms, aliases, addr)
        values = self._storage_array(variable, atoms, aliases, concrete.values, concrete.storage)
        model.length = keys.length
        key_at = keys.indexed()
        value_at = values.indexed() if values is not None else {}
        for position in range(keys.length.concrete):
            key = key_at.get(position) or NullModel(NullConstant())
            value = value_at.get(position) or NullModel(NullConstant())
            model.entries.append((key, value))
        return model


__all__ = ["ConstraintResolver", "AddressTable"]
