"""Probe methods that replay a synthesis plan, and their post-conditions.

A fully defined plan is turned into a static void method of a synthetic
class. Primitive leaves become the method's parameters, every other unit
becomes straight-line code that allocates, calls or assigns into a local.
Exploring the probe under :class:`ConstraintBasedPostCondition` asks the
solver for parameter values under which the built locals satisfy the
target models.
"""

from __future__ import annotations

import itertools

import z3

from pywitness.constraints.models import (
    ArrayModel,
    AssembleModel,
    ListModel,
    MapModel,
    Model,
    NullModel,
    PrimitiveModel,
    SetModel,
    all_constraints,
    is_constraint_model,
)
from pywitness.constraints.var_builder import VarBuilder
from pywitness.constraints.variables import Constraint, ConstraintVariable, NullConstant, NumericConstant, Parameter
from pywitness.core.memory import NULL_ADDR, MemoryState
from pywitness.core.state import ExecutionState
from pywitness.core.types import INT, VOID, ClassId, ExecutableId
from pywitness.engine.explorer import PostCondition
from pywitness.engine.program import (
    ArraySet,
    Assign,
    IntConst,
    Invoke,
    Local,
    MethodBody,
    New,
    NewArray,
    NullConst,
    Return,
    Stmt,
)
from pywitness.errors import ProbeBuildError
from pywitness.synthesis.storage import StatementsStorage
from pywitness.synthesis.units import (
    ArrayUnit,
    ListUnit,
    MapUnit,
    MethodUnit,
    NullUnit,
    ObjectUnit,
    ReferenceToUnit,
    SetUnit,
    Unit,
)

PROBE_CLASS = ClassId("$Synthesis")


class ProbeMethodBuilder:
    """Builds the probe method for one fully defined plan.

    After :meth:`build`, ``unit_to_parameter`` maps every primitive leaf to
    its parameter index, ``unit_to_local`` maps units to the local holding
    their value and ``root_locals`` lists the local of each root unit.

    Args:
        root_units: One fully defined unit per target model.
        storage: Used to find wrapper constructors and mutators.
    """

    def __init__(self, root_units: tuple[Unit, ...] | list[Unit], storage: StatementsStorage):
        self.root_units = list(root_units)
        self.storage = storage
        self.unit_to_parameter: dict[Unit, int] = {}
        self.unit_to_local: dict[Unit, str] = {}
        self.root_locals: list[str] = []
        self.parameter_types: list[ClassId] = []
        self._statements: list[Stmt] = []
        self._names = itertools.count()

    def build(self, name: str) -> MethodBody:
        for unit in self.root_units:
            self.root_locals.append(self._build(unit))
        self._statements.append(Return())
        executable = ExecutableId(
            PROBE_CLASS, name, tuple(self.parameter_types), VOID, is_static=True, is_public=False
        )
        parameters = tuple(f"p{i}" for i in range(len(self.parameter_types)))
        return MethodBody(executable, parameters, self._statements)

    def _fresh(self) -> str:
        return f"l{next(self._names)}"

    def _build(self, unit: Unit) -> str:
        known = self.unit_to_local.get(unit)
        if known is not None:
            return known
        local = self._emit(unit)
        self.unit_to_local[unit] = local
        return local

    def _emit(self, unit: Unit) -> str:
        if isinstance(unit, ObjectUnit):
            if not unit.class_id.is_primitive:
                raise ProbeBuildError("undefined object leaf", unit)
            index = len(self.parameter_types)
            self.parameter_types.append(unit.class_id)
            self.unit_to_parameter[unit] = index
            return f"p{index}"
        if isinstance(unit, NullUnit):
            local = self._fresh()
            self._statements.append(Assign(local, NullConst()))
            return local
        if isinstance(unit, ReferenceToUnit):
            if unit.index >= len(self.root_locals):
                raise ProbeBuildError(f"reference to root {unit.index} before it is built", unit)
            return self.root_locals[unit.index]
        if isinstance(unit, MethodUnit):
            return self._emit_call(unit)
        if isinstance(unit, ArrayUnit):
            values = [(index, self._build(element)) for index, element in unit.elements]
            local = self._fresh()
            self._statements.append(NewArray(local, unit.class_id.element, IntConst(unit.length)))
            for index, value in values:
                self._statements.append(ArraySet(local, IntConst(index), Local(value)))
            return local
        if isinstance(unit, (ListUnit, SetUnit)):
            values = [self._build(element) for element in unit.elements]
            local = self._wrapper(unit)
            add = self._required(unit, "add", 1)
            for value in values:
                self._statements.append(Invoke(None, add, local, (Local(value),)))
            return local
        if isinstance(unit, MapUnit):
            pairs = [(self._build(key), self._build(value)) for key, value in unit.entries]
            local = self._wrapper(unit)
            put = self._required(unit, "put", 2)
            for key, value in pairs:
                self._statements.append(Invoke(None, put, local, (Local(key), Local(value))))
            return local
        raise ProbeBuildError(f"unsupported unit {unit!r}", unit)

    def _emit_call(self, unit: MethodUnit) -> str:
        args = [self._build(param) for param in unit.params]
        executable = unit.executable
        if unit.is_constructor:
            local = self._fresh()
            self._statements.append(New(local, unit.class_id))
            self._statements.append(Invoke(None, executable, local, tuple(Local(a) for a in args)))
            return local
        if unit.is_mutator:
            receiver, rest = args[0], args[1:]
            self._statements.append(Invoke(None, executable, receiver, tuple(Local(a) for a in rest)))
            return receiver
        local = self._fresh()
        self._statements.append(Invoke(local, executable, None, tuple(Local(a) for a in args)))
        return local

    def _required(self, unit: Unit, name: str, arity: int) -> ExecutableId:
        executable = self.storage.find(unit.class_id, name, arity)
        if executable is None:
            raise ProbeBuildError(f"{unit.class_id} has no public {name}/{arity}", unit)
        return executable

    def _wrapper(self, unit: Unit) -> str:
        ctor = self._required(unit, "<init>", 0)
        local = self._fresh()
        self._statements.append(New(local, unit.class_id))
        self._statements.append(Invoke(None, ctor, local, ()))
        return local

    def assemble(self, parameters: list[Model]) -> list[Model]:
        """Models of the roots given the resolved probe parameters."""
        built: dict[Unit, Model] = {}
        roots: list[Model] = []
        for unit in self.root_units:
            roots.append(self._assemble(unit, parameters, built, roots))
        return roots

    def _assemble(self, unit: Unit, parameters: list[Model], built: dict[Unit, Model], roots: list[Model]) -> Model:
        if unit in built:
            return built[unit]

        def nested(child: Unit) -> Model:
            return self._assemble(child, parameters, built, roots)

        if isinstance(unit, ObjectUnit):
            model = parameters[self.unit_to_parameter[unit]]
        elif isinstance(unit, NullUnit):
            model = NullModel(NullConstant(unit.class_id))
        elif isinstance(unit, ReferenceToUnit):
            model = roots[unit.index]
        elif isinstance(unit, MethodUnit):
            args = [nested(param) for param in unit.params]
            if unit.is_mutator:
                model = AssembleModel(unit.class_id, unit.executable, args[0], args[1:])
            else:
                model = AssembleModel(unit.class_id, unit.executable, None, args)
        elif isinstance(unit, ArrayUnit):
            model = self._collection(ArrayModel, unit, unit.length, [(i, nested(e)) for i, e in unit.elements])
        elif isinstance(unit, (ListUnit, SetUnit)):
            cls = ListModel if isinstance(unit, ListUnit) else SetModel
            elements = [(i, nested(e)) for i, e in enumerate(unit.elements)]
            model = self._collection(cls, unit, len(unit.elements), elements)
        elif isinstance(unit, MapUnit):
            variable = Parameter(self.unit_to_local[unit], unit.class_id)
            model = MapModel(variable, length=_constant(len(unit.entries)))
            model.entries = [(nested(key), nested(value)) for key, value in unit.entries]
        else:
            raise ProbeBuildError(f"unsupported unit {unit!r}", unit)
        built[unit] = model
        return model

    def _collection(self, cls: type, unit: Unit, length: int, elements: list[tuple[int, Model]]) -> Model:
        model = cls(Parameter(self.unit_to_local[unit], unit.class_id), length=_constant(length))
        model.elements = [(_constant(index), element) for index, element in elements]
        return model


def _constant(value: int) -> PrimitiveModel:
    return PrimitiveModel(NumericConstant(value), set(), value)


class ConstraintBasedPostCondition(PostCondition):
    """Requires each root local of a probe to satisfy its target model.

    Every target model variable is bound to the z3 term of the matching
    local, the models' constraints are re-expressed over the probe's
    current heap, and the shape is enforced: locals for null models must be
    null, locals for other reference models must not be.
    """

    def __init__(self, models: list[Model] | tuple[Model, ...], root_locals: list[str], var_builder: VarBuilder):
        self.models = list(models)
        self.root_locals = root_locals
        self.var_builder = var_builder

    def constraints(self, state: ExecutionState) -> list[z3.BoolRef]:
        values = state.root_locals()
        back_mapping: dict[ConstraintVariable, z3.ExprRef] = {}
        result: list[z3.BoolRef] = []
        for model, name in zip(self.models, self.root_locals):
            value = values[name]
            if isinstance(model, NullModel):
                result.append(value.expr == NULL_ADDR)
                continue
            if model.type.is_reference:
                result.append(value.expr != NULL_ADDR)
            if is_constraint_model(model):
                back_mapping.setdefault(model.variable, value.expr)
                _bind_indices(model, back_mapping)
        for model in self.models:
            if not is_constraint_model(model):
                continue
            for constraint in all_constraints(model):
                if _compares_addresses(constraint):
                    continue
                result.append(
                    self.var_builder.constraint_expr(constraint, state.memory, MemoryState.CURRENT, back_mapping)
                )
        return result


def _compares_addresses(constraint: Constraint) -> bool:
    """Address comparisons describe the input heap layout, not the values."""
    return constraint.lhs.type.is_reference or constraint.rhs.type.is_reference


def _bind_indices(model: Model, back_mapping: dict[ConstraintVariable, z3.ExprRef]) -> None:
    """Pin the index variables of array models to their concrete positions."""
    seen: set[int] = set()
    pending = [model]
    while pending:
        current = pending.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))
        if isinstance(current, ArrayModel):
            for index, element in current.elements:
                if index.concrete is not None and index.variable.type == INT:
                    back_mapping.setdefault(index.variable, z3.IntVal(index.concrete))
                pending.append(element)
        elif hasattr(current, "fields"):
            pending.extend(current.fields.values())


__all__ = ["ProbeMethodBuilder", "ConstraintBasedPostCondition", "PROBE_CLASS"]
