"""Value models reconstructed from solver assignments.

A model describes one value together with the atomic constraints that
mention it. Reference-typed models carry the concrete address they were
resolved at; a second encounter of the same address within one resolution
pass produces a :class:`ReferenceToModel` pointing back into the pass's
arena instead of a copy, so cyclic object graphs stay finite.
Models compare by identity: two resolutions of equal-looking values are
still distinct models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, Union

from pywitness.core.types import ClassId, ExecutableId, FieldId
from pywitness.constraints.variables import Constraint, ConstraintVariable


@dataclass(eq=False)
class NullModel:
    variable: ConstraintVariable
    constraints: set[Constraint] = field(default_factory=set)

    @property
    def type(self) -> ClassId:
        return self.variable.type

    def __repr__(self) -> str:
        return f"Null({self.variable})"


@dataclass(eq=False)
class PrimitiveModel:
    variable: ConstraintVariable
    constraints: set[Constraint] = field(default_factory=set)
    concrete: Any = None

    @property
    def type(self) -> ClassId:
        return self.variable.type

    def __repr__(self) -> str:
        return f"Primitive({self.variable}={self.concrete})"


@dataclass(eq=False)
class ObjectModel:
    """Object resolved field by field from the constraints that mention it."""
    variable: ConstraintVariable
    constraints: set[Constraint] = field(default_factory=set)
    address: int = 0
    fields: dict[FieldId, Model] = field(default_factory=dict)

    @property
    def type(self) -> ClassId:
        return self.variable.type

    def __repr__(self) -> str:
        return f"Object({self.variable}@{self.address}, fields={list(f.name for f in self.fields)})"


@dataclass(eq=False)
class ReferenceToModel:
    """Back-reference to the model resolved at ``address`` in the same pass."""
    variable: ConstraintVariable
    constraints: set[Constraint] = field(default_factory=set)
    address: int = 0

    @property
    def type(self) -> ClassId:
        return self.variable.type

    def __repr__(self) -> str:
        return f"ReferenceTo({self.variable}->@{self.address})"


@dataclass(eq=False)
class ArrayModel:
    """Array with a length model and a sparse index-to-element list."""
    variable: ConstraintVariable
    constraints: set[Constraint] = field(default_factory=set)
    address: int = 0
    length: PrimitiveModel | None = None
    elements: list[tuple[PrimitiveModel, Model]] = field(default_factory=list)

    @property
    def type(self) -> ClassId:
        return self.variable.type

    def indexed(self) -> dict[int, Model]:
        """Elements keyed by their concrete index."""
        return {index.concrete: element for index, element in self.elements}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.variable}@{self.address}, size={len(self.elements)})"


@dataclass(eq=False, repr=False)
class ListModel(ArrayModel):
    """List wrapper: elements are dense, gaps are filled with nulls."""


@dataclass(eq=False, repr=False)
class SetModel(ArrayModel):
    """Set wrapper: only the observed elements are kept."""


@dataclass(eq=False)
class MapModel:
    """Map wrapper: ``length`` entries of key and value models."""
    variable: ConstraintVariable
    constraints: set[Constraint] = field(default_factory=set)
    address: int = 0
    length: PrimitiveModel | None = None
    entries: list[tuple[Model, Model]] = field(default_factory=list)

    @property
    def type(self) -> ClassId:
        return self.variable.type

    def __repr__(self) -> str:
        return f"Map({self.variable}@{self.address}, size={len(self.entries)})"


@dataclass(eq=False)
class AssembleModel:
    """Value built by calling ``executable``; produced by synthesis.

    For constructors and instance methods ``receiver`` is the object the
    call initializes or mutates; static factories have no receiver.
    """
    class_id: ClassId
    executable: ExecutableId
    receiver: Model | None = None
    args: list[Model] = field(default_factory=list)

    @property
    def type(self) -> ClassId:
        return self.class_id

    def calls(self) -> Iterator[AssembleModel]:
        """Calls in execution order, receivers and arguments first."""
        seen: set[int] = set()
        def visit(model: Model) -> Iterator[AssembleModel]:
            if not isinstance(model, AssembleModel) or id(model) in seen:
                return
            seen.add(id(model))
            if model.receiver is not None:
                yield from visit(model.receiver)
            for arg in model.args:
                yield from visit(arg)
            yield model
        yield from visit(self)

    def __repr__(self) -> str:
        return f"Assemble({self.executable.signature})"


Model = Union[
    NullModel,
    PrimitiveModel,
    ObjectModel,
    ReferenceToModel,
    ArrayModel,
    ListModel,
    SetModel,
    MapModel,
    AssembleModel,
]


ConstraintModel = (PrimitiveModel, ObjectModel, ReferenceToModel, ArrayModel, MapModel)


def is_constraint_model(model: object) -> bool:
    """True for models that carry a variable with constraints over it."""
    return isinstance(model, ConstraintModel)


def all_constraints(model: Model) -> set[Constraint]:
    """Constraints of a model and of every model nested in it."""
    found: set[Constraint] = set()
    seen: set[int] = set()
    def visit(current: Model | None) -> None:
        if current is None or id(current) in seen:
            return
        seen.add(id(current))
        found.update(getattr(current, "constraints", ()))
        if isinstance(current, ObjectModel):
            for nested in current.fields.values():
                visit(nested)
        elif isinstance(current, ArrayModel):
            visit(current.length)
            for index, element in current.elements:
                visit(index)
                visit(element)
        elif isinstance(current, MapModel):
            visit(current.length)
            for key, value in current.entries:
                visit(key)
                visit(value)
    visit(model)
    return found


@dataclass
class ResolvedModels:
    """Result of one resolution pass."""
    parameters: list[Model]
    statics: dict[FieldId, Model] = field(default_factory=dict)
    arena: dict[int, Model] = field(default_factory=dict)

    def deref(self, model: Model) -> Model:
        """Follow a :class:`ReferenceToModel` to the model it points at."""
        if isinstance(model, ReferenceToModel):
            return self.arena.get(model.address, model)
        return model


@dataclass
class ConstrainedExecution:
    """Models of the same values before and after an execution."""
    before: ResolvedModels
    after: ResolvedModels


__all__ = [
    "NullModel",
    "PrimitiveModel",
    "ObjectModel",
    "ReferenceToModel",
    "ArrayModel",
    "ListModel",
    "SetModel",
    "MapModel",
    "AssembleModel",
    "Model",
    "is_constraint_model",
    "all_constraints",
    "ResolvedModels",
    "ConstrainedExecution",
]
