"""Type identifiers and symbolic values for the witness engine.

Class, field and executable identifiers are plain frozen records so they can
be used as dictionary keys everywhere (heap registry, statistics, models).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

import z3


@dataclass(frozen=True)
class ClassId:
    """Identifier of a class, primitive or array type."""
    name: str
    element: ClassId | None = None

    @property
    def is_primitive(self) -> bool:
        return self.name in PRIMITIVE_NAMES

    @property
    def is_array(self) -> bool:
        return self.element is not None

    @property
    def is_reference(self) -> bool:
        return not self.is_primitive

    def __str__(self) -> str:
        return self.name


INT = ClassId("int")
BOOL = ClassId("bool")
VOID = ClassId("void")
OBJECT = ClassId("object")
PRIMITIVE_NAMES = frozenset({"int", "bool", "void"})


def array_of(element: ClassId) -> ClassId:
    """Return the array type with the given element type."""
    return ClassId(f"{element.name}[]", element=element)


@dataclass(frozen=True)
class FieldId:
    """A field declared by a class."""
    declaring_class: ClassId
    name: str
    type: ClassId
    is_static: bool = False

    def __str__(self) -> str:
        return f"{self.declaring_class}.{self.name}"


@dataclass(frozen=True)
class ExecutableId:
    """A constructor, instance method or static method."""
    declaring_class: ClassId
    name: str
    parameters: tuple[ClassId, ...] = ()
    return_type: ClassId = VOID
    is_static: bool = False
    is_public: bool = True

    @property
    def is_constructor(self) -> bool:
        return self.name == "<init>"

    @property
    def signature(self) -> str:
        params = ", ".join(p.name for p in self.parameters)
        return f"{self.declaring_class}.{self.name}({params})"

    def __str__(self) -> str:
        return self.signature


def constructor(declaring_class: ClassId, *parameters: ClassId) -> ExecutableId:
    """Shorthand for a public constructor id."""
    return ExecutableId(declaring_class, "<init>", tuple(parameters))


@dataclass(frozen=True)
class ListWrapper:
    """Concrete hint for list-like wrappers backed by a range-modifiable array.

    The wrapper stores its elements in ``element_holder``, whose
    ``storage`` field is a plain array.
    """
    element_holder: str = "elementData"
    storage: str = "storage"


@dataclass(frozen=True)
class SetWrapper:
    """Concrete hint for set-like wrappers; same storage shape as lists."""
    element_holder: str = "elementData"
    storage: str = "storage"


@dataclass(frozen=True)
class MapWrapper:
    """Concrete hint for map wrappers with parallel key and value holders."""
    keys: str = "keys"
    values: str = "values"
    storage: str = "storage"


Concrete = Union[ListWrapper, SetWrapper, MapWrapper]


def sort_of(class_id: ClassId) -> z3.SortRef:
    """z3 sort used to represent values of the given type.

    References are addresses and therefore integers.
    """
    if class_id.name == "bool":
        return z3.BoolSort()
    return z3.IntSort()


@dataclass(frozen=True, eq=False)
class PrimitiveValue:
    """A symbolic primitive: its type and a z3 expression."""
    type: ClassId
    expr: z3.ExprRef


@dataclass(frozen=True, eq=False)
class ReferenceValue:
    """A symbolic reference: its declared type and address expression."""
    type: ClassId
    addr: z3.ArithRef
    concrete: Concrete | None = field(default=None)

    @property
    def expr(self) -> z3.ArithRef:
        return self.addr


SymbolicValue = Union[PrimitiveValue, ReferenceValue]


def make_value(class_id: ClassId, expr: z3.ExprRef, concrete: Concrete | None = None) -> SymbolicValue:
    """Wrap a z3 expression as a symbolic value of the given type."""
    if class_id.is_primitive:
        return PrimitiveValue(class_id, expr)
    return ReferenceValue(class_id, expr, concrete)


def default_value(class_id: ClassId) -> z3.ExprRef:
    """Zero value of a type: ``0``, ``False`` or the null address."""
    if class_id.name == "bool":
        return z3.BoolVal(False)
    return z3.IntVal(0)


__all__ = [
    "ClassId",
    "FieldId",
    "ExecutableId",
    "INT",
    "BOOL",
    "VOID",
    "OBJECT",
    "array_of",
    "constructor",
    "ListWrapper",
    "SetWrapper",
    "MapWrapper",
    "Concrete",
    "PrimitiveValue",
    "ReferenceValue",
    "SymbolicValue",
    "make_value",
    "default_value",
    "sort_of",
]
