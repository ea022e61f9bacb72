"""Constraint variables and atoms.

A constraint variable names a value the way the program reaches it:
an input parameter, a field read through another variable, an array
element, an array length, a constant or an arithmetic combination.
Variables are structural (equal when built the same way) and hashable, so
they serve as keys of alias sets and model tables.

A :class:`Constraint` is one atomic relation between two variables; path
constraints are reduced to these atoms before models are built.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, Union

from pywitness.core.types import BOOL, INT, OBJECT, ClassId, FieldId


@dataclass(frozen=True)
class Parameter:
    """A named symbolic input (method parameter, static value, fresh index)."""

    name: str
    type: ClassId

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class FieldAccess:
    instance: ConstraintVariable
    field: FieldId

    @property
    def type(self) -> ClassId:
        return self.field.type

    def __str__(self) -> str:
        return f"{self.instance}.{self.field.name}"


@dataclass(frozen=True)
class ArrayAccess:
    instance: ConstraintVariable
    index: ConstraintVariable
    type: ClassId

    def __str__(self) -> str:
        return f"{self.instance}[{self.index}]"


@dataclass(frozen=True)
class ArrayLength:
    instance: ConstraintVariable

    @property
    def type(self) -> ClassId:
        return INT

    def __str__(self) -> str:
        return f"{self.instance}.length"


@dataclass(frozen=True)
class NumericConstant:
    value: int

    @property
    def type(self) -> ClassId:
        return INT

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class BoolConstant:
    value: bool

    @property
    def type(self) -> ClassId:
        return BOOL

    def __str__(self) -> str:
        return "true" if self.value else "false"


@dataclass(frozen=True)
class NullConstant:
    type: ClassId = OBJECT

    def __str__(self) -> str:
        return "null"


@dataclass(frozen=True)
class BinaryExpression:
    """Arithmetic over integers: ``+``, ``-`` or ``*``."""

    op: str
    lhs: ConstraintVariable
    rhs: ConstraintVariable

    @property
    def type(self) -> ClassId:
        return INT

    def __str__(self) -> str:
        return f"({self.lhs} {self.op} {self.rhs})"


@dataclass(frozen=True)
class Negation:
    operand: ConstraintVariable

    @property
    def type(self) -> ClassId:
        return INT

    def __str__(self) -> str:
        return f"-{self.operand}"


ConstraintVariable = Union[
    Parameter,
    FieldAccess,
    ArrayAccess,
    ArrayLength,
    NumericConstant,
    BoolConstant,
    NullConstant,
    BinaryExpression,
    Negation,
]


def children(variable: ConstraintVariable) -> tuple[ConstraintVariable, ...]:
    """Direct sub-variables of a variable."""
    if isinstance(variable, FieldAccess):
        return (variable.instance,)
    if isinstance(variable, ArrayAccess):
        return (variable.instance, variable.index)
    if isinstance(variable, ArrayLength):
        return (variable.instance,)
    if isinstance(variable, BinaryExpression):
        return (variable.lhs, variable.rhs)
    if isinstance(variable, Negation):
        return (variable.operand,)
    return ()


def walk(variable: ConstraintVariable) -> Iterator[ConstraintVariable]:
    """Yield the variable and every nested sub-variable, outermost first."""
    yield variable
    for child in children(variable):
        yield from walk(child)


def substitute(
    variable: ConstraintVariable,
    mapping: dict[ConstraintVariable, ConstraintVariable],
) -> ConstraintVariable:
    """Replace sub-variables found in ``mapping``, outermost match wins."""
    replacement = mapping.get(variable)
    if replacement is not None:
        return replacement
    if isinstance(variable, FieldAccess):
        return FieldAccess(substitute(variable.instance, mapping), variable.field)
    if isinstance(variable, ArrayAccess):
        return ArrayAccess(
            substitute(variable.instance, mapping),
            substitute(variable.index, mapping),
            variable.type,
        )
    if isinstance(variable, ArrayLength):
        return ArrayLength(substitute(variable.instance, mapping))
    if isinstance(variable, BinaryExpression):
        return BinaryExpression(
            variable.op, substitute(variable.lhs, mapping), substitute(variable.rhs, mapping)
        )
    if isinstance(variable, Negation):
        return Negation(substitute(variable.operand, mapping))
    return variable


class Relation(Enum):
    EQ = "=="
    NE = "!="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="

    def negate(self) -> Relation:
        return _NEGATIONS[self]


_NEGATIONS = {
    Relation.EQ: Relation.NE,
    Relation.NE: Relation.EQ,
    Relation.LT: Relation.GE,
    Relation.LE: Relation.GT,
    Relation.GT: Relation.LE,
    Relation.GE: Relation.LT,
}


@dataclass(frozen=True)
class Constraint:
    """Atomic relation ``lhs <relation> rhs``."""

    relation: Relation
    lhs: ConstraintVariable
    rhs: ConstraintVariable

    def variables(self) -> Iterator[ConstraintVariable]:
        yield from walk(self.lhs)
        yield from walk(self.rhs)

    def __contains__(self, variable: object) -> bool:
        return any(v == variable for v in self.variables())

    def mentions(self, predicate: Callable[[ConstraintVariable], bool]) -> bool:
        return any(predicate(v) for v in self.variables())

    def negate(self) -> Constraint:
        return Constraint(self.relation.negate(), self.lhs, self.rhs)

    def substitute(self, mapping: dict[ConstraintVariable, ConstraintVariable]) -> Constraint:
        return Constraint(
            self.relation, substitute(self.lhs, mapping), substitute(self.rhs, mapping)
        )

    def __str__(self) -> str:
        return f"{self.lhs} {self.relation.value} {self.rhs}"


def eq(lhs: ConstraintVariable, rhs: ConstraintVariable) -> Constraint:
    return Constraint(Relation.EQ, lhs, rhs)


def ge(lhs: ConstraintVariable, rhs: ConstraintVariable) -> Constraint:
    return Constraint(Relation.GE, lhs, rhs)


def lt(lhs: ConstraintVariable, rhs: ConstraintVariable) -> Constraint:
    return Constraint(Relation.LT, lhs, rhs)


def flatten(
    constraints: set[Constraint] | frozenset[Constraint] | list[Constraint],
    predicate: Callable[[ConstraintVariable], bool],
) -> set[ConstraintVariable]:
    """All (nested) variables of ``constraints`` satisfying ``predicate``."""
    found: set[ConstraintVariable] = set()
    for constraint in constraints:
        for variable in constraint.variables():
            if predicate(variable):
                found.add(variable)
    return found


__all__ = [
    "Parameter",
    "FieldAccess",
    "ArrayAccess",
    "ArrayLength",
    "NumericConstant",
    "BoolConstant",
    "NullConstant",
    "BinaryExpression",
    "Negation",
    "ConstraintVariable",
    "Relation",
    "Constraint",
    "children",
    "walk",
    "substitute",
    "flatten",
    "eq",
    "ge",
    "lt",
]
