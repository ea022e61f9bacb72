"""Translation between z3 terms and constraint variables.

:class:`VarBuilder` reads heap terms back into structured variables by
recognizing which registry array a ``Select`` reads from, and converts
relational z3 atoms into :class:`Constraint` records. The reverse direction,
:meth:`VarBuilder.to_expr`, rebuilds a z3 term for a variable against a
chosen heap snapshot, which is how the same variable can evaluate to
different values before and after execution.
"""

from __future__ import annotations

from typing import Iterator

import z3

from pywitness.core.memory import HeapRegistry, Memory, MemoryState
from pywitness.core.types import BOOL, INT, OBJECT, ClassId, sort_of
from pywitness.constraints.variables import (
    ArrayAccess,
    ArrayLength,
    BinaryExpression,
    BoolConstant,
    Constraint,
    ConstraintVariable,
    FieldAccess,
    Negation,
    NullConstant,
    NumericConstant,
    Parameter,
    Relation,
)

_CONNECTIVES = (z3.is_and, z3.is_or, z3.is_implies, z3.is_not)


def _array_root(array: z3.ExprRef) -> z3.ExprRef:
    while z3.is_store(array):
        array = array.arg(0)
    return array


def _root_name(array: z3.ExprRef) -> str | None:
    root = _array_root(array)
    if z3.is_const(root) and root.decl().kind() == z3.Z3_OP_UNINTERPRETED:
        return root.decl().name()
    return None


def _is_connective(expr: z3.ExprRef) -> bool:
    return any(test(expr) for test in _CONNECTIVES)


def collect_atoms(constraint: z3.BoolRef) -> Iterator[z3.BoolRef]:
    """Leaves of a boolean formula below ``And``/``Or``/``Implies``/``Not``.

    ``Not`` applied directly to a leaf is kept with its leaf so the polarity
    survives.
    """
    if z3.is_not(constraint) and not _is_connective(constraint.arg(0)):
        yield constraint
    elif _is_connective(constraint):
        for child in constraint.children():
            yield from collect_atoms(child)
    else:
        yield constraint


def subterm_ids(expr: z3.ExprRef) -> set[int]:
    """Ids of every subterm of ``expr`` (z3 hash-conses equal terms)."""
    seen: set[int] = set()
    stack = [expr]
    while stack:
        current = stack.pop()
        ident = current.get_id()
        if ident in seen:
            continue
        seen.add(ident)
        stack.extend(current.children())
    return seen


def subterms(expr: z3.ExprRef) -> Iterator[z3.ExprRef]:
    seen: set[int] = set()
    stack = [expr]
    while stack:
        current = stack.pop()
        if current.get_id() in seen:
            continue
        seen.add(current.get_id())
        yield current
        stack.extend(current.children())


class VarBuilder:
    """Builds constraint variables and atoms from z3 terms of one heap."""

    def __init__(self, registry: HeapRegistry):
        self.registry = registry
        self._cache: dict[int, ConstraintVariable | None] = {}

    def variable(self, expr: z3.ExprRef) -> ConstraintVariable | None:
        """Constraint variable for a term, or None if the term is unsupported."""
        key = expr.get_id()
        if key not in self._cache:
            self._cache[key] = self._build(expr)
        return self._cache[key]

    def _build(self, expr: z3.ExprRef) -> ConstraintVariable | None:
        if z3.is_int_value(expr):
            return NumericConstant(expr.as_long())
        if z3.is_true(expr) or z3.is_false(expr):
            return BoolConstant(z3.is_true(expr))
        if z3.is_select(expr):
            return self._build_select(expr)
        if z3.is_const(expr) and expr.decl().kind() == z3.Z3_OP_UNINTERPRETED:
            name = expr.decl().name()
            class_id = self.registry.type_of(name)
            if class_id is None:
                class_id = BOOL if z3.is_bool(expr) else INT
            return Parameter(name, class_id)
        if z3.is_add(expr) or z3.is_sub(expr) or z3.is_mul(expr):
            op = "+" if z3.is_add(expr) else "-" if z3.is_sub(expr) else "*"
            operands = [self.variable(child) for child in expr.children()]
            if any(operand is None for operand in operands):
                return None
            result = operands[0]
            for operand in operands[1:]:
                result = BinaryExpression(op, result, operand)
            return result
        if z3.is_app_of(expr, z3.Z3_OP_UMINUS):
            operand = self.variable(expr.arg(0))
            return Negation(operand) if operand is not None else None
        return None

    def _build_select(self, expr: z3.ExprRef) -> ConstraintVariable | None:
        array, index = expr.arg(0), expr.arg(1)
        if z3.is_select(array):
            name = _root_name(array.arg(0))
            if name is None or not self.registry.is_contents(name):
                return None
            instance = self.variable(array.arg(1))
            position = self.variable(index)
            if instance is None or position is None:
                return None
            element = instance.type.element or _element_from_contents(name)
            return ArrayAccess(instance, position, element)
        name = _root_name(array)
        if name is None:
            return None
        instance = self.variable(index)
        if instance is None:
            return None
        if self.registry.is_length(name):
            return ArrayLength(instance)
        field = self.registry.field_of(name)
        if field is None:
            return None
        return FieldAccess(instance, field)

    def constraint(self, atom: z3.BoolRef) -> Constraint | None:
        """Atomic :class:`Constraint` for a z3 atom, or None if unsupported."""
        if z3.is_not(atom):
            inner = self.constraint(atom.arg(0))
            return inner.negate() if inner is not None else None
        relation = None
        if z3.is_eq(atom):
            relation = Relation.EQ
        elif z3.is_distinct(atom) and atom.num_args() == 2:
            relation = Relation.NE
        elif z3.is_lt(atom):
            relation = Relation.LT
        elif z3.is_le(atom):
            relation = Relation.LE
        elif z3.is_gt(atom):
            relation = Relation.GT
        elif z3.is_ge(atom):
            relation = Relation.GE
        if relation is None:
            variable = self.variable(atom)
            if variable is None or variable.type != BOOL:
                return None
            return Constraint(Relation.EQ, variable, BoolConstant(True))
        lhs = self.variable(atom.arg(0))
        rhs = self.variable(atom.arg(1))
        if lhs is None or rhs is None:
            return None
        return Constraint(relation, lhs, rhs)

    def to_expr(
        self,
        variable: ConstraintVariable,
        memory: Memory,
        state: MemoryState,
        back_mapping: dict[ConstraintVariable, z3.ExprRef] | None = None,
    ) -> z3.ExprRef:
        """z3 term reading ``variable`` from the given heap snapshot."""
        if back_mapping:
            mapped = back_mapping.get(variable)
            if mapped is not None:
                return mapped

        def recurse(v: ConstraintVariable) -> z3.ExprRef:
            return self.to_expr(v, memory, state, back_mapping)

        if isinstance(variable, Parameter):
            const = self.registry.const(variable.name)
            if const is not None:
                return const
            return z3.Const(variable.name, sort_of(variable.type))
        if isinstance(variable, FieldAccess):
            return z3.Select(memory.field_array(variable.field, state), recurse(variable.instance))
        if isinstance(variable, ArrayAccess):
            contents = memory.contents_array(variable.type, state)
            return z3.Select(z3.Select(contents, recurse(variable.instance)), recurse(variable.index))
        if isinstance(variable, ArrayLength):
            return z3.Select(memory.length_array(state), recurse(variable.instance))
        if isinstance(variable, NumericConstant):
            return z3.IntVal(variable.value)
        if isinstance(variable, BoolConstant):
            return z3.BoolVal(variable.value)
        if isinstance(variable, NullConstant):
            return z3.IntVal(0)
        if isinstance(variable, BinaryExpression):
            lhs, rhs = recurse(variable.lhs), recurse(variable.rhs)
            if variable.op == "+":
                return lhs + rhs
            if variable.op == "-":
                return lhs - rhs
            return lhs * rhs
        if isinstance(variable, Negation):
            return -recurse(variable.operand)
        raise TypeError(f"unknown constraint variable {variable!r}")

    def constraint_expr(
        self,
        constraint: Constraint,
        memory: Memory,
        state: MemoryState,
        back_mapping: dict[ConstraintVariable, z3.ExprRef] | None = None,
    ) -> z3.BoolRef:
        lhs = self.to_expr(constraint.lhs, memory, state, back_mapping)
        rhs = self.to_expr(constraint.rhs, memory, state, back_mapping)
        relation = constraint.relation
        if relation is Relation.EQ:
            return lhs == rhs
        if relation is Relation.NE:
            return lhs != rhs
        if relation is Relation.LT:
            return lhs < rhs
        if relation is Relation.LE:
            return lhs <= rhs
        if relation is Relation.GT:
            return lhs > rhs
        return lhs >= rhs


def _element_from_contents(name: str) -> ClassId:
    kind = name.split("$", 1)[1]
    if kind == "bool":
        return BOOL
    if kind == "int":
        return INT
    return OBJECT


__all__ = [
    "VarBuilder",
    "collect_atoms",
    "subterm_ids",
    "subterms",
]
