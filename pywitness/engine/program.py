"""Instruction IR executed by the reference symbolic explorer.

A program is a set of classes; each class declares fields and method bodies.
Method bodies are flat statement lists addressed by index, with ``If`` and
``Goto`` jumping to statement indices. Instance methods and constructors bind
the receiver to the local ``this``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from pywitness.core.types import (
    ClassId,
    Concrete,
    ExecutableId,
    FieldId,
)


@dataclass(frozen=True)
class Local:
    name: str


@dataclass(frozen=True)
class IntConst:
    value: int


@dataclass(frozen=True)
class BoolConst:
    value: bool


@dataclass(frozen=True)
class NullConst:
    pass


ARITHMETIC_OPS = frozenset({"+", "-", "*"})
COMPARISON_OPS = frozenset({"==", "!=", "<", "<=", ">", ">="})
LOGICAL_OPS = frozenset({"and", "or"})


@dataclass(frozen=True)
class BinOp:
    """Binary operation; ``op`` is arithmetic, comparison or logical."""
    op: str
    lhs: Expr
    rhs: Expr


@dataclass(frozen=True)
class Not:
    operand: Expr


@dataclass(frozen=True)
class FieldGet:
    instance: str
    field: FieldId


@dataclass(frozen=True)
class StaticGet:
    field: FieldId


@dataclass(frozen=True)
class ArrayGet:
    array: str
    index: Expr


@dataclass(frozen=True)
class ArrayLen:
    array: str


Expr = Union[Local, IntConst, BoolConst, NullConst, BinOp, Not, FieldGet, StaticGet, ArrayGet, ArrayLen]


@dataclass(frozen=True)
class Assign:
    target: str
    value: Expr


@dataclass(frozen=True)
class FieldSet:
    instance: str
    field: FieldId
    value: Expr


@dataclass(frozen=True)
class StaticSet:
    field: FieldId
    value: Expr


@dataclass(frozen=True)
class ArraySet:
    array: str
    index: Expr
    value: Expr


@dataclass(frozen=True)
class New:
    """Allocate an object; the constructor is invoked separately."""
    target: str
    class_id: ClassId


@dataclass(frozen=True)
class NewArray:
    target: str
    element: ClassId
    length: Expr


@dataclass(frozen=True)
class Invoke:
    """Call ``executable``; ``receiver`` names the local holding ``this``."""
    target: str | None
    executable: ExecutableId
    receiver: str | None = None
    args: tuple[Expr, ...] = ()


@dataclass(frozen=True)
class If:
    """Jump to ``target`` when ``condition`` holds, else fall through."""
    condition: Expr
    target: int


@dataclass(frozen=True)
class Goto:
    target: int


@dataclass(frozen=True)
class Return:
    value: Expr | None = None


@dataclass(frozen=True)
class Throw:
    reason: str = "explicit throw"


Stmt = Union[Assign, FieldSet, StaticSet, ArraySet, New, NewArray, Invoke, If, Goto, Return, Throw]


@dataclass
class MethodBody:
    """Executable id, formal parameter names and statements."""
    executable: ExecutableId
    parameters: tuple[str, ...] = ()
    statements: list[Stmt] = field(default_factory=list)

    @property
    def signature(self) -> str:
        return self.executable.signature

    @property
    def has_receiver(self) -> bool:
        return not self.executable.is_static

    def successors(self, pc: int) -> list[int]:
        """Intra-procedural successor indices of statement ``pc``."""
        if pc >= len(self.statements):
            return []
        stmt = self.statements[pc]
        if isinstance(stmt, If):
            return [pc + 1, stmt.target]
        if isinstance(stmt, Goto):
            return [stmt.target]
        if isinstance(stmt, (Return, Throw)):
            return []
        return [pc + 1]


@dataclass
class ClassDecl:
    """A class: its fields, methods and optional wrapper shape."""
    class_id: ClassId
    fields: list[FieldId] = field(default_factory=list)
    methods: list[MethodBody] = field(default_factory=list)
    concrete: Concrete | None = None

    def find_field(self, name: str) -> FieldId:
        for f in self.fields:
            if f.name == name:
                return f
        raise KeyError(f"{self.class_id} has no field {name}")


class Program:
    """All classes visible to the explorer, indexed by id and signature."""

    def __init__(self, classes: list[ClassDecl] | None = None):
        self._classes: dict[ClassId, ClassDecl] = {}
        self._methods: dict[ExecutableId, MethodBody] = {}
        for decl in classes or []:
            self.add_class(decl)

    def add_class(self, decl: ClassDecl) -> None:
        self._classes[decl.class_id] = decl
        for body in decl.methods:
            self._methods[body.executable] = body

    def add_method(self, body: MethodBody) -> None:
        """Register a method, creating its declaring class if needed."""
        owner = body.executable.declaring_class
        decl = self._classes.get(owner)
        if decl is None:
            decl = ClassDecl(owner)
            self._classes[owner] = decl
        decl.methods.append(body)
        self._methods[body.executable] = body

    def remove_method(self, executable: ExecutableId) -> MethodBody | None:
        body = self._methods.pop(executable, None)
        if body is not None:
            decl = self._classes[executable.declaring_class]
            decl.methods = [m for m in decl.methods if m.executable != executable]
        return body

    def overlay(self) -> Program:
        """Copy whose class and method tables can change without touching this one.

        Method bodies and field lists are shared.
        """
        other = Program()
        for decl in self._classes.values():
            other._classes[decl.class_id] = ClassDecl(
                decl.class_id, decl.fields, list(decl.methods), decl.concrete
            )
        other._methods = dict(self._methods)
        return other

    def classes(self) -> list[ClassDecl]:
        return list(self._classes.values())

    def class_decl(self, class_id: ClassId) -> ClassDecl | None:
        return self._classes.get(class_id)

    def fields_of(self, class_id: ClassId) -> list[FieldId]:
        decl = self._classes.get(class_id)
        return list(decl.fields) if decl else []

    def method(self, executable: ExecutableId) -> MethodBody:
        body = self._methods.get(executable)
        if body is None:
            raise KeyError(f"unknown executable {executable}")
        return body

    def has_method(self, executable: ExecutableId) -> bool:
        return executable in self._methods

    def executables(self) -> list[ExecutableId]:
        return list(self._methods)

    def __repr__(self) -> str:
        return f"Program(classes={len(self._classes)}, methods={len(self._methods)})"


__all__ = [
    "Local",
    "IntConst",
    "BoolConst",
    "NullConst",
    "BinOp",
    "Not",
    "FieldGet",
    "StaticGet",
    "ArrayGet",
    "ArrayLen",
    "Expr",
    "Assign",
    "FieldSet",
    "StaticSet",
    "ArraySet",
    "New",
    "NewArray",
    "Invoke",
    "If",
    "Goto",
    "Return",
    "Throw",
    "Stmt",
    "MethodBody",
    "ClassDecl",
    "Program",
    "ARITHMETIC_OPS",
    "COMPARISON_OPS",
    "LOGICAL_OPS",
]
