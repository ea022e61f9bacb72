"""Synthesis units: partial plans for constructing a value.

A unit tree describes how a value is produced. ``ObjectUnit`` leaves of a
reference type are still undefined and get expanded into nulls, constructor
calls, mutator calls or factory calls; primitive ``ObjectUnit`` leaves
become parameters of the probe method. Units compare by identity so that
distinct leaves of the same type stay distinct.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Union

from pywitness.core.types import ClassId, ExecutableId


@dataclass(frozen=True, eq=False)
class ObjectUnit:
    class_id: ClassId

    def __repr__(self) -> str:
        return f"Object({self.class_id})"


@dataclass(frozen=True, eq=False)
class NullUnit:
    class_id: ClassId

    def __repr__(self) -> str:
        return f"Null({self.class_id})"


@dataclass(frozen=True, eq=False)
class ReferenceToUnit:
    """The same object as the root unit at ``index``."""
    class_id: ClassId
    index: int

    def __repr__(self) -> str:
        return f"ReferenceTo(#{self.index})"


@dataclass(frozen=True, eq=False)
class MethodUnit:
    """A call producing ``class_id``.

    For instance methods ``params[0]`` is the receiver and the call yields
    the receiver itself.
    """
    class_id: ClassId
    executable: ExecutableId
    params: tuple[Unit, ...] = ()

    @property
    def is_constructor(self) -> bool:
        return self.executable.is_constructor

    @property
    def is_mutator(self) -> bool:
        return not self.executable.is_static and not self.executable.is_constructor

    def __repr__(self) -> str:
        return f"Method({self.executable.signature}, {list(self.params)})"


@dataclass(frozen=True, eq=False)
class ArrayUnit:
    class_id: ClassId
    length: int
    elements: tuple[tuple[int, Unit], ...] = ()

    def __repr__(self) -> str:
        return f"Array({self.class_id}, length={self.length})"


@dataclass(frozen=True, eq=False)
class ListUnit:
    class_id: ClassId
    elements: tuple[Unit, ...] = ()


@dataclass(frozen=True, eq=False)
class SetUnit:
    class_id: ClassId
    elements: tuple[Unit, ...] = ()


@dataclass(frozen=True, eq=False)
class MapUnit:
    class_id: ClassId
    entries: tuple[tuple[Unit, Unit], ...] = ()


Unit = Union[ObjectUnit, NullUnit, ReferenceToUnit, MethodUnit, ArrayUnit, ListUnit, SetUnit, MapUnit]
Path = tuple[int, ...]


def children(unit: Unit) -> tuple[Unit, ...]:
    if isinstance(unit, MethodUnit):
        return unit.params
    if isinstance(unit, ArrayUnit):
        return tuple(element for _, element in unit.elements)
    if isinstance(unit, (ListUnit, SetUnit)):
        return unit.elements
    if isinstance(unit, MapUnit):
        return tuple(part for entry in unit.entries for part in entry)
    return ()


def with_children(unit: Unit, new_children: tuple[Unit, ...]) -> Unit:
    """Copy of ``unit`` with its children replaced, in :func:`children` order."""
    if isinstance(unit, MethodUnit):
        return MethodUnit(unit.class_id, unit.executable, new_children)
    if isinstance(unit, ArrayUnit):
        indices = [index for index, _ in unit.elements]
        return ArrayUnit(unit.class_id, unit.length, tuple(zip(indices, new_children)))
    if isinstance(unit, ListUnit):
        return ListUnit(unit.class_id, new_children)
    if isinstance(unit, SetUnit):
        return SetUnit(unit.class_id, new_children)
    if isinstance(unit, MapUnit):
        pairs = tuple((new_children[i], new_children[i + 1]) for i in range(0, len(new_children), 2))
        return MapUnit(unit.class_id, pairs)
    return unit


def is_fully_defined(unit: Unit) -> bool:
    if isinstance(unit, ObjectUnit):
        return unit.class_id.is_primitive
    return all(is_fully_defined(child) for child in children(unit))


def method_calls(unit: Unit) -> int:
    """Number of calls the unit performs when built.

    Wrappers count one call for their constructor and one per element.
    """
    nested = sum(method_calls(child) for child in children(unit))
    if isinstance(unit, MethodUnit):
        return 1 + nested
    if isinstance(unit, (ListUnit, SetUnit)):
        return 1 + len(unit.elements) + nested
    if isinstance(unit, MapUnit):
        return 1 + len(unit.entries) + nested
    return nested


def first_undefined(unit: Unit) -> Path | None:
    """Path to the first undefined leaf in pre-order, or None."""
    if isinstance(unit, ObjectUnit):
        return None if unit.class_id.is_primitive else ()
    for i, child in enumerate(children(unit)):
        path = first_undefined(child)
        if path is not None:
            return (i,) + path
    return None


def unit_at(unit: Unit, path: Path) -> Unit:
    for step in path:
        unit = children(unit)[step]
    return unit


def replace_at(unit: Unit, path: Path, replacement: Unit) -> Unit:
    if not path:
        return replacement
    current = list(children(unit))
    current[path[0]] = replace_at(current[path[0]], path[1:], replacement)
    return with_children(unit, tuple(current))


def walk_units(unit: Unit) -> Iterator[Unit]:
    yield unit
    for child in children(unit):
        yield from walk_units(child)


__all__ = [
    "ObjectUnit",
    "NullUnit",
    "ReferenceToUnit",
    "MethodUnit",
    "ArrayUnit",
    "ListUnit",
    "SetUnit",
    "MapUnit",
    "Unit",
    "Path",
    "children",
    "with_children",
    "is_fully_defined",
    "method_calls",
    "first_undefined",
    "unit_at",
    "replace_at",
    "walk_units",
]
