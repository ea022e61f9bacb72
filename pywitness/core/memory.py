"""Symbolic heap with initial and current snapshots.

Every instance field is a z3 array from addresses to values. The heap keeps
one immutable *initial* array per field (what the program saw on entry) and a
*current* store chain on top of it. Array contents and lengths follow the
same scheme, so any read can be re-evaluated against either snapshot.

Addresses are integers: ``NULL_ADDR`` is null, input objects live at
addresses below zero and objects allocated during execution above zero.
"""

from __future__ import annotations

import itertools
from enum import Enum, auto

import z3

from pywitness.core.types import (
    ClassId,
    Concrete,
    FieldId,
    SymbolicValue,
    default_value,
    make_value,
    sort_of,
)

NULL_ADDR = 0


class MemoryState(Enum):
    """Heap snapshot a read is resolved against."""

    INITIAL = auto()
    CURRENT = auto()
    STATIC_INITIAL = auto()


def element_kind(element: ClassId) -> str:
    """Name of the contents array that stores elements of this type."""
    if element.name == "bool":
        return "bool"
    if element.is_primitive:
        return "int"
    return "ref"


class HeapRegistry:
    """Names of every z3 symbol the heap creates.

    The registry is shared by all states of one exploration so that a z3
    term can always be traced back to the field, array or input it denotes.
    """

    LENGTH_NAME = "heap$length"

    def __init__(self) -> None:
        self._fields: dict[FieldId, z3.ArrayRef] = {}
        self._field_names: dict[str, FieldId] = {}
        self._contents: dict[str, z3.ArrayRef] = {}
        self._lengths = z3.Array(self.LENGTH_NAME, z3.IntSort(), z3.IntSort())
        self._consts: dict[str, tuple[z3.ExprRef, ClassId]] = {}
        self._wrappers: dict[ClassId, Concrete] = {}
        self._counter = itertools.count()

    def field_array(self, field: FieldId) -> z3.ArrayRef:
        """Initial array of a field, created on first use."""
        array = self._fields.get(field)
        if array is None:
            name = f"field${field.declaring_class.name}${field.name}"
            array = z3.Array(name, z3.IntSort(), sort_of(field.type))
            self._fields[field] = array
            self._field_names[name] = field
        return array

    def contents_array(self, element: ClassId) -> z3.ArrayRef:
        kind = element_kind(element)
        array = self._contents.get(kind)
        if array is None:
            inner = z3.ArraySort(z3.IntSort(), sort_of(element))
            array = z3.Array(f"contents${kind}", z3.IntSort(), inner)
            self._contents[kind] = array
        return array

    def length_array(self) -> z3.ArrayRef:
        return self._lengths

    def field_of(self, name: str) -> FieldId | None:
        return self._field_names.get(name)

    def is_contents(self, name: str) -> bool:
        return name.startswith("contents$")

    def is_length(self, name: str) -> bool:
        return name == self.LENGTH_NAME

    def fresh(self, name: str, class_id: ClassId) -> z3.ExprRef:
        """Create and register a new symbolic input of the given type."""
        unique = name if name not in self._consts else f"{name}${next(self._counter)}"
        expr = z3.Const(unique, sort_of(class_id))
        self._consts[unique] = (expr, class_id)
        return expr

    def type_of(self, name: str) -> ClassId | None:
        entry = self._consts.get(name)
        return entry[1] if entry else None

    def const(self, name: str) -> z3.ExprRef | None:
        entry = self._consts.get(name)
        return entry[0] if entry else None

    def register_wrapper(self, class_id: ClassId, concrete: Concrete) -> None:
        """Mark a class as a collection wrapper with a known storage shape."""
        self._wrappers[class_id] = concrete

    def concrete_for(self, class_id: ClassId) -> Concrete | None:
        return self._wrappers.get(class_id)


class Memory:
    """Heap of one execution state.

    Copy with :meth:`copy` when forking; z3 terms are immutable so copying
    only duplicates the dictionaries of current arrays.
    """

    def __init__(self, registry: HeapRegistry) -> None:
        self.registry = registry
        self._fields: dict[FieldId, z3.ArrayRef] = {}
        self._contents: dict[str, z3.ArrayRef] = {}
        self._lengths: z3.ArrayRef | None = None
        self._statics: dict[FieldId, tuple[SymbolicValue, SymbolicValue]] = {}
        self._next_address = 1

    def copy(self) -> Memory:
        other = Memory(self.registry)
        other._fields = dict(self._fields)
        other._contents = dict(self._contents)
        other._lengths = self._lengths
        other._statics = dict(self._statics)
        other._next_address = self._next_address
        return other

    def field_array(self, field: FieldId, state: MemoryState = MemoryState.CURRENT) -> z3.ArrayRef:
        initial = self.registry.field_array(field)
        if state is MemoryState.CURRENT:
            return self._fields.get(field, initial)
        return initial

    def read_field(self, addr: z3.ExprRef, field: FieldId) -> z3.ExprRef:
        return z3.Select(self.field_array(field), addr)

    def write_field(self, addr: z3.ExprRef, field: FieldId, value: z3.ExprRef) -> None:
        self._fields[field] = z3.Store(self.field_array(field), addr, value)

    def written_fields(self) -> dict[FieldId, list[z3.ExprRef]]:
        """Addresses stored to in each field since the initial snapshot, oldest first."""
        written = {}
        for field, array in self._fields.items():
            addrs = []
            while z3.is_store(array):
                array, addr, _ = array.children()
                addrs.append(addr)
            written[field] = addrs[::-1]
        return written

    def contents_array(self, element: ClassId, state: MemoryState = MemoryState.CURRENT) -> z3.ArrayRef:
        initial = self.registry.contents_array(element)
        if state is MemoryState.CURRENT:
            return self._contents.get(element_kind(element), initial)
        return initial

    def read_element(self, addr: z3.ExprRef, index: z3.ExprRef, element: ClassId) -> z3.ExprRef:
        return z3.Select(z3.Select(self.contents_array(element), addr), index)

    def write_element(
        self, addr: z3.ExprRef, index: z3.ExprRef, element: ClassId, value: z3.ExprRef
    ) -> None:
        contents = self.contents_array(element)
        updated = z3.Store(z3.Select(contents, addr), index, value)
        self._contents[element_kind(element)] = z3.Store(contents, addr, updated)

    def length_array(self, state: MemoryState = MemoryState.CURRENT) -> z3.ArrayRef:
        if state is MemoryState.CURRENT and self._lengths is not None:
            return self._lengths
        return self.registry.length_array()

    def read_length(self, addr: z3.ExprRef) -> z3.ArithRef:
        return z3.Select(self.length_array(), addr)

    def write_length(self, addr: z3.ExprRef, length: z3.ExprRef) -> None:
        self._lengths = z3.Store(self.length_array(), addr, length)

    def allocate(self, fields: list[FieldId] | tuple[FieldId, ...] = ()) -> z3.ArithRef:
        """Allocate a fresh object and zero its instance fields."""
        addr = z3.IntVal(self._next_address)
        self._next_address += 1
        for field in fields:
            if not field.is_static:
                self.write_field(addr, field, default_value(field.type))
        return addr

    def allocate_array(self, element: ClassId, length: z3.ExprRef) -> z3.ArithRef:
        """Allocate a fresh array filled with the element type's zero value."""
        addr = self.allocate()
        self.write_length(addr, length)
        contents = self.contents_array(element)
        blank = z3.K(z3.IntSort(), default_value(element))
        self._contents[element_kind(element)] = z3.Store(contents, addr, blank)
        return addr

    def _static_entry(self, field: FieldId) -> tuple[SymbolicValue, SymbolicValue]:
        entry = self._statics.get(field)
        if entry is None:
            name = f"static${field.declaring_class.name}${field.name}"
            initial = make_value(field.type, self.registry.fresh(name, field.type))
            entry = (initial, initial)
            self._statics[field] = entry
        return entry

    def read_static(self, field: FieldId) -> SymbolicValue:
        return self._static_entry(field)[1]

    def write_static(self, field: FieldId, value: SymbolicValue) -> None:
        before, _ = self._static_entry(field)
        self._statics[field] = (before, value)

    def static_value(self, field: FieldId, state: MemoryState) -> SymbolicValue:
        before, after = self._static_entry(field)
        return after if state is MemoryState.CURRENT else before

    def static_fields(self) -> list[FieldId]:
        """Static fields read or written so far, in first-touch order."""
        return list(self._statics)

    def __repr__(self) -> str:
        return (
            f"Memory(fields={len(self._fields)}, statics={len(self._statics)}, "
            f"next={self._next_address})"
        )


__all__ = [
    "NULL_ADDR",
    "MemoryState",
    "HeapRegistry",
    "Memory",
    "element_kind",
]
