"""Frontier of partially defined synthesis plans.

Plans are explored cheapest first: the queue is a heap keyed by the number
of method calls a plan performs, with insertion order breaking ties. A plan
that is not yet fully defined is expanded one step when it is popped; plans
that would need more calls than the depth bound are never enqueued.
"""

from __future__ import annotations

import heapq
import itertools
from dataclasses import dataclass

from pywitness.constraints.models import (
    ArrayModel,
    ListModel,
    MapModel,
    Model,
    NullModel,
    ReferenceToModel,
    SetModel,
)
from pywitness.logging import get_logger
from pywitness.synthesis.storage import StatementsStorage
from pywitness.synthesis.units import (
    ArrayUnit,
    ListUnit,
    MapUnit,
    NullUnit,
    ObjectUnit,
    Path,
    ReferenceToUnit,
    SetUnit,
    Unit,
    first_undefined,
    is_fully_defined,
    method_calls,
    replace_at,
    unit_at,
)


@dataclass(frozen=True, eq=False)
class SynthesisUnitContext:
    """One plan: a unit per target model, aligned with ``models``."""

    models: tuple[Model, ...]
    units: tuple[Unit, ...]

    @property
    def method_calls(self) -> int:
        return sum(method_calls(unit) for unit in self.units)

    @property
    def is_fully_defined(self) -> bool:
        return all(is_fully_defined(unit) for unit in self.units)

    def first_undefined(self) -> tuple[int, Path] | None:
        """Root index and path of the first undefined leaf."""
        for index, unit in enumerate(self.units):
            path = first_undefined(unit)
            if path is not None:
                return index, path
        return None

    def replaced(self, index: int, path: Path, unit: Unit) -> SynthesisUnitContext:
        units = list(self.units)
        units[index] = replace_at(units[index], path, unit)
        return SynthesisUnitContext(self.models, tuple(units))


def initial_units(models: list[Model]) -> tuple[Unit, ...]:
    """Starting plan: the shape of every model with objects left undefined."""
    roots: dict[int, int] = {}
    for index, model in enumerate(models):
        address = getattr(model, "address", 0)
        if address and not isinstance(model, ReferenceToModel) and address not in roots:
            roots[address] = index
    return tuple(_unit_for(model, roots, index) for index, model in enumerate(models))


def _unit_for(model: Model, roots: dict[int, int], position: int | None = None) -> Unit:
    if isinstance(model, NullModel):
        return NullUnit(model.type)
    if isinstance(model, ReferenceToModel):
        index = roots.get(model.address)
        if index is not None and (position is None or index < position):
            return ReferenceToUnit(model.type, index)
        return ObjectUnit(model.type)
    if isinstance(model, (ListModel, SetModel)):
        elements = tuple(_unit_for(element, roots) for _, element in model.elements)
        cls = ListUnit if isinstance(model, ListModel) else SetUnit
        return cls(model.type, elements)
    if isinstance(model, ArrayModel):
        length = model.length.concrete if model.length is not None else len(model.elements)
        elements = tuple((index.concrete, _unit_for(element, roots)) for index, element in model.elements)
        return ArrayUnit(model.type, length, elements)
    if isinstance(model, MapModel):
        entries = tuple((_unit_for(key, roots), _unit_for(value, roots)) for key, value in model.entries)
        return MapUnit(model.type, entries)
    return ObjectUnit(model.type)


class SynthesisUnitContextQueue:
    """Cheapest-first search over plans for one cluster of models.

    Args:
        models: Target models of the cluster.
        storage: Index of the calls available for expansion.
        depth: Maximum number of method calls a plan may perform.
    """

    def __init__(self, models: list[Model], storage: StatementsStorage, depth: int):
        self.storage = storage
        self.depth = depth
        self.pruned = 0
        self.expanded = 0
        self._heap: list[tuple[int, int, SynthesisUnitContext]] = []
        self._seq = itertools.count()
        self.push(SynthesisUnitContext(tuple(models), initial_units(models)))

    def push(self, context: SynthesisUnitContext) -> None:
        calls = context.method_calls
        if calls > self.depth:
            self.pruned += 1
            return
        heapq.heappush(self._heap, (calls, next(self._seq), context))

    def poll(self) -> SynthesisUnitContext | None:
        """Next fully defined plan, expanding undefined ones on the way."""
        while self._heap:
            _, _, context = heapq.heappop(self._heap)
            if context.is_fully_defined:
                return context
            self._expand(context)
        return None

    def _expand(self, context: SynthesisUnitContext) -> None:
        located = context.first_undefined()
        if located is None:
            return
        index, path = located
        leaf = unit_at(context.units[index], path)
        nullable = bool(path) or isinstance(context.models[index], NullModel)
        self.expanded += 1
        for alternative in self.storage.alternatives(leaf.class_id, nullable):
            self.push(context.replaced(index, path, alternative))
        get_logger().trace(
            f"expanded {leaf!r} of root {index}",
            category="synthesis",
            queued=len(self._heap),
        )

    def is_empty(self) -> bool:
        return not self._heap

    def __len__(self) -> int:
        return len(self._heap)


__all__ = ["SynthesisUnitContext", "SynthesisUnitContextQueue", "initial_units"]
