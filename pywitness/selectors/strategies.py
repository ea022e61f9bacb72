"""Choosing, stopping and scoring strategies for path selectors.

A choosing strategy maps a state to a priority (lower runs first), a
stopping strategy decides when exploration ends, and a scoring strategy
rates how close a state is to producing wanted values (higher is better).
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import z3

from pywitness.constraints.models import (
    ArrayModel,
    AssembleModel,
    MapModel,
    Model,
    NullModel,
    ObjectModel,
    PrimitiveModel,
    ReferenceToModel,
)
from pywitness.constraints.resolver import ConstraintResolver
from pywitness.constraints.variables import FieldAccess
from pywitness.engine.graph import InterProceduralGraph, TraversalListener
from pywitness.logging import get_logger

if TYPE_CHECKING:
    from pywitness.core.memory import Memory
    from pywitness.core.solver import Solver, SolverStatusSAT
    from pywitness.core.state import Edge, ExecutionState
    from pywitness.selectors.statistics import DistanceStatistics, EdgeVisitCountingStatistics

MISSING_PENALTY = 1000.0


class ChoosingStrategy(ABC):
    """Priority of a state; lower values are explored first."""

    @abstractmethod
    def priority(self, state: ExecutionState) -> float:
        """Priority of ``state`` under the current statistics."""

    def close(self) -> None:
        pass


class DistanceChoosingStrategy(ChoosingStrategy):
    def __init__(self, statistics: DistanceStatistics):
        self.statistics = statistics

    def priority(self, state: ExecutionState) -> float:
        return self.statistics.distance(state)


class VisitCountingChoosingStrategy(ChoosingStrategy):
    def __init__(self, statistics: EdgeVisitCountingStatistics):
        self.statistics = statistics

    def priority(self, state: ExecutionState) -> float:
        return float(self.statistics.visits(state))


class StoppingStrategy(ABC):
    @abstractmethod
    def should_stop(self) -> bool:
        """True once exploration must end."""

    def close(self) -> None:
        pass


class StepsLimitStoppingStrategy(StoppingStrategy, TraversalListener):
    """Stops after ``limit`` traversal events on the graph."""

    def __init__(self, graph: InterProceduralGraph, limit: int):
        self.graph = graph
        self.limit = limit
        self.steps = 0
        graph.attach(self)

    def on_traversed(self, edge: Edge, newly_covered: bool) -> None:
        self.steps += 1
        if self.steps == self.limit:
            get_logger().debug(f"step limit {self.limit} reached", category="selector")

    def should_stop(self) -> bool:
        return self.steps >= self.limit

    def close(self) -> None:
        self.graph.detach(self)


class ScoringStrategy(ChoosingStrategy):
    """Choosing strategy derived from a score; higher scores run first."""

    @abstractmethod
    def score(self, state: ExecutionState) -> float:
        """Score of ``state``; ``-inf`` when it can never succeed."""

    def priority(self, state: ExecutionState) -> float:
        return -self.score(state)


class ModelScoringStrategy(ScoringStrategy):
    """Scores states by how far their locals are from target models.

    The locals named in ``targets`` are resolved against the state's
    current heap and compared with the target models: numeric values by
    absolute difference, shape mismatches (null against non-null) by a unit
    penalty, objects field by field. States whose path constraints are
    unsatisfiable score ``-inf`` and states that have not yet bound a
    target local are penalized by ``MISSING_PENALTY``.

    Args:
        targets: Target model for each root local.
        solver: Solver used to check the states' path constraints.
    """

    def __init__(self, targets: dict[str, Model], solver: Solver):
        self.targets = targets
        self.solver = solver
        self._scores: dict[int, float] = {}

    def score(self, state: ExecutionState) -> float:
        cached = self._scores.get(state.state_id)
        if cached is not None:
            return cached
        status = state.check(self.solver, respect_soft=False)
        if not status.is_sat:
            result = -math.inf
        else:
            result = -self._distance(state, status)
        self._scores[state.state_id] = result
        get_logger().trace(f"state {state.state_id} scored {result}", category="selector")
        return result

    def _distance(self, state: ExecutionState, holder: SolverStatusSAT) -> float:
        resolver = ConstraintResolver(state.memory, holder)
        local_values = state.root_locals()
        total = 0.0
        for name, target in self.targets.items():
            value = local_values.get(name)
            if value is None:
                total += MISSING_PENALTY
                continue
            actual = resolver.resolve_model(value)
            total += model_distance(actual, target, state.memory, holder)
        return total


def model_distance(actual: Model, target: Model, memory: Memory, holder: SolverStatusSAT) -> float:
    """Distance between a resolved model and a target model.

    Field values the resolver did not reach are read from ``memory``
    directly, so objects built by constructors are compared too.
    """
    if isinstance(target, NullModel):
        return 0.0 if isinstance(actual, NullModel) else 1.0
    if isinstance(target, PrimitiveModel):
        if not isinstance(actual, PrimitiveModel):
            return 1.0
        return _primitive_distance(actual.concrete, target.concrete)
    if isinstance(actual, NullModel):
        return 1.0
    if isinstance(target, (ReferenceToModel, AssembleModel)):
        return 0.0
    if isinstance(target, ObjectModel):
        if not isinstance(actual, ObjectModel):
            return 0.0
        total = 0.0
        for field, nested in target.fields.items():
            found = actual.fields.get(field)
            if found is None and field.type.is_primitive:
                expr = memory.read_field(z3.IntVal(actual.address), field)
                found = PrimitiveModel(FieldAccess(actual.variable, field), set(), holder.value(expr))
            if found is None:
                total += 0.0 if isinstance(nested, NullModel) else 1.0
            else:
                total += model_distance(found, nested, memory, holder)
        return total
    if isinstance(target, ArrayModel):
        if not isinstance(actual, ArrayModel):
            return 1.0
        total = 0.0
        if target.length is not None and actual.length is not None:
            total += _primitive_distance(actual.length.concrete, target.length.concrete)
        present = actual.indexed()
        for index, nested in target.indexed().items():
            found = present.get(index)
            total += 1.0 if found is None else model_distance(found, nested, memory, holder)
        return total
    if isinstance(target, MapModel):
        if not isinstance(actual, MapModel):
            return 1.0
        if target.length is not None and actual.length is not None:
            return _primitive_distance(actual.length.concrete, target.length.concrete)
    return 0.0


def _primitive_distance(actual: object, target: object) -> float:
    if actual is None or target is None:
        return 0.0
    if isinstance(actual, bool) or isinstance(target, bool):
        return 0.0 if actual == target else 1.0
    return float(abs(int(actual) - int(target)))


__all__ = [
    "ChoosingStrategy",
    "DistanceChoosingStrategy",
    "VisitCountingChoosingStrategy",
    "StoppingStrategy",
    "StepsLimitStoppingStrategy",
    "ScoringStrategy",
    "ModelScoringStrategy",
    "model_distance",
    "MISSING_PENALTY",
]
