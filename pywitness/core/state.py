"""Execution state of the reference symbolic explorer.

A state is a call stack of frames over a symbolic heap, plus the hard and
soft path constraints collected so far. States are forked at branch points;
z3 expressions are immutable, so forking copies containers only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import z3

from pywitness.core.memory import Memory
from pywitness.core.types import SymbolicValue


if TYPE_CHECKING:
    from pywitness.core.solver import Solver, SolverStatus
    from pywitness.engine.program import MethodBody


Location = tuple[str, int]
Edge = tuple[Location, Location]


@dataclass(eq=False)
class Frame:
    """One activation: method, statement index and local bindings."""
    method: MethodBody
    pc: int = 0
    locals: dict[str, SymbolicValue] = field(default_factory=dict)
    return_target: str | None = None

    @property
    def location(self) -> Location:
        return (self.method.signature, self.pc)

    def copy(self) -> Frame:
        return Frame(self.method, self.pc, dict(self.locals), self.return_target)


@dataclass(eq=False)
class ExecutionState:
    """Symbolic execution state.

    Attributes:
        frames: Call stack; empty once the root method has returned.
        memory: Symbolic heap.
        parameters: Symbolic inputs of the root method, receiver first.
        hard: Path constraints that must hold.
        soft: Preferences kept when satisfiable.
        state_id: Identifier unique within one exploration.
        last_edge: Edge traversed to reach this state.
        depth: Number of feasible forks on the path from the initial state.
        path_length: Number of executed statements.
        steps_since_new_coverage: Traversals since the path last reached an
            uncovered location.
        final_locals: Locals of the root frame once it has returned.
        exception: Reason of exceptional termination, if any.
    """
    frames: list[Frame]
    memory: Memory
    parameters: list[SymbolicValue] = field(default_factory=list)
    hard: list[z3.BoolRef] = field(default_factory=list)
    soft: list[z3.BoolRef] = field(default_factory=list)
    state_id: int = 0
    last_edge: Edge | None = None
    depth: int = 0
    path_length: int = 0
    steps_since_new_coverage: int = 0
    return_value: SymbolicValue | None = None
    final_locals: dict[str, SymbolicValue] = field(default_factory=dict)
    exception: str | None = None
    _status: dict[bool, SolverStatus] = field(default_factory=dict, repr=False)

    @property
    def is_terminal(self) -> bool:
        return not self.frames or self.exception is not None

    @property
    def is_exceptional(self) -> bool:
        return self.exception is not None

    @property
    def location(self) -> Location | None:
        return self.frames[-1].location if self.frames else None

    def top(self) -> Frame:
        return self.frames[-1]

    def root_locals(self) -> dict[str, SymbolicValue]:
        """Locals of the root method, live or final."""
        if self.frames:
            return self.frames[0].locals
        return self.final_locals

    def fork(self, state_id: int) -> ExecutionState:
        """Copy this state under a new identifier."""
        return ExecutionState(
            frames=[f.copy() for f in self.frames],
            memory=self.memory.copy(),
            parameters=list(self.parameters),
            hard=list(self.hard),
            soft=list(self.soft),
            state_id=state_id,
            last_edge=self.last_edge,
            depth=self.depth,
            path_length=self.path_length,
            steps_since_new_coverage=self.steps_since_new_coverage,
            return_value=self.return_value,
            final_locals=dict(self.final_locals),
            exception=self.exception,
        )

    def add_constraint(self, constraint: z3.BoolRef) -> None:
        self.hard.append(constraint)
        self._status.clear()

    def add_soft_constraint(self, constraint: z3.BoolRef) -> None:
        self.soft.append(constraint)
        self._status.clear()

    def check(self, solver: Solver, respect_soft: bool = True) -> SolverStatus:
        """Solver status of the path constraints, computed once per query kind."""
        status = self._status.get(respect_soft)
        if status is None:
            status = solver.check(self.hard, self.soft, respect_soft)
            self._status[respect_soft] = status
        return status

    def __repr__(self) -> str:
        return (
            f"ExecutionState(id={self.state_id}, at={self.location}, "
            f"depth={self.depth}, constraints={len(self.hard)})"
        )


__all__ = ["ExecutionState", "Frame", "Location", "Edge"]
