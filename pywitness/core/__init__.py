"""Core data structures: types, symbolic heap, solver and execution state."""

from pywitness.core.memory import NULL_ADDR, HeapRegistry, Memory, MemoryState
from pywitness.core.solver import Solver, SolverStatus, SolverStatusSAT, SolverStatusUNSAT
from pywitness.core.state import Edge, ExecutionState, Frame, Location
from pywitness.core.types import (
    BOOL,
    INT,
    OBJECT,
    VOID,
    ClassId,
    ExecutableId,
    FieldId,
    ListWrapper,
    MapWrapper,
    PrimitiveValue,
    ReferenceValue,
    SetWrapper,
    array_of,
    constructor,
)


__all__ = [
    "NULL_ADDR",
    "HeapRegistry",
    "Memory",
    "MemoryState",
    "Solver",
    "SolverStatus",
    "SolverStatusSAT",
    "SolverStatusUNSAT",
    "Edge",
    "ExecutionState",
    "Frame",
    "Location",
    "BOOL",
    "INT",
    "OBJECT",
    "VOID",
    "ClassId",
    "ExecutableId",
    "FieldId",
    "ListWrapper",
    "MapWrapper",
    "PrimitiveValue",
    "ReferenceValue",
    "SetWrapper",
    "array_of",
    "constructor",
]
