"""Reference symbolic engine: program representation, graph and explorer."""

from pywitness.engine.explorer import (
    RETURN_LOCAL,
    ExecutionResult,
    PostCondition,
    SymbolicExplorer,
)
from pywitness.engine.graph import InterProceduralGraph, TraversalListener
from pywitness.engine.program import ClassDecl, MethodBody, Program


__all__ = [
    "RETURN_LOCAL",
    "ExecutionResult",
    "PostCondition",
    "SymbolicExplorer",
    "InterProceduralGraph",
    "TraversalListener",
    "ClassDecl",
    "MethodBody",
    "Program",
]
