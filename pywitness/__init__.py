"""pywitness: path selection, model resolution and input synthesis over z3.
pywitness explores methods of a small object-oriented IR symbolically,
reconstructs the inputs of every feasible execution as value models, and
searches for constructor and method call sequences that build those
inputs:
- Frontier selectors (BFS, DFS, random path, minimal distance, scoring, ...)
- Aliasing-aware constraint-to-model resolution, before and after a run
- Cheapest-first synthesis verified by exploring probe methods
Example:
    >>> from pywitness import witnesses
    >>> from pywitness.testing.programs import CHECK, guarded_program
    >>> report = witnesses(guarded_program(), CHECK)
    >>> for witness in report.witnesses:
    ...     print(witness.execution.before.parameters, witness.synthesized)
"""

from pywitness.api import (
    ExplorationReport,
    Witness,
    explore,
    resolve_both_snapshots,
    synthesize,
    witnesses,
)
from pywitness.constraints.models import (
    ArrayModel,
    AssembleModel,
    ConstrainedExecution,
    ListModel,
    MapModel,
    NullModel,
    ObjectModel,
    PrimitiveModel,
    ReferenceToModel,
    ResolvedModels,
    SetModel,
)
from pywitness.constraints.resolver import ConstraintResolver
from pywitness.core.memory import Memory, MemoryState
from pywitness.core.solver import Solver
from pywitness.core.state import ExecutionState
from pywitness.core.types import ClassId, ExecutableId, FieldId
from pywitness.engine.explorer import ExecutionResult, SymbolicExplorer
from pywitness.engine.program import Program
from pywitness.errors import ConfigurationError, ProbeBuildError, WitnessError
from pywitness.selectors.builders import (
    PathSelectorType,
    SelectorConfig,
    path_selector,
    scoring_selector,
)
from pywitness.synthesis.synthesizer import Synthesizer, split_models

__version__ = "0.3.0"
__author__ = "pywitness developers"
from pywitness.config import WitnessConfig, load_config
from pywitness.logging import LogLevel, configure_logging, get_logger

__all__ = [
    "witnesses",
    "explore",
    "synthesize",
    "resolve_both_snapshots",
    "Witness",
    "ExplorationReport",
    "ConstraintResolver",
    "ConstrainedExecution",
    "ResolvedModels",
    "NullModel",
    "PrimitiveModel",
    "ObjectModel",
    "ReferenceToModel",
    "ArrayModel",
    "ListModel",
    "SetModel",
    "MapModel",
    "AssembleModel",
    "Memory",
    "MemoryState",
    "Solver",
    "ExecutionState",
    "ClassId",
    "ExecutableId",
    "FieldId",
    "Program",
    "SymbolicExplorer",
    "ExecutionResult",
    "PathSelectorType",
    "SelectorConfig",
    "path_selector",
    "scoring_selector",
    "Synthesizer",
    "split_models",
    "WitnessError",
    "ConfigurationError",
    "ProbeBuildError",
    "WitnessConfig",
    "load_config",
    "LogLevel",
    "configure_logging",
    "get_logger",
    "__version__",
]
