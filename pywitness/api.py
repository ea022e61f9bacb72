"""Public API for pywitness."""

from __future__ import annotations

from dataclasses import dataclass, field

from pywitness.config import WitnessConfig
from pywitness.constraints.models import ConstrainedExecution, Model
from pywitness.constraints.resolver import ConstraintResolver
from pywitness.core.types import ExecutableId, FieldId
from pywitness.engine.explorer import ExecutionResult, PostCondition, SymbolicExplorer
from pywitness.engine.program import Program
from pywitness.logging import get_logger
from pywitness.selectors.builders import selector_from_settings
from pywitness.selectors.selectors import PathSelector
from pywitness.synthesis.synthesizer import Synthesizer


@dataclass
class Witness:
    """One explored execution: its models and, if synthesis ran, how to build its inputs."""
    result: ExecutionResult
    execution: ConstrainedExecution
    synthesized: list[Model | None] | None = None

    @property
    def exceptional(self) -> bool:
        return self.result.exceptional


@dataclass
class ExplorationReport:
    """All witnesses found for one method."""
    executable: ExecutableId
    witnesses: list[Witness] = field(default_factory=list)

    def exceptional(self) -> list[Witness]:
        return [w for w in self.witnesses if w.exceptional]


def resolve_both_snapshots(
    result: ExecutionResult,
    statics: list[FieldId] | None = None,
    use_soft_constraints: bool = False,
) -> ConstrainedExecution:
    """
    Resolve the inputs of a terminal execution before and after it ran.

    Args:
        result: Execution reported by :meth:`SymbolicExplorer.run`
        statics: Static fields to resolve as well; every static field the
                 execution touched by default
        use_soft_constraints: Also use the soft constraints the solver kept

    Returns:
        ConstrainedExecution with one model per parameter in each snapshot
    """
    resolver = ConstraintResolver(result.state.memory, result.holder, use_soft_constraints)
    return resolver.resolve_both_snapshots(result.parameters, statics)


def explore(
    program: Program,
    executable: ExecutableId,
    config: WitnessConfig | None = None,
    *,
    selector: PathSelector | None = None,
    post_condition: PostCondition | None = None,
    explorer: SymbolicExplorer | None = None,
) -> list[ExecutionResult]:
    """
    Explore a method and collect every feasible terminal execution.
    The selector is built from ``config.selector`` unless one is given; a
    selector built here is closed before returning.

    Example:
        >>> results = explore(program, ExecutableId(ClassId("Guarded"), "check", (INT,)))
        >>> [r.exceptional for r in results]
        [False, True]
    """
    explorer = explorer or SymbolicExplorer(program, config)
    owned = selector is None
    if selector is None:
        selector = selector_from_settings(explorer.graph, explorer.config.selector)
    try:
        results = list(explorer.run(executable, selector, post_condition))
    finally:
        if owned:
            selector.close()
    get_logger().verbose(
        f"{executable.signature}: {len(results)} executions",
        category="engine",
        **get_logger().counters("states."),
    )
    return results


def synthesize(
    explorer: SymbolicExplorer,
    models: list[Model],
    depth: int | None = None,
    time_limit_ms: int | None = None,
    config: WitnessConfig | None = None,
) -> list[Model | None] | None:
    """
    Find call sequences producing values that satisfy ``models``.

    Returns:
        A list aligned with ``models`` (None where no construction was
        found), or None when nothing could be synthesized at all
    """
    results = Synthesizer(explorer, models, depth, config).synthesize(time_limit_ms)
    if all(model is None for model in results):
        return None
    return results


def witnesses(
    program: Program,
    executable: ExecutableId,
    config: WitnessConfig | None = None,
) -> ExplorationReport:
    """
    Explore a method, resolve every execution and synthesize its inputs.
    Synthesis runs for each execution when ``config.synthesis.enabled`` is
    set; its target models are the execution's models before the run.
    """
    explorer = SymbolicExplorer(program, config)
    report = ExplorationReport(executable)
    for result in explore(program, executable, explorer=explorer):
        execution = explorer.resolve(result)
        witness = Witness(result, execution)
        if explorer.config.synthesis.enabled:
            witness.synthesized = synthesize(explorer, execution.before.parameters)
        report.witnesses.append(witness)
    return report


__all__ = [
    "Witness",
    "ExplorationReport",
    "resolve_both_snapshots",
    "explore",
    "synthesize",
    "witnesses",
]
