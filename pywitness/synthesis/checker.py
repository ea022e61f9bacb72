"""Verification of fully defined synthesis plans by exploring probe methods."""

from __future__ import annotations

import itertools
import time

from pywitness.config import WitnessConfig
from pywitness.constraints.models import Model
from pywitness.constraints.var_builder import VarBuilder
from pywitness.core.solver import Solver
from pywitness.engine.explorer import SymbolicExplorer
from pywitness.engine.program import Program
from pywitness.errors import ProbeBuildError
from pywitness.logging import get_logger
from pywitness.selectors.builders import SelectorConfig, scoring_selector
from pywitness.selectors.strategies import ModelScoringStrategy
from pywitness.synthesis.probe import ConstraintBasedPostCondition, ProbeMethodBuilder
from pywitness.synthesis.queue import SynthesisUnitContext
from pywitness.synthesis.storage import StatementsStorage


class SynthesisUnitChecker:
    """Builds a probe for a plan and searches for inputs that satisfy the models.

    Probes run on a dedicated explorer over a private overlay of the
    program, so they never show up in the caller's method table. Its
    configuration has synthesis turned off, and it explores under a scoring
    selector that steers towards the target models and stops after
    ``probe_step_limit`` traversals.
    """

    def __init__(
        self,
        program: Program,
        storage: StatementsStorage,
        config: WitnessConfig,
        solver: Solver | None = None,
    ):
        self.storage = storage
        self.config = config.with_synthesis_disabled()
        self.explorer = SymbolicExplorer(program.overlay(), self.config, solver)
        self.var_builder = VarBuilder(self.explorer.registry)
        self._probes = itertools.count()

    def try_generate(self, context: SynthesisUnitContext, deadline: float | None = None) -> list[Model] | None:
        """Models assembling the plan's values, or None if the plan cannot produce them."""
        logger = get_logger()
        builder = ProbeMethodBuilder(context.units, self.storage)
        try:
            body = builder.build(f"$initializer_{next(self._probes)}")
        except ProbeBuildError as e:
            logger.debug(f"probe not built: {e}", category="synthesis")
            return None
        self.explorer.program.add_method(body)
        post_condition = ConstraintBasedPostCondition(context.models, builder.root_locals, self.var_builder)
        targets: dict[str, Model] = {}
        for name, model in zip(builder.root_locals, context.models):
            targets.setdefault(name, model)
        selector = scoring_selector(
            self.explorer.graph,
            ModelScoringStrategy(targets, self.explorer.solver),
            SelectorConfig(step_limit=self.config.synthesis.probe_step_limit),
        )
        results = self.explorer.run(body.executable, selector, post_condition)
        try:
            for result in results:
                if not result.exceptional:
                    execution = result.resolve(self.config.solver.use_soft_constraints)
                    logger.debug(f"{body.signature} satisfied {len(context.models)} models", category="synthesis")
                    return builder.assemble(execution.before.parameters)
                if deadline is not None and time.perf_counter() >= deadline:
                    logger.debug("synthesis budget exhausted during probe", category="synthesis")
                    break
        finally:
            results.close()
            selector.close()
            self.explorer.program.remove_method(body.executable)
        logger.debug(f"{body.signature} found no witness", category="synthesis")
        return None


__all__ = ["SynthesisUnitChecker"]
