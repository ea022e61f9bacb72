"""Z3 solver oracle for the witness engine.
The rest of the package only needs a yes/no answer with an assignment:
:meth:`Solver.check` returns :class:`SolverStatusSAT` carrying the z3 model,
or :class:`SolverStatusUNSAT`. An ``unknown`` answer (timeout) is folded
into UNSAT and counted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

import z3

from pywitness.logging import get_logger


@dataclass
class SolverStatusSAT:
    """Satisfiable answer with the model and the constraints it satisfies.
    Attributes:
        model: The z3 model.
        hard: Hard constraints of the query.
        soft: Soft constraints that were kept in the satisfied query.
    """

    model: z3.ModelRef
    hard: list[z3.BoolRef] = field(default_factory=list)
    soft: list[z3.BoolRef] = field(default_factory=list)

    is_sat = True

    def eval(self, expr: z3.ExprRef) -> z3.ExprRef:
        """Evaluate an expression with model completion."""
        return self.model.eval(expr, model_completion=True)

    def value(self, expr: z3.ExprRef) -> Any:
        """Concrete Python value (``int`` or ``bool``) of an expression."""
        result = self.eval(expr)
        if z3.is_int_value(result):
            return result.as_long()
        if z3.is_true(result):
            return True
        if z3.is_false(result):
            return False
        raise ValueError(f"expression has no concrete value: {expr}")

    def concrete_addr(self, expr: z3.ExprRef) -> int:
        return self.eval(expr).as_long()


@dataclass
class SolverStatusUNSAT:
    """Unsatisfiable (or undecided) answer."""

    unknown: bool = False

    is_sat = False


SolverStatus = Union[SolverStatusSAT, SolverStatusUNSAT]


class Solver:
    """Checks hard constraints, optionally keeping soft ones when possible."""

    def __init__(self, timeout_ms: int = 10000) -> None:
        """Initialize the solver.
        Args:
            timeout_ms: Per-query timeout in milliseconds (default: 10s).
        """
        self.timeout_ms = timeout_ms
        self._query_count = 0
        self._unknown_count = 0

    def _solve(self, constraints: list[z3.BoolRef]) -> z3.ModelRef | None:
        self._query_count += 1
        solver = z3.Solver()
        solver.set("timeout", self.timeout_ms)
        solver.add(constraints)
        result = solver.check()
        if result == z3.sat:
            return solver.model()
        if result == z3.unknown:
            self._unknown_count += 1
            get_logger().count("solver.unknown")
        return None

    def check(
        self,
        hard: list[z3.BoolRef],
        soft: list[z3.BoolRef] | None = None,
        respect_soft: bool = True,
    ) -> SolverStatus:
        """Check satisfiability of ``hard`` (plus ``soft`` when possible).
        Args:
            hard: Constraints that must hold.
            soft: Preferences, kept only if the query stays satisfiable.
            respect_soft: When False soft constraints are ignored.
        Returns:
            SolverStatusSAT with a model, or SolverStatusUNSAT.
        """
        soft = list(soft or []) if respect_soft else []
        if soft:
            model = self._solve(list(hard) + soft)
            if model is not None:
                return SolverStatusSAT(model, list(hard), soft)
        model = self._solve(list(hard))
        if model is None:
            return SolverStatusUNSAT()
        return SolverStatusSAT(model, list(hard), [])

    def is_sat(self, constraints: list[z3.BoolRef]) -> bool:
        return self._solve(list(constraints)) is not None

    def get_stats(self) -> dict[str, int]:
        """Get solver statistics."""
        return {"queries": self._query_count, "unknown": self._unknown_count}

    def __repr__(self) -> str:
        return f"Solver(queries={self._query_count}, unknown={self._unknown_count})"


__all__ = [
    "Solver",
    "SolverStatus",
    "SolverStatusSAT",
    "SolverStatusUNSAT",
]
