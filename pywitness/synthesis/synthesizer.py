"""Model-directed synthesis of construction sequences.

Given models resolved from an execution, the synthesizer searches for
sequences of constructor and method calls that produce values satisfying
them. Models are first split into independent clusters; each cluster is
searched cheapest plan first and every fully defined plan is verified by
exploring a probe method.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from pywitness.config import WitnessConfig
from pywitness.constraints.models import Model, ReferenceToModel, all_constraints, is_constraint_model
from pywitness.engine.explorer import SymbolicExplorer
from pywitness.logging import get_logger
from pywitness.synthesis.checker import SynthesisUnitChecker
from pywitness.synthesis.queue import SynthesisUnitContextQueue
from pywitness.synthesis.storage import StatementsStorage


@dataclass
class SynthesisStats:
    """Counts for one synthesizer."""

    clusters: int = 0
    attempts: int = 0
    successes: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"clusters": self.clusters, "attempts": self.attempts, "successes": self.successes}


def split_models(models: list[Model]) -> list[list[int]]:
    """Partition model indices into independent clusters.

    Two models are in the same cluster when a constraint of one mentions the
    other's variable, transitively, and a back-reference always joins the
    model resolved at its address. Clusters are ordered by their first
    index and list their indices in increasing order.
    """
    if not models:
        return []
    parent = list(range(len(models)))

    def find(x: int) -> int:
        if parent[x] != x:
            parent[x] = find(parent[x])
        return parent[x]

    def union(x: int, y: int) -> None:
        px, py = find(x), find(y)
        if px != py:
            parent[max(px, py)] = min(px, py)

    addresses: dict[int, int] = {}
    for i, model in enumerate(models):
        if not isinstance(model, ReferenceToModel) and getattr(model, "address", 0):
            addresses.setdefault(model.address, i)
    for i, model in enumerate(models):
        if isinstance(model, ReferenceToModel) and model.address in addresses:
            union(i, addresses[model.address])
    constraints = [all_constraints(m) if is_constraint_model(m) else set() for m in models]
    for i in range(len(models)):
        for j in range(len(models)):
            if i == j or not is_constraint_model(models[j]):
                continue
            variable = models[j].variable
            if any(variable in constraint for constraint in constraints[i]):
                union(i, j)
    partitions: dict[int, list[int]] = {}
    for i in range(len(models)):
        partitions.setdefault(find(i), []).append(i)
    return list(partitions.values())


class Synthesizer:
    """Synthesizes call sequences for a list of target models.

    Args:
        explorer: Explorer over the program whose calls may be used.
        models: Target models, usually the INITIAL models of an execution.
        depth: Maximum number of calls per cluster; ``config.synthesis.max_depth``
            by default.
        config: Configuration; the explorer's by default.
    """

    def __init__(
        self,
        explorer: SymbolicExplorer,
        models: list[Model],
        depth: int | None = None,
        config: WitnessConfig | None = None,
    ):
        self.explorer = explorer
        self.models = list(models)
        self.config = config or explorer.config
        self.depth = depth if depth is not None else self.config.synthesis.max_depth
        self.storage = StatementsStorage(explorer.program)
        self.checker = SynthesisUnitChecker(explorer.program, self.storage, self.config, explorer.solver)
        self.stats = SynthesisStats()

    def synthesize(self, time_limit_ms: int | None = None) -> list[Model | None]:
        """Synthesized model for every input model, None where synthesis failed."""
        logger = get_logger()
        results: list[Model | None] = [None] * len(self.models)
        if not self.config.synthesis.enabled:
            logger.debug("synthesis disabled", category="synthesis")
            return results
        if time_limit_ms is None:
            time_limit_ms = self.config.synthesis.timeout_ms
        deadline = time.perf_counter() + time_limit_ms / 1000
        with logger.timer("synthesis", category="synthesis"):
            for cluster in split_models(self.models):
                if time.perf_counter() >= deadline:
                    logger.debug("synthesis budget exhausted", category="synthesis")
                    break
                self.stats.clusters += 1
                found = self._synthesize_cluster([self.models[i] for i in cluster], deadline)
                if found is None:
                    logger.verbose(f"no construction found for cluster {cluster}", category="synthesis")
                    continue
                for i, model in zip(cluster, found):
                    results[i] = model
        return results

    def _synthesize_cluster(self, models: list[Model], deadline: float) -> list[Model] | None:
        logger = get_logger()
        queue = SynthesisUnitContextQueue(models, self.storage, self.depth)
        while time.perf_counter() < deadline:
            context = queue.poll()
            if context is None:
                logger.debug(
                    "synthesis queue exhausted",
                    category="synthesis",
                    expanded=queue.expanded,
                    pruned=queue.pruned,
                )
                return None
            self.stats.attempts += 1
            logger.count("synthesis.attempts")
            found = self.checker.try_generate(context, deadline)
            if found is not None:
                self.stats.successes += 1
                logger.count("synthesis.successes")
                return found
        return None


__all__ = ["Synthesizer", "SynthesisStats", "split_models"]
