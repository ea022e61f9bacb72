"""Path selectors: the frontier of live states and the order they run in."""

from __future__ import annotations

import itertools
import math
import random
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable

from pywitness.logging import get_logger


if TYPE_CHECKING:
    from pywitness.core.state import ExecutionState
    from pywitness.selectors.statistics import DistanceStatistics
    from pywitness.selectors.strategies import ChoosingStrategy, ScoringStrategy, StoppingStrategy


@dataclass(order=True)
class PrioritizedState:
    """State with priority and insertion order for exploration."""
    priority: float
    seq: int
    state: ExecutionState = field(compare=False)


class PathSelector(ABC):
    """Abstract base class for path selectors.

    Args:
        choosing_strategy: Orders states; its meaning depends on the selector.
        stopping_strategy: Decides when exploration ends.
    """

    def __init__(self, choosing_strategy: ChoosingStrategy, stopping_strategy: StoppingStrategy):
        self.choosing_strategy = choosing_strategy
        self.stopping_strategy = stopping_strategy
        self.resources: list = []
        self._seq = itertools.count()

    def offer(self, states: Iterable[ExecutionState]) -> None:
        """Add forked states to the frontier."""
        for state in states:
            self._add(state)

    def pick(self) -> ExecutionState | None:
        """Remove and return the next state, or None when the frontier is empty."""
        state = self._pick()
        if state is not None:
            get_logger().trace(f"{type(self).__name__} picked {state!r}", category="selector")
        return state

    def should_stop(self) -> bool:
        return self.stopping_strategy.should_stop()

    @abstractmethod
    def _add(self, state: ExecutionState) -> None:
        """Insert one state."""

    @abstractmethod
    def _pick(self) -> ExecutionState | None:
        """Remove and return the next state."""

    @abstractmethod
    def remove(self, state: ExecutionState) -> bool:
        """Drop ``state`` from the frontier; True if it was present."""

    @abstractmethod
    def size(self) -> int:
        """Get number of pending states."""

    def is_empty(self) -> bool:
        return self.size() == 0

    def close(self) -> None:
        """Detach strategies and release the statistics this selector owns."""
        self.choosing_strategy.close()
        self.stopping_strategy.close()
        for resource in self.resources:
            resource.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(size={self.size()})"


def _remove_identical(items: list, state: ExecutionState, key=lambda item: item) -> bool:
    for i, item in enumerate(items):
        if key(item) is state:
            del items[i]
            return True
    return False


class BFSSelector(PathSelector):
    """Breadth-first: a queue; siblings enter in priority order."""

    def __init__(self, choosing_strategy: ChoosingStrategy, stopping_strategy: StoppingStrategy):
        super().__init__(choosing_strategy, stopping_strategy)
        self._queue: deque[ExecutionState] = deque()

    def offer(self, states: Iterable[ExecutionState]) -> None:
        for state in sorted(states, key=self.choosing_strategy.priority):
            self._add(state)

    def _add(self, state: ExecutionState) -> None:
        self._queue.append(state)

    def _pick(self) -> ExecutionState | None:
        if self._queue:
            return self._queue.popleft()
        return None

    def remove(self, state: ExecutionState) -> bool:
        for item in self._queue:
            if item is state:
                self._queue.remove(item)
                return True
        return False

    def size(self) -> int:
        return len(self._queue)


class DFSSelector(PathSelector):
    """Depth-first: a stack; the sibling with the lowest priority is on top."""

    def __init__(self, choosing_strategy: ChoosingStrategy, stopping_strategy: StoppingStrategy):
        super().__init__(choosing_strategy, stopping_strategy)
        self._stack: list[ExecutionState] = []

    def offer(self, states: Iterable[ExecutionState]) -> None:
        for state in sorted(states, key=self.choosing_strategy.priority, reverse=True):
            self._add(state)

    def _add(self, state: ExecutionState) -> None:
        self._stack.append(state)

    def _pick(self) -> ExecutionState | None:
        if self._stack:
            return self._stack.pop()
        return None

    def remove(self, state: ExecutionState) -> bool:
        return _remove_identical(self._stack, state)

    def size(self) -> int:
        return len(self._stack)


class RankedSelector(PathSelector):
    """Picks the state with the lowest current priority; ties by insertion order.

    Priorities are recomputed on every pick since statistics change as the
    exploration proceeds.
    """

    def __init__(self, choosing_strategy: ChoosingStrategy, stopping_strategy: StoppingStrategy):
        super().__init__(choosing_strategy, stopping_strategy)
        self._states: list[tuple[int, ExecutionState]] = []

    def _add(self, state: ExecutionState) -> None:
        self._states.append((next(self._seq), state))

    def _pick(self) -> ExecutionState | None:
        if not self._states:
            return None
        best = min(
            range(len(self._states)),
            key=lambda i: PrioritizedState(self._rank(self._states[i][1]), self._states[i][0], self._states[i][1]),
        )
        return self._states.pop(best)[1]

    def _rank(self, state: ExecutionState) -> float:
        return self.choosing_strategy.priority(state)

    def remove(self, state: ExecutionState) -> bool:
        return _remove_identical(self._states, state, key=lambda item: item[1])

    def size(self) -> int:
        return len(self._states)


class MinimalDistanceToUncoveredSelector(RankedSelector):
    """Runs the state closest to uncovered code first."""


class VisitCountingSelector(RankedSelector):
    """Runs the state that arrived over the least visited edge first."""


class DepthSelector(RankedSelector):
    """Runs the state with the fewest forks on its path first."""

    def _rank(self, state: ExecutionState) -> float:
        return float(state.depth)


class WeightedRandomSelector(PathSelector):
    """Samples the next state with probability proportional to its weight.

    A ``seed`` of None gives a non-deterministic run; equal seeds give equal
    pick sequences for equal offers.
    """

    def __init__(
        self,
        choosing_strategy: ChoosingStrategy,
        stopping_strategy: StoppingStrategy,
        seed: int | None = None,
    ):
        super().__init__(choosing_strategy, stopping_strategy)
        self.seed = seed
        self._random = random.Random(seed)
        self._states: list[ExecutionState] = []

    @abstractmethod
    def weight(self, state: ExecutionState) -> float:
        """Sampling weight of ``state``."""

    def _add(self, state: ExecutionState) -> None:
        self._states.append(state)

    def _pick(self) -> ExecutionState | None:
        if not self._states:
            return None
        weights = [self.weight(state) for state in self._states]
        if sum(weights) <= 0:
            index = self._random.randrange(len(self._states))
        else:
            index = self._random.choices(range(len(self._states)), weights=weights)[0]
        return self._states.pop(index)

    def remove(self, state: ExecutionState) -> bool:
        return _remove_identical(self._states, state)

    def size(self) -> int:
        return len(self._states)


class RandomSelector(WeightedRandomSelector):
    """Uniform choice over the frontier."""

    def weight(self, state: ExecutionState) -> float:
        return 1.0


class RandomPathSelector(WeightedRandomSelector):
    """Random walk down the fork tree: a state at fork depth d has weight 2**-d."""

    def weight(self, state: ExecutionState) -> float:
        return 2.0 ** -state.depth


class CoveredNewSelector(WeightedRandomSelector):
    """Favours states that recently reached uncovered code or are close to it.

    The weight is ``c**2 + d**2`` where ``c = 1 / (1 + k)`` for a state whose
    last ``k`` traversals covered nothing new and ``d = 1 / (1 + p)`` for a
    choosing priority ``p``, usually the distance to uncovered code.
    """

    def weight(self, state: ExecutionState) -> float:
        covered = 1.0 / (1 + state.steps_since_new_coverage)
        priority = self.choosing_strategy.priority(state)
        near = 0.0 if math.isinf(priority) else 1.0 / (1.0 + max(priority, 0.0))
        return covered * covered + near * near


class RPSelector(WeightedRandomSelector):
    """Weight ``1 / (1 + priority)``; states at infinite priority are never preferred."""

    def weight(self, state: ExecutionState) -> float:
        priority = self.choosing_strategy.priority(state)
        if math.isinf(priority):
            return 0.0
        return 1.0 / (1.0 + max(priority, 0.0))


class ScoringSelector(PathSelector):
    """Runs the best scored state first; ties by distance, then insertion order.

    Unsatisfiable states score ``-inf``: they stay in the frontier but run last.
    """

    def __init__(
        self,
        scoring_strategy: ScoringStrategy,
        distance_statistics: DistanceStatistics,
        stopping_strategy: StoppingStrategy,
    ):
        super().__init__(scoring_strategy, stopping_strategy)
        self.scoring_strategy = scoring_strategy
        self.distance_statistics = distance_statistics
        self._states: list[tuple[float, int, ExecutionState]] = []

    def _add(self, state: ExecutionState) -> None:
        self._states.append((self.scoring_strategy.score(state), next(self._seq), state))

    def _pick(self) -> ExecutionState | None:
        if not self._states:
            return None
        def rank(i: int) -> tuple[float, float, int]:
            score, seq, state = self._states[i]
            return (-score, self.distance_statistics.distance(state), seq)
        best = min(range(len(self._states)), key=rank)
        return self._states.pop(best)[2]

    def remove(self, state: ExecutionState) -> bool:
        return _remove_identical(self._states, state, key=lambda item: item[2])

    def size(self) -> int:
        return len(self._states)


class InterleavedSelector(PathSelector):
    """Round-robins picks across member selectors sharing one frontier.

    Every offered state goes to every member; a state picked by one member
    is removed from all others.
    """

    def __init__(self, selectors: list[PathSelector], stopping_strategy: StoppingStrategy):
        if not selectors:
            raise ValueError("interleaved selector needs at least one member")
        super().__init__(selectors[0].choosing_strategy, stopping_strategy)
        self.selectors = selectors
        self._turn = 0

    def offer(self, states: Iterable[ExecutionState]) -> None:
        batch = list(states)
        for selector in self.selectors:
            selector.offer(batch)

    def _add(self, state: ExecutionState) -> None:
        self.offer([state])

    def _pick(self) -> ExecutionState | None:
        count = len(self.selectors)
        for offset in range(count):
            member = self.selectors[(self._turn + offset) % count]
            state = member.pick()
            if state is None:
                continue
            self._turn = (self._turn + offset + 1) % count
            for other in self.selectors:
                if other is not member:
                    other.remove(state)
            return state
        return None

    def remove(self, state: ExecutionState) -> bool:
        removed = [selector.remove(state) for selector in self.selectors]
        return any(removed)

    def size(self) -> int:
        return max(selector.size() for selector in self.selectors)

    def close(self) -> None:
        for selector in self.selectors:
            selector.close()
        super().close()


__all__ = [
    "PathSelector",
    "PrioritizedState",
    "BFSSelector",
    "DFSSelector",
    "RankedSelector",
    "MinimalDistanceToUncoveredSelector",
    "VisitCountingSelector",
    "DepthSelector",
    "WeightedRandomSelector",
    "RandomSelector",
    "RandomPathSelector",
    "CoveredNewSelector",
    "RPSelector",
    "ScoringSelector",
    "InterleavedSelector",
]
