"""Path selection for symbolic exploration.

This module provides:
- Frontier selectors (BFS, DFS, random, random-path, RP, minimal distance,
  visit counting, covered-new, depth, scoring, interleaved)
- Statistics fed by graph traversal events
- Choosing, stopping and scoring strategies
- Builders configured by an explicit SelectorConfig
"""

from pywitness.selectors.builders import (
    PathSelectorContext,
    PathSelectorType,
    SelectorConfig,
    StrategyOption,
    bfs_selector,
    covered_new_selector,
    depth_selector,
    dfs_selector,
    interleaved_selector,
    minimal_distance_selector,
    path_selector,
    random_path_selector,
    random_selector,
    rp_selector,
    scoring_selector,
    selector_from_settings,
    visit_counting_selector,
)
from pywitness.selectors.selectors import (
    BFSSelector,
    CoveredNewSelector,
    DepthSelector,
    DFSSelector,
    InterleavedSelector,
    MinimalDistanceToUncoveredSelector,
    PathSelector,
    RandomPathSelector,
    RandomSelector,
    RPSelector,
    ScoringSelector,
    VisitCountingSelector,
)
from pywitness.selectors.statistics import DistanceStatistics, EdgeVisitCountingStatistics
from pywitness.selectors.strategies import (
    ChoosingStrategy,
    ModelScoringStrategy,
    ScoringStrategy,
    StepsLimitStoppingStrategy,
    StoppingStrategy,
)


__all__ = [
    "PathSelectorContext",
    "PathSelectorType",
    "SelectorConfig",
    "StrategyOption",
    "bfs_selector",
    "covered_new_selector",
    "depth_selector",
    "dfs_selector",
    "interleaved_selector",
    "minimal_distance_selector",
    "path_selector",
    "random_path_selector",
    "random_selector",
    "rp_selector",
    "scoring_selector",
    "selector_from_settings",
    "visit_counting_selector",
    "BFSSelector",
    "CoveredNewSelector",
    "DepthSelector",
    "DFSSelector",
    "InterleavedSelector",
    "MinimalDistanceToUncoveredSelector",
    "PathSelector",
    "RandomPathSelector",
    "RandomSelector",
    "RPSelector",
    "ScoringSelector",
    "VisitCountingSelector",
    "DistanceStatistics",
    "EdgeVisitCountingStatistics",
    "ChoosingStrategy",
    "ModelScoringStrategy",
    "ScoringStrategy",
    "StepsLimitStoppingStrategy",
    "StoppingStrategy",
]
