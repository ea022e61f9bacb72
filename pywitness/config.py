"""Configuration system for pywitness.

Supports TOML configuration files with project-level and user-level settings.
Configuration is an explicit value: components receive it through their
constructors, and temporary changes are made on a copy.
"""

from __future__ import annotations

import dataclasses
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pywitness.errors import ConfigurationError
from pywitness.logging import get_logger


CONFIG_FILES = [
    "pywitness.toml",
    ".pywitness.toml",
    "pyproject.toml",
]


PATH_SELECTOR_TYPES = (
    "bfs",
    "dfs",
    "random",
    "random_path",
    "rp",
    "minimal_distance",
    "visit_counting",
    "covered_new",
    "depth",
    "interleaved",
)


STRATEGIES = ("distance", "visit_counting")


@dataclass
class SelectorSettings:
    """Configuration for path selection."""
    path_selector_type: str = "minimal_distance"
    strategy: str = "distance"
    step_limit: int | None = 3500
    seed: int | None = 42

    def validate(self) -> None:
        if self.path_selector_type not in PATH_SELECTOR_TYPES:
            raise ConfigurationError(
                f"unknown path selector type: {self.path_selector_type}", "path_selector_type"
            )
        if self.strategy not in STRATEGIES:
            raise ConfigurationError(f"unknown choosing strategy: {self.strategy}", "strategy")
        if self.step_limit is not None and self.step_limit <= 0:
            raise ConfigurationError("step_limit must be positive", "step_limit")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "path_selector_type": self.path_selector_type,
            "strategy": self.strategy,
            "step_limit": self.step_limit,
            "seed": self.seed,
        }


@dataclass
class SynthesisSettings:
    """Configuration for model-directed synthesis."""
    enabled: bool = True
    max_depth: int = 4
    timeout_ms: int = 5000
    probe_step_limit: int = 2000

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "enabled": self.enabled,
            "max_depth": self.max_depth,
            "timeout_ms": self.timeout_ms,
            "probe_step_limit": self.probe_step_limit,
        }


@dataclass
class SolverSettings:
    """Configuration for the constraint solver."""
    timeout_ms: int = 10000
    use_soft_constraints: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {"timeout_ms": self.timeout_ms, "use_soft_constraints": self.use_soft_constraints}


@dataclass
class EngineSettings:
    """Limits of the reference explorer."""
    max_path_length: int = 500
    preferred_array_length: int = 10

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "max_path_length": self.max_path_length,
            "preferred_array_length": self.preferred_array_length,
        }


@dataclass
class WitnessConfig:
    """Main configuration for pywitness."""
    selector: SelectorSettings = field(default_factory=SelectorSettings)
    synthesis: SynthesisSettings = field(default_factory=SynthesisSettings)
    solver: SolverSettings = field(default_factory=SolverSettings)
    engine: EngineSettings = field(default_factory=EngineSettings)
    config_file: Path | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "selector": self.selector.to_dict(),
            "synthesis": self.synthesis.to_dict(),
            "solver": self.solver.to_dict(),
            "engine": self.engine.to_dict(),
        }

    def with_synthesis_disabled(self) -> WitnessConfig:
        """Copy of this configuration with synthesis turned off."""
        return dataclasses.replace(
            self, synthesis=dataclasses.replace(self.synthesis, enabled=False)
        )

    def with_selector(self, **changes: Any) -> WitnessConfig:
        """Copy of this configuration with selector settings changed."""
        selector = dataclasses.replace(self.selector, **changes)
        selector.validate()
        return dataclasses.replace(self, selector=selector)


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Find configuration file by walking up directory tree."""
    if start_dir is None:
        start_dir = Path.cwd()
    current = start_dir.resolve()
    while current != current.parent:
        for config_name in CONFIG_FILES:
            config_path = current / config_name
            if config_path.exists():
                return config_path
        current = current.parent
    return None


def load_config(
    config_path: Path | None = None,
    start_dir: Path | None = None,
) -> WitnessConfig:
    """Load configuration from file or use defaults.

    Args:
        config_path: Explicit path to config file
        start_dir: Directory to start searching for config

    Returns:
        Loaded configuration

    Raises:
        ConfigurationError: If the file holds an invalid value.
    """
    config = WitnessConfig()
    if config_path is None:
        config_path = find_config_file(start_dir)
    if config_path is None or not config_path.exists():
        return config
    config.config_file = config_path
    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        get_logger().warning(f"Failed to parse config file {config_path}: {e}")
        return config
    if config_path.name == "pyproject.toml":
        witness_data = data.get("tool", {}).get("pywitness", {})
    else:
        witness_data = data.get("tool", {}).get("pywitness", data)
    _apply_config(config, witness_data)
    config.selector.validate()
    return config


def _apply_section(target: Any, data: dict[str, Any], keys: list[str]) -> None:
    for key in keys:
        if key in data:
            setattr(target, key, data[key])


def _apply_config(config: WitnessConfig, data: dict[str, Any]) -> None:
    """Apply configuration data to config object."""
    if "selector" in data:
        sel_data = data["selector"]
        _apply_section(config.selector, sel_data, ["path_selector_type", "strategy", "step_limit", "seed"])
        if config.selector.seed is not None and config.selector.seed < 0:
            config.selector.seed = None
        if config.selector.step_limit == 0:
            config.selector.step_limit = None
    if "synthesis" in data:
        _apply_section(
            config.synthesis,
            data["synthesis"],
            ["enabled", "max_depth", "timeout_ms", "probe_step_limit"],
        )
    if "solver" in data:
        _apply_section(config.solver, data["solver"], ["timeout_ms", "use_soft_constraints"])
    if "engine" in data:
        _apply_section(config.engine, data["engine"], ["max_path_length", "preferred_array_length"])


__all__ = [
    "WitnessConfig",
    "SelectorSettings",
    "SynthesisSettings",
    "SolverSettings",
    "EngineSettings",
    "PATH_SELECTOR_TYPES",
    "STRATEGIES",
    "load_config",
    "find_config_file",
]
