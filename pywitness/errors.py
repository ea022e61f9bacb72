"""Exceptions raised by pywitness.

Search dead ends (UNSAT paths, exhausted frontiers, failed synthesis) are
not errors; they are reported as ``None`` results. Exceptions are reserved
for misuse that should fail fast.
"""

from __future__ import annotations


class WitnessError(Exception):
    """Base class for pywitness errors."""


class ConfigurationError(WitnessError):
    """Invalid configuration or incomplete selector construction."""

    def __init__(self, message: str, option: str | None = None):
        self.option = option
        super().__init__(message)


class ProbeBuildError(WitnessError):
    """A construction plan cannot be expressed as a probe method."""

    def __init__(self, message: str, unit: object | None = None):
        self.unit = unit
        super().__init__(message)


__all__ = ["WitnessError", "ConfigurationError", "ProbeBuildError"]
