"""Shared fixtures: sample programs, explorers and a capturing logger."""

from __future__ import annotations

import io

import pytest

from pywitness.config import WitnessConfig
from pywitness.engine.explorer import SymbolicExplorer
from pywitness.logging import LogLevel, WitnessLogger, get_logger, set_logger
from pywitness.testing.programs import guarded_program, wrapper_program


@pytest.fixture(scope="session", autouse=True)
def _quiet_logging():
    previous = get_logger()
    set_logger(WitnessLogger(level=LogLevel.QUIET, color=False, stream=io.StringIO()))
    yield
    set_logger(previous)


@pytest.fixture
def logger():
    """Fresh logger that keeps every entry; the previous one is restored afterwards."""
    previous = get_logger()
    captured = WitnessLogger(level=LogLevel.TRACE, color=False, stream=io.StringIO())
    set_logger(captured)
    yield captured
    set_logger(previous)


@pytest.fixture
def config() -> WitnessConfig:
    config = WitnessConfig()
    config.synthesis.timeout_ms = 60000
    return config


@pytest.fixture
def guarded():
    return guarded_program()


@pytest.fixture
def wrappers():
    return wrapper_program()


@pytest.fixture
def explorer(guarded, config) -> SymbolicExplorer:
    return SymbolicExplorer(guarded, config)


@pytest.fixture
def wrapper_explorer(wrappers, config) -> SymbolicExplorer:
    return SymbolicExplorer(wrappers, config)
