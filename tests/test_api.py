"""End-to-end tests for the public API."""

from __future__ import annotations

import pywitness
from pywitness import ExplorationReport, witnesses
from pywitness.constraints.models import AssembleModel, NullModel, PrimitiveModel
from pywitness.testing.programs import CHECK, GUARDED_INIT, SET_VALUE, THIRD, wrapper_program


def test_package_exports():
    assert pywitness.__version__
    assert set(pywitness.__all__) >= {"explore", "witnesses", "synthesize", "WitnessConfig", "get_logger"}


def test_witnesses_of_check(guarded, config):
    report = witnesses(guarded, CHECK, config)

    assert isinstance(report, ExplorationReport)
    assert report.executable == CHECK
    assert len(report.witnesses) == 4
    assert len(report.exceptional()) == 1
    for witness in report.witnesses:
        assert len(witness.synthesized) == 2
        assert len(witness.execution.before.parameters) == 2


def test_null_receiver_witness_is_synthesized_as_null(guarded, config):
    report = witnesses(guarded, CHECK, config)

    (thrown,) = report.exceptional()
    g, x = thrown.synthesized
    assert isinstance(g, NullModel)
    assert isinstance(x, PrimitiveModel)


def test_synthesized_objects_use_public_calls(guarded, config):
    report = witnesses(guarded, CHECK, config)

    for witness in report.witnesses:
        g = witness.synthesized[0]
        if isinstance(g, AssembleModel):
            assert {call.executable for call in g.calls()} <= {GUARDED_INIT, SET_VALUE}


def test_disabled_synthesis(config):
    report = witnesses(wrapper_program(), THIRD, config.with_synthesis_disabled())

    assert len(report.witnesses) == 5
    assert all(w.synthesized is None for w in report.witnesses)
