"""Model-directed synthesis of construction sequences."""

from pywitness.synthesis.checker import SynthesisUnitChecker
from pywitness.synthesis.probe import ConstraintBasedPostCondition, ProbeMethodBuilder
from pywitness.synthesis.queue import SynthesisUnitContext, SynthesisUnitContextQueue
from pywitness.synthesis.storage import StatementsStorage
from pywitness.synthesis.synthesizer import SynthesisStats, Synthesizer, split_models
from pywitness.synthesis.units import (
    ArrayUnit,
    ListUnit,
    MapUnit,
    MethodUnit,
    NullUnit,
    ObjectUnit,
    ReferenceToUnit,
    SetUnit,
)


__all__ = [
    "SynthesisUnitChecker",
    "ConstraintBasedPostCondition",
    "ProbeMethodBuilder",
    "SynthesisUnitContext",
    "SynthesisUnitContextQueue",
    "StatementsStorage",
    "SynthesisStats",
    "Synthesizer",
    "split_models",
    "ArrayUnit",
    "ListUnit",
    "MapUnit",
    "MethodUnit",
    "NullUnit",
    "ObjectUnit",
    "ReferenceToUnit",
    "SetUnit",
]
