"""Constraint variables, value models and the constraint resolver.

This module provides:
- Constraint variables and atomic constraints over them
- Translation between z3 terms and constraint variables
- Value models (null, primitive, object, array, list, set, map, assemble)
- The resolver that turns a satisfiable state into models
"""

from pywitness.constraints.models import (
    ArrayModel,
    AssembleModel,
    ConstrainedExecution,
    ListModel,
    MapModel,
    Model,
    NullModel,
    ObjectModel,
    PrimitiveModel,
    ReferenceToModel,
    ResolvedModels,
    SetModel,
    all_constraints,
    is_constraint_model,
)
from pywitness.constraints.resolver import ConstraintResolver
from pywitness.constraints.var_builder import VarBuilder
from pywitness.constraints.variables import (
    ArrayAccess,
    ArrayLength,
    BinaryExpression,
    BoolConstant,
    Constraint,
    ConstraintVariable,
    FieldAccess,
    Negation,
    NullConstant,
    NumericConstant,
    Parameter,
    Relation,
)


__all__ = [
    "ArrayModel",
    "AssembleModel",
    "ConstrainedExecution",
    "ListModel",
    "MapModel",
    "Model",
    "NullModel",
    "ObjectModel",
    "PrimitiveModel",
    "ReferenceToModel",
    "ResolvedModels",
    "SetModel",
    "all_constraints",
    "is_constraint_model",
    "ConstraintResolver",
    "VarBuilder",
    "ArrayAccess",
    "ArrayLength",
    "BinaryExpression",
    "BoolConstant",
    "Constraint",
    "ConstraintVariable",
    "FieldAccess",
    "Negation",
    "NullConstant",
    "NumericConstant",
    "Parameter",
    "Relation",
]
