"""
Custom Financial Model core.

Every value carries its provenance, every calculated value carries its
formula and steps, and reasoning text embeds source notation so that each
number can be traced back to where it came from.

Components:
1. Formula registry and evaluator - dependency-ordered, null-propagating
2. Direct Capitalization formula set
3. Source notation engine - ${key, tooltip:type-refType:refValue}
4. Model converters - flat record, grouped streams, income module data
"""

from parsenfill.custom_model.evaluator import FormulaEvaluator
from parsenfill.custom_model.formulas import build_direct_cap_registry
from parsenfill.custom_model.models import (
    CalculationAuditTrail,
    CalculationResult,
    CustomFinancialModel,
    FormulaDefinition,
    LineItemWithSource,
    OperandRef,
    Operation,
    SourceReference,
    SourceType,
    UserInputSection,
)
from parsenfill.custom_model.orchestrator import ModelOptions, run_model
from parsenfill.custom_model.registry import FormulaRegistry

__all__ = [
    "CalculationAuditTrail",
    "CalculationResult",
    "CustomFinancialModel",
    "FormulaDefinition",
    "FormulaEvaluator",
    "FormulaRegistry",
    "LineItemWithSource",
    "ModelOptions",
    "OperandRef",
    "Operation",
    "SourceReference",
    "SourceType",
    "UserInputSection",
    "build_direct_cap_registry",
    "run_model",
]
