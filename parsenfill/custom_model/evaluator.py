"""
Formula evaluator.

Computes every registered formula in dependency order and records a
CalculationResult for each one, producing a CalculationAuditTrail.
"""

import time
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

import structlog

from parsenfill.config import Settings, get_settings
from parsenfill.custom_model.models import (
    CalculationAuditTrail,
    CalculationFormula,
    CalculationResult,
    CalculationStep,
    Footnote,
    FootnoteCategory,
    FormulaDefinition,
    Operation,
    OutputFormat,
    Severity,
    SourceReference,
    to_decimal,
)
from parsenfill.custom_model.registry import FormulaRegistry

logger = structlog.get_logger(__name__)

_OPERATOR_SYMBOLS = {
    Operation.ADD: " + ",
    Operation.SUM: " + ",
    Operation.SUBTRACT: " - ",
    Operation.MULTIPLY: " * ",
    Operation.DIVIDE: " / ",
}

UNCOMPUTABLE_MESSAGE = "cannot be computed (missing or invalid inputs)"


def _fmt(value: Optional[Decimal]) -> str:
    if value is None:
        return "null"
    return format(value.normalize(), "f") if value == value.to_integral_value() else str(value)


class FormulaEvaluator:
    """
    Evaluates a formula registry against raw inputs.

    The evaluator keeps no state between calls; concurrent calls with
    separate inputs are independent.
    """

    def __init__(self, registry: FormulaRegistry, settings: Optional[Settings] = None):
        self.registry = registry
        self.settings = settings or get_settings()

    def evaluate(
        self,
        raw_inputs: Mapping[str, Any],
        model_id: Optional[str] = None,
    ) -> CalculationAuditTrail:
        """
        Evaluate all formulas.

        Args:
            raw_inputs: Named raw inputs (e.g. totalRevenue, capRate).
            model_id: Identifier recorded on the audit trail.

        Returns:
            CalculationAuditTrail with results in execution order.
        """
        start = time.perf_counter()
        trail = CalculationAuditTrail(model_id=model_id or str(uuid.uuid4()))
        inputs: Dict[str, Optional[Decimal]] = {
            name: to_decimal(value) for name, value in raw_inputs.items()
        }
        functions = self.registry.functions

        logger.info(
            "Evaluating formulas",
            model_id=trail.model_id,
            formulas=len(self.registry),
            inputs=len(inputs),
        )

        for formula_id in self.registry.execution_order():
            definition = self.registry.get(formula_id)
            formula_inputs = dict(inputs)
            for dependency in definition.dependencies:
                formula_inputs[dependency] = trail.results.get(dependency)

            result = self._evaluate_formula(definition, formula_inputs, functions)
            trail.calculations.append(result)
            trail.results[formula_id] = result.value

            if result.error:
                trail.warnings.append(f"{definition.name}: {result.error}")
            elif result.warning:
                trail.warnings.append(f"{definition.name}: {result.warning}")

            logger.debug(
                "Formula evaluated",
                formula=formula_id,
                value=_fmt(result.value),
                is_valid=result.is_valid,
            )

        trail.processing_time_ms = (time.perf_counter() - start) * 1000.0

        logger.info(
            "Evaluation complete",
            model_id=trail.model_id,
            computed=sum(1 for v in trail.results.values() if v is not None),
            uncomputable=sum(1 for v in trail.results.values() if v is None),
            warnings=len(trail.warnings),
            duration_ms=round(trail.processing_time_ms, 2),
        )
        return trail

    def _evaluate_formula(
        self,
        definition: FormulaDefinition,
        inputs: Dict[str, Optional[Decimal]],
        functions: Mapping[str, Any],
    ) -> CalculationResult:
        """Compute one formula and wrap it with its audit record."""
        operand_values = definition.resolve_operands(inputs)
        steps = self._build_steps(definition, operand_values)
        footnotes = self._default_footnotes(definition, inputs)

        error: Optional[str] = None
        warning: Optional[str] = None
        is_valid = True

        try:
            value = definition.compute(inputs, functions)
        except Exception as exc:
            logger.exception("Formula computation failed", formula=definition.id)
            value = None
            error = f"Computation failed: {exc}"
            is_valid = False

        steps.append(CalculationStep(
            description=f"Calculate {definition.name}",
            expression=self._describe(definition, operand_values),
            result=value,
            order=len(steps),
        ))

        if error is None:
            validation = definition.validate(value)
            if validation.severity == Severity.ERROR:
                error = validation.message
                is_valid = False
            elif validation.severity == Severity.WARNING:
                warning = validation.message
            if value is None and warning is None and error is None:
                warning = UNCOMPUTABLE_MESSAGE
            if validation.severity != Severity.INFO:
                logger.warning(
                    "Formula validation flagged result",
                    formula=definition.id,
                    severity=validation.severity.value,
                    message=validation.message,
                )

        currency, precision = self._format_for(definition.output_format)

        return CalculationResult(
            value=value,
            formula=CalculationFormula(
                display_formula=f"{definition.name} = {definition.human_readable}",
                expression=definition.expression,
                operands=list(definition.operands),
                operator=definition.operation,
                calculation_fn=definition.function,
            ),
            source=SourceReference.for_calculation(definition.id),
            is_valid=is_valid,
            steps=steps,
            error=error,
            warning=warning,
            output_format=definition.output_format,
            currency=currency,
            precision=precision,
            footnotes=footnotes,
        )

    @staticmethod
    def _build_steps(
        definition: FormulaDefinition,
        operand_values: Dict[str, Optional[Decimal]],
    ) -> List[CalculationStep]:
        return [
            CalculationStep(
                description=f"Get {operand.label}",
                expression=_fmt(operand_values.get(operand.key)),
                result=operand_values.get(operand.key),
                order=order,
            )
            for order, operand in enumerate(definition.operands)
        ]

    @staticmethod
    def _describe(
        definition: FormulaDefinition,
        operand_values: Dict[str, Optional[Decimal]],
    ) -> str:
        """Expression with operand values substituted, e.g. "95000 - 15000"."""
        rendered = []
        for operand in definition.operands:
            text = _fmt(operand_values.get(operand.key))
            if operand.coefficient is not None:
                text = f"{text} * {_fmt(operand.coefficient)}"
            rendered.append(text)

        if definition.operation == Operation.CUSTOM:
            expression = f"{definition.function}({', '.join(rendered)})"
        else:
            expression = _OPERATOR_SYMBOLS[definition.operation].join(rendered)

        if definition.scale is not None:
            expression = f"({expression}) * {_fmt(definition.scale)}"
        return expression

    @staticmethod
    def _default_footnotes(
        definition: FormulaDefinition,
        inputs: Dict[str, Optional[Decimal]],
    ) -> List[Footnote]:
        """Footnote every operand whose default stood in for a missing input."""
        footnotes = []
        for operand in definition.operands:
            if operand.default is not None and inputs.get(operand.key) is None:
                footnotes.append(Footnote(
                    id=f"{definition.id}-{operand.key}-default",
                    symbol=str(len(footnotes) + 1),
                    text=f"{operand.label} not provided; default of {_fmt(operand.default)} applied",
                    category=FootnoteCategory.ASSUMPTION,
                ))
        return footnotes

    def _format_for(self, output_format: OutputFormat):
        if output_format == OutputFormat.CURRENCY:
            return self.settings.default_currency, self.settings.currency_precision
        if output_format == OutputFormat.PERCENTAGE:
            return None, self.settings.percentage_precision
        return None, None
