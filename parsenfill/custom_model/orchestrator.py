"""
Model assembly for the Custom Financial Model core.

Coordinates one run from user input to an audited model:
1. Derive raw inputs from the user input section
2. Evaluate the formula registry
3. Escalate low-confidence and flagged items for review
4. Build and validate the reasoning summary
5. Attach type metadata, metadata and overall confidence
"""

import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

import structlog

from parsenfill.config import Settings, get_settings
from parsenfill.custom_model import notation
from parsenfill.custom_model.evaluator import FormulaEvaluator
from parsenfill.custom_model.formulas.direct_cap import build_direct_cap_registry
from parsenfill.custom_model.models import (
    BriefReasoning,
    CalculationAuditTrail,
    CustomFinancialModel,
    FieldValueType,
    FinancialModelType,
    FlaggedItem,
    ModelMetadata,
    OutputFormat,
    ReasoningDecision,
    Severity,
    SourceReference,
    TypeMetadata,
    UserInputSection,
)
from parsenfill.custom_model.notation import NotationRef
from parsenfill.custom_model.registry import FormulaRegistry
from parsenfill.utils.logging import bind_model_id

logger = structlog.get_logger(__name__)

SUMMARY_FIELD = "briefReasoning.summary"

_FIELD_TYPES = {
    OutputFormat.CURRENCY: FieldValueType.CURRENCY,
    OutputFormat.PERCENTAGE: FieldValueType.PERCENTAGE,
    OutputFormat.NUMBER: FieldValueType.NUMBER,
    OutputFormat.RATIO: FieldValueType.NUMBER,
}


@dataclass
class ModelOptions:
    """Configuration options for one model run."""
    model_id: Optional[str] = None
    model_type: FinancialModelType = FinancialModelType.DIRECT_CAPITALIZATION
    # Reasoning
    summary: Optional[str] = None  # Generated when not supplied
    decisions: List[ReasoningDecision] = field(default_factory=list)
    # Selective escalation (settings value when None)
    review_confidence_threshold: Optional[float] = None
    # Metadata
    source_file_name: Optional[str] = None
    source_file_type: Optional[str] = None
    agent_model: Optional[str] = None
    parsing_session_id: Optional[str] = None


def run_model(
    user_input: UserInputSection,
    *,
    title: str,
    registry: Optional[FormulaRegistry] = None,
    options: Optional[ModelOptions] = None,
    settings: Optional[Settings] = None,
) -> CustomFinancialModel:
    """
    Assemble an audited model from user input.

    Args:
        user_input: Line items and valuation/property inputs with provenance.
        title: Model title.
        registry: Formula registry; a fresh Direct Cap registry when None.
        options: Run options.
        settings: Settings override; cached settings when None.

    Returns:
        CustomFinancialModel with calculations, reasoning and metadata.
    """
    start = time.perf_counter()
    options = options or ModelOptions()
    settings = settings or get_settings()
    model_id = options.model_id or str(uuid.uuid4())

    with bind_model_id(model_id):
        if registry is None:
            registry = build_direct_cap_registry(settings.default_vacancy_rate)

        logger.info(
            "Assembling model",
            title=title,
            model_type=FinancialModelType(options.model_type).value,
            revenue_items=len(user_input.revenue_items),
            expense_items=len(user_input.expense_items),
        )

        evaluator = FormulaEvaluator(registry, settings)
        trail = evaluator.evaluate(user_input.raw_inputs(), model_id=model_id)

        threshold = (
            options.review_confidence_threshold
            if options.review_confidence_threshold is not None
            else settings.review_confidence_threshold
        )
        flagged = _flag_line_items(user_input, threshold)
        flagged.extend(_flag_calculations(trail))

        summary = options.summary if options.summary is not None else build_summary(user_input, trail)
        flagged.extend(_flag_summary(summary))

        reasoning = BriefReasoning(
            summary=summary,
            decisions=list(options.decisions),
            flagged_items=flagged,
            overall_confidence=overall_confidence(user_input),
        )

        metadata = ModelMetadata(
            model_version=settings.model_version,
            source_file_name=options.source_file_name,
            source_file_type=options.source_file_type,
            agent_model=options.agent_model,
            parsing_session_id=options.parsing_session_id,
        )

        model = CustomFinancialModel(
            id=model_id,
            title=title,
            model_type=FinancialModelType(options.model_type),
            brief_reasoning=reasoning,
            user_input=user_input,
            calculations=trail,
            metadata=metadata,
            types=_type_metadata(trail),
        )
        metadata.processing_time_ms = (time.perf_counter() - start) * 1000.0

        logger.info(
            "Model assembled",
            flagged_items=len(flagged),
            warnings=len(trail.warnings),
            overall_confidence=round(reasoning.overall_confidence, 3),
            duration_ms=round(metadata.processing_time_ms, 2),
        )
        return model


# =============================================================================
# Selective escalation
# =============================================================================

def _flag_line_items(user_input: UserInputSection, threshold: float) -> List[FlaggedItem]:
    flagged = []
    for section, index, item in user_input.all_items():
        path = f"userInput.{section}[{index}]"
        confidence = item.source.confidence
        if item.flagged_for_review:
            flagged.append(FlaggedItem(
                field=path,
                reason=f"{item.label} marked for review",
                suggested_action="Verify the amount against the source document",
                confidence=confidence,
            ))
        elif confidence is not None and confidence < threshold:
            flagged.append(FlaggedItem(
                field=path,
                reason=f"Low extraction confidence for {item.label} ({confidence:.2f})",
                suggested_action="Verify the amount against the source document",
                confidence=confidence,
            ))
    return flagged


def _flag_calculations(trail: CalculationAuditTrail) -> List[FlaggedItem]:
    return [
        FlaggedItem(
            field=f"calculations.{calc.formula_id}",
            reason=calc.error,
            severity=Severity.ERROR,
            suggested_action="Review the inputs feeding this calculation",
        )
        for calc in trail.failed()
    ]


def _flag_summary(summary: str) -> List[FlaggedItem]:
    result = notation.validate(summary)
    if not result.is_valid:
        logger.warning("Reasoning summary has invalid source notation", errors=len(result.errors))
    return [
        FlaggedItem(
            field=SUMMARY_FIELD,
            reason=error,
            suggested_action="Correct the source notation in the summary",
        )
        for error in result.errors
    ]


# =============================================================================
# Reasoning
# =============================================================================

def build_summary(user_input: UserInputSection, trail: CalculationAuditTrail) -> str:
    """
    Build a reasoning summary with source notation for the key results.

    Only results that were computed are mentioned.
    """
    def calculated(formula_id: str) -> NotationRef:
        return NotationRef(
            value_key=formula_id,
            source_type="calculated",
            ref_type="key",
            ref_value=formula_id,
        )

    sentences = [
        f"Extracted {len(user_input.revenue_items)} revenue items and "
        f"{len(user_input.expense_items)} expense items."
    ]
    templates = (
        ("grossPotentialIncome", "Gross potential income is {value}."),
        ("effectiveGrossIncome", "After vacancy, effective gross income is {value}."),
        ("totalOperatingExpenses", "Total operating expenses are {value}."),
        ("netOperatingIncome", "Net operating income is {value}."),
        ("propertyValue", "Indicated property value is {value}."),
    )
    for formula_id, template in templates:
        if trail.results.get(formula_id) is not None:
            sentences.append(
                notation.build_reasoning_summary(template, {"value": calculated(formula_id)})
            )

    uncomputable = [formula_id for formula_id, value in trail.results.items() if value is None]
    if uncomputable:
        sentences.append(f"Not computed due to missing inputs: {', '.join(uncomputable)}.")

    return " ".join(sentences)


def _sources(user_input: UserInputSection) -> Iterator[SourceReference]:
    for _, _, item in user_input.all_items():
        yield item.source
    for section in (user_input.valuation_inputs, user_input.property_info):
        if section is None:
            continue
        for name in vars(section):
            value = getattr(section, name)
            if name == "extensions":
                for extension in value.values():
                    yield extension.source
            elif value is not None:
                yield value.source


def overall_confidence(user_input: UserInputSection) -> float:
    """Mean source confidence over all inputs; 1.0 when none is recorded."""
    scores = [source.confidence for source in _sources(user_input) if source.confidence is not None]
    if not scores:
        return 1.0
    return sum(scores) / len(scores)


def _type_metadata(trail: CalculationAuditTrail) -> Dict[str, TypeMetadata]:
    types = {}
    for calc in trail.calculations:
        types[f"calculations.{calc.formula_id}"] = TypeMetadata(
            type=_FIELD_TYPES[calc.output_format or OutputFormat.NUMBER],
            currency=calc.currency,
            precision=calc.precision,
            footnotes=list(calc.footnotes),
        )
    return types
