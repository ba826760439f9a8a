"""
Pydantic schemas for Custom Financial Model payloads.

External JSON (as produced by the extraction agent and consumed by the UI)
is camelCase. Incoming payloads are validated here and converted to the
domain dataclasses with ``to_domain()``; domain objects are serialized back
with ``from_domain()``.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from parsenfill.custom_model.models import (
    BoundingBox,
    BriefReasoning,
    CalculationAuditTrail,
    CalculationFormula,
    CalculationResult,
    CalculationStep,
    CustomFinancialModel,
    DocumentLocation,
    FieldValueType,
    FinancialModelType,
    FlaggedItem,
    Footnote,
    FootnoteCategory,
    LineItemWithSource,
    ModelMetadata,
    OperandRef,
    Operation,
    OutputFormat,
    PropertyInfo,
    ReasoningDecision,
    ReferenceKey,
    Severity,
    SourceReference,
    SourceType,
    TypeMetadata,
    UserInputSection,
    ValuationInputs,
    ValueWithSource,
)
from parsenfill.exceptions import SchemaValidationError

logger = structlog.get_logger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class CamelModel(BaseModel):
    """Base schema reading and writing camelCase keys."""

    # Fields such as model_id and model_version use the "model_" prefix
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
    )


# =============================================================================
# Source Attribution
# =============================================================================

class BoundingBoxSchema(CamelModel):
    x: float
    y: float
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)


class DocumentLocationSchema(CamelModel):
    """Location within a source document."""

    file_name: str = Field(..., description="Source file name")
    file_type: str = Field(..., description="Source file type (pdf, xlsx, csv, image)")
    page: Optional[int] = Field(None, gt=0, description="Page number (1-indexed)")
    cell_ref: Optional[str] = Field(None, description="Spreadsheet cell reference")
    line: Optional[int] = Field(None, gt=0, description="Line number")
    bounding_box: Optional[BoundingBoxSchema] = None
    raw_text: Optional[str] = Field(None, description="Original extracted text")
    section: Optional[str] = None

    def to_domain(self) -> DocumentLocation:
        box = self.bounding_box
        return DocumentLocation(
            file_name=self.file_name,
            file_type=self.file_type,
            page=self.page,
            cell_ref=self.cell_ref,
            line=self.line,
            bounding_box=BoundingBox(box.x, box.y, box.width, box.height) if box else None,
            raw_text=self.raw_text,
            section=self.section,
        )

    @classmethod
    def from_domain(cls, location: DocumentLocation) -> "DocumentLocationSchema":
        box = location.bounding_box
        return cls(
            file_name=location.file_name,
            file_type=location.file_type,
            page=location.page,
            cell_ref=location.cell_ref,
            line=location.line,
            bounding_box=(
                BoundingBoxSchema(x=box.x, y=box.y, width=box.width, height=box.height)
                if box else None
            ),
            raw_text=location.raw_text,
            section=location.section,
        )


class ReferenceKeySchema(CamelModel):
    index: Optional[int] = Field(None, ge=0)
    key: Optional[str] = None
    id: Optional[str] = None


class SourceReferenceSchema(CamelModel):
    """Provenance of a single value."""

    source_type: SourceType = Field(..., description="Where the value originated")
    reference: ReferenceKeySchema = Field(..., description="Index, key or id within the source")
    display_path: str = Field(..., description="Human-readable path")
    confidence: Optional[float] = Field(None, ge=0, le=1, description="Extraction confidence (0-1)")
    timestamp: datetime = Field(..., description="When the value was produced")
    document_location: Optional[DocumentLocationSchema] = None
    parsing_session_id: Optional[str] = None
    user_id: Optional[str] = None

    @model_validator(mode="after")
    def _require_reference(self) -> "SourceReferenceSchema":
        ref = self.reference
        if ref.index is None and not ref.key and not ref.id:
            raise ValueError("reference must carry an index, key or id")
        return self

    def to_domain(self) -> SourceReference:
        return SourceReference(
            source_type=self.source_type,
            reference=ReferenceKey(
                index=self.reference.index,
                key=self.reference.key,
                id=self.reference.id,
            ),
            display_path=self.display_path,
            timestamp=self.timestamp.isoformat(),
            confidence=self.confidence,
            document_location=self.document_location.to_domain() if self.document_location else None,
            parsing_session_id=self.parsing_session_id,
            user_id=self.user_id,
        )

    @classmethod
    def from_domain(cls, source: SourceReference) -> "SourceReferenceSchema":
        location = source.document_location
        return cls(
            source_type=source.source_type,
            reference=ReferenceKeySchema(
                index=source.reference.index,
                key=source.reference.key,
                id=source.reference.id,
            ),
            display_path=source.display_path,
            confidence=source.confidence,
            timestamp=source.timestamp,
            document_location=DocumentLocationSchema.from_domain(location) if location else None,
            parsing_session_id=source.parsing_session_id,
            user_id=source.user_id,
        )


class FootnoteSchema(CamelModel):
    id: str
    symbol: str = Field(..., max_length=3)
    text: str = Field(..., min_length=1)
    category: FootnoteCategory

    def to_domain(self) -> Footnote:
        return Footnote(id=self.id, symbol=self.symbol, text=self.text, category=self.category)

    @classmethod
    def from_domain(cls, footnote: Footnote) -> "FootnoteSchema":
        return cls(
            id=footnote.id,
            symbol=footnote.symbol,
            text=footnote.text,
            category=footnote.category,
        )


class NumberWithSourceSchema(CamelModel):
    value: Optional[Decimal] = None
    source: SourceReferenceSchema

    def to_domain(self) -> ValueWithSource:
        return ValueWithSource(value=self.value, source=self.source.to_domain())

    @classmethod
    def from_domain(cls, item: ValueWithSource) -> "NumberWithSourceSchema":
        return cls(value=item.number, source=SourceReferenceSchema.from_domain(item.source))


# =============================================================================
# User Input
# =============================================================================

class LineItemSchema(CamelModel):
    """Revenue, expense or adjustment line item."""

    id: str = Field(..., description="Line item identifier")
    label: str = Field(..., min_length=1, description="Line item label as it appears in the source")
    amount: Decimal = Field(..., description="Annual amount")
    source: SourceReferenceSchema
    category: Optional[str] = None
    notes: Optional[str] = None
    flagged_for_review: bool = False

    def to_domain(self) -> LineItemWithSource:
        return LineItemWithSource(
            id=self.id,
            label=self.label,
            amount=self.amount,
            source=self.source.to_domain(),
            category=self.category,
            notes=self.notes,
            flagged_for_review=self.flagged_for_review,
        )

    @classmethod
    def from_domain(cls, item: LineItemWithSource) -> "LineItemSchema":
        return cls(
            id=item.id,
            label=item.label,
            amount=item.amount,
            source=SourceReferenceSchema.from_domain(item.source),
            category=item.category,
            notes=item.notes,
            flagged_for_review=item.flagged_for_review,
        )


class _ExtensibleInputs(CamelModel):
    """Fixed well-known inputs plus extra keys collected into `extensions`."""

    extensions: Dict[str, NumberWithSourceSchema] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _collect_extensions(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        known = set()
        for name, info in cls.model_fields.items():
            known.add(name)
            known.add(info.alias or to_camel(name))
        extensions = dict(data.get("extensions") or {})
        collected = {}
        for key, value in data.items():
            if key in known:
                collected[key] = value
            else:
                extensions[key] = value
        collected["extensions"] = extensions
        return collected

    def _extensions_to_domain(self) -> Dict[str, ValueWithSource]:
        return {key: value.to_domain() for key, value in self.extensions.items()}

    @staticmethod
    def _extensions_from_domain(extensions: Dict[str, ValueWithSource]) -> Dict[str, NumberWithSourceSchema]:
        return {key: NumberWithSourceSchema.from_domain(value) for key, value in extensions.items()}


def _optional(value: Optional[NumberWithSourceSchema]) -> Optional[ValueWithSource]:
    return value.to_domain() if value else None


def _optional_schema(value: Optional[ValueWithSource]) -> Optional[NumberWithSourceSchema]:
    return NumberWithSourceSchema.from_domain(value) if value else None


class ValuationInputsSchema(_ExtensibleInputs):
    cap_rate: Optional[NumberWithSourceSchema] = None
    asking_price: Optional[NumberWithSourceSchema] = None
    vacancy_rate: Optional[NumberWithSourceSchema] = None

    def to_domain(self) -> ValuationInputs:
        return ValuationInputs(
            cap_rate=_optional(self.cap_rate),
            asking_price=_optional(self.asking_price),
            vacancy_rate=_optional(self.vacancy_rate),
            extensions=self._extensions_to_domain(),
        )

    @classmethod
    def from_domain(cls, inputs: ValuationInputs) -> "ValuationInputsSchema":
        return cls(
            cap_rate=_optional_schema(inputs.cap_rate),
            asking_price=_optional_schema(inputs.asking_price),
            vacancy_rate=_optional_schema(inputs.vacancy_rate),
            extensions=cls._extensions_from_domain(inputs.extensions),
        )


class PropertyInfoSchema(_ExtensibleInputs):
    square_footage: Optional[NumberWithSourceSchema] = None
    units: Optional[NumberWithSourceSchema] = None
    year_built: Optional[NumberWithSourceSchema] = None
    lot_size: Optional[NumberWithSourceSchema] = None

    def to_domain(self) -> PropertyInfo:
        return PropertyInfo(
            square_footage=_optional(self.square_footage),
            units=_optional(self.units),
            year_built=_optional(self.year_built),
            lot_size=_optional(self.lot_size),
            extensions=self._extensions_to_domain(),
        )

    @classmethod
    def from_domain(cls, info: PropertyInfo) -> "PropertyInfoSchema":
        return cls(
            square_footage=_optional_schema(info.square_footage),
            units=_optional_schema(info.units),
            year_built=_optional_schema(info.year_built),
            lot_size=_optional_schema(info.lot_size),
            extensions=cls._extensions_from_domain(info.extensions),
        )


class UserInputSchema(CamelModel):
    """User input section of a model."""

    revenue_items: List[LineItemSchema]
    expense_items: List[LineItemSchema]
    adjustment_items: List[LineItemSchema] = Field(default_factory=list)
    property_info: Optional[PropertyInfoSchema] = None
    valuation_inputs: Optional[ValuationInputsSchema] = None

    def to_domain(self) -> UserInputSection:
        return UserInputSection(
            revenue_items=[item.to_domain() for item in self.revenue_items],
            expense_items=[item.to_domain() for item in self.expense_items],
            adjustment_items=[item.to_domain() for item in self.adjustment_items],
            property_info=self.property_info.to_domain() if self.property_info else None,
            valuation_inputs=self.valuation_inputs.to_domain() if self.valuation_inputs else None,
        )

    @classmethod
    def from_domain(cls, section: UserInputSection) -> "UserInputSchema":
        return cls(
            revenue_items=[LineItemSchema.from_domain(item) for item in section.revenue_items],
            expense_items=[LineItemSchema.from_domain(item) for item in section.expense_items],
            adjustment_items=[LineItemSchema.from_domain(item) for item in section.adjustment_items],
            property_info=(
                PropertyInfoSchema.from_domain(section.property_info) if section.property_info else None
            ),
            valuation_inputs=(
                ValuationInputsSchema.from_domain(section.valuation_inputs)
                if section.valuation_inputs else None
            ),
        )


# =============================================================================
# Calculations
# =============================================================================

class OperandRefSchema(CamelModel):
    ref: str
    label: str
    key: Optional[str] = None
    description: Optional[str] = None
    coefficient: Optional[Decimal] = None

    def to_domain(self) -> OperandRef:
        return OperandRef(
            key=self.key or self.ref,
            label=self.label,
            ref=self.ref,
            description=self.description,
            coefficient=self.coefficient,
        )


class CalculationFormulaSchema(CamelModel):
    display_formula: str = Field(..., min_length=1)
    expression: str = Field(..., min_length=1)
    operands: List[OperandRefSchema]
    operator: Optional[Operation] = None
    calculation_fn: Optional[str] = None

    def to_domain(self) -> CalculationFormula:
        return CalculationFormula(
            display_formula=self.display_formula,
            expression=self.expression,
            operands=[op.to_domain() for op in self.operands],
            operator=self.operator,
            calculation_fn=self.calculation_fn,
        )


class CalculationStepSchema(CamelModel):
    description: str
    expression: str
    result: Optional[Decimal] = None
    order: Optional[int] = Field(None, ge=0)

    def to_domain(self) -> CalculationStep:
        return CalculationStep(
            description=self.description,
            expression=self.expression,
            result=self.result,
            order=self.order or 0,
        )


class CalculationResultSchema(CamelModel):
    """Calculated value with formula, steps and provenance."""

    value: Optional[Decimal] = None
    formula: CalculationFormulaSchema
    steps: List[CalculationStepSchema] = Field(default_factory=list)
    is_valid: bool
    error: Optional[str] = None
    warning: Optional[str] = None
    source: SourceReferenceSchema
    output_format: Optional[OutputFormat] = None
    currency: Optional[str] = None
    precision: Optional[int] = Field(None, ge=0)
    footnotes: List[FootnoteSchema] = Field(default_factory=list)

    def to_domain(self) -> CalculationResult:
        return CalculationResult(
            value=self.value,
            formula=self.formula.to_domain(),
            source=self.source.to_domain(),
            is_valid=self.is_valid,
            steps=[step.to_domain() for step in self.steps],
            error=self.error,
            warning=self.warning,
            output_format=self.output_format,
            currency=self.currency,
            precision=self.precision,
            footnotes=[f.to_domain() for f in self.footnotes],
        )

    @classmethod
    def from_domain(cls, result: CalculationResult) -> "CalculationResultSchema":
        formula = result.formula
        return cls(
            value=result.value,
            formula=CalculationFormulaSchema(
                display_formula=formula.display_formula,
                expression=formula.expression,
                operands=[
                    OperandRefSchema(
                        ref=op.path,
                        label=op.label,
                        key=op.key,
                        description=op.description,
                        coefficient=op.coefficient,
                    )
                    for op in formula.operands
                ],
                operator=formula.operator,
                calculation_fn=formula.calculation_fn,
            ),
            steps=[
                CalculationStepSchema(
                    description=step.description,
                    expression=step.expression,
                    result=step.result,
                    order=step.order,
                )
                for step in result.steps
            ],
            is_valid=result.is_valid,
            error=result.error,
            warning=result.warning,
            source=SourceReferenceSchema.from_domain(result.source),
            output_format=result.output_format,
            currency=result.currency,
            precision=result.precision,
            footnotes=[FootnoteSchema.from_domain(f) for f in result.footnotes],
        )


class AuditTrailSchema(CamelModel):
    """Calculation audit trail of one evaluation run."""

    model_id: str
    timestamp: datetime
    calculations: List[CalculationResultSchema]
    results: Dict[str, Optional[Decimal]]
    warnings: List[str] = Field(default_factory=list)
    processing_time_ms: Optional[float] = Field(None, ge=0)

    def to_domain(self) -> CalculationAuditTrail:
        return CalculationAuditTrail(
            model_id=self.model_id,
            timestamp=self.timestamp.isoformat(),
            calculations=[calc.to_domain() for calc in self.calculations],
            results=dict(self.results),
            warnings=list(self.warnings),
            processing_time_ms=self.processing_time_ms,
        )

    @classmethod
    def from_domain(cls, trail: CalculationAuditTrail) -> "AuditTrailSchema":
        return cls(
            model_id=trail.model_id,
            timestamp=trail.timestamp,
            calculations=[CalculationResultSchema.from_domain(c) for c in trail.calculations],
            results=dict(trail.results),
            warnings=list(trail.warnings),
            processing_time_ms=trail.processing_time_ms,
        )


# =============================================================================
# Types
# =============================================================================

class TypeConstraintsSchema(CamelModel):
    min: Optional[Decimal] = None
    max: Optional[Decimal] = None
    required: bool = False


class TypeMetadataSchema(CamelModel):
    """Formatting and validation metadata for one field path."""

    type: FieldValueType
    currency: Optional[str] = None
    precision: Optional[int] = Field(None, ge=0)
    unit: Optional[str] = None
    display_format: Optional[str] = None
    footnotes: List[FootnoteSchema] = Field(default_factory=list)
    source_location: Optional[DocumentLocationSchema] = None
    is_overridden: bool = False
    original_value: Union[Decimal, str, None] = None
    constraints: Optional[TypeConstraintsSchema] = None

    def to_domain(self) -> TypeMetadata:
        constraints = self.constraints or TypeConstraintsSchema()
        return TypeMetadata(
            type=self.type,
            currency=self.currency,
            precision=self.precision,
            unit=self.unit,
            display_format=self.display_format,
            footnotes=[f.to_domain() for f in self.footnotes],
            source_location=self.source_location.to_domain() if self.source_location else None,
            is_overridden=self.is_overridden,
            original_value=self.original_value,
            min_value=constraints.min,
            max_value=constraints.max,
            required=constraints.required,
        )

    @classmethod
    def from_domain(cls, metadata: TypeMetadata) -> "TypeMetadataSchema":
        has_constraints = (
            metadata.min_value is not None or metadata.max_value is not None or metadata.required
        )
        return cls(
            type=metadata.type,
            currency=metadata.currency,
            precision=metadata.precision,
            unit=metadata.unit,
            display_format=metadata.display_format,
            footnotes=[FootnoteSchema.from_domain(f) for f in metadata.footnotes],
            source_location=(
                DocumentLocationSchema.from_domain(metadata.source_location)
                if metadata.source_location else None
            ),
            is_overridden=metadata.is_overridden,
            original_value=metadata.original_value,
            constraints=TypeConstraintsSchema(
                min=metadata.min_value,
                max=metadata.max_value,
                required=metadata.required,
            ) if has_constraints else None,
        )


# =============================================================================
# Reasoning and Metadata
# =============================================================================

class ReasoningDecisionSchema(CamelModel):
    decision: str = Field(..., min_length=1)
    rationale: str = Field(..., min_length=1)
    affected_fields: List[str] = Field(default_factory=list)
    confidence: float = Field(..., ge=0, le=1)
    alternatives: List[str] = Field(default_factory=list)

    def to_domain(self) -> ReasoningDecision:
        return ReasoningDecision(
            decision=self.decision,
            rationale=self.rationale,
            affected_fields=list(self.affected_fields),
            confidence=self.confidence,
            alternatives=list(self.alternatives),
        )

    @classmethod
    def from_domain(cls, decision: ReasoningDecision) -> "ReasoningDecisionSchema":
        return cls(
            decision=decision.decision,
            rationale=decision.rationale,
            affected_fields=list(decision.affected_fields),
            confidence=decision.confidence,
            alternatives=list(decision.alternatives),
        )


class FlaggedItemSchema(CamelModel):
    field: str
    reason: str = Field(..., min_length=1)
    severity: Severity
    suggested_action: Optional[str] = None
    confidence: Optional[float] = Field(None, ge=0, le=1)

    def to_domain(self) -> FlaggedItem:
        return FlaggedItem(
            field=self.field,
            reason=self.reason,
            severity=self.severity,
            suggested_action=self.suggested_action,
            confidence=self.confidence,
        )

    @classmethod
    def from_domain(cls, item: FlaggedItem) -> "FlaggedItemSchema":
        return cls(
            field=item.field,
            reason=item.reason,
            severity=item.severity,
            suggested_action=item.suggested_action,
            confidence=item.confidence,
        )


class BriefReasoningSchema(CamelModel):
    """Reasoning summary with embedded source notation."""

    summary: str = Field(..., min_length=1)
    decisions: List[ReasoningDecisionSchema] = Field(default_factory=list)
    flagged_items: List[FlaggedItemSchema] = Field(default_factory=list)
    overall_confidence: float = Field(..., ge=0, le=1)

    def to_domain(self) -> BriefReasoning:
        return BriefReasoning(
            summary=self.summary,
            decisions=[d.to_domain() for d in self.decisions],
            flagged_items=[f.to_domain() for f in self.flagged_items],
            overall_confidence=self.overall_confidence,
        )

    @classmethod
    def from_domain(cls, reasoning: BriefReasoning) -> "BriefReasoningSchema":
        return cls(
            summary=reasoning.summary,
            decisions=[ReasoningDecisionSchema.from_domain(d) for d in reasoning.decisions],
            flagged_items=[FlaggedItemSchema.from_domain(f) for f in reasoning.flagged_items],
            overall_confidence=reasoning.overall_confidence,
        )


class ModelMetadataSchema(CamelModel):
    model_version: str
    created_at: datetime
    source_file_name: Optional[str] = None
    source_file_type: Optional[str] = None
    processing_time_ms: Optional[float] = Field(None, ge=0)
    agent_model: Optional[str] = None
    updated_at: Optional[datetime] = None
    parsing_session_id: Optional[str] = None

    def to_domain(self) -> ModelMetadata:
        return ModelMetadata(
            model_version=self.model_version,
            created_at=self.created_at.isoformat(),
            source_file_name=self.source_file_name,
            source_file_type=self.source_file_type,
            processing_time_ms=self.processing_time_ms,
            agent_model=self.agent_model,
            updated_at=self.updated_at.isoformat() if self.updated_at else None,
            parsing_session_id=self.parsing_session_id,
        )

    @classmethod
    def from_domain(cls, metadata: ModelMetadata) -> "ModelMetadataSchema":
        return cls(
            model_version=metadata.model_version,
            created_at=metadata.created_at,
            source_file_name=metadata.source_file_name,
            source_file_type=metadata.source_file_type,
            processing_time_ms=metadata.processing_time_ms,
            agent_model=metadata.agent_model,
            updated_at=metadata.updated_at,
            parsing_session_id=metadata.parsing_session_id,
        )


# =============================================================================
# Complete Model
# =============================================================================

class CustomModelSectionSchema(CamelModel):
    """User input, calculations and type metadata of a model."""

    user_input: UserInputSchema
    calculations: AuditTrailSchema
    types: Dict[str, TypeMetadataSchema] = Field(default_factory=dict)


class CustomFinancialModelSchema(CamelModel):
    """Complete model payload."""

    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    model_type: FinancialModelType
    brief_reasoning: BriefReasoningSchema
    custom_model: CustomModelSectionSchema
    metadata: ModelMetadataSchema

    def to_domain(self) -> CustomFinancialModel:
        section = self.custom_model
        return CustomFinancialModel(
            id=self.id,
            title=self.title,
            model_type=self.model_type,
            brief_reasoning=self.brief_reasoning.to_domain(),
            user_input=section.user_input.to_domain(),
            calculations=section.calculations.to_domain(),
            metadata=self.metadata.to_domain(),
            types={path: meta.to_domain() for path, meta in section.types.items()},
        )

    @classmethod
    def from_domain(cls, model: CustomFinancialModel) -> "CustomFinancialModelSchema":
        return cls(
            id=model.id,
            title=model.title,
            model_type=model.model_type,
            brief_reasoning=BriefReasoningSchema.from_domain(model.brief_reasoning),
            custom_model=CustomModelSectionSchema(
                user_input=UserInputSchema.from_domain(model.user_input),
                calculations=AuditTrailSchema.from_domain(model.calculations),
                types={path: TypeMetadataSchema.from_domain(meta) for path, meta in model.types.items()},
            ),
            metadata=ModelMetadataSchema.from_domain(model.metadata),
        )


class DirectCapitalizationModelSchema(CustomFinancialModelSchema):
    """Direct Capitalization model: requires a cap rate and a property value."""

    @model_validator(mode="after")
    def _require_direct_cap_fields(self) -> "DirectCapitalizationModelSchema":
        if self.model_type != FinancialModelType.DIRECT_CAPITALIZATION:
            raise ValueError("modelType must be direct_capitalization")
        valuation = self.custom_model.user_input.valuation_inputs
        if valuation is None or valuation.cap_rate is None:
            raise ValueError("valuationInputs.capRate is required")
        calculated = {calc.source.reference.key for calc in self.custom_model.calculations.calculations}
        if "propertyValue" not in calculated:
            raise ValueError("calculations must include propertyValue")
        return self


# =============================================================================
# Validation entry point
# =============================================================================

def parse_payload(schema: Type[SchemaT], data: Any) -> SchemaT:
    """
    Validate an external payload against a schema.

    Raises:
        SchemaValidationError: The payload does not match the schema.
    """
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        errors = [
            {
                "loc": ".".join(str(part) for part in error["loc"]),
                "msg": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        logger.warning(
            "Payload failed schema validation",
            schema=schema.__name__,
            error_count=len(errors),
        )
        raise SchemaValidationError(
            f"Invalid {schema.__name__} payload",
            errors=errors,
            details={"schema": schema.__name__},
        ) from exc


def parse_user_input(data: Any) -> UserInputSection:
    """Validate a camelCase user input payload and convert it to the domain model."""
    return parse_payload(UserInputSchema, data).to_domain()


def parse_model(data: Any) -> CustomFinancialModel:
    """Validate a complete camelCase model payload and convert it to the domain model."""
    schema = CustomFinancialModelSchema
    if isinstance(data, dict) and data.get("modelType") == FinancialModelType.DIRECT_CAPITALIZATION.value:
        schema = DirectCapitalizationModelSchema
    return parse_payload(schema, data).to_domain()
