"""
Domain model for the Custom Financial Model core.

Implements:
- SourceReference provenance records (user input, parsed document,
  calculated, default, assumption)
- LineItemWithSource and the user input section
- FormulaDefinition with a declarative operation interpreter
- CalculationResult and CalculationAuditTrail records
- CustomFinancialModel container with reasoning and metadata
"""

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple, Union

import structlog

from parsenfill.exceptions import InvalidSourceReferenceError

logger = structlog.get_logger(__name__)

# Signature of a named function backing a CUSTOM formula
CustomFunction = Callable[[Dict[str, Optional[Decimal]]], Any]


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def to_decimal(value: Any) -> Optional[Decimal]:
    """
    Coerce a raw numeric value to a finite Decimal.

    Returns None for None, booleans, non-numeric strings, NaN and infinities.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return Decimal(str(value))
    if isinstance(value, str):
        try:
            parsed = Decimal(value.strip().replace(",", ""))
        except InvalidOperation:
            return None
        return parsed if parsed.is_finite() else None
    return None


# =============================================================================
# Enumerations
# =============================================================================

class SourceType(str, Enum):
    """Where a value originated."""
    USER_INPUT = "user_input"            # Entered manually
    PARSED_DOCUMENT = "parsed_document"  # Extracted from a document
    CALCULATED = "calculated"            # Derived by a formula
    DEFAULT = "default"                  # System default
    ASSUMPTION = "assumption"            # Agent assumption with reasoning


class OutputFormat(str, Enum):
    """Display format of a calculated value."""
    CURRENCY = "currency"
    PERCENTAGE = "percentage"
    NUMBER = "number"
    RATIO = "ratio"


class Operation(str, Enum):
    """Operation a formula applies to its operands."""
    ADD = "add"
    SUBTRACT = "subtract"
    MULTIPLY = "multiply"
    DIVIDE = "divide"
    SUM = "sum"
    CUSTOM = "custom"


class Severity(str, Enum):
    """Severity of a validation or review finding."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class FootnoteCategory(str, Enum):
    ASSUMPTION = "assumption"
    EXCEPTION = "exception"
    CLARIFICATION = "clarification"
    WARNING = "warning"


class FieldValueType(str, Enum):
    CURRENCY = "currency"
    PERCENTAGE = "percentage"
    NUMBER = "number"
    DATE = "date"
    TEXT = "text"
    BOOLEAN = "boolean"


class FinancialModelType(str, Enum):
    """Valuation approach a model implements."""
    DIRECT_CAPITALIZATION = "direct_capitalization"
    DISCOUNTED_CASH_FLOW = "discounted_cash_flow"
    SALES_COMPARISON = "sales_comparison"
    COST_APPROACH = "cost_approach"
    DEVELOPMENT_RESIDUAL = "development_residual"
    CUSTOM = "custom"


# =============================================================================
# Source Attribution
# =============================================================================

@dataclass(frozen=True)
class BoundingBox:
    """Region on a page used for visual highlighting."""
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class DocumentLocation:
    """Location within a source document for click-through verification."""
    file_name: str
    file_type: str
    page: Optional[int] = None       # 1-indexed
    cell_ref: Optional[str] = None   # e.g. "Sheet1!C20"
    line: Optional[int] = None
    bounding_box: Optional[BoundingBox] = None
    raw_text: Optional[str] = None
    section: Optional[str] = None

    def describe(self) -> str:
        """Short human-readable location, e.g. "rent_roll.pdf p.2"."""
        parts = [self.file_name]
        if self.page is not None:
            parts.append(f"p.{self.page}")
        if self.cell_ref:
            parts.append(self.cell_ref)
        if self.line is not None:
            parts.append(f"line {self.line}")
        return " ".join(parts)


@dataclass(frozen=True)
class ReferenceKey:
    """Identifier of a value within its source."""
    index: Optional[int] = None  # Position in a user input list
    key: Optional[str] = None    # Object key or formula id
    id: Optional[str] = None     # Document line/section id

    def is_empty(self) -> bool:
        return self.index is None and not self.key and not self.id


@dataclass(frozen=True)
class SourceReference:
    """
    Provenance of a single value.

    Created exactly once, at the moment the value is produced, and never
    mutated afterwards.
    """
    source_type: SourceType
    reference: ReferenceKey
    display_path: str
    timestamp: str = field(default_factory=utc_now_iso)
    confidence: Optional[float] = None
    document_location: Optional[DocumentLocation] = None
    parsing_session_id: Optional[str] = None
    user_id: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.source_type, SourceType):
            try:
                object.__setattr__(self, "source_type", SourceType(self.source_type))
            except ValueError:
                raise InvalidSourceReferenceError(
                    f"Unknown source type: {self.source_type}",
                    details={"source_type": str(self.source_type)},
                ) from None
        if self.reference.is_empty():
            raise InvalidSourceReferenceError(
                "Source reference must carry an index, key or id",
                details={"display_path": self.display_path},
            )
        if self.reference.index is not None and self.reference.index < 0:
            raise InvalidSourceReferenceError(
                "Reference index must be non-negative",
                details={"index": self.reference.index},
            )
        if self.confidence is not None and not 0.0 <= self.confidence <= 1.0:
            raise InvalidSourceReferenceError(
                "Confidence must be between 0 and 1",
                details={"confidence": self.confidence},
            )
        if self.source_type == SourceType.PARSED_DOCUMENT and self.document_location is None:
            logger.warning(
                "Parsed document reference without document location",
                display_path=self.display_path,
            )

    @classmethod
    def for_user_input(
        cls,
        *,
        index: Optional[int] = None,
        key: Optional[str] = None,
        display_path: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> "SourceReference":
        if display_path is None:
            display_path = f"userInput[{index}]" if index is not None else f"userInput.{key}"
        return cls(
            source_type=SourceType.USER_INPUT,
            reference=ReferenceKey(index=index, key=key),
            display_path=display_path,
            user_id=user_id,
        )

    @classmethod
    def for_document(
        cls,
        location: DocumentLocation,
        *,
        id: str,
        confidence: Optional[float] = None,
        parsing_session_id: Optional[str] = None,
        display_path: Optional[str] = None,
    ) -> "SourceReference":
        return cls(
            source_type=SourceType.PARSED_DOCUMENT,
            reference=ReferenceKey(id=id),
            display_path=display_path or location.describe(),
            confidence=confidence,
            document_location=location,
            parsing_session_id=parsing_session_id,
        )

    @classmethod
    def for_calculation(cls, formula_id: str, display_path: Optional[str] = None) -> "SourceReference":
        return cls(
            source_type=SourceType.CALCULATED,
            reference=ReferenceKey(key=formula_id),
            display_path=display_path or f"calculations.{formula_id}",
        )

    @classmethod
    def for_default(cls, key: str, display_path: Optional[str] = None) -> "SourceReference":
        return cls(
            source_type=SourceType.DEFAULT,
            reference=ReferenceKey(key=key),
            display_path=display_path or f"defaults.{key}",
        )

    @classmethod
    def for_assumption(
        cls,
        key: str,
        *,
        confidence: Optional[float] = None,
        display_path: Optional[str] = None,
    ) -> "SourceReference":
        return cls(
            source_type=SourceType.ASSUMPTION,
            reference=ReferenceKey(key=key),
            display_path=display_path or f"assumptions.{key}",
            confidence=confidence,
        )


@dataclass
class Footnote:
    """Footnote attached to a value for additional context."""
    id: str
    symbol: str
    text: str
    category: FootnoteCategory = FootnoteCategory.CLARIFICATION


@dataclass
class ValueWithSource:
    """A single input value with its provenance."""
    value: Union[Decimal, str, None]
    source: SourceReference

    @property
    def number(self) -> Optional[Decimal]:
        return to_decimal(self.value)


# =============================================================================
# User Input
# =============================================================================

@dataclass
class LineItemWithSource:
    """Revenue, expense or adjustment line with its provenance."""
    id: str
    label: str
    amount: Decimal
    source: SourceReference
    category: Optional[str] = None
    notes: Optional[str] = None
    flagged_for_review: bool = False

    def __post_init__(self):
        if not self.id:
            self.id = str(uuid.uuid4())[:8]
        amount = to_decimal(self.amount)
        if amount is None:
            raise ValueError(f"Line item {self.label!r} has a non-numeric amount: {self.amount!r}")
        self.amount = amount


def _collect_inputs(
    named: Dict[str, Optional[ValueWithSource]],
    extensions: Dict[str, ValueWithSource],
) -> Dict[str, Optional[Decimal]]:
    inputs = {name: item.number if item else None for name, item in named.items()}
    for key, item in extensions.items():
        inputs.setdefault(key, item.number)
    return inputs


@dataclass
class ValuationInputs:
    """Valuation inputs; rates are decimals (0.065 for 6.5%)."""
    cap_rate: Optional[ValueWithSource] = None
    asking_price: Optional[ValueWithSource] = None
    vacancy_rate: Optional[ValueWithSource] = None
    extensions: Dict[str, ValueWithSource] = field(default_factory=dict)

    def raw_inputs(self) -> Dict[str, Optional[Decimal]]:
        return _collect_inputs(
            {
                "capRate": self.cap_rate,
                "askingPrice": self.asking_price,
                "vacancyRate": self.vacancy_rate,
            },
            self.extensions,
        )


@dataclass
class PropertyInfo:
    """Property-level information."""
    square_footage: Optional[ValueWithSource] = None
    units: Optional[ValueWithSource] = None
    year_built: Optional[ValueWithSource] = None
    lot_size: Optional[ValueWithSource] = None
    extensions: Dict[str, ValueWithSource] = field(default_factory=dict)

    def raw_inputs(self) -> Dict[str, Optional[Decimal]]:
        return _collect_inputs(
            {
                "squareFootage": self.square_footage,
                "units": self.units,
                "yearBuilt": self.year_built,
                "lotSize": self.lot_size,
            },
            self.extensions,
        )


def _total(items: List[LineItemWithSource]) -> Optional[Decimal]:
    if not items:
        return None
    return sum((item.amount for item in items), Decimal(0))


@dataclass
class UserInputSection:
    """All values obtained from user entry or document parsing."""
    revenue_items: List[LineItemWithSource] = field(default_factory=list)
    expense_items: List[LineItemWithSource] = field(default_factory=list)
    adjustment_items: List[LineItemWithSource] = field(default_factory=list)
    property_info: Optional[PropertyInfo] = None
    valuation_inputs: Optional[ValuationInputs] = None

    def all_items(self) -> Iterator[Tuple[str, int, LineItemWithSource]]:
        """Yield (section, index, item) for every line item."""
        sections = (
            ("revenueItems", self.revenue_items),
            ("expenseItems", self.expense_items),
            ("adjustmentItems", self.adjustment_items),
        )
        for section, items in sections:
            for index, item in enumerate(items):
                yield section, index, item

    def raw_inputs(self) -> Dict[str, Optional[Decimal]]:
        """Named raw inputs consumed by the formula evaluator."""
        inputs: Dict[str, Optional[Decimal]] = {
            "totalRevenue": _total(self.revenue_items),
            "totalExpenses": _total(self.expense_items),
            "totalAdjustments": _total(self.adjustment_items),
        }
        if self.valuation_inputs:
            inputs.update(self.valuation_inputs.raw_inputs())
        if self.property_info:
            for key, value in self.property_info.raw_inputs().items():
                inputs.setdefault(key, value)
        return inputs


# =============================================================================
# Formula Definitions
# =============================================================================

@dataclass(frozen=True)
class OperandRef:
    """
    Operand of a formula.

    `key` names the input the value is read from; `ref` is the display path
    shown in the audit trail.
    """
    key: str
    label: str
    ref: str = ""
    description: Optional[str] = None
    coefficient: Optional[Decimal] = None
    default: Optional[Decimal] = None
    positive: bool = False  # Value must be > 0 (denominators)

    @property
    def path(self) -> str:
        return self.ref or self.key

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"ref": self.path, "label": self.label, "key": self.key}
        if self.description:
            data["description"] = self.description
        if self.coefficient is not None:
            data["coefficient"] = str(self.coefficient)
        if self.default is not None:
            data["default"] = str(self.default)
        if self.positive:
            data["positive"] = True
        return data


@dataclass
class ValidationResult:
    """Outcome of a formula's business-rule check."""
    is_valid: bool
    severity: Severity = Severity.INFO
    message: Optional[str] = None

    @classmethod
    def valid(cls) -> "ValidationResult":
        return cls(is_valid=True)

    @classmethod
    def warning(cls, message: str) -> "ValidationResult":
        return cls(is_valid=True, severity=Severity.WARNING, message=message)

    @classmethod
    def error(cls, message: str) -> "ValidationResult":
        return cls(is_valid=False, severity=Severity.ERROR, message=message)


@dataclass(frozen=True)
class ValidationRule:
    """Range check applied to a computed value."""
    severity: Severity
    message: str
    min_value: Optional[Decimal] = None
    max_value: Optional[Decimal] = None

    def check(self, value: Optional[Decimal]) -> Optional[ValidationResult]:
        """Return a failing result, or None when the value passes."""
        if value is None:
            return None
        below = self.min_value is not None and value < self.min_value
        above = self.max_value is not None and value > self.max_value
        if not (below or above):
            return None
        return ValidationResult(
            is_valid=self.severity != Severity.ERROR,
            severity=self.severity,
            message=self.message,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "severity": self.severity.value,
            "message": self.message,
            "min_value": None if self.min_value is None else str(self.min_value),
            "max_value": None if self.max_value is None else str(self.max_value),
        }


@dataclass(frozen=True)
class FormulaDefinition:
    """
    Declarative definition of a named calculation.

    The definition carries no executable code: `operation` is interpreted
    over `operands`, and CUSTOM operations name a function registered with
    the formula registry.
    """
    id: str
    name: str
    human_readable: str
    expression: str
    operation: Operation
    operands: Tuple[OperandRef, ...] = ()
    dependencies: Tuple[str, ...] = ()
    output_format: OutputFormat = OutputFormat.NUMBER
    function: Optional[str] = None
    scale: Optional[Decimal] = None  # Multiplier applied to the result (100 for percentages)
    rules: Tuple[ValidationRule, ...] = ()
    category: Optional[str] = None
    description: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "operation", Operation(self.operation))
        object.__setattr__(self, "output_format", OutputFormat(self.output_format))
        object.__setattr__(self, "operands", tuple(self.operands))
        object.__setattr__(self, "dependencies", tuple(self.dependencies))
        object.__setattr__(self, "rules", tuple(self.rules))
        if self.operation == Operation.CUSTOM and not self.function:
            raise ValueError(f"Custom formula {self.id} must name a function")

    @property
    def has_validation(self) -> bool:
        return bool(self.rules)

    def resolve_operands(self, inputs: Mapping[str, Any]) -> Dict[str, Optional[Decimal]]:
        """Read operand values, applying defaults and positivity requirements."""
        values: Dict[str, Optional[Decimal]] = {}
        for operand in self.operands:
            value = to_decimal(inputs.get(operand.key))
            if value is None and operand.default is not None:
                value = operand.default
            if value is not None and operand.positive and value <= 0:
                value = None
            values[operand.key] = value
        return values

    def compute(
        self,
        inputs: Mapping[str, Any],
        functions: Optional[Mapping[str, CustomFunction]] = None,
    ) -> Optional[Decimal]:
        """
        Compute the formula value.

        Returns None whenever a required operand is missing, non-finite or
        violates its positivity requirement, and for division by zero.
        """
        values = self.resolve_operands(inputs)

        if self.operation == Operation.CUSTOM:
            function = (functions or {}).get(self.function)
            if function is None:
                return None
            result = to_decimal(function(values))
        else:
            if any(value is None for value in values.values()):
                return None
            operands = [
                values[op.key] * op.coefficient if op.coefficient is not None else values[op.key]
                for op in self.operands
            ]
            result = _apply_operation(self.operation, operands)

        if result is None:
            return None
        if self.scale is not None:
            result = result * self.scale
        return result if result.is_finite() else None

    def validate(self, result: Any) -> ValidationResult:
        """Apply validation rules in order; the first failure wins."""
        value = to_decimal(result)
        for rule in self.rules:
            outcome = rule.check(value)
            if outcome is not None:
                return outcome
        return ValidationResult.valid()

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form of the definition."""
        return {
            "id": self.id,
            "name": self.name,
            "humanReadable": self.human_readable,
            "expression": self.expression,
            "operation": self.operation.value,
            "operands": [op.to_dict() for op in self.operands],
            "dependencies": list(self.dependencies),
            "outputFormat": self.output_format.value,
            "function": self.function,
            "scale": None if self.scale is None else str(self.scale),
            "rules": [rule.to_dict() for rule in self.rules],
            "category": self.category,
            "description": self.description,
        }


def _apply_operation(operation: Operation, operands: List[Decimal]) -> Optional[Decimal]:
    """Interpret a non-custom operation over resolved operand values."""
    if not operands:
        return None
    if operation in (Operation.ADD, Operation.SUM):
        return sum(operands, Decimal(0))
    if operation == Operation.SUBTRACT:
        return operands[0] - sum(operands[1:], Decimal(0))
    if operation == Operation.MULTIPLY:
        product = Decimal(1)
        for value in operands:
            product *= value
        return product
    if operation == Operation.DIVIDE:
        result = operands[0]
        for denominator in operands[1:]:
            if denominator == 0:
                return None
            result = result / denominator
        return result
    return None


# =============================================================================
# Calculation Results
# =============================================================================

@dataclass
class CalculationStep:
    """Intermediate step of a calculation, for the audit trail."""
    description: str
    expression: str
    result: Optional[Decimal]
    order: int = 0


@dataclass
class CalculationFormula:
    """Human-readable and machine expression of an evaluated formula."""
    display_formula: str
    expression: str
    operands: List[OperandRef] = field(default_factory=list)
    operator: Optional[Operation] = None
    calculation_fn: Optional[str] = None


@dataclass
class CalculationResult:
    """Value of one formula with its full audit record."""
    value: Optional[Decimal]
    formula: CalculationFormula
    source: SourceReference
    is_valid: bool = True
    steps: List[CalculationStep] = field(default_factory=list)
    error: Optional[str] = None
    warning: Optional[str] = None
    output_format: Optional[OutputFormat] = None
    currency: Optional[str] = None
    precision: Optional[int] = None
    footnotes: List[Footnote] = field(default_factory=list)

    @property
    def formula_id(self) -> str:
        return self.source.reference.key or ""


@dataclass
class CalculationAuditTrail:
    """All calculation results of one evaluation run, in execution order."""
    model_id: str
    timestamp: str = field(default_factory=utc_now_iso)
    calculations: List[CalculationResult] = field(default_factory=list)
    results: Dict[str, Optional[Decimal]] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    processing_time_ms: Optional[float] = None

    @property
    def execution_order(self) -> List[str]:
        return [calc.formula_id for calc in self.calculations]

    def get(self, formula_id: str) -> Optional[CalculationResult]:
        for calc in self.calculations:
            if calc.formula_id == formula_id:
                return calc
        return None

    def failed(self) -> List[CalculationResult]:
        """Results flagged with an error by validation or computation."""
        return [calc for calc in self.calculations if calc.error]


# =============================================================================
# Reasoning, Types and Metadata
# =============================================================================

@dataclass
class ReasoningDecision:
    """A key decision made during extraction or calculation."""
    decision: str
    rationale: str
    affected_fields: List[str] = field(default_factory=list)
    confidence: float = 1.0
    alternatives: List[str] = field(default_factory=list)


@dataclass
class FlaggedItem:
    """An item escalated for human review."""
    field: str
    reason: str
    severity: Severity = Severity.WARNING
    suggested_action: Optional[str] = None
    confidence: Optional[float] = None


@dataclass
class BriefReasoning:
    """Narrative summary (with embedded source notation) and review items."""
    summary: str
    decisions: List[ReasoningDecision] = field(default_factory=list)
    flagged_items: List[FlaggedItem] = field(default_factory=list)
    overall_confidence: float = 1.0


@dataclass
class TypeMetadata:
    """Formatting and validation metadata for one field path."""
    type: FieldValueType
    currency: Optional[str] = None
    precision: Optional[int] = None
    unit: Optional[str] = None
    display_format: Optional[str] = None
    footnotes: List[Footnote] = field(default_factory=list)
    source_location: Optional[DocumentLocation] = None
    is_overridden: bool = False
    original_value: Union[Decimal, str, None] = None
    min_value: Optional[Decimal] = None
    max_value: Optional[Decimal] = None
    required: bool = False


@dataclass
class ModelMetadata:
    """Processing and provenance metadata."""
    model_version: str
    created_at: str = field(default_factory=utc_now_iso)
    source_file_name: Optional[str] = None
    source_file_type: Optional[str] = None
    processing_time_ms: Optional[float] = None
    agent_model: Optional[str] = None
    updated_at: Optional[str] = None
    parsing_session_id: Optional[str] = None


@dataclass
class CustomFinancialModel:
    """
    Complete audited model: user inputs, calculations, type metadata,
    reasoning and metadata.
    """
    id: str
    title: str
    model_type: FinancialModelType
    brief_reasoning: BriefReasoning
    user_input: UserInputSection
    calculations: CalculationAuditTrail
    metadata: ModelMetadata
    types: Dict[str, TypeMetadata] = field(default_factory=dict)

    def __post_init__(self):
        if not self.id:
            self.id = str(uuid.uuid4())
