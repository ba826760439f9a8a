"""
Model converters.

Turns a CustomFinancialModel into the shapes consumed downstream:
- the flat label -> amount record of the legacy export
- revenue streams grouped by line item category
- the income module's sub-module data (revenue stream, expense rows,
  valuation data)
- a flat map of the well-known calculation results
"""

import re
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

import structlog

from parsenfill.config import Settings, get_settings
from parsenfill.custom_model.models import (
    CustomFinancialModel,
    LineItemWithSource,
    SourceReference,
    SourceType,
    to_decimal,
)
from parsenfill.exceptions import ConversionError

logger = structlog.get_logger(__name__)

HUNDRED = Decimal(100)
MONTHS_PER_YEAR = Decimal(12)

DEFAULT_GROUP = "Miscellaneous"
IMPORTED_STREAM_ID = "imported-stream"

# Results exposed by extract_calculation_results, in display order
DIRECT_CAP_RESULT_IDS = (
    "grossPotentialIncome",
    "vacancyAllowance",
    "effectiveGrossIncome",
    "totalOperatingExpenses",
    "expenseRatio",
    "expensePerSqFt",
    "netOperatingIncome",
    "noiMargin",
    "noiPerSqFt",
    "propertyValue",
    "pricePerSqFt",
    "grossRentMultiplier",
    "impliedCapRate",
)


class StreamCategory(str, Enum):
    RESIDENTIAL = "Residential"
    COMMERCIAL = "Commercial"
    MISCELLANEOUS = "Miscellaneous"


class ExpenseMethod(str, Enum):
    DIRECT = "direct"
    PERCENTAGE = "percentage"
    PER_METRIC = "perMetric"


class ValuationMethod(str, Enum):
    CAP_RATE = "capRate"
    ASKING_PRICE = "askingPrice"


# Keywords deciding a stream's category; first match wins
_CATEGORY_KEYWORDS = (
    (StreamCategory.RESIDENTIAL, ("residential", "apartment")),
    (StreamCategory.COMMERCIAL, ("commercial", "office", "retail")),
)


# =============================================================================
# Output Records
# =============================================================================

@dataclass
class RevenueRow:
    """Unit-level revenue row."""
    id: str
    unit: str
    annual_income: Decimal
    monthly_rate: Decimal
    effective_annual_income: Decimal
    square_feet: Optional[Decimal] = None
    is_vacant: bool = False
    operating_vacancy_and_credit_loss: Decimal = Decimal(0)
    tenant_name: Optional[str] = None
    source: Optional[SourceReference] = None


@dataclass
class StreamTotals:
    gross_revenue: Decimal
    effective_revenue: Decimal
    square_footage: Decimal = Decimal(0)


@dataclass
class RevenueStream:
    """Revenue rows grouped under one name and category."""
    id: str
    name: str
    category: StreamCategory
    rows: List[RevenueRow]
    totals: StreamTotals
    vacancy_rate: Optional[Decimal] = None  # Percent, e.g. 5 for 5%


@dataclass
class ExpenseRow:
    id: str
    name: str
    amount: Optional[Decimal]
    calculation_method: ExpenseMethod = ExpenseMethod.DIRECT
    last_modified_method: ExpenseMethod = ExpenseMethod.DIRECT
    data_source: Optional[str] = None


@dataclass
class ValuationData:
    cap_rate: Optional[Decimal]
    asking_price: Optional[Decimal]
    calculation_method: ValuationMethod


@dataclass
class SubModuleData:
    """Income module payload."""
    revenue_streams: List[RevenueStream]
    expense_rows: List[ExpenseRow]
    valuation_data: Optional[ValuationData] = None


@dataclass
class FlatRecord:
    """Legacy flat export: one label -> amount map per section."""
    time_stamp: str
    agent_reasoning: str
    revenue: Dict[str, Decimal] = field(default_factory=dict)
    expenses: Dict[str, Decimal] = field(default_factory=dict)
    adjustments: Dict[str, Decimal] = field(default_factory=dict)
    sources: Dict[str, Dict[str, SourceReference]] = field(default_factory=dict)


# =============================================================================
# Helpers
# =============================================================================

def _slug(name: str) -> str:
    return re.sub(r"\s+", "-", name.strip().lower())


def stream_category_for(name: str) -> StreamCategory:
    """Pick a stream category from keywords in a group name."""
    lowered = name.lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return StreamCategory.MISCELLANEOUS


def _revenue_row(item: LineItemWithSource) -> RevenueRow:
    return RevenueRow(
        id=item.id,
        unit=item.label,
        annual_income=item.amount,
        monthly_rate=item.amount / MONTHS_PER_YEAR,
        effective_annual_income=item.amount,
        tenant_name=item.notes,
        source=item.source,
    )


def _gross(rows: List[RevenueRow]) -> Decimal:
    return sum((row.annual_income for row in rows), Decimal(0))


def _label_map(items: List[LineItemWithSource], sources: Dict[str, SourceReference]) -> Dict[str, Decimal]:
    values: Dict[str, Decimal] = {}
    for item in items:
        # Later items with the same label replace earlier ones
        values[item.label] = item.amount
        sources[item.label] = item.source
    return values


# =============================================================================
# Conversions
# =============================================================================

def to_flat_record(model: CustomFinancialModel) -> FlatRecord:
    """
    Flatten line items into label -> amount maps.

    Duplicate labels within a section keep the last item's amount and source.
    """
    user_input = model.user_input
    sources: Dict[str, Dict[str, SourceReference]] = {
        "revenue": {},
        "expenses": {},
        "adjustments": {},
    }
    record = FlatRecord(
        time_stamp=model.metadata.created_at,
        agent_reasoning=model.brief_reasoning.summary,
        revenue=_label_map(user_input.revenue_items, sources["revenue"]),
        expenses=_label_map(user_input.expense_items, sources["expenses"]),
        adjustments=_label_map(user_input.adjustment_items, sources["adjustments"]),
        sources=sources,
    )

    item_count = (
        len(user_input.revenue_items)
        + len(user_input.expense_items)
        + len(user_input.adjustment_items)
    )
    label_count = len(record.revenue) + len(record.expenses) + len(record.adjustments)
    if label_count < item_count:
        logger.warning(
            "Duplicate labels collapsed in flat record",
            model_id=model.id,
            items=item_count,
            labels=label_count,
        )
    return record


def to_grouped_streams(items: List[LineItemWithSource]) -> List[RevenueStream]:
    """
    Group revenue items by category into streams, in first-seen order.

    No vacancy is applied at this level: effective revenue equals gross.
    """
    grouped: Dict[str, List[LineItemWithSource]] = {}
    for item in items:
        grouped.setdefault(item.category or DEFAULT_GROUP, []).append(item)

    streams = []
    for name, group in grouped.items():
        slug = _slug(name)
        rows = [_revenue_row(item) for item in group]
        gross = _gross(rows)
        streams.append(RevenueStream(
            id=f"stream-{slug}",
            name=name,
            category=stream_category_for(name),
            rows=rows,
            totals=StreamTotals(gross_revenue=gross, effective_revenue=gross),
        ))

    logger.debug("Revenue items grouped", items=len(items), streams=len(streams))
    return streams


def to_vacancy_adjusted_stream(
    stream: RevenueStream,
    vacancy_rate_percent: Optional[Any],
    *,
    default_vacancy_rate_percent: Any,
) -> RevenueStream:
    """
    Apply a vacancy rate (in percent) to a stream.

    Returns a new stream; the input stream is not modified.

    Raises:
        ConversionError: The rate is missing, non-numeric or outside 0..100.
    """
    rate = to_decimal(vacancy_rate_percent)
    if rate is None:
        rate = to_decimal(default_vacancy_rate_percent)
    if rate is None or not Decimal(0) <= rate <= HUNDRED:
        raise ConversionError(
            "Vacancy rate must be a percentage between 0 and 100",
            details={
                "stream_id": stream.id,
                "vacancy_rate_percent": str(vacancy_rate_percent),
                "default_vacancy_rate_percent": str(default_vacancy_rate_percent),
            },
        )

    occupied = Decimal(1) - rate / HUNDRED
    rows = [
        replace(
            row,
            effective_annual_income=row.annual_income * occupied,
            operating_vacancy_and_credit_loss=row.annual_income - row.annual_income * occupied,
        )
        for row in stream.rows
    ]
    gross = _gross(rows)
    return replace(
        stream,
        rows=rows,
        vacancy_rate=rate,
        totals=replace(stream.totals, gross_revenue=gross, effective_revenue=gross * occupied),
    )


def to_income_module_format(
    model: CustomFinancialModel,
    *,
    stream_name: str,
    stream_category: StreamCategory = StreamCategory.MISCELLANEOUS,
    default_vacancy_rate_percent: Any,
) -> SubModuleData:
    """
    Convert a model into income module sub-module data.

    All revenue items go into one vacancy-adjusted stream. The vacancy rate
    comes from the model's valuation inputs (decimal, converted to percent)
    or falls back to `default_vacancy_rate_percent`.
    """
    user_input = model.user_input
    valuation = user_input.valuation_inputs

    rows = [_revenue_row(item) for item in user_input.revenue_items]
    gross = _gross(rows)
    stream = RevenueStream(
        id=IMPORTED_STREAM_ID,
        name=stream_name,
        category=StreamCategory(stream_category),
        rows=rows,
        totals=StreamTotals(gross_revenue=gross, effective_revenue=gross),
    )

    vacancy_rate = valuation.vacancy_rate.number if valuation and valuation.vacancy_rate else None
    vacancy_percent = vacancy_rate * HUNDRED if vacancy_rate is not None else None
    stream = to_vacancy_adjusted_stream(
        stream,
        vacancy_percent,
        default_vacancy_rate_percent=default_vacancy_rate_percent,
    )

    expense_rows = [
        ExpenseRow(
            id=item.id,
            name=item.label,
            amount=item.amount,
            data_source=(
                "Imported from document"
                if item.source.source_type == SourceType.PARSED_DOCUMENT
                else "User input"
            ),
        )
        for item in user_input.expense_items
    ]

    valuation_data = None
    if valuation:
        cap_rate = valuation.cap_rate.number if valuation.cap_rate else None
        asking_price = valuation.asking_price.number if valuation.asking_price else None
        if cap_rate is not None or asking_price is not None:
            valuation_data = ValuationData(
                cap_rate=cap_rate,
                asking_price=asking_price,
                calculation_method=(
                    ValuationMethod.CAP_RATE if cap_rate is not None else ValuationMethod.ASKING_PRICE
                ),
            )

    logger.info(
        "Converted model to income module format",
        model_id=model.id,
        revenue_rows=len(rows),
        expense_rows=len(expense_rows),
        vacancy_rate=str(stream.vacancy_rate),
    )

    return SubModuleData(
        revenue_streams=[stream],
        expense_rows=expense_rows,
        valuation_data=valuation_data,
    )


def income_module_format_from_settings(
    model: CustomFinancialModel,
    settings: Optional[Settings] = None,
) -> SubModuleData:
    """Income module data using the configured stream name and default vacancy rate."""
    settings = settings or get_settings()
    return to_income_module_format(
        model,
        stream_name=settings.default_stream_name,
        default_vacancy_rate_percent=settings.default_vacancy_rate_percent,
    )


def extract_calculation_results(model: CustomFinancialModel) -> Dict[str, Optional[Decimal]]:
    """Flat map of the well-known results; None for absent or uncomputable ones."""
    results = model.calculations.results
    return {formula_id: results.get(formula_id) for formula_id in DIRECT_CAP_RESULT_IDS}
