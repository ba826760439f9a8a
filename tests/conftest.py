"""
Pytest configuration and fixtures.
"""
from decimal import Decimal
from typing import List

import pytest

from parsenfill.config import get_settings
from parsenfill.custom_model.formulas.direct_cap import build_direct_cap_registry
from parsenfill.custom_model.models import (
    DocumentLocation,
    LineItemWithSource,
    PropertyInfo,
    SourceReference,
    UserInputSection,
    ValuationInputs,
    ValueWithSource,
)
from parsenfill.custom_model.registry import FormulaRegistry


def document_source(item_id: str, confidence: float = 0.95, page: int = 1) -> SourceReference:
    """Source reference for a value parsed from a rent roll PDF."""
    return SourceReference.for_document(
        DocumentLocation(file_name="rent_roll.pdf", file_type="pdf", page=page),
        id=item_id,
        confidence=confidence,
    )


def user_value(key: str, value) -> ValueWithSource:
    return ValueWithSource(value=value, source=SourceReference.for_user_input(key=key))


@pytest.fixture
def revenue_items() -> List[LineItemWithSource]:
    """Three revenue lines totaling 100,000."""
    return [
        LineItemWithSource(
            id="rev-1",
            label="Base Rent",
            amount=Decimal("80000"),
            source=document_source("page1-line3"),
            category="Office Rents",
        ),
        LineItemWithSource(
            id="rev-2",
            label="Parking",
            amount=Decimal("12000"),
            source=document_source("page1-line7"),
            category="Parking",
        ),
        LineItemWithSource(
            id="rev-3",
            label="Storage",
            amount=Decimal("8000"),
            source=SourceReference.for_user_input(index=2),
            category="Office Rents",
        ),
    ]


@pytest.fixture
def expense_items() -> List[LineItemWithSource]:
    """Two expense lines totaling 15,000."""
    return [
        LineItemWithSource(
            id="exp-1",
            label="Property Tax",
            amount=Decimal("10000"),
            source=document_source("page2-line4", page=2),
        ),
        LineItemWithSource(
            id="exp-2",
            label="Insurance",
            amount=Decimal("5000"),
            source=SourceReference.for_user_input(index=1),
        ),
    ]


@pytest.fixture
def user_input(revenue_items, expense_items) -> UserInputSection:
    """Complete user input: 5% vacancy, 8% cap rate, 10,000 sq ft."""
    return UserInputSection(
        revenue_items=revenue_items,
        expense_items=expense_items,
        valuation_inputs=ValuationInputs(
            cap_rate=user_value("capRate", Decimal("0.08")),
            asking_price=user_value("askingPrice", Decimal("1000000")),
            vacancy_rate=user_value("vacancyRate", Decimal("0.05")),
        ),
        property_info=PropertyInfo(
            square_footage=user_value("squareFootage", Decimal("10000")),
        ),
    )


@pytest.fixture
def registry() -> FormulaRegistry:
    """Fresh Direct Capitalization registry."""
    return build_direct_cap_registry()


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch):
    """Clear cached settings so environment overrides apply per test."""
    for name in ("PNF_LOG_LEVEL", "PNF_LOG_JSON", "PNF_MODEL_VERSION", "PNF_DEFAULT_CURRENCY"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
