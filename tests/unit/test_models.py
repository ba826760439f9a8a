"""
Unit tests for the custom model domain records.

Tests source reference invariants, numeric coercion, raw input derivation
and the formula operation interpreter.
"""
import math
from decimal import Decimal

import pytest

from parsenfill.custom_model.models import (
    DocumentLocation,
    FormulaDefinition,
    LineItemWithSource,
    OperandRef,
    Operation,
    PropertyInfo,
    ReferenceKey,
    Severity,
    SourceReference,
    SourceType,
    UserInputSection,
    ValidationRule,
    ValuationInputs,
    ValueWithSource,
    to_decimal,
)
from parsenfill.exceptions import InvalidSourceReferenceError


def _divide(numerator_key="a", denominator_key="b", positive=False, scale=None):
    return FormulaDefinition(
        id="ratio",
        name="Ratio",
        human_readable="A / B",
        expression="a / b",
        operation=Operation.DIVIDE,
        operands=[
            OperandRef(key=numerator_key, label="A"),
            OperandRef(key=denominator_key, label="B", positive=positive),
        ],
        scale=scale,
    )


class TestToDecimal:
    """Tests for raw value coercion."""

    def test_numbers_and_strings(self):
        assert to_decimal(5) == Decimal(5)
        assert to_decimal(0.1) == Decimal("0.1")
        assert to_decimal("1,250.50") == Decimal("1250.50")

    def test_invalid_values_become_none(self):
        assert to_decimal(None) is None
        assert to_decimal("n/a") is None
        assert to_decimal(math.nan) is None
        assert to_decimal(math.inf) is None
        assert to_decimal(Decimal("NaN")) is None
        assert to_decimal(True) is None


class TestSourceReference:
    """Tests for provenance invariants."""

    def test_user_input_factory(self):
        source = SourceReference.for_user_input(index=3)

        assert source.source_type == SourceType.USER_INPUT
        assert source.reference.index == 3
        assert source.display_path == "userInput[3]"
        assert source.timestamp

    def test_calculation_factory(self):
        source = SourceReference.for_calculation("netOperatingIncome")

        assert source.source_type == SourceType.CALCULATED
        assert source.reference.key == "netOperatingIncome"
        assert source.display_path == "calculations.netOperatingIncome"

    def test_document_factory_uses_location(self):
        location = DocumentLocation(file_name="t12.xlsx", file_type="xlsx", cell_ref="Sheet1!C20")
        source = SourceReference.for_document(location, id="row-20", confidence=0.8)

        assert source.document_location is location
        assert source.display_path == "t12.xlsx Sheet1!C20"
        assert source.confidence == 0.8

    def test_string_source_type_is_coerced(self):
        source = SourceReference(
            source_type="assumption",
            reference=ReferenceKey(key="vacancyRate"),
            display_path="assumptions.vacancyRate",
        )
        assert source.source_type == SourceType.ASSUMPTION

    def test_empty_reference_rejected(self):
        with pytest.raises(InvalidSourceReferenceError) as exc_info:
            SourceReference(
                source_type=SourceType.USER_INPUT,
                reference=ReferenceKey(),
                display_path="userInput",
            )
        assert exc_info.value.error_code == "PNF-200"

    def test_negative_index_rejected(self):
        with pytest.raises(InvalidSourceReferenceError):
            SourceReference.for_user_input(index=-1)

    @pytest.mark.parametrize("confidence", [-0.1, 1.5])
    def test_confidence_out_of_range_rejected(self, confidence):
        with pytest.raises(InvalidSourceReferenceError):
            SourceReference.for_assumption("vacancyRate", confidence=confidence)

    def test_unknown_source_type_rejected(self):
        with pytest.raises(InvalidSourceReferenceError):
            SourceReference(
                source_type="guess",
                reference=ReferenceKey(key="x"),
                display_path="x",
            )

    def test_document_without_location_is_accepted(self):
        source = SourceReference(
            source_type=SourceType.PARSED_DOCUMENT,
            reference=ReferenceKey(id="page1-line15"),
            display_path="rent_roll.pdf",
        )
        assert source.document_location is None

    def test_reference_is_immutable(self):
        source = SourceReference.for_user_input(index=0)
        with pytest.raises(AttributeError):
            source.display_path = "elsewhere"


class TestLineItems:
    """Tests for line items and raw input derivation."""

    def test_amount_coerced_to_decimal(self):
        item = LineItemWithSource(
            id="",
            label="Base Rent",
            amount=1500.5,
            source=SourceReference.for_user_input(index=0),
        )
        assert item.amount == Decimal("1500.5")
        assert item.id

    def test_non_numeric_amount_rejected(self):
        with pytest.raises(ValueError):
            LineItemWithSource(
                id="x",
                label="Base Rent",
                amount="lots",
                source=SourceReference.for_user_input(index=0),
            )

    def test_raw_inputs(self, user_input):
        inputs = user_input.raw_inputs()

        assert inputs["totalRevenue"] == Decimal("100000")
        assert inputs["totalExpenses"] == Decimal("15000")
        assert inputs["totalAdjustments"] is None
        assert inputs["capRate"] == Decimal("0.08")
        assert inputs["vacancyRate"] == Decimal("0.05")
        assert inputs["squareFootage"] == Decimal("10000")
        assert inputs["units"] is None

    def test_extensions_become_inputs(self):
        section = UserInputSection(
            valuation_inputs=ValuationInputs(
                extensions={
                    "exitCapRate": ValueWithSource(
                        value="0.07",
                        source=SourceReference.for_assumption("exitCapRate"),
                    ),
                },
            ),
            property_info=PropertyInfo(),
        )
        inputs = section.raw_inputs()

        assert inputs["exitCapRate"] == Decimal("0.07")
        assert inputs["totalRevenue"] is None

    def test_all_items_reports_section_and_index(self, user_input):
        located = [(section, index, item.id) for section, index, item in user_input.all_items()]

        assert located[0] == ("revenueItems", 0, "rev-1")
        assert located[-1] == ("expenseItems", 1, "exp-2")
        assert len(located) == 5


class TestFormulaDefinition:
    """Tests for the operation interpreter and null propagation."""

    def test_subtract(self):
        formula = FormulaDefinition(
            id="noi",
            name="NOI",
            human_readable="EGI - Expenses",
            expression="egi - expenses",
            operation=Operation.SUBTRACT,
            operands=[OperandRef(key="egi", label="EGI"), OperandRef(key="expenses", label="Expenses")],
        )
        assert formula.compute({"egi": 95000, "expenses": 15000}) == Decimal(80000)

    def test_missing_operand_yields_none(self):
        assert _divide().compute({"a": 10}) is None

    def test_non_finite_operand_yields_none(self):
        assert _divide().compute({"a": 10, "b": math.inf}) is None

    def test_division_by_zero_yields_none(self):
        assert _divide().compute({"a": 10, "b": 0}) is None

    def test_positive_operand_guard(self):
        formula = _divide(positive=True)

        assert formula.compute({"a": 10, "b": -2}) is None
        assert formula.compute({"a": 10, "b": 2}) == Decimal(5)

    def test_scale_applied(self):
        assert _divide(scale=Decimal(100)).compute({"a": 1, "b": 4}) == Decimal(25)

    def test_default_substitutes_missing_input(self):
        formula = FormulaDefinition(
            id="vacancy",
            name="Vacancy",
            human_readable="GPI × Rate",
            expression="gpi * rate",
            operation=Operation.MULTIPLY,
            operands=[
                OperandRef(key="gpi", label="GPI"),
                OperandRef(key="rate", label="Rate", default=Decimal("0.05")),
            ],
        )
        assert formula.compute({"gpi": 100000}) == Decimal(5000)
        assert formula.compute({"gpi": 100000, "rate": "0.10"}) == Decimal(10000)

    def test_coefficient(self):
        formula = FormulaDefinition(
            id="weighted",
            name="Weighted",
            human_readable="A + 2B",
            expression="a + 2 * b",
            operation=Operation.ADD,
            operands=[
                OperandRef(key="a", label="A"),
                OperandRef(key="b", label="B", coefficient=Decimal(2)),
            ],
        )
        assert formula.compute({"a": 1, "b": 3}) == Decimal(7)

    def test_custom_function(self):
        formula = FormulaDefinition(
            id="max",
            name="Max",
            human_readable="max(A, B)",
            expression="max(a, b)",
            operation=Operation.CUSTOM,
            function="max_of",
            operands=[OperandRef(key="a", label="A"), OperandRef(key="b", label="B")],
        )
        functions = {"max_of": lambda values: max(values["a"], values["b"])}

        assert formula.compute({"a": 3, "b": 9}, functions) == Decimal(9)
        assert formula.compute({"a": 3, "b": 9}) is None

    def test_custom_requires_function_name(self):
        with pytest.raises(ValueError):
            FormulaDefinition(
                id="broken",
                name="Broken",
                human_readable="?",
                expression="?",
                operation=Operation.CUSTOM,
            )

    def test_to_dict_is_serializable(self):
        data = _divide(positive=True).to_dict()

        assert data["operation"] == "divide"
        assert data["operands"][1]["positive"] is True
        assert data["dependencies"] == []


class TestValidationRules:
    """Tests for declarative validation."""

    def test_first_failure_wins(self):
        formula = FormulaDefinition(
            id="ratio",
            name="Ratio",
            human_readable="",
            expression="",
            operation=Operation.DIVIDE,
            rules=[
                ValidationRule(severity=Severity.ERROR, message="too high", max_value=Decimal(100)),
                ValidationRule(severity=Severity.WARNING, message="high", max_value=Decimal(70)),
            ],
        )

        assert formula.validate(105).severity == Severity.ERROR
        assert formula.validate(105).is_valid is False
        assert formula.validate(75).severity == Severity.WARNING
        assert formula.validate(75).is_valid is True
        assert formula.validate(50).severity == Severity.INFO

    def test_none_passes(self):
        rule = ValidationRule(severity=Severity.ERROR, message="negative", min_value=Decimal(0))
        assert rule.check(None) is None
