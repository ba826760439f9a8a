"""
End-to-end tests for model assembly.

Covers:
- Calculations and audit trail on the assembled model
- Selective escalation (low confidence, flagged items, calculation errors)
- Reasoning summary generation and notation validation
- Metadata, type metadata and overall confidence
"""
from decimal import Decimal

import pytest

from parsenfill.config import Settings
from parsenfill.custom_model import notation
from parsenfill.custom_model.models import (
    DocumentLocation,
    FieldValueType,
    FinancialModelType,
    LineItemWithSource,
    SourceReference,
    Severity,
    UserInputSection,
    ValuationInputs,
    ValueWithSource,
)
from parsenfill.custom_model.orchestrator import (
    SUMMARY_FIELD,
    ModelOptions,
    overall_confidence,
    run_model,
)
from parsenfill.custom_model.registry import FormulaRegistry
from parsenfill.schemas.custom_model import AuditTrailSchema, parse_user_input


def _doc_item(item_id, label, amount, confidence, flagged=False):
    return LineItemWithSource(
        id=item_id,
        label=label,
        amount=Decimal(amount),
        source=SourceReference.for_document(
            DocumentLocation(file_name="t12.pdf", file_type="pdf", page=1),
            id=item_id,
            confidence=confidence,
        ),
        flagged_for_review=flagged,
    )


class TestRunModel:
    """Tests for the assembled model."""

    def test_standard_model(self, user_input):
        model = run_model(user_input, title="Sample Office")

        assert model.title == "Sample Office"
        assert model.model_type == FinancialModelType.DIRECT_CAPITALIZATION
        assert model.user_input is user_input
        assert model.calculations.results["netOperatingIncome"] == Decimal(80000)
        assert model.calculations.results["propertyValue"] == Decimal(1000000)
        assert model.calculations.model_id == model.id

    def test_explicit_model_id_and_options(self, user_input):
        options = ModelOptions(
            model_id="model-42",
            source_file_name="rent_roll.pdf",
            source_file_type="pdf",
            agent_model="extraction-agent",
            parsing_session_id="session-1",
        )
        model = run_model(user_input, title="Sample", options=options)

        assert model.id == "model-42"
        assert model.metadata.source_file_name == "rent_roll.pdf"
        assert model.metadata.agent_model == "extraction-agent"
        assert model.metadata.parsing_session_id == "session-1"

    def test_metadata(self, user_input):
        settings = Settings(model_version="2.1.0")
        model = run_model(user_input, title="Sample", settings=settings)

        assert model.metadata.model_version == "2.1.0"
        assert model.metadata.created_at
        assert model.metadata.processing_time_ms >= 0

    def test_custom_registry(self, user_input):
        model = run_model(user_input, title="Empty registry", registry=FormulaRegistry())

        assert model.calculations.calculations == []
        assert model.types == {}

    def test_type_metadata(self, user_input):
        types = run_model(user_input, title="Sample").types

        assert types["calculations.netOperatingIncome"].type == FieldValueType.CURRENCY
        assert types["calculations.netOperatingIncome"].currency == "USD"
        assert types["calculations.expenseRatio"].type == FieldValueType.PERCENTAGE
        assert types["calculations.grossRentMultiplier"].type == FieldValueType.NUMBER

    def test_audit_trail_serializes(self, user_input):
        model = run_model(user_input, title="Sample")
        data = AuditTrailSchema.from_domain(model.calculations).model_dump(by_alias=True, mode="json")

        assert data["modelId"] == model.id
        assert [c["source"]["reference"]["key"] for c in data["calculations"]][:2] == [
            "grossPotentialIncome",
            "vacancyAllowance",
        ]


class TestSelectiveEscalation:
    """Tests for flagged items."""

    def test_clean_input_has_no_flags(self, user_input):
        model = run_model(user_input, title="Sample")
        assert model.brief_reasoning.flagged_items == []

    def test_low_confidence_items_flagged(self):
        section = UserInputSection(
            revenue_items=[
                _doc_item("r1", "Base Rent", 100000, 0.95),
                _doc_item("r2", "Parking", 5000, 0.4),
            ],
        )
        flagged = run_model(section, title="Low confidence").brief_reasoning.flagged_items

        assert [f.field for f in flagged] == ["userInput.revenueItems[1]"]
        assert flagged[0].confidence == 0.4
        assert flagged[0].severity == Severity.WARNING

    def test_threshold_option(self):
        section = UserInputSection(revenue_items=[_doc_item("r1", "Base Rent", 100000, 0.8)])

        default = run_model(section, title="Default threshold")
        strict = run_model(section, title="Strict", options=ModelOptions(review_confidence_threshold=0.9))

        assert default.brief_reasoning.flagged_items == []
        assert len(strict.brief_reasoning.flagged_items) == 1

    def test_flagged_for_review(self):
        section = UserInputSection(
            expense_items=[_doc_item("e1", "Repairs", 3000, 0.99, flagged=True)],
        )
        flagged = run_model(section, title="Flagged").brief_reasoning.flagged_items

        assert flagged[0].field == "userInput.expenseItems[0]"
        assert "Repairs" in flagged[0].reason

    def test_calculation_errors_flagged(self):
        section = UserInputSection(
            revenue_items=[_doc_item("r1", "Base Rent", 10000, 0.99)],
            expense_items=[_doc_item("e1", "Taxes", 20000, 0.99)],
            valuation_inputs=ValuationInputs(
                cap_rate=ValueWithSource(value=Decimal("0.08"), source=SourceReference.for_user_input(key="capRate")),
            ),
        )
        flagged = run_model(section, title="Underwater").brief_reasoning.flagged_items
        fields = {f.field: f for f in flagged}

        assert fields["calculations.propertyValue"].severity == Severity.ERROR
        assert fields["calculations.propertyValue"].reason == "Property value cannot be negative"
        assert "calculations.expenseRatio" in fields


class TestReasoning:
    """Tests for the reasoning summary."""

    def test_generated_summary_has_valid_notation(self, user_input):
        summary = run_model(user_input, title="Sample").brief_reasoning.summary

        assert summary.startswith("Extracted 3 revenue items and 2 expense items.")
        assert notation.validate(summary).is_valid
        keys = [ref.value_key for ref in notation.extract_references(summary)]
        assert "netOperatingIncome" in keys
        assert "propertyValue" in keys

    def test_summary_mentions_uncomputed_results(self):
        section = UserInputSection(revenue_items=[_doc_item("r1", "Base Rent", 100000, 0.99)])
        summary = run_model(section, title="No cap rate").brief_reasoning.summary

        assert "propertyValue" not in [ref.value_key for ref in notation.extract_references(summary)]
        assert "Not computed due to missing inputs" in summary
        assert "propertyValue" in summary

    def test_supplied_summary_kept(self, user_input):
        summary = "NOI is ${noi, tooltip:calculated-key:netOperatingIncome}."
        model = run_model(user_input, title="Sample", options=ModelOptions(summary=summary))

        assert model.brief_reasoning.summary == summary
        assert model.brief_reasoning.flagged_items == []

    def test_invalid_notation_flagged_not_raised(self, user_input):
        summary = "NOI is ${noi, tooltip:guessed-key:netOperatingIncome} and ${broken"
        model = run_model(user_input, title="Sample", options=ModelOptions(summary=summary))
        flagged = [f for f in model.brief_reasoning.flagged_items if f.field == SUMMARY_FIELD]

        assert len(flagged) == 2
        assert any(f.reason.startswith("Invalid source type: guessed") for f in flagged)
        assert any(f.reason.startswith("Unclosed source notation") for f in flagged)


class TestOverallConfidence:
    """Tests for the mean source confidence."""

    def test_mean_of_recorded_confidences(self, user_input):
        # Three document sources at 0.95; user inputs carry no confidence
        assert run_model(user_input, title="Sample").brief_reasoning.overall_confidence == pytest.approx(0.95)

    def test_mixed_confidences(self):
        section = UserInputSection(
            revenue_items=[_doc_item("r1", "Base Rent", 1, 0.9), _doc_item("r2", "Parking", 1, 0.5)],
            valuation_inputs=ValuationInputs(
                cap_rate=ValueWithSource(value="0.07", source=SourceReference.for_assumption("capRate", confidence=0.4)),
            ),
        )
        assert overall_confidence(section) == pytest.approx(0.6)

    def test_no_confidence_recorded(self):
        assert overall_confidence(UserInputSection()) == 1.0


class TestFromPayload:
    """End-to-end from a camelCase payload."""

    def test_payload_to_model(self):
        source = {
            "sourceType": "user_input",
            "reference": {"index": 0},
            "displayPath": "userInput[0]",
            "timestamp": "2024-06-01T12:00:00Z",
        }
        section = parse_user_input({
            "revenueItems": [{"id": "r1", "label": "Base Rent", "amount": 100000, "source": source}],
            "expenseItems": [{"id": "e1", "label": "Taxes", "amount": 15000, "source": source}],
            "valuationInputs": {
                "capRate": {"value": "0.08", "source": source},
                "vacancyRate": {"value": "0.05", "source": source},
            },
        })

        model = run_model(section, title="From payload")

        assert model.calculations.results["netOperatingIncome"] == Decimal(80000)
        assert model.calculations.results["propertyValue"] == Decimal(1000000)
