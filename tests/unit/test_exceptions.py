"""
Unit tests for custom exceptions.

Tests exception hierarchy and error formatting.
"""
import pytest

from parsenfill.exceptions import (
    ConversionError,
    CycleDetectedError,
    DuplicateFormulaIdError,
    DuplicateFunctionError,
    FormulaNotFoundError,
    InvalidSourceReferenceError,
    ParseNFillError,
    RegistrationError,
    SchemaValidationError,
    UnknownDependencyError,
    UnknownFunctionError,
)


class TestExceptionHierarchy:
    """Tests for exception class hierarchy."""

    def test_base_exception(self):
        """Test base ParseNFillError."""
        exc = ParseNFillError("Test error")

        assert exc.error_code == "PNF-000"
        assert exc.message == "Test error"
        assert exc.details == {}
        assert str(exc) == "Test error"

    @pytest.mark.parametrize("exc, code", [
        (RegistrationError(), "PNF-100"),
        (DuplicateFormulaIdError("noi"), "PNF-101"),
        (UnknownDependencyError("noi", "egi"), "PNF-102"),
        (CycleDetectedError(["a", "b", "a"]), "PNF-103"),
        (DuplicateFunctionError("spread"), "PNF-104"),
        (UnknownFunctionError("icr", "spread"), "PNF-105"),
    ])
    def test_registration_errors(self, exc, code):
        """Test registration errors share a base class."""
        assert isinstance(exc, RegistrationError)
        assert exc.error_code == code

    def test_other_errors(self):
        """Test non-registration errors."""
        assert FormulaNotFoundError("noi").error_code == "PNF-106"
        assert InvalidSourceReferenceError().error_code == "PNF-200"
        assert ConversionError().error_code == "PNF-300"
        assert SchemaValidationError().error_code == "PNF-400"
        assert not isinstance(FormulaNotFoundError("noi"), RegistrationError)


class TestExceptionDetails:
    """Tests for exception details and formatting."""

    def test_cycle_chain(self):
        exc = CycleDetectedError(["a", "b", "a"])

        assert exc.message == "Dependency cycle detected: a -> b -> a"
        assert exc.details["chain"] == ["a", "b", "a"]

    def test_schema_validation_errors(self):
        errors = [{"loc": "label", "msg": "too short", "type": "string_too_short"}]
        exc = SchemaValidationError("Invalid", errors=errors, details={"schema": "LineItemSchema"})

        assert exc.details == {"schema": "LineItemSchema", "errors": errors}

    def test_custom_error_code(self):
        exc = ConversionError("Bad rate", error_code="PNF-301")
        assert exc.error_code == "PNF-301"

    def test_to_dict(self):
        """Test exception serialization."""
        exc = DuplicateFormulaIdError("noi")

        assert exc.to_dict() == {
            "error": True,
            "error_code": "PNF-101",
            "message": "Formula already registered: noi",
            "details": {"formula_id": "noi"},
        }

    def test_raise_and_catch(self):
        """Test raising and catching by base class."""
        with pytest.raises(ParseNFillError) as exc_info:
            raise UnknownDependencyError("noi", "egi")

        assert exc_info.value.details["dependency"] == "egi"
