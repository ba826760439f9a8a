"""
Custom exceptions for PARSE-N-FILL.

Provides a hierarchy of exceptions with error codes for consistent error handling.
"""
from typing import Any, Dict, List, Optional


class ParseNFillError(Exception):
    """
    Base exception for all PARSE-N-FILL errors.

    Attributes:
        error_code: Unique error code (e.g., PNF-001)
        message: Human-readable error message
        details: Additional error context
    """
    error_code: str = "PNF-000"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ):
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging or API responses."""
        return {
            "error": True,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


# Formula Registration Errors (PNF-1XX)
class RegistrationError(ParseNFillError):
    """Formula registry could not accept a definition."""
    error_code = "PNF-100"

    def __init__(self, message: str = "Failed to register formulas", **kwargs):
        super().__init__(message, **kwargs)


class DuplicateFormulaIdError(RegistrationError):
    """Two formula definitions share the same id."""
    error_code = "PNF-101"

    def __init__(self, formula_id: str, **kwargs):
        message = f"Formula already registered: {formula_id}"
        super().__init__(message, details={"formula_id": formula_id}, **kwargs)


class UnknownDependencyError(RegistrationError):
    """A formula depends on an id that is not registered."""
    error_code = "PNF-102"

    def __init__(self, formula_id: str, dependency: str, **kwargs):
        message = f"Formula {formula_id} depends on unknown formula {dependency}"
        super().__init__(
            message,
            details={"formula_id": formula_id, "dependency": dependency},
            **kwargs,
        )


class CycleDetectedError(RegistrationError):
    """The formula dependency graph contains a cycle."""
    error_code = "PNF-103"

    def __init__(self, chain: List[str], **kwargs):
        message = f"Dependency cycle detected: {' -> '.join(chain)}"
        super().__init__(message, details={"chain": list(chain)}, **kwargs)


class DuplicateFunctionError(RegistrationError):
    """A named custom function is registered twice."""
    error_code = "PNF-104"

    def __init__(self, name: str, **kwargs):
        message = f"Function already registered: {name}"
        super().__init__(message, details={"function": name}, **kwargs)


class UnknownFunctionError(RegistrationError):
    """A custom formula names a function that is not registered."""
    error_code = "PNF-105"

    def __init__(self, formula_id: str, name: str, **kwargs):
        message = f"Formula {formula_id} uses unknown function {name}"
        super().__init__(
            message,
            details={"formula_id": formula_id, "function": name},
            **kwargs,
        )


class FormulaNotFoundError(ParseNFillError):
    """Formula id not present in the registry."""
    error_code = "PNF-106"

    def __init__(self, formula_id: str, **kwargs):
        message = f"Formula {formula_id} not found"
        super().__init__(message, details={"formula_id": formula_id}, **kwargs)


# Source Attribution Errors (PNF-2XX)
class InvalidSourceReferenceError(ParseNFillError):
    """Source reference violates its invariants."""
    error_code = "PNF-200"

    def __init__(self, message: str = "Invalid source reference", **kwargs):
        super().__init__(message, **kwargs)


# Conversion Errors (PNF-3XX)
class ConversionError(ParseNFillError):
    """Model could not be converted to an external format."""
    error_code = "PNF-300"

    def __init__(self, message: str = "Failed to convert model", **kwargs):
        super().__init__(message, **kwargs)


# Schema Validation Errors (PNF-4XX)
class SchemaValidationError(ParseNFillError):
    """External payload failed schema validation."""
    error_code = "PNF-400"

    def __init__(self, message: str = "Validation failed", errors: Optional[list] = None, **kwargs):
        details = kwargs.pop("details", {})
        details["errors"] = errors or []
        super().__init__(message, details=details, **kwargs)
