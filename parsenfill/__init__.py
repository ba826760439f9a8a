"""
PARSE-N-FILL - auditable financial models from parsed real estate documents.

Turns extracted line items into a Custom Financial Model whose every value
is traceable to a source document, a user input, a formula or an explicit
assumption.
"""

__version__ = "1.0.0"
