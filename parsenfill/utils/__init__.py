"""Utilities package."""
from parsenfill.utils.logging import (
    bind_model_id,
    configure_logging,
    get_model_id,
)

__all__ = [
    "bind_model_id",
    "configure_logging",
    "get_model_id",
]
