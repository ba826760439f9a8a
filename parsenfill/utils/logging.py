"""
Structured logging setup.

Configures structlog with the processor chain used across the package and
tracks the model currently being assembled so every log line can be tied
back to one audit trail.
"""
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator, Optional

import structlog

from parsenfill.config import Settings, get_settings

# Context variable for the model being evaluated
current_model_id: ContextVar[str] = ContextVar("current_model_id", default="")


def get_model_id() -> str:
    """Get the model ID bound to the current context."""
    return current_model_id.get()


@contextmanager
def bind_model_id(model_id: str) -> Iterator[str]:
    """
    Bind a model ID to the current context for the duration of a block.

    Usage:
        with bind_model_id(model.id):
            evaluator.evaluate(raw_inputs)
    """
    token = current_model_id.set(model_id)
    try:
        yield model_id
    finally:
        current_model_id.reset(token)


def add_model_id_processor(
    logger: Any, method_name: str, event_dict: dict
) -> dict:
    """Structlog processor that adds the bound model ID to all log entries."""
    model_id = get_model_id()
    if model_id and "model_id" not in event_dict:
        event_dict["model_id"] = model_id
    return event_dict


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure stdlib logging and structlog from settings."""
    settings = settings or get_settings()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.log_json
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            add_model_id_processor,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
