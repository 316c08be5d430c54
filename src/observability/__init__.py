"""Observability module for structured logging."""

from src.observability.logging import (
    bind_run_context,
    clear_run_context,
    configure_logging,
    get_logger,
    redact_sensitive_fields,
)


__all__ = [
    "bind_run_context",
    "clear_run_context",
    "configure_logging",
    "get_logger",
    "redact_sensitive_fields",
]
