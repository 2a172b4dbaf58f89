"""Observability package for logging."""

from revwave_core.observability.logging import (
    StructuredLogger,
    JsonFormatter,
    TenantContext,
    get_logger,
    configure_logging,
)

__all__ = [
    "StructuredLogger",
    "JsonFormatter",
    "TenantContext",
    "get_logger",
    "configure_logging",
]
