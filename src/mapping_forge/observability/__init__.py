"""Observability exports: JSON-lines logging, correlation scopes and structlog routing."""

from mapping_forge.observability.logging import (
    LoggingConfig,
    StructuredLoggingHandle,
    configure_structlog,
    correlation_scope,
    flush_logging,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)

__all__ = [
    "LoggingConfig",
    "StructuredLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "flush_logging",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
