"""Observability for remi: structured logging."""

from remi.observability.logging import LogContext, configure_logging

__all__ = ["LogContext", "configure_logging"]
