"""Observability layer - structured logging."""

from msgbot.observability.logging import log_context, setup_logging

__all__ = ["log_context", "setup_logging"]
