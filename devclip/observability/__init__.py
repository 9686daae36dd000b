"""
Observability module - Logging, Metrics, and Tracing.
"""

from devclip.observability.logging import get_logger, log_context, setup_logging
from devclip.observability.metrics import metrics
from devclip.observability.tracing import setup_tracing

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
    "setup_tracing",
]
