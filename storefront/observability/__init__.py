"""
Observability module - Logging, Metrics, and Tracing.
"""

from storefront.observability.logging import get_logger, log_context, setup_logging
from storefront.observability.metrics import metrics
from storefront.observability.tracing import setup_tracing, trace_operation

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
    "setup_tracing",
    "trace_operation",
]
