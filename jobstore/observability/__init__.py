"""
Observability module.
Contains logging, metrics, and tracing setup.
"""

from jobstore.observability.logging import bind_context, get_logger, setup_logging
from jobstore.observability.metrics import (
    MetricsCollector,
    get_metrics,
    setup_metrics,
)
from jobstore.observability.tracing import get_tracer, instrument_sqlalchemy, setup_tracing

__all__ = [
    "setup_logging",
    "get_logger",
    "bind_context",
    "setup_metrics",
    "get_metrics",
    "MetricsCollector",
    "setup_tracing",
    "instrument_sqlalchemy",
    "get_tracer",
]
