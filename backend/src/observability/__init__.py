"""Observability module for StaffHub Documents.

Provides structured logging, metrics, request correlation and health checks.
"""

from .logging_config import configure_logging
from .metrics import (
    storage_fallback_total,
    storage_operations_total,
    submission_callback_failures_total,
    submission_transitions_total,
    webhook_events_total,
)
from .middleware import RequestIDMiddleware
from .request_id import generate_request_id, get_request_id, request_id_var, set_request_id

__all__ = [
    # Logging
    "configure_logging",
    # Metrics
    "storage_fallback_total",
    "storage_operations_total",
    "submission_callback_failures_total",
    "submission_transitions_total",
    "webhook_events_total",
    # Request ID
    "request_id_var",
    "get_request_id",
    "set_request_id",
    "generate_request_id",
    # Middleware
    "RequestIDMiddleware",
]
