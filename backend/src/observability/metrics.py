"""Prometheus metrics for document storage and e-signature workflows.

Defines and exposes operational metrics for monitoring and alerting.
"""

from prometheus_client import Counter

# Storage metrics
storage_operations_total = Counter(
    "staffhub_storage_operations_total",
    "Total document storage operations",
    ["operation", "storage_type", "status"]  # status: success|error
)

storage_fallback_total = Counter(
    "staffhub_storage_fallback_total",
    "Operations served by local storage because remote storage was unavailable",
    ["operation"]
)

# Submission lifecycle metrics
submission_transitions_total = Counter(
    "staffhub_submission_transitions_total",
    "Total e-signature submission status transitions",
    ["from_status", "to_status", "source"]  # source: api|timer|webhook|poll
)

submission_callback_failures_total = Counter(
    "staffhub_submission_callback_failures_total",
    "Submission callback handlers that raised an exception"
)

webhook_events_total = Counter(
    "staffhub_webhook_events_total",
    "E-signature webhook events received",
    ["event", "status"]  # status: ok|ignored|rejected
)
