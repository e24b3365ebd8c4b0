"""Prometheus metric inventory.

All metrics are defined here; the modules that own the behaviour import
and increment them at the point of action.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Credit economy
# ---------------------------------------------------------------------------

LEDGER_TRANSACTIONS = Counter(
    "ledger_transactions_total",
    "Credit transactions appended to the ledger",
    ["type", "direction"],  # earned|spent|purchased, credit|debit
)

LEDGER_REJECTIONS = Counter(
    "ledger_rejections_total",
    "Ledger mutations refused before any write",
    ["reason"],  # insufficient_funds|payment_failed
)

ENROLLMENTS = Counter(
    "enrollments_total",
    "Enrollments created",
    ["payment_method"],
)

LESSONS_COMPLETED = Counter(
    "lessons_completed_total",
    "First-time lesson completions",
)

CERTIFICATES_ISSUED = Counter(
    "certificates_issued_total",
    "Certificates created (repeat requests are not counted)",
)

# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------

STORAGE_RETRIES = Counter(
    "storage_retries_total",
    "Retries of transient storage failures",
    ["outcome"],  # retried|exhausted
)

AUDIT_EVENTS = Counter(
    "audit_events_total",
    "Audit events handed to the sink",
    ["result"],  # queued|dropped
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],
)
