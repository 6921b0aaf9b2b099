"""Prometheus metrics for StockBridge.

Defines and exposes operational metrics for monitoring and alerting.
"""

from prometheus_client import Counter, Histogram, Gauge

# Sync engine metrics
sync_runs_total = Counter(
    "stockbridge_sync_runs_total",
    "Total inventory sync runs by outcome",
    ["provider", "status"]  # status: completed|failed|skipped
)

schedule_ticks_total = Counter(
    "stockbridge_schedule_ticks_total",
    "Schedule evaluations per ticker pass",
    ["outcome"]  # outcome: due|started|skipped_locked|skipped_weekend|completed|failed|retry_scheduled
)

active_sync_runs = Gauge(
    "stockbridge_active_sync_runs",
    "Sync runs currently in running state"
)

# Provider call metrics
provider_call_seconds = Histogram(
    "stockbridge_provider_call_seconds",
    "Latency of calls to fulfillment providers in seconds",
    ["provider", "operation"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0]
)

provider_errors_total = Counter(
    "stockbridge_provider_errors_total",
    "Provider call failures by normalized error kind",
    ["provider", "kind"]  # kind: unavailable|auth|rate_limited|transfer|malformed|error
)

# Warehouse transfer metrics
transfers_total = Counter(
    "stockbridge_transfers_total",
    "Warehouse transfers reaching a status",
    ["status"]  # status: scheduled|completed|failed|cancelled|rejected
)

# Webhook metrics
webhook_events_total = Counter(
    "stockbridge_webhook_events_total",
    "Inbound provider webhooks by result",
    ["provider", "result"]  # result: accepted|duplicate|invalid_signature|malformed
)

webhook_deliveries_total = Counter(
    "stockbridge_webhook_deliveries_total",
    "Outbound subscriber delivery attempts by resulting status",
    ["status"]  # status: delivered|retry|dead_lettered
)

webhook_delivery_seconds = Histogram(
    "stockbridge_webhook_delivery_seconds",
    "Latency of subscriber delivery attempts in seconds",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Inbound API metrics
http_requests_total = Counter(
    "stockbridge_http_requests_total",
    "Inbound API requests by route template and status code",
    ["method", "route", "status"]
)

http_request_seconds = Histogram(
    "stockbridge_http_request_seconds",
    "Inbound API request latency in seconds",
    ["method", "route"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)
