"""Prometheus metrics for the Exoscale IAM Operator."""

from prometheus_client import Counter, Histogram

# Reconciliation metrics
reconcile_total = Counter(
    "exoscale_iam_operator_reconcile_total",
    "Total number of reconciliations",
    ["kind", "result"],
)

reconcile_duration_seconds = Histogram(
    "exoscale_iam_operator_reconcile_duration_seconds",
    "Duration of reconciliations in seconds",
    ["kind"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

error_total = Counter(
    "exoscale_iam_operator_error_total",
    "Total number of classified errors",
    ["kind", "error_type"],
)

resource_status_total = Counter(
    "exoscale_iam_operator_resource_status_total",
    "Resource status transitions written",
    ["kind", "status"],
)

# External key operations
key_operations_total = Counter(
    "exoscale_iam_operator_key_operations_total",
    "Total number of IAM key operations",
    ["operation", "result"],
)

# Configuration drift detection metrics
drift_detected_total = Counter(
    "exoscale_iam_operator_drift_detected_total",
    "Total number of configuration drift detections",
    ["kind", "drift_type"],
)

# Store write conflicts
store_conflicts_total = Counter(
    "exoscale_iam_operator_store_conflicts_total",
    "Optimistic-concurrency conflicts on resource writes",
    ["kind"],
)

# API call metrics
api_call_total = Counter(
    "exoscale_iam_operator_api_call_total",
    "Total number of API calls",
    ["api_type", "operation", "result"],
)

api_call_duration_seconds = Histogram(
    "exoscale_iam_operator_api_call_duration_seconds",
    "Duration of API calls in seconds",
    ["api_type", "operation"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0],
)

rate_limit_hits_total = Counter(
    "exoscale_iam_operator_rate_limit_hits_total",
    "Total number of rate limit hits",
    ["api_type"],
)
