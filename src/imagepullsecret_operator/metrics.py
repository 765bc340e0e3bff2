"""Prometheus metrics for the ImagePullSecret Operator."""

from prometheus_client import Counter, Histogram

# Reconciliation metrics
reconcile_total = Counter(
    "imagepullsecret_operator_reconcile_total",
    "Total number of reconciliations",
    ["kind", "result"],
)

reconcile_duration_seconds = Histogram(
    "imagepullsecret_operator_reconcile_duration_seconds",
    "Duration of reconciliations in seconds",
    ["kind"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0],
)

error_total = Counter(
    "imagepullsecret_operator_error_total",
    "Total number of reconciliation errors",
    ["kind", "error_type"],
)

# Trigger classification
trigger_decisions_total = Counter(
    "imagepullsecret_operator_trigger_decisions_total",
    "Pod events by trigger classification",
    ["decision"],
)

# Managed resource mutations
managed_resource_operations_total = Counter(
    "imagepullsecret_operator_managed_resource_operations_total",
    "Total number of managed resource create/delete operations",
    ["operation", "outcome"],
)

# API call metrics
api_call_total = Counter(
    "imagepullsecret_operator_api_call_total",
    "Total number of API calls",
    ["api_type", "operation", "result"],
)

api_call_duration_seconds = Histogram(
    "imagepullsecret_operator_api_call_duration_seconds",
    "Duration of API calls in seconds",
    ["api_type", "operation"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0],
)
