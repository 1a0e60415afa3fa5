"""Prometheus metrics for reconciliation outcomes, credit checks and webhook performance"""

from prometheus_client import Counter, Histogram

# Reconciliation metrics
reconciliation_counter = Counter(
    "stms_reconciliation_operations_total",
    "Money-moving operations by outcome",
    ["operation", "outcome"],  # outcome: success | rejected | conflict
)

write_conflict_counter = Counter(
    "stms_write_conflicts_total",
    "Operations that gave up after repeated version conflicts",
    ["operation"],
)

credit_check_counter = Counter(
    "stms_credit_checks_total",
    "Credit limit evaluations",
    ["outcome", "enforcement"],  # outcome: ok | would_exceed
)

# Webhook metrics
webhook_latency_histogram = Histogram(
    "stms_billing_event_latency_seconds",
    "Billing event webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

webhook_failure_counter = Counter(
    "stms_billing_event_failures_total",
    "Failed billing event deliveries",
    ["event_type"],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_reconciliation(operation: str, outcome: str) -> None:
    """Count an operation outcome; conflicts are also tracked on their own counter"""
    reconciliation_counter.labels(operation=operation, outcome=outcome).inc()
    if outcome == "conflict":
        write_conflict_counter.labels(operation=operation).inc()


def record_credit_check(ok: bool, enforcement: str) -> None:
    credit_check_counter.labels(outcome="ok" if ok else "would_exceed", enforcement=enforcement).inc()
