"""Prometheus metrics for lifecycle transitions, points movement and webhook reconciliation"""

from prometheus_client import Counter, Histogram

# Lifecycle metrics
plan_transition_counter = Counter(
    "rentease_plan_transitions_total",
    "Rent plan status transitions",
    ["status"],  # accepted | completed | rejected | cancelled
)

bill_payment_counter = Counter(
    "rentease_bill_payments_total",
    "Confirmed bill payments",
    ["timeliness"],  # on_time | late
)

# Points metrics
points_awarded_counter = Counter(
    "rentease_points_awarded_total",
    "Reward points granted",
    ["kind"],  # bill_payment | budget_streak
)

points_redeemed_counter = Counter(
    "rentease_points_redeemed_total",
    "Reward points spent on shop items",
)

streak_evaluation_counter = Counter(
    "rentease_streak_evaluations_total",
    "Budget streak evaluations",
    ["result"],  # advanced | reset | unchanged | already_checked | bonus
)

# Webhook metrics
webhook_event_counter = Counter(
    "rentease_webhook_events_total",
    "Payment webhook deliveries by outcome",
    ["outcome"],  # applied | duplicate | ignored | anomaly | failed
)

reconciliation_anomaly_counter = Counter(
    "rentease_reconciliation_anomalies_total",
    "Webhooks queued for operator follow-up",
    ["kind"],
)

# External service metrics
gateway_failure_counter = Counter(
    "rentease_gateway_failures_total",
    "Failed calls to external services",
    ["service"],  # payments | signing
)

signing_latency_histogram = Histogram(
    "rentease_signing_request_seconds",
    "E-signature submission response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_bill_payment(is_on_time: bool, points_earned: int) -> None:
    """Record a confirmed bill payment and the points it produced"""
    bill_payment_counter.labels(timeliness="on_time" if is_on_time else "late").inc()
    if points_earned > 0:
        points_awarded_counter.labels(kind="bill_payment").inc(points_earned)
