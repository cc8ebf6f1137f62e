"""Prometheus metrics for session throughput, classifier health and recommendation traffic"""

from prometheus_client import Counter, Histogram, Gauge

# Session metrics
session_transition_counter = Counter(
    "card_advisor_session_transitions_total",
    "Session status transitions",
    ["status"],
)

extraction_outcome_counter = Counter(
    "card_advisor_extractions_total",
    "Finished pipeline runs",
    ["outcome"],  # completed | failed
)

extracted_transactions_histogram = Histogram(
    "card_advisor_extracted_transactions",
    "Transactions stored per successful extraction",
    buckets=[0, 5, 10, 25, 50, 100, 250, 500],
)

jobs_in_flight_gauge = Gauge(
    "card_advisor_jobs_in_flight",
    "Pipeline jobs currently holding a worker slot",
)

# Classifier metrics
classifier_latency_histogram = Histogram(
    "classifier_latency_seconds",
    "Text classifier response time",
    buckets=[0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0],
)

classifier_failure_counter = Counter(
    "classifier_failures_total",
    "Failed text classifier calls",
    ["reason"],  # timeout | unavailable | rejected
)

# Recommendation metrics
recommendation_counter = Counter(
    "card_advisor_recommendations_total",
    "Recommendation requests served",
    ["source"],  # cache | fresh
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_extraction(success: bool, transactions: int) -> None:
    """Record pipeline outcome and, on success, how many transactions were stored"""
    extraction_outcome_counter.labels(outcome="completed" if success else "failed").inc()
    if success:
        extracted_transactions_histogram.observe(transactions)
