"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Registration intake
registration_requests = Counter(
    'registration_requests_total',
    'Registration requests by outcome',
    ['outcome']  # pending_payment, waitlisted, registered, duplicate
)

capacity_check_latency = Histogram(
    'capacity_check_latency_seconds',
    'Time spent computing effective capacity usage',
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25]
)

# Payment lifecycle
payment_transitions = Counter(
    'pending_payment_transitions_total',
    'Pending payment status transitions',
    ['to_status']
)

# Waiting list
waiting_list_operations = Counter(
    'waiting_list_operations_total',
    'Waiting list operations',
    ['operation']  # enqueue, withdraw, promote, skip
)

# Registrations
registration_transitions = Counter(
    'registration_transitions_total',
    'Registration status transitions',
    ['to_status']
)

# Concurrency
lock_conflicts = Counter(
    'event_lock_conflicts_total',
    'Per-event optimistic lock conflicts',
    ['result']  # retried, exhausted
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_registration_outcome(outcome: str):
    registration_requests.labels(outcome=outcome).inc()


def record_payment_transition(to_status: str):
    payment_transitions.labels(to_status=to_status).inc()


def record_waiting_list_operation(operation: str):
    waiting_list_operations.labels(operation=operation).inc()


def record_registration_transition(to_status: str):
    registration_transitions.labels(to_status=to_status).inc()


def record_lock_conflict(exhausted: bool):
    result = "exhausted" if exhausted else "retried"
    lock_conflicts.labels(result=result).inc()
