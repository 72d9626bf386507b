"""Prometheus metrics for the forwarder pipeline."""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

events_collected = Counter(
    "forwarder_events_collected_total",
    "Events popped from the queue",
)

events_decided = Counter(
    "forwarder_reconcile_decisions_total",
    "Reconciliation decisions by kind",
    ["decision"],
)

events_requeued = Counter(
    "forwarder_events_requeued_total",
    "Events pushed back onto the queue",
    ["reason"],
)

events_lost = Counter(
    "forwarder_events_lost_total",
    "Events that could be neither persisted nor requeued",
    ["reason"],
)

transport_failures = Counter(
    "forwarder_transport_failures_total",
    "Queue or store calls that failed as a whole",
    ["operation"],
)

cycle_duration = Histogram(
    "forwarder_cycle_duration_seconds",
    "Time spent reconciling and persisting one batch",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)


async def metrics_endpoint() -> Response:
    """Prometheus scrape endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
