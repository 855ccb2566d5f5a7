"""
Prometheus metrics endpoint.
Exposes poller metrics for Prometheus scraping.
"""
from fastapi import APIRouter, Response
from prometheus_client import (
    Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
)

router = APIRouter(tags=["Metrics"])

# Counters
polls_total = Counter(
    "oltpoller_polls_total",
    "Total device polls",
    ["protocol", "result"]
)

polls_skipped_total = Counter(
    "oltpoller_polls_skipped_total",
    "Scheduled polls skipped because the device was still being polled"
)

state_events_total = Counter(
    "oltpoller_state_events_total",
    "Total state events emitted",
    ["type", "severity"]
)

sink_failures_total = Counter(
    "oltpoller_sink_failures_total",
    "Total sink write failures",
    ["sink"]
)

# Histograms
poll_duration_seconds = Histogram(
    "oltpoller_poll_duration_seconds",
    "Device poll duration in seconds",
    ["protocol"],
    buckets=(0.5, 1, 2.5, 5, 10, 20, 30, 60, 120)
)

# Gauges
registered_devices = Gauge(
    "oltpoller_registered_devices",
    "Number of devices in the registry"
)

polls_in_flight = Gauge(
    "oltpoller_polls_in_flight",
    "Number of device polls currently running"
)

onus_online = Gauge(
    "oltpoller_onus_online",
    "Online ONUs per device at the last successful poll",
    ["device_id"]
)


@router.get("/metrics")
async def metrics():
    """
    Prometheus metrics endpoint.
    Returns metrics in Prometheus text format.
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
