from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "path"],
)

BOOKING_TRANSITIONS = Counter(
    "booking_transitions_total",
    "Committed booking lifecycle transitions",
    ["operation", "target"],
)

RELIABILITY_PENALTIES = Counter(
    "reliability_penalties_total",
    "Reliability penalties applied to providers",
    ["kind"],
)

NOTIFICATION_FAILURES = Counter(
    "notification_failures_total",
    "Notifications that could not be delivered",
    ["type"],
)


def render_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
