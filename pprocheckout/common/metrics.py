"""Prometheus metric definitions for the checkout backend."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


payment_requests_total = Counter("payment_requests_total", "Total payment create requests", ["service"])
payment_failure_total = Counter(
    "payment_failure_total",
    "Total payment create requests that failed",
    ["service", "reason"],
)
idempotency_hits_total = Counter(
    "idempotency_hits_total",
    "Payment create requests answered from the idempotency cache",
    ["service"],
)
status_checks_total = Counter(
    "status_checks_total",
    "Charge status lookups by display category",
    ["service", "category"],
)
upstream_latency_seconds = Histogram(
    "upstream_latency_seconds",
    "PPRO API call latency seconds",
    ["service", "endpoint", "method"],
)
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
