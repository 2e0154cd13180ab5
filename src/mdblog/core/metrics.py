"""Prometheus request metrics for the site server."""

from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, Counter, Histogram, generate_latest

total_requests = Counter(
    "http_requests_total",
    "Number of get requests.",
    ["path"],
)

response_duration = Histogram(
    "http_response_duration_seconds",
    "Duration of HTTP responses.",
    ["path"],
)


def record_metrics(path: str, duration: float) -> None:
    """Count a request and observe its duration under ``path``."""
    total_requests.labels(path=path).inc()
    response_duration.labels(path=path).observe(duration)


def render_metrics() -> tuple[bytes, str]:
    """Exposition body and its content type."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
