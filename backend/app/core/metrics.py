"""
Prometheus metrics for application monitoring.
"""
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from prometheus_client.openmetrics.exposition import generate_latest as generate_latest_openmetrics
from fastapi import Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
import time


# Request metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status_code']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Business metrics
eod_reports_generated_total = Counter(
    'eod_reports_generated_total',
    'Total number of end-of-day reports generated',
    ['saved']
)

eod_report_generation_seconds = Histogram(
    'eod_report_generation_seconds',
    'Time spent fetching and aggregating an end-of-day report',
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

sequence_numbers_issued_total = Counter(
    'sequence_numbers_issued_total',
    'Sequential numbers issued, by sequence and the tier that produced them',
    ['sequence', 'tier']
)

daily_serial_resets_total = Counter(
    'daily_serial_resets_total',
    'Daily order serial reset attempts',
    ['status']
)

orders_created_total = Counter(
    'orders_created_total',
    'Total number of orders created',
    ['payment_method']
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware to collect HTTP request metrics."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        if request.url.path == "/metrics":
            return await call_next(request)

        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            duration = time.time() - start_time
            # Route template (set during routing) keeps report ids out of label values
            route = request.scope.get("route")
            endpoint = getattr(route, "path", None) or request.url.path

            http_requests_total.labels(
                method=request.method,
                endpoint=endpoint,
                status_code=status_code
            ).inc()

            http_request_duration_seconds.labels(
                method=request.method,
                endpoint=endpoint
            ).observe(duration)

        return response


def get_metrics_response(openmetrics: bool = False) -> Response:
    """
    Get Prometheus metrics response.

    Args:
        openmetrics: If True, return OpenMetrics format, else Prometheus format
    """
    if openmetrics:
        content = generate_latest_openmetrics()
        content_type = "application/openmetrics-text; version=1.0.0; charset=utf-8"
    else:
        content = generate_latest()
        content_type = CONTENT_TYPE_LATEST

    return Response(content=content, media_type=content_type)
