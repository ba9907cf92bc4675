# matterflow/middleware/monitoring.py
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from prometheus_client import Counter, Histogram, Gauge
import time
from typing import Callable

# Prometheus metrics
REQUEST_COUNT = Counter(
    'matterflow_http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

REQUEST_DURATION = Histogram(
    'matterflow_http_request_duration_seconds',
    'HTTP request duration',
    ['method', 'endpoint']
)

ACTIVE_REQUESTS = Gauge(
    'matterflow_http_requests_active',
    'Active HTTP requests'
)


def endpoint_label(request: Request) -> str:
    """Route template when one matched, so task ids don't explode label cardinality"""
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path or "unmatched"


class MonitoringMiddleware(BaseHTTPMiddleware):
    """
    Prometheus monitoring middleware for metrics collection
    """

    async def dispatch(self, request: Request, call_next: Callable):
        method = request.method
        ACTIVE_REQUESTS.inc()
        start_time = time.time()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            endpoint = endpoint_label(request)
            REQUEST_COUNT.labels(method=method, endpoint=endpoint, status=status_code).inc()
            REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(time.time() - start_time)
            ACTIVE_REQUESTS.dec()
