"""
Monitoring and observability utilities.

Provides:
- Prometheus metrics (requests, latencies, errors, storage operations)
- Request tracing (unique request IDs)
- Health information with storage status
"""
import re
import time
import uuid
import logging
from typing import Callable, Dict, Any
from contextvars import ContextVar

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware
from prometheus_client import Counter, Histogram, Gauge, generate_latest

from postcomments.exceptions import ServiceError

# Request context variable for tracing
request_id_var: ContextVar[str] = ContextVar('request_id', default='')

# Prometheus metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status_code']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint', 'status_code'],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
)

http_errors_total = Counter(
    'http_errors_total',
    'Total number of HTTP errors',
    ['method', 'endpoint', 'status_code', 'error_type']
)

storage_operations_total = Counter(
    'storage_operations_total',
    'Storage operations by backend, operation and outcome',
    ['backend', 'operation', 'outcome']
)

service_uptime_seconds = Gauge(
    'service_uptime_seconds',
    'Service uptime in seconds'
)

service_start_time = time.time()

logger = logging.getLogger(__name__)

_UUID_RE = re.compile(r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}', re.IGNORECASE)


def get_request_id() -> str:
    """Get the current request ID from context."""
    return request_id_var.get('')


def set_request_id(request_id: str) -> None:
    """Set the request ID in context."""
    request_id_var.set(request_id)


def record_storage_operation(backend: str, operation: str, exc: BaseException = None) -> None:
    """Count a storage call; the outcome label is the error code or 'ok'."""
    if exc is None:
        outcome = "ok"
    elif isinstance(exc, ServiceError):
        outcome = exc.code.lower()
    else:
        outcome = "error"
    storage_operations_total.labels(backend=backend, operation=operation, outcome=outcome).inc()


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware for collecting Prometheus metrics and request tracing."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
        set_request_id(request_id)

        endpoint = self._get_endpoint_path(request.url.path)
        start_time = time.time()
        service_uptime_seconds.set(time.time() - service_start_time)

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.time() - start_time
            status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
            logger.error(
                "Request failed with exception",
                exc_info=True,
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": status_code,
                    "duration_seconds": duration,
                    "exception_type": type(e).__name__,
                }
            )
            http_errors_total.labels(
                method=request.method,
                endpoint=endpoint,
                status_code=status_code,
                error_type="exception"
            ).inc()
            raise

        status_code = response.status_code
        duration = time.time() - start_time
        logger.info(
            f"{request.method} {request.url.path} -> {status_code} in {duration:.4f}s",
            extra={"request_id": request_id, "endpoint": endpoint, "status_code": status_code}
        )

        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=status_code
        ).inc()
        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=status_code
        ).observe(duration)

        if status_code >= 400:
            error_type = "client_error" if status_code < 500 else "server_error"
            http_errors_total.labels(
                method=request.method,
                endpoint=endpoint,
                status_code=status_code,
                error_type=error_type
            ).inc()

        response.headers["X-Request-ID"] = request_id
        return response

    @staticmethod
    def _get_endpoint_path(path: str) -> str:
        """Normalize endpoint path for metrics (remove IDs, etc.)."""
        path = _UUID_RE.sub('{id}', path)
        path = re.sub(r'/\d+', '/{id}', path)
        return path[:100]


def get_metrics() -> str:
    """Get Prometheus metrics in text format."""
    return generate_latest().decode('utf-8')


def check_storage_health(storage) -> Dict[str, Any]:
    """
    Check storage connectivity.

    Args:
        storage: StorageInterface implementation

    Returns:
        Dictionary with storage health status
    """
    start_time = time.time()
    try:
        storage.ping()
    except ServiceError as e:
        response_time_ms = round((time.time() - start_time) * 1000, 2)
        logger.warning(
            "Storage health check failed",
            extra={"error_type": type(e).__name__, "error_message": e.message}
        )
        return {
            "status": "unhealthy",
            "connectivity": "disconnected",
            "response_time_ms": response_time_ms,
            "error": e.message,
            "error_type": type(e).__name__,
            "backend": type(storage).__name__,
        }

    return {
        "status": "healthy",
        "connectivity": "connected",
        "response_time_ms": round((time.time() - start_time) * 1000, 2),
        "backend": type(storage).__name__,
    }


def get_health_info(storage=None) -> Dict[str, Any]:
    """
    Get health information including uptime and storage status.

    Args:
        storage: Optional storage backend to check
    """
    uptime = time.time() - service_start_time
    components = {
        "service": {"status": "healthy", "uptime_seconds": uptime}
    }
    overall_status = "healthy"

    if storage is not None:
        components["storage"] = check_storage_health(storage)
        if components["storage"]["status"] == "unhealthy":
            overall_status = "unhealthy"

    return {
        "status": overall_status,
        "service": "postcomments",
        "timestamp": time.time(),
        "uptime_seconds": uptime,
        "components": components
    }
