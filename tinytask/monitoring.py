"""
Monitoring and observability utilities for the TinyTask service.

Provides:
- Prometheus metrics (HTTP requests, procedure calls, errors by kind)
- Request tracing (unique request IDs)
- Health information for the store
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

# Request context variable for tracing
request_id_var: ContextVar[str] = ContextVar('request_id', default='')

# Prometheus metrics
http_requests_total = Counter(
    'tinytask_http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status_code']
)

http_request_duration_seconds = Histogram(
    'tinytask_http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint', 'status_code'],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
)

procedure_calls_total = Counter(
    'tinytask_procedure_calls_total',
    'Total number of procedure (tool) calls',
    ['tool', 'outcome']
)

procedure_duration_seconds = Histogram(
    'tinytask_procedure_duration_seconds',
    'Procedure (tool) call duration in seconds',
    ['tool'],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0)
)

procedure_errors_total = Counter(
    'tinytask_procedure_errors_total',
    'Total number of failed procedure calls by error kind',
    ['tool', 'error_type']
)

service_uptime_seconds = Gauge(
    'tinytask_service_uptime_seconds',
    'Service uptime in seconds'
)

service_start_time = time.time()

logger = logging.getLogger(__name__)


def get_request_id() -> str:
    """Get the current request ID from context."""
    return request_id_var.get('')


def set_request_id(request_id: str) -> None:
    """Set the request ID in context."""
    request_id_var.set(request_id)


def record_procedure_call(tool: str, duration: float, error_type: str = None) -> None:
    """Record one procedure call; error_type is the exception class name on failure."""
    outcome = "error" if error_type else "success"
    procedure_calls_total.labels(tool=tool, outcome=outcome).inc()
    procedure_duration_seconds.labels(tool=tool).observe(duration)
    if error_type:
        procedure_errors_total.labels(tool=tool, error_type=error_type).inc()


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
            logger.error(
                f"Request failed with exception: {request.method} {request.url.path}",
                exc_info=True,
                extra={
                    "request_id": request_id,
                    "exception_type": type(e).__name__,
                    "duration_seconds": duration,
                }
            )
            http_requests_total.labels(
                method=request.method,
                endpoint=endpoint,
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
            ).inc()
            raise

        duration = time.time() - start_time
        status_code = response.status_code
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
            logger.warning(f"Request error: {request.method} {request.url.path} -> {status_code}")
        else:
            logger.debug(f"{request.method} {request.url.path} -> {status_code} in {duration:.4f}s")

        response.headers["X-Request-ID"] = request_id
        return response

    @staticmethod
    def _get_endpoint_path(path: str) -> str:
        """Normalize endpoint path for metrics (numeric IDs become placeholders)."""
        path = re.sub(r'/\d+', '/{id}', path)
        return path[:100]


def get_metrics() -> str:
    """Get Prometheus metrics in text format."""
    return generate_latest().decode('utf-8')


def check_database_health(db) -> Dict[str, Any]:
    """
    Check database connectivity.

    Args:
        db: TinyTaskDatabase instance

    Returns:
        Dictionary with database health status
    """
    start_time = time.time()
    try:
        task_count = db.count_tasks()
        return {
            "status": "healthy",
            "connectivity": "connected",
            "response_time_ms": round((time.time() - start_time) * 1000, 2),
            "type": "sqlite",
            "task_count": task_count,
        }
    except Exception as e:
        response_time_ms = round((time.time() - start_time) * 1000, 2)
        logger.warning(f"Database health check failed: {type(e).__name__}: {e}")
        return {
            "status": "unhealthy",
            "connectivity": "disconnected",
            "response_time_ms": response_time_ms,
            "error": str(e),
            "error_type": type(e).__name__,
        }


def get_health_info(db=None) -> Dict[str, Any]:
    """Health information including uptime and store status."""
    uptime = time.time() - service_start_time
    components: Dict[str, Any] = {
        "service": {"status": "healthy", "uptime_seconds": uptime}
    }
    overall_status = "healthy"

    if db is not None:
        db_health = check_database_health(db)
        components["database"] = db_health
        if db_health.get("status") == "unhealthy":
            overall_status = "unhealthy"

    return {
        "status": overall_status,
        "service": "tinytask",
        "timestamp": time.time(),
        "uptime_seconds": uptime,
        "uptime_formatted": _format_uptime(uptime),
        "components": components,
    }


def _format_uptime(seconds: float) -> str:
    """Format uptime in human-readable format."""
    days = int(seconds // 86400)
    hours = int((seconds % 86400) // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    if days > 0:
        return f"{days}d {hours}h {minutes}m {secs}s"
    elif hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    elif minutes > 0:
        return f"{minutes}m {secs}s"
    else:
        return f"{secs}s"
