"""Prometheus metrics for Summadoc.

Provides metrics collection and exposure:
- HTTP request metrics (latency, count)
- Cache metrics (hits, misses, errors, latency)
- Store write conflicts (lost compare-and-swap races)

Usage:
    from summadoc.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.http_requests_total.labels(method="GET", path="/documents", status=200).inc()
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from prometheus_client import REGISTRY, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from summadoc.config import settings

if TYPE_CHECKING:
    from starlette.types import ASGIApp

logger = logging.getLogger(__name__)


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics.

    Metric attributes stay None while metrics are disabled; the record_*
    helpers check for that.
    """

    # HTTP metrics
    http_requests_total: Any = None
    http_request_duration_seconds: Any = None

    # Cache metrics
    cache_hits_total: Any = None
    cache_misses_total: Any = None
    cache_errors_total: Any = None
    cache_operation_duration_seconds: Any = None

    # Store metrics
    store_write_conflicts_total: Any = None

    # Internal state
    _initialized: bool = field(default=False, repr=False)

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if not settings.enable_metrics:
            logger.info("Metrics are disabled")
            self._initialized = True
            return

        self.http_requests_total = Counter(
            "summadoc_http_requests_total",
            "Total HTTP requests",
            ["method", "path", "status"],
        )

        self.http_request_duration_seconds = Histogram(
            "summadoc_http_request_duration_seconds",
            "HTTP request latency in seconds",
            ["method", "path"],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
        )

        self.cache_hits_total = Counter(
            "summadoc_cache_hits_total",
            "Cache hits",
            ["cache_type"],
        )

        self.cache_misses_total = Counter(
            "summadoc_cache_misses_total",
            "Cache misses",
            ["cache_type"],
        )

        self.cache_errors_total = Counter(
            "summadoc_cache_errors_total",
            "Cache operations absorbed as miss or no-op",
            ["operation"],
        )

        self.cache_operation_duration_seconds = Histogram(
            "summadoc_cache_operation_duration_seconds",
            "Cache operation latency in seconds",
            ["operation", "cache_type"],
            buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.25),
        )

        self.store_write_conflicts_total = Counter(
            "summadoc_store_write_conflicts_total",
            "Document list writes that lost a version race",
            ["operation"],
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if not settings.enable_metrics:
            return b"# Metrics disabled\n"
        return generate_latest(REGISTRY)


# Global metrics registry
metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry


_ID_SEGMENT = re.compile(r"^[0-9a-fA-F]{32}$|^[0-9a-fA-F-]{36}$")


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware for HTTP request metrics.

    Records:
    - Request count by method, path, status
    - Request duration histogram
    """

    def __init__(self, app: "ASGIApp") -> None:
        super().__init__(app)
        self.metrics = get_metrics()

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        """Record metrics for HTTP requests."""
        if request.url.path.startswith("/health") or request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        path = self._normalize_path(request.url.path)

        start_time = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration = time.perf_counter() - start_time

            if self.metrics.http_requests_total:
                self.metrics.http_requests_total.labels(
                    method=method,
                    path=path,
                    status=status_code,
                ).inc()

            if self.metrics.http_request_duration_seconds:
                self.metrics.http_request_duration_seconds.labels(
                    method=method,
                    path=path,
                ).observe(duration)

    def _normalize_path(self, path: str) -> str:
        """Replace document ids with a placeholder to bound label cardinality.

        Examples:
            /documents/0f3c...e1 -> /documents/{id}
            /documents/0f3c...e1/title -> /documents/{id}/title
        """
        parts = path.strip("/").split("/")
        normalized = []
        for index, part in enumerate(parts):
            if index > 0 and parts[index - 1] == "documents" and part not in ("count", "search"):
                normalized.append("{id}")
            elif _ID_SEGMENT.match(part):
                normalized.append("{id}")
            else:
                normalized.append(part)
        return "/" + "/".join(normalized) if normalized else path


def record_cache_hit(cache_type: str = "redis") -> None:
    """Record cache hit."""
    metrics = get_metrics()
    if metrics.cache_hits_total:
        metrics.cache_hits_total.labels(cache_type=cache_type).inc()


def record_cache_miss(cache_type: str = "redis") -> None:
    """Record cache miss."""
    metrics = get_metrics()
    if metrics.cache_misses_total:
        metrics.cache_misses_total.labels(cache_type=cache_type).inc()


def record_cache_error(operation: str) -> None:
    """Record a cache failure that was absorbed."""
    metrics = get_metrics()
    if metrics.cache_errors_total:
        metrics.cache_errors_total.labels(operation=operation).inc()


def record_cache_operation(operation: str, duration: float, cache_type: str = "redis") -> None:
    """Record cache operation duration.

    Args:
        operation: Cache operation (get, set, delete, ...)
        duration: Operation duration in seconds
        cache_type: Type of cache
    """
    metrics = get_metrics()
    if metrics.cache_operation_duration_seconds:
        metrics.cache_operation_duration_seconds.labels(
            operation=operation,
            cache_type=cache_type,
        ).observe(duration)


def record_write_conflict(operation: str) -> None:
    """Record a document list write that lost a version race."""
    metrics = get_metrics()
    if metrics.store_write_conflicts_total:
        metrics.store_write_conflicts_total.labels(operation=operation).inc()
