"""Health check endpoints for Summadoc.

- /health/live  - Liveness probe (always OK if the process is running)
- /health/ready - Readiness probe (the store is required; the cache is not)

The cache fails open, so an unreachable Redis only degrades readiness: the
pod keeps receiving traffic and serves every read from the store.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from summadoc.api.deps import get_cache_dep
from summadoc.cache.redis import RedisCache
from summadoc.persistence.db import health_check as db_health_check

router = APIRouter(tags=["health"])

CHECK_TIMEOUT = 5.0  # seconds


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    DISABLED = "disabled"


@dataclass
class ComponentHealth:
    """Health status of a single component."""

    name: str
    status: HealthStatus
    latency_ms: float
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            result["message"] = self.message
        return result


async def check_database() -> ComponentHealth:
    start = time.monotonic()
    try:
        healthy = await asyncio.wait_for(db_health_check(), timeout=CHECK_TIMEOUT)
        message = None if healthy else "Database check failed"
    except asyncio.TimeoutError:
        healthy, message = False, "Database check timed out"
    return ComponentHealth(
        name="database",
        status=HealthStatus.HEALTHY if healthy else HealthStatus.UNHEALTHY,
        latency_ms=(time.monotonic() - start) * 1000,
        message=message,
    )


async def check_cache(cache: RedisCache) -> ComponentHealth:
    """Check Redis connectivity. Never reports worse than degraded."""
    start = time.monotonic()
    if not cache.enabled:
        return ComponentHealth(name="redis", status=HealthStatus.DISABLED, latency_ms=0.0)

    healthy = await cache.health_check()
    return ComponentHealth(
        name="redis",
        status=HealthStatus.HEALTHY if healthy else HealthStatus.DEGRADED,
        latency_ms=(time.monotonic() - start) * 1000,
        message=None if healthy else "Redis unreachable; serving from the store",
    )


@router.get("/health/live")
async def live() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok"}


@router.get("/health/ready")
async def ready(cache: RedisCache = Depends(get_cache_dep)) -> JSONResponse:
    """Readiness probe.

    Returns 503 only if the store is unhealthy; a down cache yields
    ``degraded`` with 200.
    """
    db_result, cache_result = await asyncio.gather(check_database(), check_cache(cache))

    if db_result.status == HealthStatus.UNHEALTHY:
        overall_status = HealthStatus.UNHEALTHY
    elif cache_result.status == HealthStatus.DEGRADED:
        overall_status = HealthStatus.DEGRADED
    else:
        overall_status = HealthStatus.HEALTHY

    result = {
        "status": overall_status.value,
        "components": [db_result.to_dict(), cache_result.to_dict()],
    }
    status_code = 503 if overall_status == HealthStatus.UNHEALTHY else 200
    return JSONResponse(content=result, status_code=status_code)
