"""
Health check registry.

Checks are plain callables returning a HealthCheckResult; the registry
runs them, times them and folds them into an overall status.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Callable, Dict, List

from django.conf import settings
from django.utils import timezone

logger = logging.getLogger(__name__)


class HealthStatus(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class HealthCheckResult:
    name: str
    status: HealthStatus
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    duration_ms: float = 0.0


class HealthChecker:
    """Health check registry and executor."""

    def __init__(self):
        self._checks: Dict[str, Callable[[], HealthCheckResult]] = {}

    def register(self, name: str, check_fn: Callable[[], HealthCheckResult]) -> None:
        self._checks[name] = check_fn

    def check(self, name: str) -> HealthCheckResult:
        """Run a specific health check."""
        if name not in self._checks:
            return HealthCheckResult(
                name=name,
                status=HealthStatus.UNHEALTHY,
                message=f"Unknown check: {name}",
            )

        start = time.perf_counter()
        try:
            result = self._checks[name]()
        except Exception as e:
            logger.warning(f"Health check {name} raised: {e}")
            result = HealthCheckResult(
                name=name,
                status=HealthStatus.UNHEALTHY,
                message=str(e),
            )
        result.duration_ms = (time.perf_counter() - start) * 1000
        return result

    def check_all(self) -> Dict[str, Any]:
        """Run all health checks."""
        results = {}
        overall_status = HealthStatus.HEALTHY

        for name in self._checks:
            result = self.check(name)
            results[name] = {
                "status": result.status.value,
                "message": result.message,
                "details": result.details,
                "duration_ms": result.duration_ms,
            }

            if result.status == HealthStatus.UNHEALTHY:
                overall_status = HealthStatus.UNHEALTHY
            elif result.status == HealthStatus.DEGRADED and overall_status != HealthStatus.UNHEALTHY:
                overall_status = HealthStatus.DEGRADED

        return {
            "status": overall_status.value,
            "version": getattr(settings, 'VERSION', ''),
            "checks": results,
            "timestamp": timezone.now().isoformat(),
        }

    def list_checks(self) -> List[str]:
        return list(self._checks.keys())


# =============================================================================
# Built-in Health Checks
# =============================================================================

def check_database() -> HealthCheckResult:
    """Check database connectivity."""
    from django.db import connection

    with connection.cursor() as cursor:
        cursor.execute("SELECT 1")
        cursor.fetchone()
    return HealthCheckResult(
        name="database",
        status=HealthStatus.HEALTHY,
        message="Database connection successful",
    )


def check_cache() -> HealthCheckResult:
    """Check cache (Redis) connectivity."""
    from django.core.cache import cache

    cache.set("health_check", "ok", 10)
    if cache.get("health_check") == "ok":
        return HealthCheckResult(
            name="cache",
            status=HealthStatus.HEALTHY,
            message="Cache connection successful",
        )
    return HealthCheckResult(
        name="cache",
        status=HealthStatus.DEGRADED,
        message="Cache get/set mismatch",
    )


def check_discovery_runs() -> HealthCheckResult:
    """Report runs that have outlived the run timeout (reaper lagging)."""
    from apps.discovery.models import DiscoveryRun

    timeout = timedelta(minutes=settings.DISCOVERY_RUN_TIMEOUT_MINUTES)
    stale = DiscoveryRun.objects.filter(
        status=DiscoveryRun.STATUS_RUNNING,
        started_at__lt=timezone.now() - timeout,
    ).count()

    if stale:
        return HealthCheckResult(
            name="discovery_runs",
            status=HealthStatus.DEGRADED,
            message=f"{stale} run(s) past the {settings.DISCOVERY_RUN_TIMEOUT_MINUTES} minute timeout",
            details={"stale_runs": stale},
        )
    return HealthCheckResult(
        name="discovery_runs",
        status=HealthStatus.HEALTHY,
        message="No stuck runs",
    )


health_checker = HealthChecker()
health_checker.register("database", check_database)
health_checker.register("cache", check_cache)
health_checker.register("discovery_runs", check_discovery_runs)
