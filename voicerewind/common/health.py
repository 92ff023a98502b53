"""Health tracking for the daemon and its optional backends."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .structured_logging import get_logger


class HealthStatus(Enum):
    """Service health status levels."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass(slots=True)
class HealthCheck:
    """Health check result."""

    status: HealthStatus
    ready: bool  # Can serve requests
    details: dict[str, Any] = field(default_factory=dict)


class HealthManager:
    """Tracks startup state and optional dependency availability.

    Dependencies are optional by nature here: a missing OpenAI key or a failed
    microphone only degrade the daemon, so they turn the status into DEGRADED
    and never make it UNHEALTHY. Only a critical startup failure does that.
    """

    def __init__(self, service_name: str, check_timeout: float = 2.0) -> None:
        self._service_name = service_name
        self._check_timeout = check_timeout
        self._dependencies: dict[str, Callable[[], Any]] = {}
        self._startup_complete = False
        self._startup_time = time.time()
        self._startup_failures: list[dict[str, Any]] = []
        self._logger = get_logger(__name__, service_name=service_name)

    def register_dependency(self, name: str, check: Callable[[], Any]) -> None:
        """Register a dependency check returning a bool (sync or async)."""
        self._dependencies[name] = check
        self._logger.debug("health.dependency_registered", dependency=name)

    def record_startup_failure(
        self,
        error: Exception,
        component: str | None = None,
        is_critical: bool = True,
    ) -> None:
        """Record a startup failure.

        Non-critical failures are reported in the health details but do not
        block ``mark_startup_complete``.
        """
        failure = {
            "error": str(error),
            "error_type": type(error).__name__,
            "component": component,
            "is_critical": is_critical,
            "timestamp": time.time(),
        }
        self._startup_failures.append(failure)
        if is_critical:
            self._logger.error(
                "health.startup_failure_recorded",
                component=component,
                error_type=type(error).__name__,
                error=str(error),
            )
        else:
            self._logger.warning(
                "health.startup_failure_recorded_non_critical",
                component=component,
                error_type=type(error).__name__,
                error=str(error),
            )

    def has_startup_failure(self) -> bool:
        """Return True if a critical startup failure was recorded."""
        return any(failure["is_critical"] for failure in self._startup_failures)

    def get_startup_failures(self) -> list[dict[str, Any]]:
        return list(self._startup_failures)

    def mark_startup_complete(self) -> None:
        if self.has_startup_failure():
            self._logger.warning(
                "health.startup_complete_blocked",
                reason="critical_startup_failure",
            )
            return
        self._startup_complete = True
        self._logger.info(
            "health.startup_complete",
            elapsed_seconds=round(time.time() - self._startup_time, 3),
        )

    @property
    def startup_complete(self) -> bool:
        return self._startup_complete

    async def _check_dependency(self, name: str, check: Callable[[], Any]) -> bool:
        try:
            if asyncio.iscoroutinefunction(check):
                return bool(
                    await asyncio.wait_for(check(), timeout=self._check_timeout)
                )
            return bool(check())
        except Exception as exc:
            self._logger.warning(
                "health.dependency_error",
                dependency=name,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return False

    async def get_health_status(self) -> HealthCheck:
        """Return the overall status plus per-dependency availability."""
        if self.has_startup_failure():
            return HealthCheck(
                status=HealthStatus.UNHEALTHY,
                ready=False,
                details={
                    "reason": "startup_failed",
                    "startup_failures": self.get_startup_failures(),
                },
            )
        if not self._startup_complete:
            return HealthCheck(
                status=HealthStatus.UNHEALTHY,
                ready=False,
                details={"reason": "startup_not_complete"},
            )

        names = list(self._dependencies)
        results = await asyncio.gather(
            *(self._check_dependency(name, self._dependencies[name]) for name in names)
        )
        dependencies = dict(zip(names, results))
        status = (
            HealthStatus.HEALTHY if all(results) else HealthStatus.DEGRADED
        )
        return HealthCheck(
            status=status,
            ready=True,
            details={
                "dependencies": dependencies,
                "startup_failures": self.get_startup_failures(),
            },
        )


__all__ = ["HealthCheck", "HealthManager", "HealthStatus"]
