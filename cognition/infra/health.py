"""
Component Health Checker
========================

Per-component and overall health of the registered analysis components.

Per component:
  - unavailable: not loadable, or the health probe timed out / raised
  - critical:    error rate above the critical threshold, or probe says so
  - degraded:    error rate above the degraded threshold, or slow responses
  - healthy:     otherwise

Components may expose an optional ``check_health()`` (sync or async)
returning a bool, a status string, or a mapping with any of ``status``,
``error_rate`` and ``avg_response_ms``. Components without it count as
healthy once loaded.

Overall:
  - critical: any component critical, a critical-flagged component
    unavailable, or more than 2 components unavailable
  - degraded: any component unavailable, or more than 3 degraded
  - good:     1-3 components degraded
  - optimal:  otherwise
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from cognition.components.registry import ComponentRegistry
from cognition.core.config import Settings, settings
from cognition.core.types import ComponentHealth, OverallHealth
from cognition.infra.telemetry import get_logger
from cognition.utils.cancellation import CancellationToken, run_with_deadline
from cognition.utils.invocation import invoke

logger = get_logger(__name__)

@dataclass
class ComponentCheck:
    """Result of probing one component."""

    name: str
    status: ComponentHealth
    critical: bool = False
    latency_ms: float = 0.0
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

@dataclass
class SystemHealthReport:
    """Aggregate component health."""

    status: OverallHealth
    checks: list[ComponentCheck]
    timestamp: float = field(default_factory=time.time)

    def count(self, status: ComponentHealth) -> int:
        return sum(1 for c in self.checks if c.status == status)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "timestamp": self.timestamp,
            "summary": {s.value: self.count(s) for s in ComponentHealth},
            "components": [
                {
                    "name": c.name,
                    "status": c.status.value,
                    "critical": c.critical,
                    "latency_ms": round(c.latency_ms, 2),
                    "message": c.message,
                    "details": c.details,
                }
                for c in self.checks
            ],
        }

class ComponentHealthChecker:
    """
    Usage:
        checker = ComponentHealthChecker()
        report = await checker.check(registry)
        report.status  # OverallHealth.OPTIMAL
    """

    def __init__(self, config: Settings | None = None) -> None:
        self._config = config or settings

    async def check(self, registry: ComponentRegistry) -> SystemHealthReport:
        checks = await asyncio.gather(*(self._probe(registry, name) for name in registry.names()))
        report = SystemHealthReport(status=self.overall(checks), checks=list(checks))
        logger.debug("component_health_checked", status=report.status.value, components=len(report.checks))
        return report

    def overall(self, checks: list[ComponentCheck] | tuple[ComponentCheck, ...]) -> OverallHealth:
        unavailable = sum(1 for c in checks if c.status == ComponentHealth.UNAVAILABLE)
        degraded = sum(1 for c in checks if c.status == ComponentHealth.DEGRADED)
        critical_down = any(
            c.status == ComponentHealth.CRITICAL
            or (c.critical and c.status == ComponentHealth.UNAVAILABLE)
            for c in checks
        )
        if critical_down or unavailable > 2:
            return OverallHealth.CRITICAL
        if unavailable > 0 or degraded > 3:
            return OverallHealth.DEGRADED
        if degraded > 0:
            return OverallHealth.GOOD
        return OverallHealth.OPTIMAL

    async def _probe(self, registry: ComponentRegistry, name: str) -> ComponentCheck:
        entry = registry.entry(name)
        critical = bool(entry and entry.critical)
        start = time.monotonic()

        if not await registry.check_availability(name):
            entry = registry.entry(name)
            return ComponentCheck(
                name=name,
                status=ComponentHealth.UNAVAILABLE,
                critical=critical,
                message=(entry.reason if entry else None) or "not available",
            )

        component = await registry.get(name)
        probe = getattr(component, "check_health", None)
        if not callable(probe):
            return ComponentCheck(name=name, status=ComponentHealth.HEALTHY, critical=critical)

        try:
            result = await run_with_deadline(
                invoke(probe), self._config.HEALTH_PROBE_TIMEOUT_S, CancellationToken()
            )
        except TimeoutError:
            return ComponentCheck(
                name=name,
                status=ComponentHealth.UNAVAILABLE,
                critical=critical,
                latency_ms=(time.monotonic() - start) * 1000,
                message="Health probe timed out",
            )
        except Exception as exc:  # component probe
            logger.warning("health_probe_failed", component=name, error=str(exc))
            return ComponentCheck(
                name=name,
                status=ComponentHealth.UNAVAILABLE,
                critical=critical,
                latency_ms=(time.monotonic() - start) * 1000,
                message=str(exc),
            )

        status, details = self._classify(result)
        return ComponentCheck(
            name=name,
            status=status,
            critical=critical,
            latency_ms=(time.monotonic() - start) * 1000,
            details=details,
        )

    def _classify(self, result: Any) -> tuple[ComponentHealth, dict[str, Any]]:
        if isinstance(result, bool):
            return (ComponentHealth.HEALTHY if result else ComponentHealth.UNAVAILABLE), {}
        if isinstance(result, str):
            try:
                return ComponentHealth(result.lower()), {}
            except ValueError:
                return ComponentHealth.DEGRADED, {"reported": result}
        if not isinstance(result, Mapping):
            return ComponentHealth.HEALTHY, {}

        details = dict(result)
        reported = result.get("status")
        if isinstance(reported, str) and reported.lower() in set(ComponentHealth):
            return ComponentHealth(reported.lower()), details

        error_rate = float(result.get("error_rate") or 0.0)
        avg_ms = float(result.get("avg_response_ms") or 0.0)
        if error_rate > self._config.HEALTH_CRITICAL_ERROR_RATE:
            return ComponentHealth.CRITICAL, details
        if error_rate > self._config.HEALTH_DEGRADED_ERROR_RATE or avg_ms > self._config.HEALTH_SLOW_RESPONSE_MS:
            return ComponentHealth.DEGRADED, details
        return ComponentHealth.HEALTHY, details

__all__ = ["ComponentCheck", "ComponentHealthChecker", "SystemHealthReport"]
