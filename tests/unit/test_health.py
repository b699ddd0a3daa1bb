"""Component health checker tests."""

import asyncio

import pytest

from cognition.components.registry import ComponentRegistry
from cognition.core.config import Settings
from cognition.core.types import ComponentHealth, OverallHealth
from cognition.infra.health import ComponentCheck, ComponentHealthChecker


class ProbedAnalyzer:
    def __init__(self, health):
        self.health = health

    def analyze(self, text, options):
        return {}

    def check_health(self):
        if isinstance(self.health, Exception):
            raise self.health
        return self.health


class PlainAnalyzer:
    def analyze(self, text, options):
        return {}


class SlowProbeAnalyzer(ProbedAnalyzer):
    async def check_health(self):
        await asyncio.sleep(1.0)
        return True


def register(registry, name, health, critical=False):
    registry.register(name, lambda: ProbedAnalyzer(health), "meta_analyzer", critical=critical)


class TestComponentProbes:

    def setup_method(self):
        self.registry = ComponentRegistry()
        self.checker = ComponentHealthChecker()

    async def status_of(self, name):
        report = await self.checker.check(self.registry)
        return next(c for c in report.checks if c.name == name)

    @pytest.mark.asyncio
    async def test_component_without_probe_is_healthy(self):
        self.registry.register("plain", PlainAnalyzer, "meta_analyzer")
        check = await self.status_of("plain")
        assert check.status == ComponentHealth.HEALTHY

    @pytest.mark.asyncio
    @pytest.mark.parametrize("health,expected", [
        (True, ComponentHealth.HEALTHY),
        (False, ComponentHealth.UNAVAILABLE),
        ("degraded", ComponentHealth.DEGRADED),
        ({"error_rate": 0.5}, ComponentHealth.CRITICAL),
        ({"error_rate": 0.2}, ComponentHealth.DEGRADED),
        ({"avg_response_ms": 9000}, ComponentHealth.DEGRADED),
        ({"error_rate": 0.01, "avg_response_ms": 120}, ComponentHealth.HEALTHY),
        ({"status": "critical"}, ComponentHealth.CRITICAL),
    ])
    async def test_probe_results(self, health, expected):
        register(self.registry, "probed", health)
        check = await self.status_of("probed")
        assert check.status == expected

    @pytest.mark.asyncio
    async def test_probe_error_is_unavailable(self):
        register(self.registry, "probed", RuntimeError("gpu lost"))
        check = await self.status_of("probed")
        assert check.status == ComponentHealth.UNAVAILABLE
        assert "gpu lost" in check.message

    @pytest.mark.asyncio
    async def test_probe_timeout(self):
        checker = ComponentHealthChecker(Settings(HEALTH_PROBE_TIMEOUT_S=0.05))
        self.registry.register("slow", lambda: SlowProbeAnalyzer(True), "meta_analyzer")

        report = await checker.check(self.registry)

        assert report.checks[0].status == ComponentHealth.UNAVAILABLE
        assert "timed out" in report.checks[0].message

    @pytest.mark.asyncio
    async def test_unloadable_component(self):
        self.registry.register("broken", lambda: object(), "meta_analyzer", critical=True)
        report = await self.checker.check(self.registry)

        assert report.checks[0].status == ComponentHealth.UNAVAILABLE
        assert report.status == OverallHealth.CRITICAL

    @pytest.mark.asyncio
    async def test_report_to_dict(self):
        register(self.registry, "a", True)
        register(self.registry, "b", {"error_rate": 0.2})

        data = (await self.checker.check(self.registry)).to_dict()

        assert data["status"] == "good"
        assert data["summary"]["healthy"] == 1
        assert data["summary"]["degraded"] == 1
        assert {c["name"] for c in data["components"]} == {"a", "b"}


class TestOverallHealth:

    def setup_method(self):
        self.checker = ComponentHealthChecker()

    def checks(self, *statuses, critical=()):
        return [
            ComponentCheck(name=f"c{i}", status=s, critical=i in critical)
            for i, s in enumerate(statuses)
        ]

    def test_all_healthy_is_optimal(self):
        assert self.checker.overall(self.checks(ComponentHealth.HEALTHY)) == OverallHealth.OPTIMAL
        assert self.checker.overall([]) == OverallHealth.OPTIMAL

    def test_few_degraded_is_good(self):
        checks = self.checks(ComponentHealth.DEGRADED, ComponentHealth.DEGRADED, ComponentHealth.HEALTHY)
        assert self.checker.overall(checks) == OverallHealth.GOOD

    def test_many_degraded_is_degraded(self):
        checks = self.checks(*([ComponentHealth.DEGRADED] * 4))
        assert self.checker.overall(checks) == OverallHealth.DEGRADED

    def test_one_unavailable_is_degraded(self):
        checks = self.checks(ComponentHealth.UNAVAILABLE, ComponentHealth.HEALTHY)
        assert self.checker.overall(checks) == OverallHealth.DEGRADED

    def test_three_unavailable_is_critical(self):
        checks = self.checks(*([ComponentHealth.UNAVAILABLE] * 3))
        assert self.checker.overall(checks) == OverallHealth.CRITICAL

    def test_critical_component_unavailable_is_critical(self):
        checks = self.checks(ComponentHealth.UNAVAILABLE, ComponentHealth.HEALTHY, critical=(0,))
        assert self.checker.overall(checks) == OverallHealth.CRITICAL

    def test_any_component_in_critical_state_is_critical(self):
        checks = self.checks(ComponentHealth.CRITICAL, ComponentHealth.HEALTHY)
        assert self.checker.overall(checks) == OverallHealth.CRITICAL
