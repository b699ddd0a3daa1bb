"""
Pipeline Metrics
================

Prometheus instrumentation for the orchestration pipeline.

Each ``PipelineMetrics`` owns its own ``CollectorRegistry`` so several
orchestrators (and test instances) can coexist in one process without
duplicate-timeseries errors.
"""

from __future__ import annotations

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

__all__ = ["PipelineMetrics"]

_STAGE_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)

class PipelineMetrics:
    """Pre-defined pipeline metrics with labels."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()

        self.requests = Counter(
            "cognition_requests_total",
            "Requests processed by the orchestrator",
            labelnames=["mode", "outcome"],
            registry=self.registry,
        )
        self.request_latency = Histogram(
            "cognition_request_latency_seconds",
            "End-to-end process() latency",
            labelnames=["mode"],
            buckets=_STAGE_BUCKETS,
            registry=self.registry,
        )
        self.stage_latency = Histogram(
            "cognition_stage_latency_seconds",
            "Per-stage latency",
            labelnames=["stage", "status"],
            buckets=_STAGE_BUCKETS,
            registry=self.registry,
        )
        self.stage_fallbacks = Counter(
            "cognition_stage_fallbacks_total",
            "Stages that substituted their static fallback payload",
            labelnames=["stage", "reason"],
            registry=self.registry,
        )
        self.refinement_passes = Histogram(
            "cognition_refinement_passes",
            "Regeneration passes performed by the refinement loop",
            buckets=(0, 1, 2, 3, 5, 8),
            registry=self.registry,
        )
        self.component_loads = Counter(
            "cognition_component_loads_total",
            "Component load attempts by resulting state",
            labelnames=["category", "state"],
            registry=self.registry,
        )
        self.health_score = Gauge(
            "cognition_health_score",
            "Health score of the most recent request (percent)",
            registry=self.registry,
        )

    def record_stage(self, stage: str, status: str, duration_s: float) -> None:
        self.stage_latency.labels(stage=stage, status=status).observe(duration_s)

    def record_fallback(self, stage: str, reason: str) -> None:
        self.stage_fallbacks.labels(stage=stage, reason=reason).inc()

    def record_request(self, *, mode: str, outcome: str, latency_s: float, health: float) -> None:
        self.requests.labels(mode=mode, outcome=outcome).inc()
        self.request_latency.labels(mode=mode).observe(latency_s)
        self.health_score.set(health)

    def record_component_load(self, category: str, state: str) -> None:
        self.component_loads.labels(category=category, state=state).inc()

    def export(self) -> bytes:
        """Export metrics in Prometheus text format."""
        return generate_latest(self.registry)
