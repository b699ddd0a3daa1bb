"""
Confidence Aggregator
=====================

Merges per-stage results into one confidence scalar and an
observability-only health report.

Unset confidences (None) and zeros are excluded from the mean rather
than counted as zero: a stage that never produced a confidence must not
drag the aggregate down. Health never feeds back into routing or
refinement.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from cognition.core.types import StageStatus
from cognition.orchestration.models import StageResult, SystemHealth

def mean_confidence(values: Iterable[float | None]) -> float:
    """Mean of the confidences that are set and greater than zero."""
    contributing = [v for v in values if v is not None and v > 0]
    if not contributing:
        return 0.0
    return sum(contributing) / len(contributing)

@dataclass(frozen=True, slots=True)
class HealthReport:
    statuses: MappingProxyType[str, StageStatus]
    details: MappingProxyType[str, dict[str, Any]]
    successful_stages: int
    total_stages: int

    @property
    def score(self) -> float:
        if self.total_stages == 0:
            return 0.0
        return self.successful_stages / self.total_stages * 100

    def to_system_health(self) -> SystemHealth:
        return SystemHealth(
            score=round(self.score, 1),
            successful_stages=self.successful_stages,
            total_stages=self.total_stages,
            stage_details={name: dict(d) for name, d in self.details.items()},
        )

    @classmethod
    def empty(cls) -> HealthReport:
        return cls(MappingProxyType({}), MappingProxyType({}), 0, 0)

@dataclass(frozen=True, slots=True)
class Aggregate:
    confidence: float
    health: HealthReport
    fallback_stages: tuple[str, ...] = field(default=())
    skipped_stages: tuple[str, ...] = field(default=())

class ConfidenceAggregator:
    """Stateless; one instance is shared by all requests."""

    def confidence(self, results: Iterable[StageResult]) -> float:
        return mean_confidence(r.confidence for r in results if not r.best_effort)

    def aggregate(self, results: Iterable[StageResult]) -> Aggregate:
        results = list(results)
        counted = [
            r for r in results
            if not r.best_effort and r.status != StageStatus.SKIPPED
        ]
        report = HealthReport(
            statuses=MappingProxyType({r.stage: r.status for r in results}),
            details=MappingProxyType({r.stage: r.to_dict() for r in results}),
            successful_stages=sum(1 for r in counted if r.succeeded),
            total_stages=len(counted),
        )
        return Aggregate(
            confidence=self.confidence(results),
            health=report,
            fallback_stages=tuple(
                r.stage for r in results
                if r.fallback_used and r.status != StageStatus.SKIPPED
            ),
            skipped_stages=tuple(r.stage for r in results if r.status == StageStatus.SKIPPED),
        )

__all__ = ["Aggregate", "ConfidenceAggregator", "HealthReport", "mean_confidence"]
