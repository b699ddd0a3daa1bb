"""Confidence aggregation and stage health report tests."""

import pytest

from cognition.core.types import GenerationMethod, StageStatus
from cognition.orchestration.aggregator import ConfidenceAggregator, HealthReport, mean_confidence
from cognition.orchestration.models import GeneratedReply, StageResult


def result(stage, status=StageStatus.SUCCESS, confidence=None, **kwargs):
    return StageResult(stage=stage, status=status, confidence=confidence, **kwargs)


class TestMeanConfidence:

    def test_zero_values_are_excluded(self):
        assert mean_confidence([0.0, 0.8, 0.6]) == pytest.approx(0.7)

    def test_missing_values_are_excluded(self):
        assert mean_confidence([None, 0.5, None]) == pytest.approx(0.5)

    def test_nothing_contributes(self):
        assert mean_confidence([]) == 0.0
        assert mean_confidence([0.0, None]) == 0.0


class TestStageResultDefaults:

    def test_default_payload_is_empty_and_read_only(self):
        first, second = result("meta_analysis"), result("emotional_analysis")

        assert dict(first.payload) == {}
        with pytest.raises(TypeError):
            first.payload["intent"] = "question"
        assert first.payload is not second.payload

    def test_default_reply_details_are_empty(self):
        reply = GeneratedReply(text="hello", confidence=0.5, method=GenerationMethod.SEMANTIC)
        assert dict(reply.details) == {}


class TestConfidenceAggregator:

    def setup_method(self):
        self.aggregator = ConfidenceAggregator()

    def test_health_counts_success_and_failure(self):
        aggregate = self.aggregator.aggregate([
            result("meta_analysis", confidence=0.9),
            result("emotional_analysis", StageStatus.FAILED, 0.3, fallback_used=True),
            result("memory_retrieval", confidence=0.6),
            result("reply_generation", confidence=0.8),
        ])

        assert aggregate.health.successful_stages == 3
        assert aggregate.health.total_stages == 4
        assert aggregate.health.score == pytest.approx(75.0)
        assert aggregate.fallback_stages == ("emotional_analysis",)
        assert aggregate.confidence == pytest.approx((0.9 + 0.3 + 0.6 + 0.8) / 4)

    def test_skipped_stages_do_not_count(self):
        aggregate = self.aggregator.aggregate([
            result("meta_analysis", confidence=0.9),
            result("secondary_analysis", StageStatus.SKIPPED, fallback_used=True),
        ])

        assert aggregate.health.total_stages == 1
        assert aggregate.health.score == pytest.approx(100.0)
        assert aggregate.skipped_stages == ("secondary_analysis",)
        assert aggregate.fallback_stages == ()
        assert aggregate.confidence == pytest.approx(0.9)

    def test_best_effort_stages_do_not_count(self):
        aggregate = self.aggregator.aggregate([
            result("meta_analysis", confidence=0.8),
            result("learning_feedback", StageStatus.FAILED, 0.3, best_effort=True),
        ])

        assert aggregate.health.total_stages == 1
        assert aggregate.confidence == pytest.approx(0.8)
        assert aggregate.health.statuses["learning_feedback"] == StageStatus.FAILED

    def test_system_health_model(self):
        aggregate = self.aggregator.aggregate([
            result("meta_analysis", confidence=0.8, duration_ms=12.5),
        ])
        health = aggregate.health.to_system_health()
        dumped = health.model_dump(by_alias=True)

        assert dumped["score"] == 100.0
        assert dumped["successfulStages"] == 1
        assert dumped["totalStages"] == 1
        assert dumped["stageDetails"]["meta_analysis"]["duration_ms"] == 12.5

    def test_empty_report(self):
        report = HealthReport.empty()
        assert report.score == 0.0
        assert report.to_system_health().total_stages == 0
