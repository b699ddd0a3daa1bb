"""
Stage Runner & Feedback — Unit Tests
====================================

Per-stage deadlines, fallbacks, routing skips, trigger predicates and the
best-effort learning / prediction hooks.
"""

import asyncio
import threading
import time

import pytest

from cognition.components.registry import ComponentRegistry
from cognition.core.config import Settings
from cognition.core.types import StageStatus
from cognition.infra.telemetry.metrics import PipelineMetrics
from cognition.orchestration.classifier import ComplexityClassifier
from cognition.orchestration.feedback import FeedbackRecorders
from cognition.orchestration.models import RequestContext, StageResult, Thought
from cognition.orchestration.stages import (
    StageRunner,
    analysis_stage_specs,
    is_knowledge_request,
    looks_like_question,
    needs_secondary_analysis,
    stage_timeout,
)

STANDARD_TEXT = "Can you explain how photosynthesis works in plants?"


def make_thought(text=STANDARD_TEXT):
    decision = ComplexityClassifier().classify(text)
    return Thought(input=text, request_id="req-1", context=RequestContext(user_id="u1"), decision=decision)


def spec_named(config, name):
    return next(s for s in analysis_stage_specs(config) if s.name == name)


class FakeMetaAnalyzer:
    def __init__(self, payload=None, delay=0.0):
        self.payload = payload or {"intent": "question", "semantic_depth": 2, "confidence": 0.9}
        self.delay = delay
        self.options = None

    async def analyze(self, text, options):
        self.options = options
        await asyncio.sleep(self.delay)
        return self.payload


class SyncEmotionAnalyzer:
    def analyze_emotion(self, text, history, profile):
        return {"dominant_emotion": "curious"}


class TestStageRunner:

    def setup_method(self):
        self.config = Settings()
        self.metrics = PipelineMetrics()
        self.registry = ComponentRegistry()
        self.runner = StageRunner(self.registry, config=self.config, metrics=self.metrics)

    @pytest.mark.asyncio
    async def test_success_uses_payload_confidence(self):
        analyzer = FakeMetaAnalyzer()
        self.registry.register("meta-analyzer", lambda: analyzer, "meta_analyzer")

        result = await self.runner.run(spec_named(self.config, "meta_analysis"), make_thought().snapshot())

        assert result.status == StageStatus.SUCCESS
        assert result.confidence == pytest.approx(0.9)
        assert result.payload["intent"] == "question"
        assert result.modules == ("meta-analyzer",)
        assert analyzer.options["full_analysis"] is True
        assert analyzer.options["user_id"] == "u1"

    @pytest.mark.asyncio
    async def test_default_confidence_when_component_reports_none(self):
        self.registry.register("emotion-analyzer", SyncEmotionAnalyzer, "emotion_analyzer")

        result = await self.runner.run(spec_named(self.config, "emotional_analysis"), make_thought().snapshot())

        assert result.status == StageStatus.SUCCESS
        assert result.confidence == pytest.approx(self.config.DEFAULT_STAGE_CONFIDENCE)
        assert result.payload["dominant_emotion"] == "curious"

    @pytest.mark.asyncio
    async def test_missing_component_uses_fallback(self):
        result = await self.runner.run(spec_named(self.config, "meta_analysis"), make_thought().snapshot())

        assert result.status == StageStatus.FAILED
        assert result.fallback_used is True
        assert result.payload["intent"] == "general_conversation"
        assert result.confidence == pytest.approx(0.4)
        assert "unavailable" in result.error
        fallbacks = self.metrics.registry.get_sample_value(
            "cognition_stage_fallbacks_total", {"stage": "meta_analysis", "reason": "unavailable"}
        )
        assert fallbacks == 1.0

    @pytest.mark.asyncio
    async def test_timeout_uses_fallback(self):
        config = Settings(STAGE_TIMEOUTS_S={"meta_analysis": 0.05})
        runner = StageRunner(self.registry, config=config, metrics=self.metrics)
        self.registry.register("meta-analyzer", lambda: FakeMetaAnalyzer(delay=2.0), "meta_analyzer")

        result = await runner.run(spec_named(config, "meta_analysis"), make_thought().snapshot())

        assert result.status == StageStatus.FAILED
        assert result.error.startswith("timeout")
        assert result.payload["semantic_depth"] == 1
        assert result.duration_ms < 1000

    @pytest.mark.asyncio
    async def test_handler_error_uses_fallback(self):
        class Broken:
            def retrieve(self, text, context):
                raise KeyError("index")

        self.registry.register("semantic-memory", Broken, "memory")
        result = await self.runner.run(spec_named(self.config, "memory_retrieval"), make_thought().snapshot())

        assert result.status == StageStatus.FAILED
        assert "KeyError" in result.error
        assert result.payload["memories"] == []
        assert result.confidence == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_single_fact_string_is_kept_whole(self):
        class SingleFactKnowledge:
            def enrich(self, text, context):
                return {"facts": "Water boils at 100 degrees Celsius", "sources": "encyclopedia"}

        self.registry.register("knowledge-integrator", SingleFactKnowledge, "knowledge")
        result = await self.runner.run(
            spec_named(self.config, "knowledge_enrichment"), make_thought().snapshot()
        )

        assert result.status == StageStatus.SUCCESS
        assert result.payload["facts"] == ["Water boils at 100 degrees Celsius"]
        assert result.payload["sources"] == ["encyclopedia"]

    @pytest.mark.asyncio
    async def test_sync_component_sees_deadline_through_context(self):
        stopped_early = threading.Event()

        class PollingMemory:
            def retrieve(self, text, context):
                for _ in range(200):
                    if context["is_cancelled"]():
                        stopped_early.set()
                        return {"memories": []}
                    time.sleep(0.01)
                return {"memories": ["too late"]}

        config = Settings(STAGE_TIMEOUTS_S={"memory_retrieval": 0.05})
        runner = StageRunner(self.registry, config=config, metrics=self.metrics)
        self.registry.register("semantic-memory", PollingMemory, "memory")

        result = await runner.run(spec_named(config, "memory_retrieval"), make_thought().snapshot())

        assert result.status == StageStatus.FAILED
        assert result.error.startswith("timeout")
        assert await asyncio.to_thread(stopped_early.wait, 1.0)

    @pytest.mark.asyncio
    async def test_component_skipped_by_routing(self):
        self.registry.register("deep-analyzer", lambda: object(), "secondary_analyzer")
        result = await self.runner.run(
            spec_named(self.config, "secondary_analysis"), make_thought("hi").snapshot()
        )

        assert result.status == StageStatus.SKIPPED
        assert result.confidence is None
        assert result.payload["insights"] == []
        assert self.registry.entry("deep-analyzer").state.value == "unchecked"

    @pytest.mark.asyncio
    async def test_cancelled_parent_fails_stage(self):
        from cognition.utils.cancellation import CancellationToken

        self.registry.register("meta-analyzer", lambda: FakeMetaAnalyzer(delay=2.0), "meta_analyzer")
        parent = CancellationToken()
        spec = spec_named(self.config, "meta_analysis")

        task = asyncio.create_task(self.runner.run(spec, make_thought().snapshot(), parent))
        await asyncio.sleep(0.05)
        parent.cancel("client went away")
        result = await task

        assert result.status == StageStatus.FAILED
        assert "client went away" in result.error


class TestStageTimeouts:

    def test_mode_scaling(self):
        config = Settings()
        express = ComplexityClassifier().classify("hi")
        standard = ComplexityClassifier().classify(STANDARD_TEXT)

        assert stage_timeout("meta_analysis", standard, config) == pytest.approx(5.0)
        assert stage_timeout("meta_analysis", express, config) == pytest.approx(2.5)
        assert stage_timeout("unknown_stage", None, config) == pytest.approx(config.DEFAULT_STAGE_TIMEOUT_S)


class TestPredicates:

    def test_question_heuristic(self):
        assert looks_like_question("what is entropy")
        assert looks_like_question("Really?")
        assert not looks_like_question("I had a nice day")

    def test_knowledge_request_prefers_meta_analysis(self):
        thought = make_thought("I had a nice day")
        assert is_knowledge_request(thought.snapshot()) is False

        thought.merge(StageResult(
            stage="meta_analysis",
            status=StageStatus.SUCCESS,
            payload={"query_type": "information_request"},
        ))
        assert is_knowledge_request(thought.snapshot()) is True

    def test_secondary_analysis_on_depth(self):
        thought = make_thought(STANDARD_TEXT)
        assert needs_secondary_analysis(thought.snapshot()) is False

        thought.merge(StageResult(
            stage="meta_analysis", status=StageStatus.SUCCESS, payload={"semantic_depth": 3},
        ))
        assert needs_secondary_analysis(thought.snapshot()) is True


class FakeLearning:
    def __init__(self, result=None):
        self.result = result
        self.interactions = []

    def learn_from_interaction(self, interaction, context):
        self.interactions.append(interaction)
        return self.result


class FakePredictor:
    def __init__(self, result):
        self.result = result
        self.calls = []

    async def predict(self, user_id, signal, details):
        self.calls.append((user_id, signal))
        return self.result


class TestFeedbackRecorders:

    def setup_method(self):
        self.registry = ComponentRegistry()
        self.recorders = FeedbackRecorders(StageRunner(self.registry))

    @pytest.mark.asyncio
    async def test_both_hooks_recorded(self):
        learning = FakeLearning()
        predictor = FakePredictor({"next_topic": "biology"})
        self.registry.register("learning-engine", lambda: learning, "learning")
        self.registry.register("predictive-system", lambda: predictor, "prediction")

        result = await self.recorders.record(make_thought().snapshot())

        assert result.learning_updated is True
        assert result.predictions_generated is True
        assert predictor.calls == [("u1", "conversation_turn")]
        assert learning.interactions[0]["input"] == STANDARD_TEXT
        assert all(r.best_effort for r in result.results)

    @pytest.mark.asyncio
    async def test_declined_hooks_report_false(self):
        self.registry.register("learning-engine", lambda: FakeLearning(False), "learning")
        self.registry.register("predictive-system", lambda: FakePredictor(False), "prediction")

        result = await self.recorders.record(make_thought().snapshot())

        assert result.learning_updated is False
        assert result.predictions_generated is False

    @pytest.mark.asyncio
    async def test_hooks_returning_nothing_count_as_recorded(self):
        self.registry.register("learning-engine", lambda: FakeLearning(None), "learning")
        self.registry.register("predictive-system", lambda: FakePredictor(None), "prediction")

        result = await self.recorders.record(make_thought().snapshot())

        assert result.learning_updated is True
        assert result.predictions_generated is True

    @pytest.mark.asyncio
    async def test_missing_hooks_report_false(self):
        result = await self.recorders.record(make_thought().snapshot())
        assert result.learning_updated is False
        assert result.predictions_generated is False
        assert result.learning.status == StageStatus.FAILED
