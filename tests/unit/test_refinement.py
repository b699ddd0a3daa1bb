"""
Refinement Loop — Unit Tests
============================

Threshold, iteration cap, early stopping and best-reply selection.
"""

import pytest

from cognition.core.config import Settings
from cognition.core.types import GenerationMethod
from cognition.orchestration.classifier import ComplexityClassifier
from cognition.orchestration.fallbacks import static_reply
from cognition.orchestration.models import GeneratedReply, RequestContext, Thought
from cognition.orchestration.refinement import QualityScorer, RefinementLoop


def make_snapshot(text="How do tides work?"):
    decision = ComplexityClassifier().classify(text)
    return Thought(input=text, request_id="req-1", context=RequestContext(), decision=decision).snapshot()


def candidate(text="Tides follow the moon.", quality=None):
    return GeneratedReply(text=text, confidence=0.8, method=GenerationMethod.SEMANTIC, quality=quality)


class ScriptedScorer:
    """Returns the given qualities in order, repeating the last one."""

    def __init__(self, *qualities):
        self.qualities = list(qualities)
        self.calls = 0

    async def __call__(self, reply, thought):
        value = self.qualities[min(self.calls, len(self.qualities) - 1)]
        self.calls += 1
        return value


class RecordingGenerator:
    def __init__(self):
        self.contexts = []

    async def __call__(self, text, context):
        self.contexts.append(context)
        n = len(self.contexts)
        return GeneratedReply(text=f"Attempt {n} at: {text}", confidence=0.7, method=GenerationMethod.SEMANTIC)


class TestRefinementLoop:

    def setup_method(self):
        self.snapshot = make_snapshot()
        self.generator = RecordingGenerator()

    @pytest.mark.asyncio
    async def test_good_candidate_is_not_refined(self):
        loop = RefinementLoop(scorer=ScriptedScorer(8.5))
        outcome = await loop.refine(self.snapshot, candidate(), self.generator)

        assert outcome.passes == 0
        assert outcome.stop_reason == "threshold_met"
        assert outcome.reply.quality == 8.5
        assert self.generator.contexts == []

    @pytest.mark.asyncio
    async def test_iteration_cap_bounds_total_passes(self):
        loop = RefinementLoop(scorer=ScriptedScorer(0.0), max_iterations=3, early_stop=False)
        outcome = await loop.refine(self.snapshot, candidate(), self.generator)

        assert outcome.stop_reason == "cap_reached"
        assert outcome.passes == 2
        assert outcome.reply.iteration == 3
        assert outcome.reply.method == GenerationMethod.REFINED
        assert outcome.quality_history == (0.0, 0.0, 0.0)

    @pytest.mark.asyncio
    async def test_stops_when_improvement_is_marginal(self):
        loop = RefinementLoop(scorer=ScriptedScorer(5.0, 5.05), max_iterations=5)
        outcome = await loop.refine(self.snapshot, candidate(), self.generator)

        assert outcome.passes == 1
        assert outcome.stop_reason == "no_improvement"
        assert outcome.reply.quality == pytest.approx(5.05)

    @pytest.mark.asyncio
    async def test_keeps_improving_until_threshold(self):
        loop = RefinementLoop(scorer=ScriptedScorer(4.0, 6.0, 7.5), max_iterations=5)
        outcome = await loop.refine(self.snapshot, candidate(), self.generator)

        assert outcome.passes == 2
        assert outcome.stop_reason == "threshold_met"
        assert outcome.reply.quality == 7.5
        assert outcome.reply.iteration == 3

    @pytest.mark.asyncio
    async def test_returns_best_reply(self):
        loop = RefinementLoop(scorer=ScriptedScorer(6.0, 4.0), max_iterations=2, early_stop=False)
        outcome = await loop.refine(self.snapshot, candidate(), self.generator)

        assert outcome.passes == 1
        assert outcome.reply.quality == 6.0
        assert outcome.reply.iteration == 1
        assert outcome.reply.text == "Tides follow the moon."

    @pytest.mark.asyncio
    async def test_keep_best_disabled_returns_latest(self):
        loop = RefinementLoop(
            scorer=ScriptedScorer(6.0, 4.0), max_iterations=2, early_stop=False, keep_best=False
        )
        outcome = await loop.refine(self.snapshot, candidate(), self.generator)

        assert outcome.reply.quality == 4.0
        assert outcome.reply.iteration == 2

    @pytest.mark.asyncio
    async def test_regeneration_gets_refined_context(self):
        loop = RefinementLoop(scorer=ScriptedScorer(3.0, 8.0))
        await loop.refine(self.snapshot, candidate(), self.generator)

        refinement = self.generator.contexts[0]["refinement"]
        assert refinement["refined"] is True
        assert refinement["previous_quality"] == 3.0
        assert refinement["iteration"] == 1
        assert refinement["previous_reply"] == "Tides follow the moon."

    @pytest.mark.asyncio
    async def test_static_fallback_is_never_refined(self):
        scorer = ScriptedScorer(9.0)
        loop = RefinementLoop(scorer=scorer)
        outcome = await loop.refine(self.snapshot, static_reply(Settings()), self.generator)

        assert outcome.stop_reason == "fallback_reply"
        assert outcome.reply.quality == 1.0
        assert scorer.calls == 0

    @pytest.mark.asyncio
    async def test_regeneration_failure_keeps_best(self):
        async def failing(text, context):
            raise RuntimeError("model offline")

        loop = RefinementLoop(scorer=ScriptedScorer(3.0))
        outcome = await loop.refine(self.snapshot, candidate(), failing)

        assert outcome.stop_reason == "regeneration_failed"
        assert outcome.passes == 0
        assert outcome.reply.quality == 3.0

    @pytest.mark.asyncio
    async def test_scorer_failure_falls_back_to_heuristic(self):
        async def broken(reply, thought):
            raise ValueError("bad score")

        loop = RefinementLoop(scorer=broken)
        quality = await loop.score(candidate(), self.snapshot)
        assert 0.0 <= quality <= 10.0

    @pytest.mark.asyncio
    async def test_scores_are_clamped(self):
        loop = RefinementLoop(scorer=ScriptedScorer(42.0))
        outcome = await loop.refine(self.snapshot, candidate(), self.generator)
        assert outcome.reply.quality == 10.0

    @pytest.mark.asyncio
    async def test_without_generator_stops_immediately(self):
        loop = RefinementLoop(scorer=ScriptedScorer(2.0))
        outcome = await loop.refine(self.snapshot, candidate())
        assert outcome.stop_reason == "no_generator"


class TestQualityScorer:

    def setup_method(self):
        self.scorer = QualityScorer()

    def test_empty_reply_scores_zero(self):
        assert self.scorer.score("   ", "anything") == 0.0

    def test_relevant_reply_beats_evasive_one(self):
        question = "How do ocean tides work?"
        good = self.scorer.score(
            "Ocean tides work because the moon's gravity pulls on the water. "
            "The sun adds a smaller pull, which is why tides vary during the month.",
            question,
            confidence=0.8,
        )
        evasive = self.scorer.score("I don't know.", question, confidence=0.8)
        assert good > evasive

    def test_repetitive_reply_is_penalized(self):
        varied = self.scorer.score("Tides rise and fall twice each day along most coasts.", "tides")
        repeated = self.scorer.score("tides tides tides tides tides tides tides tides tides", "tides")
        assert varied > repeated
