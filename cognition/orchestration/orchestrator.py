"""
Cognition Orchestrator — Unified Facade
=======================================

Single entry point ``process(raw_input, context)`` wiring together:
  ComplexityClassifier   (routing decision, before any component is touched)
  StageRunner            (ordered stage list, deadlines, fallbacks)
  HybridResponseBlender  (dual generation on the heavy path)
  RefinementLoop         (quality scoring + bounded re-generation)
  ConfidenceAggregator   (confidence scalar + health report)
  FeedbackRecorders      (best-effort learning / prediction hooks)

Every component or stage error is recovered locally. Only a failure
outside any stage's scope reaches the top-level handler, which still
returns a well-formed low-confidence response.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from cognition.components.capabilities import (
    QualityEvaluator,
    ReplyGenerator,
    ReplyValidator,
    ResponseAdapter,
)
from cognition.components.registry import ComponentRegistry
from cognition.core.config import Settings, settings
from cognition.core.exceptions import ComponentUnavailableError
from cognition.core.types import ComponentCategory, ComponentName
from cognition.infra.health import ComponentHealthChecker, SystemHealthReport
from cognition.infra.telemetry.logger import clear_request_context, set_request_context
from cognition.infra.telemetry.metrics import PipelineMetrics
from cognition.orchestration import fallbacks
from cognition.orchestration.aggregator import ConfidenceAggregator
from cognition.orchestration.blender import HybridResponseBlender
from cognition.orchestration.classifier import ComplexityClassifier, RoutingDecision
from cognition.orchestration.feedback import FeedbackRecorders
from cognition.orchestration.models import (
    GeneratedReply,
    ProcessedResponse,
    RequestContext,
    ResponseMetadata,
    Thought,
    ThoughtSnapshot,
)
from cognition.orchestration.refinement import QualityScorer, RefinementLoop
from cognition.orchestration.stages import (
    StageInput,
    StageOutcome,
    StageRunner,
    StageSpec,
    analysis_stage_specs,
    stage_timeout,
)
from cognition.utils.cancellation import CancellationToken, run_with_deadline
from cognition.utils.invocation import invoke

logger = logging.getLogger(__name__)

class CognitionOrchestrator:
    """
    Conversational-response pipeline.

    Usage:
        registry = ComponentRegistry()
        registry.register("language-generator", MyGenerator, "generator")
        orchestrator = CognitionOrchestrator(registry)
        response = await orchestrator.process("hi", RequestContext(user_id="u1"))
        response.to_dict()  # {"reply", "confidence", "quality", "metadata"}
    """

    def __init__(
        self,
        registry: ComponentRegistry,
        *,
        config: Settings | None = None,
        classifier: ComplexityClassifier | None = None,
        blender: HybridResponseBlender | None = None,
        refinement: RefinementLoop | None = None,
        metrics: PipelineMetrics | None = None,
    ) -> None:
        self.registry = registry
        self.config = config or settings
        self.metrics = metrics or PipelineMetrics()
        self.classifier = classifier or ComplexityClassifier(self.config)
        self.blender = blender or HybridResponseBlender(self.config)
        self.refinement = refinement or RefinementLoop(scorer=self._score_reply, config=self.config)
        self.aggregator = ConfidenceAggregator()
        self.runner = StageRunner(registry, config=self.config, metrics=self.metrics)
        self.feedback = FeedbackRecorders(self.runner)
        self.health_checker = ComponentHealthChecker(self.config)
        self.stages: list[StageSpec] = self._build_stages()
        self._quality = QualityScorer()

        self._total_requests = 0
        self._total_errors = 0
        self._total_latency_ms = 0.0
        self._fallbacks_by_stage: dict[str, int] = {}

    def _build_stages(self) -> list[StageSpec]:
        return [
            *analysis_stage_specs(self.config),
            StageSpec(
                name="reply_generation",
                handler=self._generate_reply,
                fallback=self._generation_fallback,
                requires_component=False,
            ),
            StageSpec(
                name="quality_evaluation",
                handler=self._evaluate_quality,
                fallback=self._quality_fallback,
                requires_component=False,
            ),
            StageSpec(
                name="final_validation",
                handler=self._validate_reply,
                fallback=self._validation_fallback,
                requires_component=False,
            ),
        ]

    async def initialize(self) -> dict[str, Any]:
        """Warm the registry (priority-ordered loads). Optional: loads are lazy."""
        return await self.registry.initialize()

    # ── Entry point ──────────────────────────────────────────────────────

    async def process(
        self,
        raw_input: str,
        context: RequestContext | None = None,
    ) -> ProcessedResponse:
        """Run the full pipeline. Never raises; never returns an empty reply."""
        t0 = time.perf_counter()
        context = context or RequestContext()
        request_id = uuid.uuid4().hex
        self._total_requests += 1
        set_request_context(
            request_id=request_id,
            session_id=context.session_id,
            user_id=context.user_id,
        )
        try:
            return await self._process(raw_input or "", context, request_id, t0)
        except Exception as e:  # catastrophic: outside any stage's scope
            self._total_errors += 1
            logger.error("Pipeline failure for request %s: %s", request_id, e, exc_info=True)
            latency_ms = (time.perf_counter() - t0) * 1000
            self.metrics.record_request(
                mode="unknown", outcome="error", latency_s=latency_ms / 1000, health=0.0
            )
            return ProcessedResponse(
                reply=fallbacks.CATASTROPHIC_REPLY_TEXT,
                confidence=self.config.STATIC_REPLY_CONFIDENCE,
                quality=self.config.FALLBACK_QUALITY,
                metadata=ResponseMetadata(
                    request_id=request_id,
                    processing_time=round(latency_ms, 2),
                ),
            )
        finally:
            clear_request_context()

    async def _process(
        self,
        raw_input: str,
        context: RequestContext,
        request_id: str,
        t0: float,
    ) -> ProcessedResponse:
        decision = context.routing_hints or self.classifier.classify(raw_input, request_id)
        thought = Thought(input=raw_input, request_id=request_id, context=context, decision=decision)
        token = CancellationToken()

        for spec in self.stages:
            snapshot = thought.snapshot()
            if not spec.predicate(snapshot):
                continue
            result = await self.runner.run(spec, snapshot, token)
            thought.merge(result)
            thought.confidence = self.aggregator.confidence(thought.results.values())

        feedback = await self.feedback.record(thought.snapshot(), token)
        for result in feedback.results:
            thought.merge(result)

        aggregate = self.aggregator.aggregate(thought.results.values())
        final = thought.snapshot()
        reply = final.latest_reply() or fallbacks.static_reply(self.config)
        quality = reply.quality
        if quality is None:
            quality = self._heuristic_quality(reply, raw_input)

        for stage in aggregate.fallback_stages:
            self._fallbacks_by_stage[stage] = self._fallbacks_by_stage.get(stage, 0) + 1

        latency_ms = (time.perf_counter() - t0) * 1000
        self._total_latency_ms += latency_ms
        health = aggregate.health
        self.metrics.record_request(
            mode=decision.mode.value,
            outcome="degraded" if aggregate.fallback_stages else "success",
            latency_s=latency_ms / 1000,
            health=health.score,
        )
        passes = final.payload("quality_evaluation").get("passes", 0)
        self.metrics.refinement_passes.observe(passes)

        modules_used: list[str] = []
        for result in thought.results.values():
            if result.succeeded:
                modules_used.extend(str(m) for m in result.modules if str(m) not in modules_used)

        metadata = ResponseMetadata(
            request_id=request_id,
            modules_used=modules_used,
            processing_time=round(latency_ms, 2),
            iteration_count=1 + passes,
            semantic_depth=_semantic_depth(final.payload("meta_analysis")),
            learning_updated=feedback.learning_updated,
            predictions_generated=feedback.predictions_generated,
            system_health=health.to_system_health(),
            mode=decision.mode.value,
            complexity=decision.complexity,
            generation_method=reply.method.value,
            analysis_confidence=round(aggregate.confidence, 4),
            fallback_stages=list(aggregate.fallback_stages),
            skipped_stages=list(aggregate.skipped_stages),
        )
        logger.info(
            "Request %s processed: mode=%s quality=%.2f confidence=%.2f health=%.1f%% in %.1fms",
            request_id, decision.mode.value, quality, reply.confidence, health.score, latency_ms,
        )
        return ProcessedResponse(
            reply=reply.text,
            confidence=reply.confidence,
            quality=quality,
            metadata=metadata,
        )

    # ── Generation ───────────────────────────────────────────────────────

    async def _resolve_primary_generator(
        self, decision: RoutingDecision
    ) -> tuple[str, ReplyGenerator] | None:
        """First available generator among the preferred components, else the default."""
        candidates = [
            name for name in decision.preferred_components
            if name != ComponentName.NEURAL_GENERATOR
        ]
        if ComponentName.LANGUAGE_GENERATOR not in candidates:
            candidates.append(ComponentName.LANGUAGE_GENERATOR)

        for name in candidates:
            entry = self.registry.entry(name)
            if entry is None or entry.category != ComponentCategory.GENERATOR:
                continue
            generator = await self.registry.get_typed(name, ReplyGenerator)
            if generator is not None:
                return str(name), generator
        return None

    async def _generate_reply(self, _component: Any, stage_input: StageInput) -> StageOutcome:
        snapshot = stage_input.snapshot
        decision = snapshot.decision
        context = stage_input.component_context()
        primary = await self._resolve_primary_generator(decision)

        neural: ReplyGenerator | None = None
        if decision.use_neural and not decision.skips(ComponentName.NEURAL_GENERATOR):
            neural = await self.registry.get_typed(ComponentName.NEURAL_GENERATOR, ReplyGenerator)

        if primary is not None and neural is not None:
            name, generator = primary
            blended = await self.blender.blend(
                self.blender.semantic_slot(name, generator),
                self.blender.neural_slot(ComponentName.NEURAL_GENERATOR, neural),
                snapshot.input,
                context,
                timeout_s=stage_input.timeout_s * self.config.BLEND_DEADLINE_SHARE,
                token=stage_input.token.child(),
            )
            return StageOutcome(
                payload={"reply": blended.reply, "failures": dict(blended.failures)},
                confidence=blended.reply.confidence,
                modules=blended.contributors,
            )

        if primary is not None:
            slot = self.blender.semantic_slot(*primary)
        elif neural is not None:
            slot = self.blender.neural_slot(ComponentName.NEURAL_GENERATOR, neural)
        else:
            raise ComponentUnavailableError(ComponentName.LANGUAGE_GENERATOR, "no generator available")

        reply = await self.blender.generate_candidate(slot, snapshot.input, context)
        return StageOutcome(payload={"reply": reply}, confidence=reply.confidence, modules=(slot.name,))

    def _generation_fallback(self, stage_input: StageInput) -> dict[str, Any]:
        reply = fallbacks.contextual_reply(stage_input.snapshot, self.config)
        return {"reply": reply, "confidence": reply.confidence}

    # ── Quality / refinement ─────────────────────────────────────────────

    def _heuristic_quality(self, reply: GeneratedReply, input_text: str) -> float:
        if reply.is_static_fallback:
            return self.config.FALLBACK_QUALITY
        return self._quality.score(reply.text, input_text, reply.confidence)

    async def _score_reply(self, reply: GeneratedReply, thought: ThoughtSnapshot) -> float:
        evaluator = await self.registry.get_typed(ComponentName.QUALITY_EVALUATOR, QualityEvaluator)
        if evaluator is None:
            return self._heuristic_quality(reply, thought.input)
        timeout_s = stage_timeout("quality_scoring", thought.decision, self.config)
        context = {**thought.component_context(), "input": thought.input}
        result = await run_with_deadline(
            invoke(evaluator.score, reply.text, context), timeout_s, CancellationToken()
        )
        if isinstance(result, Mapping):
            result = result.get("score", result.get("quality"))
        return float(result)

    async def _evaluate_quality(self, _component: Any, stage_input: StageInput) -> StageOutcome:
        snapshot = stage_input.snapshot
        candidate = snapshot.payload("reply_generation").get("reply")
        if not isinstance(candidate, GeneratedReply):
            candidate = fallbacks.static_reply(self.config)

        regenerate = None
        if not candidate.is_static_fallback:
            primary = await self._resolve_primary_generator(snapshot.decision)
            if primary is not None:
                regenerate = self._regenerator(*primary, stage_input)

        outcome = await self.refinement.refine(snapshot, candidate, regenerate)
        quality = outcome.reply.quality or 0.0
        evaluator = self.registry.entry(ComponentName.QUALITY_EVALUATOR)
        modules = (str(ComponentName.QUALITY_EVALUATOR),) if evaluator is not None and evaluator.available else ()
        return StageOutcome(
            payload={
                "reply": outcome.reply,
                "quality": quality,
                "passes": outcome.passes,
                "quality_history": list(outcome.quality_history),
                "stop_reason": outcome.stop_reason,
            },
            confidence=quality / 10,
            modules=modules,
        )

    def _regenerator(self, name: str, generator: ReplyGenerator, stage_input: StageInput):
        timeout_s = stage_timeout("reply_generation", stage_input.decision, self.config)
        slot = self.blender.semantic_slot(name, generator)

        async def regenerate(text: str, context: Mapping[str, Any]) -> GeneratedReply:
            return await run_with_deadline(
                self.blender.generate_candidate(slot, text, context),
                timeout_s,
                stage_input.token.child(),
            )

        return regenerate

    def _quality_fallback(self, stage_input: StageInput) -> dict[str, Any]:
        reply = stage_input.snapshot.latest_reply() or fallbacks.static_reply(self.config)
        quality = reply.quality
        if quality is None:
            quality = self._heuristic_quality(reply, stage_input.text)
        return {
            "reply": reply.with_quality(quality),
            "quality": quality,
            "passes": 0,
            "confidence": quality / 10,
        }

    # ── Final validation / personalization ───────────────────────────────

    async def _validate_reply(self, _component: Any, stage_input: StageInput) -> StageOutcome:
        snapshot = stage_input.snapshot
        reply = snapshot.latest_reply() or fallbacks.static_reply(self.config)
        validator = await self.registry.get_typed(ComponentName.META_VALIDATOR, ReplyValidator)
        adapter = await self.registry.get_typed(ComponentName.USER_PROFILER, ResponseAdapter)
        if validator is None and adapter is None:
            raise ComponentUnavailableError(ComponentName.META_VALIDATOR)

        if reply.is_static_fallback:
            return StageOutcome(payload={"reply": reply}, confidence=reply.confidence)

        modules: list[str] = []
        personalized = False
        if adapter is not None:
            profile = {
                **snapshot.context.user_profile,
                "persona": dict(snapshot.payload("persona_synthesis")),
            }
            adapted = await invoke(adapter.adapt_response, reply.text, profile)
            if isinstance(adapted, str) and adapted.strip():
                reply = replace(reply, text=adapted.strip())
                personalized = True
                modules.append(ComponentName.USER_PROFILER)

        validated = False
        if validator is not None:
            result = await invoke(validator.validate, reply.text, stage_input.component_context())
            confidence = _validated_confidence(result, reply.confidence)
            reply = replace(reply, confidence=confidence)
            validated = True
            modules.append(ComponentName.META_VALIDATOR)

        return StageOutcome(
            payload={"reply": reply, "validated": validated, "personalized": personalized},
            confidence=reply.confidence,
            modules=tuple(modules),
        )

    def _validation_fallback(self, stage_input: StageInput) -> dict[str, Any]:
        reply = stage_input.snapshot.latest_reply() or fallbacks.static_reply(self.config)
        return {"reply": reply, "validated": False, "confidence": reply.confidence}

    # ── Observability ────────────────────────────────────────────────────

    async def check_health(self) -> SystemHealthReport:
        return await self.health_checker.check(self.registry)

    def get_stats(self) -> dict[str, Any]:
        return {
            "total_requests": self._total_requests,
            "total_errors": self._total_errors,
            "error_rate": round(self._total_errors / max(1, self._total_requests), 4),
            "avg_latency_ms": round(self._total_latency_ms / max(1, self._total_requests), 2),
            "fallbacks_by_stage": dict(self._fallbacks_by_stage),
            "classifier": self.classifier.get_stats(),
            "registry": self.registry.get_stats(),
        }

def _semantic_depth(meta: Mapping[str, Any]) -> int:
    depth = meta.get("semantic_depth", 1)
    if isinstance(depth, bool) or not isinstance(depth, int | float):
        return 1
    return int(depth)

def _validated_confidence(result: Any, current: float) -> float:
    value: Any = result
    if isinstance(result, Mapping):
        value = result.get("confidence")
    if isinstance(value, bool) or not isinstance(value, int | float):
        return current
    return max(0.0, min(1.0, float(value)))

__all__ = ["CognitionOrchestrator"]
