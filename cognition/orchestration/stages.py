"""
Stage Pipeline
==============

Declarative stage list plus the runner that executes one stage.

Every stage is a ``StageSpec``: a trigger predicate over the current
thought snapshot, an optional backing component (registry name and
capability interface), an async handler and a fallback. The orchestrator
walks the ordered list uniformly; nothing here knows about the order.

Per-stage contract:
- predicate false → stage not run, not recorded
- component skipped by the routing decision → ``skipped`` + fallback payload
- component missing / handler error / deadline exceeded → ``failed`` +
  fallback payload with a fixed low confidence
- otherwise → ``success`` with the handler's payload

A stage never raises out of ``StageRunner.run``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from cognition.components.capabilities import (
    EmotionAnalyzer,
    KnowledgeEnricher,
    MemoryRetriever,
    MetaAnalyzer,
    PersonaBuilder,
    SecondaryAnalyzer,
)
from cognition.components.registry import ComponentRegistry
from cognition.core.config import Settings, settings
from cognition.core.exceptions import ComponentUnavailableError, OperationCancelledError
from cognition.core.types import ComponentName, ProcessingMode, StageStatus
from cognition.infra.telemetry.metrics import PipelineMetrics
from cognition.orchestration import fallbacks
from cognition.orchestration.classifier import RoutingDecision
from cognition.orchestration.models import StageResult, ThoughtSnapshot
from cognition.utils.cancellation import CancellationToken, run_with_deadline
from cognition.utils.invocation import invoke

logger = logging.getLogger(__name__)

# ── Contracts ────────────────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class StageInput:
    """Everything a handler may read. Handlers never see the mutable Thought."""

    stage: str
    snapshot: ThoughtSnapshot
    timeout_s: float
    token: CancellationToken

    @property
    def text(self) -> str:
        return self.snapshot.input

    @property
    def decision(self) -> RoutingDecision:
        return self.snapshot.decision

    def component_context(self) -> dict[str, Any]:
        """
        Snapshot context plus ``is_cancelled``, a zero-argument callable that
        turns true once this stage is past its deadline. Sync components
        running in a worker thread poll it to stop early.
        """
        return {**self.snapshot.component_context(), "is_cancelled": self.token.is_cancelled}

@dataclass(frozen=True, slots=True)
class StageOutcome:
    payload: Mapping[str, Any]
    confidence: float | None = None
    modules: tuple[str, ...] = ()

StageHandler = Callable[[Any, StageInput], Awaitable[StageOutcome | Mapping[str, Any] | None]]
StagePredicate = Callable[[ThoughtSnapshot], bool]
StageFallback = Callable[[StageInput], Mapping[str, Any]]

def always(_snapshot: ThoughtSnapshot) -> bool:
    return True

@dataclass(frozen=True, slots=True)
class StageSpec:
    name: str
    handler: StageHandler
    fallback: StageFallback
    component: str | None = None
    interface: type | None = None
    predicate: StagePredicate = always
    requires_component: bool = True
    best_effort: bool = False

# ── Deadlines ────────────────────────────────────────────────────────────────

def stage_timeout(stage: str, decision: RoutingDecision | None, config: Settings) -> float:
    """Stage default scaled by the routing mode (halved for express, tripled for expert)."""
    base = config.STAGE_TIMEOUTS_S.get(stage, config.DEFAULT_STAGE_TIMEOUT_S)
    if decision is None:
        return base
    return base * config.MODE_TIMEOUT_MULTIPLIERS.get(decision.mode.value, 1.0)

# ── Runner ───────────────────────────────────────────────────────────────────

class StageRunner:
    """Executes one ``StageSpec`` under its deadline and records the outcome."""

    def __init__(
        self,
        registry: ComponentRegistry,
        *,
        config: Settings | None = None,
        metrics: PipelineMetrics | None = None,
    ) -> None:
        self._registry = registry
        self._config = config or settings
        self._metrics = metrics

    async def run(
        self,
        spec: StageSpec,
        snapshot: ThoughtSnapshot,
        parent_token: CancellationToken | None = None,
    ) -> StageResult:
        timeout_s = stage_timeout(spec.name, snapshot.decision, self._config)
        token = parent_token.child() if parent_token is not None else CancellationToken()
        stage_input = StageInput(stage=spec.name, snapshot=snapshot, timeout_s=timeout_s, token=token)
        t0 = time.perf_counter()

        if spec.component is not None and snapshot.decision.skips(spec.component):
            return self._finish(
                spec, stage_input, t0,
                status=StageStatus.SKIPPED,
                error=f"skipped by {snapshot.decision.mode.value} routing",
            )

        component: Any = None
        if spec.component is not None:
            if spec.interface is not None:
                component = await self._registry.get_typed(spec.component, spec.interface)
            else:
                component = await self._registry.get(spec.component)
            if component is None and spec.requires_component:
                reason = ComponentUnavailableError(spec.component).detail
                return self._finish(spec, stage_input, t0, status=StageStatus.FAILED, error=reason)

        try:
            raw = await run_with_deadline(spec.handler(component, stage_input), timeout_s, token)
        except TimeoutError:
            logger.warning("Stage '%s' timed out after %.2fs", spec.name, timeout_s)
            return self._finish(
                spec, stage_input, t0,
                status=StageStatus.FAILED,
                error=f"timeout after {timeout_s:.2f}s",
            )
        except OperationCancelledError as e:
            return self._finish(spec, stage_input, t0, status=StageStatus.FAILED, error=e.detail)
        except Exception as e:  # stage handler
            logger.warning("Stage '%s' failed: %s", spec.name, e)
            return self._finish(
                spec, stage_input, t0,
                status=StageStatus.FAILED,
                error=f"{type(e).__name__}: {e}",
            )

        outcome = _as_outcome(raw)
        modules = outcome.modules or ((spec.component,) if component is not None else ())
        confidence = outcome.confidence
        if confidence is None:
            confidence = _payload_confidence(outcome.payload, self._config.DEFAULT_STAGE_CONFIDENCE)
        return self._record(
            spec,
            StageResult(
                stage=spec.name,
                status=StageStatus.SUCCESS,
                payload=outcome.payload,
                confidence=confidence,
                duration_ms=(time.perf_counter() - t0) * 1000,
                component=spec.component,
                modules=modules,
                best_effort=spec.best_effort,
            ),
        )

    def _finish(
        self,
        spec: StageSpec,
        stage_input: StageInput,
        t0: float,
        *,
        status: StageStatus,
        error: str,
    ) -> StageResult:
        """Substitute the fallback payload for a stage that did not succeed."""
        try:
            payload = dict(spec.fallback(stage_input))
        except Exception as e:  # fallback must never break the pipeline
            logger.error("Fallback for stage '%s' failed: %s", spec.name, e, exc_info=True)
            payload = {}

        confidence: float | None = None
        if status == StageStatus.FAILED:
            confidence = _payload_confidence(payload, self._config.STAGE_FALLBACK_CONFIDENCE)
            if self._metrics is not None:
                self._metrics.record_fallback(spec.name, _reason_label(error))

        return self._record(
            spec,
            StageResult(
                stage=spec.name,
                status=status,
                payload=payload,
                confidence=confidence,
                duration_ms=(time.perf_counter() - t0) * 1000,
                error=error,
                component=spec.component,
                fallback_used=True,
                best_effort=spec.best_effort,
            ),
        )

    def _record(self, spec: StageSpec, result: StageResult) -> StageResult:
        if self._metrics is not None:
            self._metrics.record_stage(spec.name, result.status.value, result.duration_ms / 1000)
        logger.debug(
            "Stage '%s' %s in %.1fms", spec.name, result.status.value, result.duration_ms
        )
        return result

def _as_outcome(raw: StageOutcome | Mapping[str, Any] | None) -> StageOutcome:
    if isinstance(raw, StageOutcome):
        return raw
    if raw is None:
        return StageOutcome(payload={})
    if isinstance(raw, Mapping):
        return StageOutcome(payload=dict(raw))
    return StageOutcome(payload={"result": raw})

def _payload_confidence(payload: Mapping[str, Any], default: float) -> float:
    value = payload.get("confidence")
    if isinstance(value, int | float) and not isinstance(value, bool):
        return max(0.0, min(1.0, float(value)))
    return default

def _reason_label(error: str) -> str:
    if error.startswith("timeout"):
        return "timeout"
    if "unavailable" in error:
        return "unavailable"
    return "error"

def _normalize(result: Any) -> dict[str, Any]:
    if result is None:
        return {}
    if isinstance(result, Mapping):
        return dict(result)
    return {"result": result}

# ── Trigger predicates ───────────────────────────────────────────────────────

_KNOWLEDGE_CLUSTERS = frozenset({"knowledge_request"})
_KNOWLEDGE_CATEGORIES = frozenset({"knowledge_sharing"})
_KNOWLEDGE_QUERY_TYPES = frozenset({"information_request"})
_KNOWLEDGE_PHRASES = (
    "what is", "what are", "who is", "who was", "explain", "tell me about",
    "how does", "how do", "define", "meaning of", "difference between",
)

def looks_like_question(text: str) -> bool:
    """Keyword heuristic for information-seeking input."""
    lower = text.lower()
    return "?" in lower or any(phrase in lower for phrase in _KNOWLEDGE_PHRASES)

def is_knowledge_request(snapshot: ThoughtSnapshot) -> bool:
    meta = snapshot.payload("meta_analysis")
    if snapshot.succeeded("meta_analysis"):
        return (
            meta.get("semantic_cluster") in _KNOWLEDGE_CLUSTERS
            or meta.get("dialog_category") in _KNOWLEDGE_CATEGORIES
            or meta.get("query_type") in _KNOWLEDGE_QUERY_TYPES
        )
    return looks_like_question(snapshot.input)

def needs_secondary_analysis(snapshot: ThoughtSnapshot) -> bool:
    if snapshot.decision.mode in (ProcessingMode.EXPERT, ProcessingMode.SPECIALIZED):
        return True
    depth = snapshot.payload("meta_analysis").get("semantic_depth", 1)
    return isinstance(depth, int | float) and depth >= 3

# ── Analysis handlers ────────────────────────────────────────────────────────

async def analyze_meta(component: MetaAnalyzer, stage_input: StageInput) -> dict[str, Any]:
    snapshot = stage_input.snapshot
    options = {
        "full_analysis": snapshot.decision.mode != ProcessingMode.EXPRESS,
        "mode": snapshot.decision.mode.value,
        "user_id": snapshot.user_id,
        "session_id": snapshot.context.session_id,
        "history": list(snapshot.context.conversation_history),
        "is_cancelled": stage_input.token.is_cancelled,
    }
    return _normalize(await invoke(component.analyze, stage_input.text, options))

async def analyze_emotion(component: EmotionAnalyzer, stage_input: StageInput) -> dict[str, Any]:
    ctx = stage_input.snapshot.context
    return _normalize(
        await invoke(
            component.analyze_emotion,
            stage_input.text,
            list(ctx.conversation_history),
            dict(ctx.user_profile),
        )
    )

async def retrieve_memory(component: MemoryRetriever, stage_input: StageInput) -> dict[str, Any]:
    return _normalize(
        await invoke(component.retrieve, stage_input.text, stage_input.component_context())
    )

async def build_persona(component: PersonaBuilder, stage_input: StageInput) -> dict[str, Any]:
    return _normalize(
        await invoke(component.build_persona, stage_input.text, stage_input.component_context())
    )

async def enrich_knowledge(component: KnowledgeEnricher, stage_input: StageInput) -> dict[str, Any]:
    payload = _normalize(
        await invoke(component.enrich, stage_input.text, stage_input.component_context())
    )
    payload["facts"] = _as_list(payload.get("facts"))
    payload["sources"] = _as_list(payload.get("sources"))
    return payload

async def analyze_deep(component: SecondaryAnalyzer, stage_input: StageInput) -> dict[str, Any]:
    return _normalize(
        await invoke(component.analyze_deep, stage_input.text, stage_input.component_context())
    )

def _as_list(value: Any) -> list[Any]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)

# ── Stage list ───────────────────────────────────────────────────────────────

def analysis_stage_specs(config: Settings) -> list[StageSpec]:
    """The analysis stages that precede reply generation, in pipeline order."""
    return [
        StageSpec(
            name="meta_analysis",
            component=ComponentName.META_ANALYZER,
            interface=MetaAnalyzer,
            handler=analyze_meta,
            fallback=lambda _: fallbacks.meta_fallback(config),
        ),
        StageSpec(
            name="emotional_analysis",
            component=ComponentName.EMOTION_ANALYZER,
            interface=EmotionAnalyzer,
            handler=analyze_emotion,
            fallback=lambda _: fallbacks.emotion_fallback(config),
        ),
        StageSpec(
            name="memory_retrieval",
            component=ComponentName.SEMANTIC_MEMORY,
            interface=MemoryRetriever,
            handler=retrieve_memory,
            fallback=lambda _: fallbacks.memory_fallback(config),
        ),
        StageSpec(
            name="persona_synthesis",
            component=ComponentName.USER_PROFILER,
            interface=PersonaBuilder,
            handler=build_persona,
            fallback=lambda _: fallbacks.persona_fallback(config),
        ),
        StageSpec(
            name="knowledge_enrichment",
            component=ComponentName.KNOWLEDGE_INTEGRATOR,
            interface=KnowledgeEnricher,
            handler=enrich_knowledge,
            fallback=lambda _: fallbacks.knowledge_fallback(config),
            predicate=is_knowledge_request,
        ),
        StageSpec(
            name="secondary_analysis",
            component=ComponentName.DEEP_ANALYZER,
            interface=SecondaryAnalyzer,
            handler=analyze_deep,
            fallback=lambda _: fallbacks.secondary_fallback(config),
            predicate=needs_secondary_analysis,
        ),
    ]

__all__ = [
    "StageHandler",
    "StageInput",
    "StageOutcome",
    "StageRunner",
    "StageSpec",
    "always",
    "analysis_stage_specs",
    "is_knowledge_request",
    "looks_like_question",
    "needs_secondary_analysis",
    "stage_timeout",
]
