"""
Pipeline Data Model
===================

Per-request types shared by the stage runner, aggregator, refinement
loop, blender and orchestrator.

- ``RequestContext``: caller-supplied identity, prior turns, routing hints
- ``StageResult``: outcome of one stage, one per stage per request
- ``Thought``: accumulated per-request context owned by the orchestrator
- ``ThoughtSnapshot``: read-only view handed to stages and refinement
- ``GeneratedReply``: candidate reply, replaced wholesale on every iteration
- ``ProcessedResponse`` / ``ResponseMetadata``: what ``process()`` returns
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from cognition.core.exceptions import GenerationError
from cognition.core.types import GenerationMethod, StageStatus
from cognition.orchestration.classifier import RoutingDecision

_EMPTY: Mapping[str, Any] = MappingProxyType({})

def _empty() -> Mapping[str, Any]:
    return MappingProxyType({})

# ── Request ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class RequestContext:
    user_id: str = "anonymous"
    session_id: str | None = None
    conversation_history: tuple[Mapping[str, Any], ...] = ()
    user_profile: Mapping[str, Any] = field(default_factory=dict)
    routing_hints: RoutingDecision | None = None  # Pre-computed decision, skips the classifier
    project_id: str | None = None
    extras: Mapping[str, Any] = field(default_factory=dict)

# ── Stage Results ────────────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class StageResult:
    stage: str
    status: StageStatus
    payload: Mapping[str, Any] = field(default_factory=_empty)
    confidence: float | None = None
    duration_ms: float = 0.0
    error: str | None = None
    component: str | None = None
    modules: tuple[str, ...] = ()     # Components that contributed to the payload
    fallback_used: bool = False
    best_effort: bool = False         # Reported, but not counted in health totals

    @property
    def succeeded(self) -> bool:
        return self.status == StageStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "confidence": round(self.confidence, 4) if self.confidence is not None else None,
            "duration_ms": round(self.duration_ms, 2),
            "error": self.error,
            "component": self.component,
            "fallback": self.fallback_used,
        }

# ── Generated Reply ──────────────────────────────────────────────────────────

_TEXT_KEYS = ("text", "response", "reply", "content")

@dataclass(frozen=True, slots=True)
class GeneratedReply:
    text: str
    confidence: float
    method: GenerationMethod
    quality: float | None = None
    iteration: int = 1
    generator: str | None = None
    details: Mapping[str, Any] = field(default_factory=_empty)

    @property
    def is_static_fallback(self) -> bool:
        return self.method == GenerationMethod.STATIC_FALLBACK

    def with_quality(self, quality: float) -> GeneratedReply:
        return replace(self, quality=quality)

    @classmethod
    def from_component(
        cls,
        result: Any,
        *,
        method: GenerationMethod,
        default_confidence: float,
        generator: str | None = None,
        iteration: int = 1,
    ) -> GeneratedReply:
        """Normalize whatever a generator returned into a reply.

        Accepts a plain string or a mapping carrying the text under one of
        ``text``/``response``/``reply``/``content``. Raises
        ``GenerationError`` when no usable text is present.
        """
        details: Mapping[str, Any] = _EMPTY
        confidence = default_confidence
        if isinstance(result, str):
            text = result
        elif isinstance(result, Mapping):
            text = next((result[k] for k in _TEXT_KEYS if isinstance(result.get(k), str)), "")
            raw_conf = result.get("confidence")
            if isinstance(raw_conf, int | float) and not isinstance(raw_conf, bool):
                confidence = float(raw_conf)
            details = MappingProxyType({k: v for k, v in result.items() if k not in _TEXT_KEYS})
        else:
            raise GenerationError(f"generator returned unsupported type {type(result).__name__}")

        if not text.strip():
            raise GenerationError("generator returned an empty reply")
        return cls(
            text=text.strip(),
            confidence=max(0.0, min(1.0, confidence)),
            method=method,
            iteration=iteration,
            generator=generator,
            details=details,
        )

# ── Thought ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class ThoughtSnapshot:
    """Immutable view of a Thought at one point of the pipeline."""

    input: str
    request_id: str
    context: RequestContext
    decision: RoutingDecision
    payloads: Mapping[str, Mapping[str, Any]]
    statuses: Mapping[str, StageStatus]
    confidence: float

    @property
    def user_id(self) -> str:
        return self.context.user_id

    def payload(self, stage: str) -> Mapping[str, Any]:
        return self.payloads.get(stage, _EMPTY)

    def succeeded(self, stage: str) -> bool:
        return self.statuses.get(stage) == StageStatus.SUCCESS

    def latest_reply(self) -> GeneratedReply | None:
        """Most advanced reply produced so far."""
        for stage in ("final_validation", "quality_evaluation", "reply_generation"):
            reply = self.payload(stage).get("reply")
            if isinstance(reply, GeneratedReply):
                return reply
        return None

    def component_context(self) -> dict[str, Any]:
        """Plain mapping passed to components as their ``context`` argument."""
        return {
            "request_id": self.request_id,
            "user_id": self.context.user_id,
            "session_id": self.context.session_id,
            "project_id": self.context.project_id,
            "history": list(self.context.conversation_history),
            "profile": dict(self.context.user_profile),
            "mode": self.decision.mode.value,
            "complexity": self.decision.complexity,
            "analysis": {
                stage: dict(payload) for stage, payload in self.payloads.items()
                if not any(isinstance(v, GeneratedReply) for v in payload.values())
            },
        }

@dataclass(slots=True)
class Thought:
    """Accumulated per-request context. Only the orchestrator mutates it."""

    input: str
    request_id: str
    context: RequestContext
    decision: RoutingDecision
    results: dict[str, StageResult] = field(default_factory=dict)
    confidence: float = 0.0

    def merge(self, result: StageResult) -> None:
        self.results[result.stage] = result

    def snapshot(self) -> ThoughtSnapshot:
        return ThoughtSnapshot(
            input=self.input,
            request_id=self.request_id,
            context=self.context,
            decision=self.decision,
            payloads=MappingProxyType({s: r.payload for s, r in self.results.items()}),
            statuses=MappingProxyType({s: r.status for s, r in self.results.items()}),
            confidence=self.confidence,
        )

# ── Response ─────────────────────────────────────────────────────────────────

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

class SystemHealth(_CamelModel):
    score: float = 0.0
    successful_stages: int = 0
    total_stages: int = 0
    stage_details: dict[str, dict[str, Any]] = Field(default_factory=dict)

class ResponseMetadata(_CamelModel):
    request_id: str = ""
    modules_used: list[str] = Field(default_factory=list)
    processing_time: float = 0.0  # ms
    iteration_count: int = 0
    semantic_depth: int = 0
    learning_updated: bool = False
    predictions_generated: bool = False
    system_health: SystemHealth = Field(default_factory=SystemHealth)
    mode: str | None = None
    complexity: float | None = None
    generation_method: str | None = None
    analysis_confidence: float = 0.0
    fallback_stages: list[str] = Field(default_factory=list)
    skipped_stages: list[str] = Field(default_factory=list)

@dataclass(frozen=True, slots=True)
class ProcessedResponse:
    reply: str
    confidence: float
    quality: float
    metadata: ResponseMetadata

    def to_dict(self) -> dict[str, Any]:
        return {
            "reply": self.reply,
            "confidence": self.confidence,
            "quality": self.quality,
            "metadata": self.metadata.model_dump(by_alias=True),
        }

__all__ = [
    "GeneratedReply",
    "ProcessedResponse",
    "RequestContext",
    "ResponseMetadata",
    "StageResult",
    "SystemHealth",
    "Thought",
    "ThoughtSnapshot",
]
