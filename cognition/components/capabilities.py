"""
Capability Interfaces
=====================

One explicit interface per component category. A component is certified
against its category once, at load time; stages then receive a typed
optional from the registry instead of probing for methods at call time.

Operations may be plain functions or coroutines. Payload-returning
operations return a mapping; a ``confidence`` key in that mapping, when
present, becomes the stage confidence.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from cognition.core.types import ComponentCategory

@runtime_checkable
class MetaAnalyzer(Protocol):
    def analyze(self, text: str, options: Mapping[str, Any]) -> Any: ...

@runtime_checkable
class EmotionAnalyzer(Protocol):
    def analyze_emotion(
        self, text: str, history: Sequence[Any], profile: Mapping[str, Any]
    ) -> Any: ...

@runtime_checkable
class MemoryRetriever(Protocol):
    def retrieve(self, text: str, context: Mapping[str, Any]) -> Any: ...

@runtime_checkable
class PersonaBuilder(Protocol):
    def build_persona(self, text: str, context: Mapping[str, Any]) -> Any: ...

@runtime_checkable
class ResponseAdapter(Protocol):
    """Optional persona operation used during final personalization."""

    def adapt_response(self, reply: str, profile: Mapping[str, Any]) -> Any: ...

@runtime_checkable
class KnowledgeEnricher(Protocol):
    def enrich(self, text: str, context: Mapping[str, Any]) -> Any: ...

@runtime_checkable
class SecondaryAnalyzer(Protocol):
    def analyze_deep(self, text: str, context: Mapping[str, Any]) -> Any: ...

@runtime_checkable
class ReplyGenerator(Protocol):
    def generate(self, text: str, context: Mapping[str, Any]) -> Any: ...

@runtime_checkable
class QualityEvaluator(Protocol):
    def score(self, reply: str, context: Mapping[str, Any]) -> Any: ...

@runtime_checkable
class ReplyValidator(Protocol):
    def validate(self, reply: str, context: Mapping[str, Any]) -> Any: ...

@runtime_checkable
class LearningRecorder(Protocol):
    def learn_from_interaction(
        self, interaction: Mapping[str, Any], context: Mapping[str, Any]
    ) -> Any: ...

@runtime_checkable
class PredictionRecorder(Protocol):
    def predict(self, user_id: str, signal: str, details: Mapping[str, Any]) -> Any: ...

@dataclass(frozen=True, slots=True)
class CapabilitySchema:
    """Validation schema for one component category."""

    category: ComponentCategory
    interface: type
    required_operations: tuple[str, ...]
    stateful: bool = False
    optional_operations: tuple[str, ...] = ()

    def missing_operations(self, candidate: Any) -> list[str]:
        return [
            op for op in self.required_operations
            if not callable(getattr(candidate, op, None))
        ]

# Self-checks every category may expose
_COMMON_OPTIONAL = ("is_available", "check_health")

CAPABILITY_SCHEMAS: dict[ComponentCategory, CapabilitySchema] = {
    ComponentCategory.META_ANALYZER: CapabilitySchema(
        ComponentCategory.META_ANALYZER, MetaAnalyzer, ("analyze",),
        optional_operations=_COMMON_OPTIONAL,
    ),
    ComponentCategory.EMOTION_ANALYZER: CapabilitySchema(
        ComponentCategory.EMOTION_ANALYZER, EmotionAnalyzer, ("analyze_emotion",),
        optional_operations=_COMMON_OPTIONAL,
    ),
    ComponentCategory.MEMORY: CapabilitySchema(
        ComponentCategory.MEMORY, MemoryRetriever, ("retrieve",),
        optional_operations=_COMMON_OPTIONAL,
    ),
    ComponentCategory.PERSONA: CapabilitySchema(
        ComponentCategory.PERSONA, PersonaBuilder, ("build_persona",),
        stateful=True,
        optional_operations=(*_COMMON_OPTIONAL, "adapt_response"),
    ),
    ComponentCategory.KNOWLEDGE: CapabilitySchema(
        ComponentCategory.KNOWLEDGE, KnowledgeEnricher, ("enrich",),
        optional_operations=_COMMON_OPTIONAL,
    ),
    ComponentCategory.SECONDARY_ANALYZER: CapabilitySchema(
        ComponentCategory.SECONDARY_ANALYZER, SecondaryAnalyzer, ("analyze_deep",),
        optional_operations=_COMMON_OPTIONAL,
    ),
    ComponentCategory.GENERATOR: CapabilitySchema(
        ComponentCategory.GENERATOR, ReplyGenerator, ("generate",),
        stateful=True,
        optional_operations=_COMMON_OPTIONAL,
    ),
    ComponentCategory.QUALITY_EVALUATOR: CapabilitySchema(
        ComponentCategory.QUALITY_EVALUATOR, QualityEvaluator, ("score",),
        optional_operations=_COMMON_OPTIONAL,
    ),
    ComponentCategory.VALIDATOR: CapabilitySchema(
        ComponentCategory.VALIDATOR, ReplyValidator, ("validate",),
        optional_operations=_COMMON_OPTIONAL,
    ),
    ComponentCategory.LEARNING: CapabilitySchema(
        ComponentCategory.LEARNING, LearningRecorder, ("learn_from_interaction",),
        stateful=True,
        optional_operations=_COMMON_OPTIONAL,
    ),
    ComponentCategory.PREDICTION: CapabilitySchema(
        ComponentCategory.PREDICTION, PredictionRecorder, ("predict",),
        stateful=True,
        optional_operations=_COMMON_OPTIONAL,
    ),
}

def schema_for(category: ComponentCategory | str) -> CapabilitySchema:
    return CAPABILITY_SCHEMAS[ComponentCategory(category)]

__all__ = [
    "CAPABILITY_SCHEMAS",
    "CapabilitySchema",
    "EmotionAnalyzer",
    "KnowledgeEnricher",
    "LearningRecorder",
    "MemoryRetriever",
    "MetaAnalyzer",
    "PersonaBuilder",
    "PredictionRecorder",
    "QualityEvaluator",
    "ReplyGenerator",
    "ResponseAdapter",
    "ReplyValidator",
    "SecondaryAnalyzer",
    "schema_for",
]
