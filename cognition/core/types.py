"""
Canonical Type Definitions
===========================

Single source of truth for enums shared across the pipeline.

This module defines:
- ProcessingMode: Strategy chosen by the complexity classifier
- AvailabilityState: Registry state of an optional component
- ComponentCategory: Capability contract a component is certified against
- StageStatus: Outcome of one pipeline stage
- GenerationMethod: Provenance tag of a generated reply
- ComponentHealth / OverallHealth: Component health roll-up levels
"""

from enum import StrEnum

__all__ = [
    "AvailabilityState",
    "ComponentCategory",
    "ComponentHealth",
    "ComponentName",
    "GenerationMethod",
    "OverallHealth",
    "ProcessingMode",
    "StageStatus",
]

class ProcessingMode(StrEnum):
    """Processing strategy for one request.

    Selected from the complexity score band, or fixed by a
    specialized-category keyword match.
    """

    EXPRESS = "express"  # Trivial requests, heavy components skipped
    STANDARD = "standard"
    EXPERT = "expert"  # Deep analysis, heavy generator enabled
    SPECIALIZED = "specialized"  # Domain category with fixed preferences

class AvailabilityState(StrEnum):
    UNCHECKED = "unchecked"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"

class ComponentCategory(StrEnum):
    """Capability categories.

    Each category maps to one capability interface in
    ``cognition.components.capabilities``.
    """

    META_ANALYZER = "meta_analyzer"
    EMOTION_ANALYZER = "emotion_analyzer"
    MEMORY = "memory"
    PERSONA = "persona"
    KNOWLEDGE = "knowledge"
    SECONDARY_ANALYZER = "secondary_analyzer"
    GENERATOR = "generator"
    QUALITY_EVALUATOR = "quality_evaluator"
    VALIDATOR = "validator"
    LEARNING = "learning"
    PREDICTION = "prediction"

class StageStatus(StrEnum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"  # Component excluded by the routing decision

class GenerationMethod(StrEnum):
    SEMANTIC = "semantic"
    NEURAL = "neural"
    HYBRID = "hybrid"
    REFINED = "refined"
    KNOWLEDGE_FALLBACK = "knowledge_fallback"
    STATIC_FALLBACK = "static_fallback"

class ComponentHealth(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"
    UNAVAILABLE = "unavailable"

class OverallHealth(StrEnum):
    OPTIMAL = "optimal"
    GOOD = "good"
    DEGRADED = "degraded"
    CRITICAL = "critical"

class ComponentName(StrEnum):
    """Default registry names the built-in stages resolve."""

    META_ANALYZER = "meta-analyzer"
    EMOTION_ANALYZER = "emotion-analyzer"
    SEMANTIC_MEMORY = "semantic-memory"
    USER_PROFILER = "user-profiler"
    KNOWLEDGE_INTEGRATOR = "knowledge-integrator"
    DEEP_ANALYZER = "deep-analyzer"
    LANGUAGE_GENERATOR = "language-generator"
    NEURAL_GENERATOR = "neural-generator"
    QUALITY_EVALUATOR = "quality-evaluator"
    META_VALIDATOR = "meta-validator"
    LEARNING_ENGINE = "learning-engine"
    PREDICTIVE_SYSTEM = "predictive-system"
    # Specialized-category generators
    EMBROIDERY_GENERATOR = "embroidery-generator"
    VECTORIZER = "vectorizer"
    IMAGE_GENERATOR = "image-generator"
