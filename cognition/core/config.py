"""
Pipeline Configuration
======================

All tunables of the cognition pipeline in one place, loaded from the
environment (prefix ``COGNITION_``) through pydantic-settings.

Confidence floors used to be scattered across call sites; every one of
them is a named field here so that fallback behaviour can be tuned
without touching stage code.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ["Settings", "settings"]

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="COGNITION_",
        env_file=".env",
        extra="ignore",
    )

    APP_NAME: str = "cognition"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # ── Confidence floors ─────────────────────────────────────────────
    STAGE_FALLBACK_CONFIDENCE: float = Field(default=0.3, ge=0.0, le=1.0)
    META_FALLBACK_CONFIDENCE: float = Field(default=0.4, ge=0.0, le=1.0)
    EMOTION_FALLBACK_CONFIDENCE: float = Field(default=0.3, ge=0.0, le=1.0)
    MEMORY_FALLBACK_CONFIDENCE: float = Field(default=0.3, ge=0.0, le=1.0)
    STATIC_REPLY_CONFIDENCE: float = Field(default=0.1, ge=0.0, le=1.0)
    KNOWLEDGE_REPLY_CONFIDENCE: float = Field(default=0.6, ge=0.0, le=1.0)
    DEFAULT_REPLY_CONFIDENCE: float = Field(default=0.8, ge=0.0, le=1.0)
    NEURAL_REPLY_CONFIDENCE: float = Field(default=0.7, ge=0.0, le=1.0)
    HYBRID_CONFIDENCE_FLOOR: float = Field(default=0.8, ge=0.0, le=1.0)
    DEFAULT_STAGE_CONFIDENCE: float = Field(default=0.6, ge=0.0, le=1.0)

    # ── Quality / refinement ──────────────────────────────────────────
    QUALITY_THRESHOLD: float = 7.0
    FALLBACK_QUALITY: float = 1.0
    MAX_REFINEMENT_ITERATIONS: int = Field(default=3, ge=1)
    REFINEMENT_EPSILON: float = 0.1
    REFINEMENT_KEEP_BEST: bool = True
    MIN_NONTRIVIAL_REPLY_CHARS: int = 10
    # Share of the generation deadline given to the two blended generators
    BLEND_DEADLINE_SHARE: float = Field(default=0.9, gt=0.0, le=1.0)

    # ── Stage deadlines (seconds, before mode scaling) ────────────────
    STAGE_TIMEOUTS_S: dict[str, float] = Field(
        default_factory=lambda: {
            "meta_analysis": 5.0,
            "emotional_analysis": 3.0,
            "memory_retrieval": 3.0,
            "persona_synthesis": 3.0,
            "knowledge_enrichment": 4.0,
            "secondary_analysis": 4.0,
            "reply_generation": 10.0,
            "quality_evaluation": 40.0,
            "quality_scoring": 3.0,
            "final_validation": 3.0,
            "learning_feedback": 2.0,
            "prediction_feedback": 2.0,
        }
    )
    DEFAULT_STAGE_TIMEOUT_S: float = 5.0
    MODE_TIMEOUT_MULTIPLIERS: dict[str, float] = Field(
        default_factory=lambda: {
            "express": 0.5,
            "standard": 1.0,
            "expert": 3.0,
            "specialized": 1.0,
        }
    )

    # ── Routing budgets (milliseconds) ────────────────────────────────
    EXPRESS_BUDGET_MS: int = 1000
    EXPRESS_BUDGET_CEILING_MS: int = 2000
    STANDARD_BUDGET_MS: int = 5000
    EXPERT_BUDGET_MS: int = 30000
    SPECIALIZED_BUDGET_MS: int = 10000
    EXPRESS_MAX_COMPLEXITY: float = 0.3
    EXPERT_MIN_COMPLEXITY: float = 0.7
    CLASSIFIER_CACHE_SIZE: int = 1024

    # ── Registry ──────────────────────────────────────────────────────
    COMPONENT_LOAD_TIMEOUT_S: float = 5.0
    HEALTH_PROBE_TIMEOUT_S: float = 3.0
    HEALTH_SLOW_RESPONSE_MS: float = 8000.0
    HEALTH_DEGRADED_ERROR_RATE: float = 0.15
    HEALTH_CRITICAL_ERROR_RATE: float = 0.4

settings = Settings()
