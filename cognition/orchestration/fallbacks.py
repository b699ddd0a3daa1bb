"""
Static Fallbacks
================

Payloads substituted when a stage's component is missing, slow or
failing, plus the contextual reply chain used when no generator
produced a candidate:

    knowledge-based reply (enrichment produced facts) → static reply

Confidences come from configuration, never from literals here.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from cognition.core.config import Settings
from cognition.core.types import GenerationMethod
from cognition.orchestration.models import GeneratedReply, ThoughtSnapshot

STATIC_REPLY_TEXT = (
    "I'm here and listening. Could you tell me a little more about what you need?"
)
CATASTROPHIC_REPLY_TEXT = (
    "Sorry, something went wrong while preparing a reply. Please try again."
)

_MAX_FALLBACK_FACTS = 3

def meta_fallback(config: Settings) -> dict[str, Any]:
    return {
        "intent": "general_conversation",
        "semantic_depth": 1,
        "confidence": config.META_FALLBACK_CONFIDENCE,
    }

def emotion_fallback(config: Settings) -> dict[str, Any]:
    return {"dominant_emotion": "neutral", "confidence": config.EMOTION_FALLBACK_CONFIDENCE}

def memory_fallback(config: Settings) -> dict[str, Any]:
    return {"relevant_context": "general", "memories": [], "confidence": config.MEMORY_FALLBACK_CONFIDENCE}

def persona_fallback(config: Settings) -> dict[str, Any]:
    return {
        "style": "friendly",
        "tone": "helpful",
        "mode": "conversational",
        "confidence": config.STAGE_FALLBACK_CONFIDENCE,
    }

def knowledge_fallback(config: Settings) -> dict[str, Any]:
    return {"facts": [], "sources": [], "confidence": config.STAGE_FALLBACK_CONFIDENCE}

def secondary_fallback(config: Settings) -> dict[str, Any]:
    return {"insights": [], "confidence": config.STAGE_FALLBACK_CONFIDENCE}

def static_reply(config: Settings) -> GeneratedReply:
    return GeneratedReply(
        text=STATIC_REPLY_TEXT,
        confidence=config.STATIC_REPLY_CONFIDENCE,
        method=GenerationMethod.STATIC_FALLBACK,
        quality=config.FALLBACK_QUALITY,
    )

def _fact_text(fact: Any) -> str:
    if isinstance(fact, Mapping):
        for key in ("text", "content", "summary", "fact"):
            value = fact.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return ""
    return str(fact).strip()

def contextual_reply(snapshot: ThoughtSnapshot, config: Settings) -> GeneratedReply:
    """Best reply that can be built without any generator."""
    if snapshot.succeeded("knowledge_enrichment"):
        facts = [
            t for t in (_fact_text(f) for f in snapshot.payload("knowledge_enrichment").get("facts") or ())
            if t
        ]
        if facts:
            body = " ".join(
                f if f.endswith((".", "!", "?")) else f"{f}."
                for f in facts[:_MAX_FALLBACK_FACTS]
            )
            return GeneratedReply(
                text=f"Here is what I found: {body}",
                confidence=config.KNOWLEDGE_REPLY_CONFIDENCE,
                method=GenerationMethod.KNOWLEDGE_FALLBACK,
            )
    return static_reply(config)

__all__ = [
    "CATASTROPHIC_REPLY_TEXT",
    "STATIC_REPLY_TEXT",
    "contextual_reply",
    "emotion_fallback",
    "knowledge_fallback",
    "memory_fallback",
    "meta_fallback",
    "persona_fallback",
    "secondary_fallback",
    "static_reply",
]
