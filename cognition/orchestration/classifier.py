"""
Complexity Classifier
=====================

Maps raw input to a processing strategy before any component is touched.

Design:
- Pure function of text + static configuration: no component, network or
  registry calls, so trivial requests get a decision in microseconds
- Specialized-category keywords short-circuit generic scoring
- Otherwise a continuous 0.0-1.0 score from length buckets, keyword sets,
  sentence statistics and structural markers selects one of three bands
- Decisions are cached by a hash of the normalized text
"""

from __future__ import annotations

import hashlib
import logging
import re
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from typing import Any

from cognition.core.config import Settings, settings
from cognition.core.types import ComponentName, ProcessingMode

logger = logging.getLogger(__name__)

# ── Data Classes ─────────────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class RoutingDecision:
    """Immutable per-request strategy: the contract between the classifier
    and every stage downstream."""

    complexity: float                 # 0.0-1.0 continuous
    mode: ProcessingMode
    time_budget_ms: int
    preferred_components: tuple[str, ...] = ()
    skipped_components: tuple[str, ...] = ()
    use_neural: bool = False          # Heavy (learned) generator enabled
    category: str | None = None       # Set for specialized decisions
    reasoning: tuple[str, ...] = ()
    request_id: str = ""
    decided_at: float = field(default_factory=time.time)

    def skips(self, component: str) -> bool:
        return component in self.skipped_components

    def to_dict(self) -> dict[str, Any]:
        return {
            "complexity": round(self.complexity, 4),
            "mode": self.mode.value,
            "time_budget_ms": self.time_budget_ms,
            "preferred_components": list(self.preferred_components),
            "skipped_components": list(self.skipped_components),
            "use_neural": self.use_neural,
            "category": self.category,
            "reasoning": list(self.reasoning),
        }

@dataclass(frozen=True, slots=True)
class SpecializedCategory:
    name: str
    keywords: tuple[str, ...]
    complexity: float
    preferred_components: tuple[str, ...]
    use_neural: bool = False
    time_budget_ms: int | None = None

# ── Keyword Sets ─────────────────────────────────────────────────────────────

_SIMPLE_KEYWORDS = frozenset({
    "hi", "hello", "hey", "thanks", "thank you", "bye", "goodbye",
    "yes", "no", "ok", "okay", "good morning", "good night", "how are you",
})

_MEDIUM_KEYWORDS = frozenset({
    "explain", "describe", "compare", "difference", "tell me", "help me",
    "how to", "why does", "what is", "example",
})

_COMPLEX_KEYWORDS = frozenset({
    "analysis", "analyze", "research", "design", "optimization", "optimize",
    "algorithm", "architecture", "strategy", "trade-off", "tradeoffs",
    "scalability", "implementation", "evaluate", "methodology",
})

_SPECIALIZED_CATEGORIES: tuple[SpecializedCategory, ...] = (
    SpecializedCategory(
        name="embroidery",
        keywords=("embroidery", "stitch pattern", "dst file", "pes file", "hoop size"),
        complexity=0.8,
        preferred_components=(ComponentName.EMBROIDERY_GENERATOR,),
        use_neural=True,
    ),
    SpecializedCategory(
        name="vectorization",
        keywords=("vectorize", "vectorization", "svg", "vector graphic", "trace the outline"),
        complexity=0.7,
        preferred_components=(ComponentName.VECTORIZER,),
    ),
    SpecializedCategory(
        name="image_generation",
        keywords=("generate an image", "create an image", "draw me", "draw a picture", "picture of"),
        complexity=0.6,
        preferred_components=(ComponentName.IMAGE_GENERATOR,),
    ),
)

_WH_QUESTION = re.compile(r"\b(how|what|where|when|why)\b", re.IGNORECASE)
_COMPLEX_TOPIC = re.compile(r"\b(analysis|research|project|system|architecture)\b", re.IGNORECASE)
_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_STRUCTURE_MARKERS = re.compile(r"[()\[\]{}\"«»]")
_CODE_FENCE = "```"

def _keyword_pattern(keywords: frozenset[str] | tuple[str, ...]) -> re.Pattern[str]:
    alternatives = sorted((re.escape(k) for k in keywords), key=len, reverse=True)
    return re.compile(r"\b(?:" + "|".join(alternatives) + r")\b", re.IGNORECASE)

_SIMPLE_RE = _keyword_pattern(_SIMPLE_KEYWORDS)
_MEDIUM_RE = _keyword_pattern(_MEDIUM_KEYWORDS)
_COMPLEX_RE = _keyword_pattern(_COMPLEX_KEYWORDS)
_SPECIALIZED_RE = tuple((cat, _keyword_pattern(cat.keywords)) for cat in _SPECIALIZED_CATEGORIES)

# ── Scoring ──────────────────────────────────────────────────────────────────

def score_complexity(text: str) -> tuple[float, list[str]]:
    """Score text complexity on a 0.0-1.0 scale.

    Pure function: safe for concurrent use. Returns the score and the
    list of signals that moved it.
    """
    reasons: list[str] = []
    stripped = text.strip()
    length = len(stripped)

    if length < 20:
        score = 0.1
    elif length < 50:
        score = 0.3
    elif length < 100:
        score = 0.5
    else:
        score = 0.7
    reasons.append(f"length={length}")

    if _SIMPLE_RE.search(stripped):
        score = max(0.1, score - 0.2)
        reasons.append("simple_keyword")
    if _MEDIUM_RE.search(stripped):
        score = max(0.3, score)
        reasons.append("medium_keyword")
    if _COMPLEX_RE.search(stripped):
        score = max(0.7, score + 0.2)
        reasons.append("complex_keyword")

    if length <= 20:
        score = max(0.1, score - 0.1)
    if 20 <= length <= 100 or _WH_QUESTION.search(stripped):
        score = max(0.3, score)
    if length >= 100 or _COMPLEX_TOPIC.search(stripped):
        score = max(0.7, score + 0.1)
        reasons.append("complex_pattern")

    sentences = [s for s in _SENTENCE_SPLIT.split(stripped) if s.strip()]
    if sentences:
        avg_words = len(stripped.split()) / len(sentences)
        if avg_words > 15:
            score += 0.1
            reasons.append("long_sentences")
        if len(sentences) > 3:
            score += 0.1
            reasons.append("multi_sentence")

    if _STRUCTURE_MARKERS.search(stripped):
        score += 0.1
        reasons.append("structure_markers")
    if _CODE_FENCE in stripped:
        score += 0.2
        reasons.append("code_block")

    return round(max(0.0, min(1.0, score)), 4), reasons

def detect_specialized_category(text: str) -> SpecializedCategory | None:
    for category, pattern in _SPECIALIZED_RE:
        if pattern.search(text):
            return category
    return None

# ── Classifier ───────────────────────────────────────────────────────────────

@dataclass(slots=True)
class _ClassifierStats:
    total: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    errors: int = 0
    total_classify_ms: float = 0.0
    by_mode: dict[str, int] = field(default_factory=dict)

class ComplexityClassifier:
    """
    Synchronous request router.

    Usage:
        classifier = ComplexityClassifier()
        decision = classifier.classify("hi")
        # decision.mode == ProcessingMode.EXPRESS
    """

    def __init__(self, config: Settings | None = None, cache_max_size: int | None = None) -> None:
        self._config = config or settings
        self._cache_max = (
            cache_max_size if cache_max_size is not None else self._config.CLASSIFIER_CACHE_SIZE
        )
        self._cache: OrderedDict[str, RoutingDecision] = OrderedDict()
        self._stats = _ClassifierStats()

    def classify(self, raw_text: str, request_id: str = "") -> RoutingDecision:
        request_id = request_id or uuid.uuid4().hex
        start = time.perf_counter()
        self._stats.total += 1

        try:
            cache_key = self._cache_key(raw_text)
            cached = self._cache.get(cache_key)
            if cached is not None:
                self._cache.move_to_end(cache_key)
                self._stats.cache_hits += 1
                decision = _with_request_id(cached, request_id)
            else:
                self._stats.cache_misses += 1
                decision = self._decide(raw_text, request_id)
                self._put_cache(cache_key, decision)
        except Exception as e:  # router must never fail a request
            self._stats.errors += 1
            logger.warning("Classification failed, using standard mode: %s", e)
            decision = self._fallback_decision(request_id, f"classifier_error: {e}")

        self._stats.total_classify_ms += (time.perf_counter() - start) * 1000
        self._stats.by_mode[decision.mode.value] = self._stats.by_mode.get(decision.mode.value, 0) + 1
        return decision

    def get_stats(self) -> dict[str, Any]:
        total = self._stats.total
        return {
            "total": total,
            "cache_hits": self._stats.cache_hits,
            "cache_misses": self._stats.cache_misses,
            "cache_size": len(self._cache),
            "errors": self._stats.errors,
            "avg_classify_ms": round(self._stats.total_classify_ms / total, 4) if total else 0.0,
            "by_mode": dict(self._stats.by_mode),
        }

    # ── Internals ────────────────────────────────────────────────────

    def _decide(self, raw_text: str, request_id: str) -> RoutingDecision:
        text = raw_text.strip()
        if not text:
            return self._fallback_decision(request_id, "empty_input")

        category = detect_specialized_category(text)
        if category is not None:
            return RoutingDecision(
                complexity=category.complexity,
                mode=ProcessingMode.SPECIALIZED,
                time_budget_ms=category.time_budget_ms or self._config.SPECIALIZED_BUDGET_MS,
                preferred_components=category.preferred_components,
                use_neural=category.use_neural,
                category=category.name,
                reasoning=(f"specialized_category={category.name}",),
                request_id=request_id,
            )

        score, reasons = score_complexity(text)
        return self._decision_for_score(score, tuple(reasons), request_id)

    def _decision_for_score(
        self, score: float, reasoning: tuple[str, ...], request_id: str
    ) -> RoutingDecision:
        cfg = self._config
        if score <= cfg.EXPRESS_MAX_COMPLEXITY:
            return RoutingDecision(
                complexity=score,
                mode=ProcessingMode.EXPRESS,
                time_budget_ms=min(cfg.EXPRESS_BUDGET_MS, cfg.EXPRESS_BUDGET_CEILING_MS),
                preferred_components=(ComponentName.LANGUAGE_GENERATOR,),
                skipped_components=(
                    ComponentName.DEEP_ANALYZER,
                    ComponentName.KNOWLEDGE_INTEGRATOR,
                    ComponentName.NEURAL_GENERATOR,
                ),
                use_neural=False,
                reasoning=reasoning,
                request_id=request_id,
            )
        if score > cfg.EXPERT_MIN_COMPLEXITY:
            return RoutingDecision(
                complexity=score,
                mode=ProcessingMode.EXPERT,
                time_budget_ms=cfg.EXPERT_BUDGET_MS,
                preferred_components=(
                    ComponentName.LANGUAGE_GENERATOR,
                    ComponentName.NEURAL_GENERATOR,
                    ComponentName.DEEP_ANALYZER,
                    ComponentName.KNOWLEDGE_INTEGRATOR,
                ),
                use_neural=True,
                reasoning=reasoning,
                request_id=request_id,
            )
        return RoutingDecision(
            complexity=score,
            mode=ProcessingMode.STANDARD,
            time_budget_ms=cfg.STANDARD_BUDGET_MS,
            preferred_components=(
                ComponentName.LANGUAGE_GENERATOR,
                ComponentName.SEMANTIC_MEMORY,
            ),
            use_neural=False,
            reasoning=reasoning,
            request_id=request_id,
        )

    def _fallback_decision(self, request_id: str, reason: str) -> RoutingDecision:
        return self._decision_for_score(0.5, (reason,), request_id)

    @staticmethod
    def _cache_key(text: str) -> str:
        normalized = " ".join(text.strip().lower().split())[:500]
        return hashlib.sha256(normalized.encode()).hexdigest()[:16]

    def _put_cache(self, key: str, value: RoutingDecision) -> None:
        if self._cache_max <= 0:
            return
        self._cache[key] = value
        self._cache.move_to_end(key)
        while len(self._cache) > self._cache_max:
            self._cache.popitem(last=False)

def _with_request_id(decision: RoutingDecision, request_id: str) -> RoutingDecision:
    return replace(decision, request_id=request_id, decided_at=time.time())

__all__ = [
    "ComplexityClassifier",
    "RoutingDecision",
    "SpecializedCategory",
    "detect_specialized_category",
    "score_complexity",
]
