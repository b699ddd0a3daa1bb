"""
Refinement Loop
===============

Rescoring plus bounded re-generation of the candidate reply.

Loop contract:
- The candidate is scored (quality 0-10, independent of stage confidence)
- While quality < threshold and iteration < cap, the generator is
  re-invoked with the original input plus a ``RefinedContext`` carrying
  the previous quality and iteration, and the new reply is rescored
- If the new quality does not beat the previous one by more than
  ``min_improvement`` the loop stops early, even below the cap
- The cap is mandatory, so the loop always terminates
- The best-scoring reply across iterations is returned (ties go to the
  most recent); ``keep_best=False`` returns the most recent reply instead

Static fallback replies carry a fixed quality and are never refined.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, replace
from typing import Any

from cognition.core.config import Settings, settings
from cognition.core.types import GenerationMethod
from cognition.orchestration.models import GeneratedReply, ThoughtSnapshot

logger = logging.getLogger(__name__)

Regenerate = Callable[[str, Mapping[str, Any]], Awaitable[GeneratedReply]]
ScoreFn = Callable[[GeneratedReply, ThoughtSnapshot], Awaitable[float]]

# ── Quality Scorer ───────────────────────────────────────────────────────────

_WORD = re.compile(r"[\w']+")
_SENTENCE_END = re.compile(r"[.!?](\s|$)")
_EVASIVE_PHRASES = (
    "i don't know", "i do not know", "i'm not sure", "i am not sure",
    "cannot help", "can't help", "no idea",
)

class QualityScorer:
    """
    Heuristic adequacy score on a 0-10 scale.

    Signals:
    - Length: a reply needs some substance, but walls of text are penalized
    - Relevance: overlap of content words between input and reply
    - Form: complete sentences, multi-sentence structure
    - Repetition and evasive phrasing lower the score
    - The generator's own confidence contributes a small share
    """

    def score(self, reply: str, input_text: str, confidence: float = 0.0) -> float:
        text = reply.strip()
        if not text:
            return 0.0

        lower = text.lower()
        words = _WORD.findall(lower)
        score = 3.0

        length = len(text)
        if length >= 20:
            score += 1.0
        if length >= 80:
            score += 1.0
        if length >= 200:
            score += 0.5
        if length > 2000:
            score -= 1.0

        input_terms = {w for w in _WORD.findall(input_text.lower()) if len(w) > 3}
        if input_terms:
            overlap = len(input_terms & set(words)) / len(input_terms)
            score += 2.0 * overlap
        else:
            score += 1.0

        sentence_count = len(_SENTENCE_END.findall(text))
        if sentence_count >= 1:
            score += 0.5
        if sentence_count >= 2:
            score += 0.5

        if len(words) >= 8 and len(set(words)) / len(words) < 0.5:
            score -= 1.5
        if any(p in lower for p in _EVASIVE_PHRASES):
            score -= 1.0

        score += 1.5 * max(0.0, min(1.0, confidence))
        return round(max(0.0, min(10.0, score)), 2)

# ── Loop ─────────────────────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class RefinedContext:
    previous_quality: float
    iteration: int
    previous_reply: str

    def as_mapping(self, base: Mapping[str, Any]) -> dict[str, Any]:
        return {
            **base,
            "refinement": {
                "refined": True,
                "previous_quality": self.previous_quality,
                "iteration": self.iteration,
                "previous_reply": self.previous_reply,
            },
        }

@dataclass(frozen=True, slots=True)
class RefinementOutcome:
    reply: GeneratedReply
    passes: int                       # Regenerations performed
    quality_history: tuple[float, ...]
    stop_reason: str

class RefinementLoop:
    def __init__(
        self,
        *,
        scorer: ScoreFn | None = None,
        config: Settings | None = None,
        threshold: float | None = None,
        max_iterations: int | None = None,
        min_improvement: float | None = None,
        early_stop: bool = True,
        keep_best: bool | None = None,
    ) -> None:
        cfg = config or settings
        self._config = cfg
        self.threshold = threshold if threshold is not None else cfg.QUALITY_THRESHOLD
        self.max_iterations = max(1, max_iterations if max_iterations is not None else cfg.MAX_REFINEMENT_ITERATIONS)
        self.min_improvement = min_improvement if min_improvement is not None else cfg.REFINEMENT_EPSILON
        # Without early stopping only the threshold and the cap end the loop
        self.early_stop = early_stop
        self.keep_best = keep_best if keep_best is not None else cfg.REFINEMENT_KEEP_BEST
        self._heuristic = QualityScorer()
        self._scorer = scorer or self._heuristic_score

    async def _heuristic_score(self, reply: GeneratedReply, thought: ThoughtSnapshot) -> float:
        return self._heuristic.score(reply.text, thought.input, reply.confidence)

    async def score(self, reply: GeneratedReply, thought: ThoughtSnapshot) -> float:
        if reply.is_static_fallback:
            return self._config.FALLBACK_QUALITY
        try:
            value = float(await self._scorer(reply, thought))
        except Exception as e:  # external scorer
            logger.warning("Quality scorer failed, using heuristic: %s", e)
            value = await self._heuristic_score(reply, thought)
        return max(0.0, min(10.0, value))

    async def refine(
        self,
        thought: ThoughtSnapshot,
        candidate: GeneratedReply,
        regenerate: Regenerate | None = None,
    ) -> RefinementOutcome:
        quality = candidate.quality
        if quality is None:
            quality = await self.score(candidate, thought)
        current = candidate.with_quality(quality)
        best = current
        history = [quality]
        passes = 0

        if current.is_static_fallback:
            return RefinementOutcome(current, 0, tuple(history), "fallback_reply")

        base_context = thought.component_context()
        while True:
            if current.quality >= self.threshold:
                stop_reason = "threshold_met"
                break
            if current.iteration >= self.max_iterations:
                stop_reason = "cap_reached"
                break
            if regenerate is None:
                stop_reason = "no_generator"
                break

            refined = RefinedContext(
                previous_quality=current.quality,
                iteration=current.iteration,
                previous_reply=current.text,
            )
            try:
                produced = await regenerate(thought.input, refined.as_mapping(base_context))
            except Exception as e:  # regeneration failure ends refinement, keeps best so far
                logger.info("Refinement pass %d failed: %s", current.iteration + 1, e)
                stop_reason = "regeneration_failed"
                break

            passes += 1
            new = replace(
                produced,
                iteration=current.iteration + 1,
                method=GenerationMethod.REFINED,
                quality=None,
            )
            new_quality = await self.score(new, thought)
            new = new.with_quality(new_quality)
            history.append(new_quality)

            improved = (
                not self.early_stop
                or new_quality > current.quality + self.min_improvement
            )
            current = new
            if new_quality >= best.quality:
                best = new
            if not improved:
                stop_reason = "no_improvement"
                break

        final = best if self.keep_best else current
        logger.debug(
            "Refinement finished after %d pass(es): %s, quality %.2f",
            passes, stop_reason, final.quality,
        )
        return RefinementOutcome(final, passes, tuple(history), stop_reason)

__all__ = [
    "QualityScorer",
    "RefinedContext",
    "RefinementLoop",
    "RefinementOutcome",
]
