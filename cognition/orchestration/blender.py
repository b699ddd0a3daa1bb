"""
Hybrid Response Blender
=======================

Runs the semantic (rule-based) and neural (learned) generators
concurrently against one shared deadline and picks the reply.

Selection:
- only one candidate succeeded → use it verbatim, with its own confidence
- both succeeded → the longer non-trivial candidate wins (length as an
  informativeness proxy); confidence = max of both, floored
- neither succeeded → ``GenerationError``; the caller falls back
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

from cognition.components.capabilities import ReplyGenerator
from cognition.core.config import Settings, settings
from cognition.core.exceptions import GenerationError
from cognition.core.types import GenerationMethod
from cognition.orchestration.models import GeneratedReply
from cognition.utils.cancellation import CancellationToken, settle_cancelled
from cognition.utils.invocation import invoke

logger = logging.getLogger(__name__)

@dataclass(frozen=True, slots=True)
class GeneratorSlot:
    name: str
    generator: ReplyGenerator
    method: GenerationMethod
    default_confidence: float

@dataclass(frozen=True, slots=True)
class BlendResult:
    reply: GeneratedReply
    contributors: tuple[str, ...]
    failures: Mapping[str, str]
    latency_ms: float

class HybridResponseBlender:
    def __init__(self, config: Settings | None = None) -> None:
        self._config = config or settings

    def semantic_slot(self, name: str, generator: ReplyGenerator) -> GeneratorSlot:
        return GeneratorSlot(name, generator, GenerationMethod.SEMANTIC, self._config.DEFAULT_REPLY_CONFIDENCE)

    def neural_slot(self, name: str, generator: ReplyGenerator) -> GeneratorSlot:
        return GeneratorSlot(name, generator, GenerationMethod.NEURAL, self._config.NEURAL_REPLY_CONFIDENCE)

    async def blend(
        self,
        semantic: GeneratorSlot,
        neural: GeneratorSlot,
        text: str,
        context: Mapping[str, Any],
        timeout_s: float,
        token: CancellationToken | None = None,
    ) -> BlendResult:
        t0 = time.perf_counter()
        slots = (semantic, neural)
        tasks = {
            asyncio.create_task(self.generate_candidate(slot, text, context), name=f"generate-{slot.name}"): slot
            for slot in slots
        }

        # One deadline shared by both candidates
        try:
            done, pending = await asyncio.wait(tasks, timeout=timeout_s)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise
        if pending:
            if token is not None:
                token.cancel("blend deadline exceeded")
            for task in pending:
                task.cancel()
            await settle_cancelled(pending)

        candidates: dict[str, GeneratedReply] = {}
        failures: dict[str, str] = {}
        for task, slot in tasks.items():
            if task in pending:
                failures[slot.name] = f"timeout after {timeout_s:.2f}s"
                continue
            exc = task.exception()
            if exc is not None:
                failures[slot.name] = f"{type(exc).__name__}: {exc}"
                continue
            candidates[slot.name] = task.result()

        latency_ms = (time.perf_counter() - t0) * 1000
        for name, reason in failures.items():
            logger.info("Generator '%s' did not contribute: %s", name, reason)

        if not candidates:
            raise GenerationError(
                "both blended generators failed",
                errors=[t.exception() for t in done if t.exception() is not None],
            )

        if len(candidates) == 1:
            name, reply = next(iter(candidates.items()))
            return BlendResult(reply, (name,), failures, latency_ms)

        return BlendResult(
            self.select(candidates[semantic.name], candidates[neural.name]),
            (semantic.name, neural.name),
            failures,
            latency_ms,
        )

    def select(self, semantic: GeneratedReply, neural: GeneratedReply) -> GeneratedReply:
        """Pick between two successful candidates."""
        min_chars = self._config.MIN_NONTRIVIAL_REPLY_CHARS
        semantic_ok = len(semantic.text.strip()) >= min_chars
        neural_ok = len(neural.text.strip()) >= min_chars

        if semantic_ok != neural_ok:
            chosen = semantic if semantic_ok else neural
        else:
            chosen = neural if len(neural.text) > len(semantic.text) else semantic

        confidence = max(semantic.confidence, neural.confidence, self._config.HYBRID_CONFIDENCE_FLOOR)
        return replace(
            chosen,
            confidence=min(1.0, confidence),
            method=GenerationMethod.HYBRID,
            details={**chosen.details, "selected": chosen.generator},
        )

    @staticmethod
    async def generate_candidate(slot: GeneratorSlot, text: str, context: Mapping[str, Any]) -> GeneratedReply:
        result = await invoke(slot.generator.generate, text, context)
        return GeneratedReply.from_component(
            result,
            method=slot.method,
            default_confidence=slot.default_confidence,
            generator=slot.name,
        )

__all__ = ["BlendResult", "GeneratorSlot", "HybridResponseBlender"]
