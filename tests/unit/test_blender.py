"""Hybrid response blender tests: concurrent generation, shared deadline, selection."""

import asyncio

import pytest

from cognition.core.exceptions import GenerationError
from cognition.core.types import GenerationMethod
from cognition.orchestration.blender import HybridResponseBlender
from cognition.utils.cancellation import CancellationToken


class FakeGenerator:
    def __init__(self, result=None, error=None, delay=0.0):
        self.result = result
        self.error = error
        self.delay = delay
        self.cancelled = False

    async def generate(self, text, context):
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        return self.result


class TestHybridResponseBlender:

    def setup_method(self):
        self.blender = HybridResponseBlender()

    async def blend(self, semantic, neural, timeout_s=1.0, token=None):
        return await self.blender.blend(
            self.blender.semantic_slot("language-generator", semantic),
            self.blender.neural_slot("neural-generator", neural),
            "Tell me about volcanoes",
            {},
            timeout_s=timeout_s,
            token=token,
        )

    @pytest.mark.asyncio
    async def test_single_success_is_used_verbatim(self):
        semantic = FakeGenerator(error=RuntimeError("rules exhausted"))
        neural = FakeGenerator(result={"text": "Volcanoes form where magma rises.", "confidence": 0.65})

        result = await self.blend(semantic, neural)

        assert result.reply.text == "Volcanoes form where magma rises."
        assert result.reply.confidence == pytest.approx(0.65)
        assert result.reply.method == GenerationMethod.NEURAL
        assert result.contributors == ("neural-generator",)
        assert "RuntimeError" in result.failures["language-generator"]

    @pytest.mark.asyncio
    async def test_both_succeed_longer_wins(self):
        semantic = FakeGenerator(result={"text": "Volcanoes erupt.", "confidence": 0.5})
        neural = FakeGenerator(result={
            "text": "Volcanoes erupt when pressure from gas-rich magma exceeds the strength of the crust.",
            "confidence": 0.6,
        })

        result = await self.blend(semantic, neural)

        assert result.reply.text.startswith("Volcanoes erupt when pressure")
        assert result.reply.method == GenerationMethod.HYBRID
        assert result.reply.confidence == pytest.approx(0.8)  # floor
        assert result.contributors == ("language-generator", "neural-generator")
        assert result.reply.details["selected"] == "neural-generator"

    @pytest.mark.asyncio
    async def test_confidence_above_floor_is_kept(self):
        semantic = FakeGenerator(result={"text": "A short but fine answer.", "confidence": 0.95})
        neural = FakeGenerator(result="A somewhat longer answer about volcanoes.")

        result = await self.blend(semantic, neural)
        assert result.reply.confidence == pytest.approx(0.95)

    @pytest.mark.asyncio
    async def test_trivial_candidate_loses(self):
        semantic = FakeGenerator(result="Volcanoes are openings in the crust.")
        neural = FakeGenerator(result="ok")

        result = await self.blend(semantic, neural)
        assert result.reply.text == "Volcanoes are openings in the crust."

    @pytest.mark.asyncio
    async def test_both_fail_raises(self):
        semantic = FakeGenerator(error=RuntimeError("a"))
        neural = FakeGenerator(result="   ")  # empty text is a failure too

        with pytest.raises(GenerationError) as exc:
            await self.blend(semantic, neural)
        assert len(exc.value.errors) == 2

    @pytest.mark.asyncio
    async def test_shared_deadline_cancels_slow_generator(self):
        semantic = FakeGenerator(result="Volcanoes vent heat from the mantle.")
        neural = FakeGenerator(result="never", delay=5.0)
        token = CancellationToken()

        result = await self.blend(semantic, neural, timeout_s=0.1, token=token)

        assert result.reply.text == "Volcanoes vent heat from the mantle."
        assert "timeout" in result.failures["neural-generator"]
        assert neural.cancelled is True
        assert token.is_cancelled()

    @pytest.mark.asyncio
    async def test_sync_generators_are_supported(self):
        class SyncGenerator:
            def generate(self, text, context):
                return f"Echo: {text}"

        result = await self.blend(SyncGenerator(), FakeGenerator(error=RuntimeError("x")))
        assert result.reply.text == "Echo: Tell me about volcanoes"
        assert result.reply.confidence == pytest.approx(0.8)
