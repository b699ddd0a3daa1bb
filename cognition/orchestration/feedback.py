"""
Feedback Recorders
==================

Best-effort hooks run after the reply is fixed:

- learning: records the interaction, its quality and context
- prediction: records a forward-looking signal keyed by user identity

Both run concurrently through the stage runner under their own
deadlines. Failures are logged and surface only as the boolean flags
``learningUpdated`` / ``predictionsGenerated``; they never affect the
response.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from cognition.components.capabilities import LearningRecorder, PredictionRecorder
from cognition.core.exceptions import StageExecutionError
from cognition.core.types import ComponentName
from cognition.orchestration.models import StageResult, ThoughtSnapshot
from cognition.orchestration.stages import StageInput, StageRunner, StageSpec
from cognition.utils.cancellation import CancellationToken
from cognition.utils.invocation import invoke

logger = logging.getLogger(__name__)

PREDICTION_SIGNAL = "conversation_turn"

@dataclass(frozen=True, slots=True)
class FeedbackResult:
    learning: StageResult
    prediction: StageResult

    @property
    def learning_updated(self) -> bool:
        return self.learning.succeeded

    @property
    def predictions_generated(self) -> bool:
        return self.prediction.succeeded

    @property
    def results(self) -> tuple[StageResult, StageResult]:
        return (self.learning, self.prediction)

def _interaction(snapshot: ThoughtSnapshot) -> dict[str, Any]:
    reply = snapshot.latest_reply()
    return {
        "input": snapshot.input,
        "reply": reply.text if reply else "",
        "quality": reply.quality if reply else None,
        "confidence": reply.confidence if reply else None,
        "generation_method": reply.method.value if reply else None,
        "mode": snapshot.decision.mode.value,
        "complexity": snapshot.decision.complexity,
        "analysis_confidence": snapshot.confidence,
    }

async def record_learning(component: LearningRecorder, stage_input: StageInput) -> dict[str, Any]:
    snapshot = stage_input.snapshot
    result = await invoke(
        component.learn_from_interaction,
        _interaction(snapshot),
        stage_input.component_context(),
    )
    if result is False:
        raise StageExecutionError("learning hook declined the interaction", stage=stage_input.stage)
    return {"recorded": True}

async def record_prediction(component: PredictionRecorder, stage_input: StageInput) -> dict[str, Any]:
    snapshot = stage_input.snapshot
    details = {
        "session_id": snapshot.context.session_id,
        "input": snapshot.input,
        "interaction": _interaction(snapshot),
    }
    result = await invoke(component.predict, snapshot.user_id, PREDICTION_SIGNAL, details)
    if result is False:
        raise StageExecutionError("prediction hook declined the interaction", stage=stage_input.stage)
    return {"prediction": result}

def _no_payload(_: StageInput) -> dict[str, Any]:
    return {}

LEARNING_STAGE = StageSpec(
    name="learning_feedback",
    component=ComponentName.LEARNING_ENGINE,
    interface=LearningRecorder,
    handler=record_learning,
    fallback=_no_payload,
    best_effort=True,
)

PREDICTION_STAGE = StageSpec(
    name="prediction_feedback",
    component=ComponentName.PREDICTIVE_SYSTEM,
    interface=PredictionRecorder,
    handler=record_prediction,
    fallback=_no_payload,
    best_effort=True,
)

class FeedbackRecorders:
    def __init__(
        self,
        runner: StageRunner,
        *,
        learning: StageSpec = LEARNING_STAGE,
        prediction: StageSpec = PREDICTION_STAGE,
    ) -> None:
        self._runner = runner
        self._learning = learning
        self._prediction = prediction

    @property
    def specs(self) -> tuple[StageSpec, StageSpec]:
        return (self._learning, self._prediction)

    async def record(
        self,
        snapshot: ThoughtSnapshot,
        token: CancellationToken | None = None,
    ) -> FeedbackResult:
        learning, prediction = await asyncio.gather(
            self._runner.run(self._learning, snapshot, token),
            self._runner.run(self._prediction, snapshot, token),
        )
        if not learning.succeeded:
            logger.debug("Learning feedback not recorded: %s", learning.error)
        if not prediction.succeeded:
            logger.debug("Prediction feedback not recorded: %s", prediction.error)
        return FeedbackResult(learning=learning, prediction=prediction)

__all__ = [
    "LEARNING_STAGE",
    "PREDICTION_STAGE",
    "FeedbackRecorders",
    "FeedbackResult",
    "record_learning",
    "record_prediction",
]
