"""Exception hierarchy for the cognition pipeline.

Every error raised inside a stage, the blender or the registry derives
from ``CognitionError`` and is recovered locally by the orchestrator.
Callers of ``process()`` never see one of these.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

class CognitionError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, detail: str, error_code: str = "COGNITION_ERROR"):
        self.detail = detail
        self.error_code = error_code
        self.timestamp = datetime.now(UTC).isoformat()
        super().__init__(detail)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.error_code,
            "detail": self.detail,
            "timestamp": self.timestamp,
        }

class ComponentUnavailableError(CognitionError):
    """Raised when a stage needs a component the registry could not provide."""

    def __init__(self, name: str, reason: str | None = None):
        detail = f"Component '{name}' is unavailable"
        if reason:
            detail = f"{detail}: {reason}"
        super().__init__(detail=detail, error_code="COMPONENT_UNAVAILABLE")
        self.name = name
        self.reason = reason

class ComponentValidationError(CognitionError):
    """Raised when a loaded component does not satisfy its category contract."""

    def __init__(self, name: str, missing: list[str]):
        super().__init__(
            detail=f"Component '{name}' is missing required operations: {', '.join(missing)}",
            error_code="COMPONENT_VALIDATION_FAILED",
        )
        self.name = name
        self.missing = missing

class StageExecutionError(CognitionError):
    """Error raised inside a stage handler."""

    def __init__(
        self,
        detail: str,
        stage: str = "unknown",
        original_error: Exception | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(detail=detail, error_code=f"STAGE_{stage.upper()}_ERROR")
        self.stage = stage
        self.original_error = original_error
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update({"stage": self.stage, "context": self.context})
        return base

class StageTimeoutError(StageExecutionError):
    def __init__(self, stage: str, timeout_s: float):
        super().__init__(
            detail=f"Stage '{stage}' exceeded its {timeout_s:.2f}s deadline",
            stage=stage,
            context={"timeout_s": timeout_s},
        )
        self.timeout_s = timeout_s

class GenerationError(CognitionError):
    """Raised when no generator produced a usable candidate."""

    def __init__(self, detail: str, errors: list[BaseException] | None = None):
        super().__init__(detail=detail, error_code="GENERATION_FAILED")
        self.errors = errors or []

class OperationCancelledError(CognitionError):
    """Raised by ``CancellationToken.raise_if_cancelled``."""

    def __init__(self, reason: str = "cancelled"):
        super().__init__(detail=f"Operation cancelled: {reason}", error_code="CANCELLED")
        self.reason = reason

__all__ = [
    "CognitionError",
    "ComponentUnavailableError",
    "ComponentValidationError",
    "GenerationError",
    "OperationCancelledError",
    "StageExecutionError",
    "StageTimeoutError",
]
