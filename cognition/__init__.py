"""
Cognition — conversational-response orchestration pipeline.

Coordinates optional analysis components (intent, emotion, memory,
persona, knowledge, generation, quality) into one resilient request
pipeline with per-stage deadlines, graceful degradation and a
bounded refinement loop.

Usage:
    from cognition import ComponentRegistry, CognitionOrchestrator

    registry = ComponentRegistry()
    registry.register("meta-analyzer", "my_pkg.meta:MetaAnalyzer", "meta_analyzer")
    orchestrator = CognitionOrchestrator(registry)
    response = await orchestrator.process("hello there")
"""

from cognition.components.registry import ComponentRegistry
from cognition.orchestration.models import ProcessedResponse, RequestContext
from cognition.orchestration.orchestrator import CognitionOrchestrator

__version__ = "1.0.0"

__all__ = [
    "CognitionOrchestrator",
    "ComponentRegistry",
    "ProcessedResponse",
    "RequestContext",
]
