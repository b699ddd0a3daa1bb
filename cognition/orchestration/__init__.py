"""
Orchestration Layer
===================

Request pipeline coordinating the optional analysis components.

Modules:
- classifier:   Complexity scoring & routing decision (express/standard/expert/specialized)
- models:       Per-request data model and the response envelope
- stages:       Declarative stage list and the deadline-bound stage runner
- fallbacks:    Fixed fallback payloads and replies
- aggregator:   Confidence aggregation and stage health report
- blender:      Concurrent semantic + neural generation
- refinement:   Quality scoring and the bounded refinement loop
- feedback:     Best-effort learning / prediction hooks
- orchestrator: Unified facade wiring everything together
"""

from .aggregator import ConfidenceAggregator
from .blender import HybridResponseBlender
from .classifier import ComplexityClassifier, RoutingDecision
from .models import GeneratedReply, ProcessedResponse, RequestContext, StageResult
from .orchestrator import CognitionOrchestrator
from .refinement import QualityScorer, RefinementLoop
from .stages import StageRunner, StageSpec

__all__ = [
    "CognitionOrchestrator",
    "ComplexityClassifier",
    "ConfidenceAggregator",
    "GeneratedReply",
    "HybridResponseBlender",
    "ProcessedResponse",
    "QualityScorer",
    "RefinementLoop",
    "RequestContext",
    "RoutingDecision",
    "StageResult",
    "StageRunner",
    "StageSpec",
]
