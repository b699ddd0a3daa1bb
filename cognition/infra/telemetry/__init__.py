"""
Telemetry Layer
===============

Provides:
  - Structured logging with request correlation (request/session/user ids)
  - Prometheus metrics for requests, stages, fallbacks and component loads

Usage:
    from cognition.infra.telemetry import get_logger, PipelineMetrics

    log = get_logger(__name__)
    log.info("stage_complete", stage="meta_analysis", duration_ms=12.5)
"""

from cognition.infra.telemetry.logger import (
    StructuredFormatter,
    StructuredLogger,
    clear_request_context,
    get_logger,
    get_request_context,
    set_request_context,
    setup_logging,
)
from cognition.infra.telemetry.metrics import PipelineMetrics

__all__ = [
    "PipelineMetrics",
    "StructuredFormatter",
    "StructuredLogger",
    "clear_request_context",
    "get_logger",
    "get_request_context",
    "set_request_context",
    "setup_logging",
]
