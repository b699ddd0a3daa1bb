"""Shared utilities."""

from cognition.utils.cancellation import CancellationToken, run_with_deadline, settle_cancelled
from cognition.utils.invocation import invoke

__all__ = ["CancellationToken", "invoke", "run_with_deadline", "settle_cancelled"]
