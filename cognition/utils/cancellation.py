"""
Cooperative Cancellation
========================

Every stage invocation races a deadline. The loser of that race is told
to stop through a ``CancellationToken`` and its task is cancelled, so
slow components do not keep running unobserved after their stage has
already fallen back.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from cognition.core.exceptions import OperationCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Time a cancelled invocation gets to unwind before it is detached
CANCEL_GRACE_S = 0.05

# Strong references to detached losers until they settle
_detached: set[asyncio.Future] = set()

class CancellationToken:
    """
    Token for cooperative cancellation in long-running operations.

    Usage:
        token = CancellationToken()

        while processing:
            token.raise_if_cancelled()
            # do work

    Child tokens created with ``child()`` are cancelled together with
    their parent, never the other way round.
    """

    __slots__ = ("_children", "_event", "_reason")

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None
        self._children: list[CancellationToken] = []

    @property
    def reason(self) -> str | None:
        return self._reason

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        """Mark as cancelled and propagate to children."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        for child in self._children:
            child.cancel(reason)

    def child(self) -> CancellationToken:
        token = CancellationToken()
        if self.is_cancelled():
            token.cancel(self._reason or "cancelled")
        else:
            self._children.append(token)
        return token

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError(self._reason or "cancelled")

    async def wait(self) -> None:
        await self._event.wait()

async def run_with_deadline(
    awaitable: Awaitable[T],
    timeout_s: float,
    token: CancellationToken,
    *,
    grace_s: float = CANCEL_GRACE_S,
) -> T:
    """
    Race ``awaitable`` against a timer; first to settle wins.

    On timeout the token is cancelled, the pending task is cancelled and
    ``TimeoutError`` is raised. The cancelled task gets ``grace_s`` to
    unwind; one that ignores cancellation is detached and left to finish
    on its own, so the caller never waits past ``timeout_s + grace_s``.
    If the token is cancelled from outside before either settles,
    ``OperationCancelledError`` is raised.
    """
    task = asyncio.ensure_future(awaitable)
    watcher = asyncio.create_task(token.wait())
    try:
        done, _ = await asyncio.wait(
            {task, watcher},
            timeout=timeout_s,
            return_when=asyncio.FIRST_COMPLETED,
        )
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        watcher.cancel()

    if task in done:
        return task.result()

    if not done:
        token.cancel("deadline exceeded")
    task.cancel()
    await settle_cancelled({task}, grace_s)

    if watcher in done:
        raise OperationCancelledError(token.reason or "cancelled")
    raise TimeoutError(f"deadline of {timeout_s:.3f}s exceeded")

async def settle_cancelled(tasks: set[asyncio.Future], grace_s: float = CANCEL_GRACE_S) -> None:
    """
    Give already-cancelled tasks ``grace_s`` to unwind.

    Tasks that swallow the cancellation and keep running are detached:
    their outcome is collected whenever they settle.
    """
    if not tasks:
        return
    _, still_running = await asyncio.wait(tasks, timeout=grace_s)
    for task in tasks:
        if task in still_running:
            _detached.add(task)
            task.add_done_callback(_collect)
        else:
            _collect(task)
    if still_running:
        logger.debug(
            "%d cancelled invocation(s) still running after %.3fs grace, detached",
            len(still_running),
            grace_s,
        )

def _collect(task: asyncio.Future) -> None:
    """Retrieve a settled loser's outcome so it is never reported as unhandled."""
    _detached.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Cancelled invocation raised after deadline: %s", exc)

__all__ = ["CANCEL_GRACE_S", "CancellationToken", "run_with_deadline", "settle_cancelled"]
