"""Uniform invocation of component operations that may be sync or async."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from typing import Any

async def invoke(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """
    Call ``fn`` and return its result.

    Coroutine functions are awaited directly. Plain functions run in a
    worker thread so the caller's deadline still applies to them; if such
    a function hands back an awaitable, that is awaited too.
    """
    if inspect.iscoroutinefunction(fn):
        return await fn(*args, **kwargs)
    result = await asyncio.to_thread(fn, *args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result
