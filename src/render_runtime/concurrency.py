"""
Async concurrency helpers.

The runtime is async-first, but some boundary SDKs (boto3 uploads, blocking
filesystem calls) are synchronous and must run without stalling the event loop
that drives every job's pipeline.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Awaitable, Callable
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, TypeVar

T = TypeVar("T")


def _default_max_workers() -> int:
    # Mirrors ThreadPoolExecutor's default sizing heuristics.
    return min(32, (os.cpu_count() or 1) + 4)


_EXECUTOR = ThreadPoolExecutor(max_workers=_default_max_workers(), thread_name_prefix="render-runtime")


async def run_sync(func: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
    """
    Run a synchronous callable in the shared thread pool.

    The concurrent future is polled rather than bridged with
    ``call_soon_threadsafe`` so a wedged cross-thread wakeup can never leave a
    pipeline awaiting a finished upload.
    """
    future = _EXECUTOR.submit(partial(func, *args, **kwargs))
    try:
        while True:
            if future.done():
                return future.result()
            await asyncio.sleep(0.001)
    except asyncio.CancelledError:
        future.cancel()
        raise


async def with_timeout(awaitable: Awaitable[T], timeout: float | None) -> T:
    """Await with an optional deadline; ``None`` waits indefinitely."""
    if timeout is None:
        return await awaitable
    return await asyncio.wait_for(awaitable, timeout=timeout)


__all__ = ["run_sync", "with_timeout"]
