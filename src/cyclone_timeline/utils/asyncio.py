from __future__ import annotations

import asyncio
import contextlib
import functools
from typing import Any, Callable, TypeVar

from cyclone_timeline.utils.logger import log_debug, log_warn

T = TypeVar("T")


async def to_thread_limited(
    fn: Callable[..., T],
    *args: Any,
    logger: Any,
    op: str,
    timeout_s: float | None = None,
    limiter: asyncio.Semaphore | None = None,
    **kwargs: Any,
) -> T:
    """
    Run a blocking callable in the default executor without blocking the loop.

    ``limiter`` caps how many calls sharing it run in worker threads at once;
    the caller owns it (asyncio primitives are bound to one event loop). A
    timeout raises ``asyncio.TimeoutError``; the worker thread itself is not
    interrupted.
    """
    async with limiter if limiter is not None else contextlib.nullcontext():
        call = functools.partial(fn, *args, **kwargs)
        log_debug(logger, "asyncio.to_thread.start", op=op)
        try:
            if timeout_s is None:
                return await asyncio.to_thread(call)
            return await asyncio.wait_for(asyncio.to_thread(call), timeout=timeout_s)
        except asyncio.TimeoutError:
            log_warn(logger, "asyncio.to_thread.timeout", op=op, timeout_s=timeout_s)
            raise
