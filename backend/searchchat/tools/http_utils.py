"""Shared HTTP helpers for the web tools"""
import asyncio
from typing import Awaitable, Optional, TypeVar

import httpx

T = TypeVar("T")


class WebToolError(RuntimeError):
    pass


class ToolAborted(WebToolError):
    """The turn was abandoned while the request was in flight"""


async def run_abortable(coro: Awaitable[T], abort_event: Optional[asyncio.Event] = None) -> T:
    """
    Await coro, cancelling it as soon as abort_event is set

    Cancelling the awaiting task cancels coro as well, so an abandoned turn
    never leaves an HTTP request running.

    Raises:
        ToolAborted: abort_event fired first
    """
    if abort_event is None:
        return await coro

    task = asyncio.ensure_future(coro)
    if abort_event.is_set():
        task.cancel()
        raise ToolAborted("Request aborted")

    waiter = asyncio.ensure_future(abort_event.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task.done():
        return task.result()

    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    raise ToolAborted("Request aborted")


async def read_capped(resp: httpx.Response, max_bytes: int) -> tuple[bytes, bool]:
    """Body of a streamed response cut at max_bytes; returns (body, was_cut)

    Stops pulling from the connection as soon as the cap is passed.
    """
    chunks = []
    size = 0
    async for chunk in resp.aiter_bytes():
        chunks.append(chunk)
        size += len(chunk)
        if size > max_bytes:
            return b"".join(chunks)[:max_bytes], True
    return b"".join(chunks), False
