"""Coalescing of concurrent identical requests."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _retrieve_exception(task: "asyncio.Task[Any]") -> None:
    # marks the outcome as retrieved even when every waiter was cancelled
    if not task.cancelled():
        task.exception()


class RequestDeduplicator:
    """Share one in-flight call between all concurrent callers of a key.

    A key is registered only while its call is unsettled. The registration is
    removed in a ``finally`` inside the shared task, so it is gone before any
    caller sees the result or the exception.

    Any key is accepted here; the client pipeline only routes safe methods
    (GET, HEAD, OPTIONS) through it, since request keys ignore upload bodies
    and writes must reach the server once per call.
    """

    def __init__(self) -> None:
        self._pending: Dict[str, asyncio.Task[Any]] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    async def dedupe(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._pending.get(key)
        if task is not None:
            logger.debug("Joining in-flight request %s", key)
        else:
            task = asyncio.ensure_future(self._run(key, factory))
            task.add_done_callback(_retrieve_exception)
            self._pending[key] = task
        # a caller giving up must not cancel the call for everyone else
        return await asyncio.shield(task)

    async def _run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        try:
            return await factory()
        finally:
            self._pending.pop(key, None)
