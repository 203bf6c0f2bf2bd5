"""Time-bounded response cache with a periodic sweeper."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Any, Callable, Dict, Optional

from ..domain.entities import CacheEntry

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300.0
DEFAULT_MAX_SIZE = 100
DEFAULT_SWEEP_INTERVAL = 60.0


class ResponseCache:
    """TTL-keyed store of successful responses.

    Entries are kept in insertion order, which is also `stored_at` order
    because re-setting a key moves it to the end. Eviction therefore pops
    from the front.

    Parameters
    ----------
    max_size:
        Upper bound on the number of entries.
    default_ttl:
        TTL in seconds used when :meth:`set` is called without one.
    sweep_interval:
        Seconds between background sweeps; ``0`` disables the sweeper.
    clock:
        Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        default_ttl: float = DEFAULT_TTL,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        self.max_size = max_size
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._sweeper: Optional[asyncio.Task[None]] = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.lookup(key) is not None

    # ------------------------------------------------------------------ #
    # reads / writes
    # ------------------------------------------------------------------ #

    def lookup(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for `key` if present and still valid."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_valid(self._clock()):
            del self._entries[key]
            return None
        return entry

    def get(self, key: str, default: Any = None) -> Any:
        entry = self.lookup(key)
        return entry.data if entry is not None else default

    def set(self, key: str, data: Any, ttl: Optional[float] = None) -> None:
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(
            key=key,
            data=data,
            stored_at=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl,
        )
        self._evict_overflow()

    def invalidate(self, pattern: Optional[str] = None) -> int:
        """
        Drop cached entries.

        Without a pattern everything goes. With one, every key containing it
        as a substring is removed, so "jobs" also matches "/jobs-archive".
        """
        if pattern is None:
            removed = len(self._entries)
            self._entries.clear()
        else:
            doomed = [k for k in self._entries if pattern in k]
            for k in doomed:
                del self._entries[k]
            removed = len(doomed)
        logger.debug("Invalidated %d cache entries (pattern=%r)", removed, pattern)
        return removed

    # ------------------------------------------------------------------ #
    # eviction
    # ------------------------------------------------------------------ #

    def sweep(self) -> int:
        """Remove expired entries, then the oldest ones while over `max_size`."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if not e.is_valid(now)]
        for k in expired:
            del self._entries[k]
        removed = len(expired) + self._evict_overflow()
        if removed:
            logger.debug("Cache sweep removed %d entries, %d remain", removed, len(self._entries))
        return removed

    def _evict_overflow(self) -> int:
        evicted = 0
        while len(self._entries) > self.max_size:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            evicted += 1
        return evicted

    # ------------------------------------------------------------------ #
    # background sweeper
    # ------------------------------------------------------------------ #

    @property
    def sweeping(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def start(self) -> None:
        """Start the periodic sweeper on the running loop. Idempotent."""
        if self.sweep_interval <= 0 or self.sweeping:
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())

    async def stop(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.sweep()
