from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_exponential

from ..domain.constants import IDEMPOTENT_METHODS
from ..domain.exceptions import ApiError, NetworkError, ServerError

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0


class RetryPolicy:
    """
    Decides whether a failed attempt is retried, and after how long.

    - retried: network failures, timeouts, 5xx
    - not retried: 4xx (401 has its own refresh path), refresh failures
    - delay: base_delay * 2 ** (budget - retries_remaining), no jitter,
      i.e. 1s, 2s, 4s for a budget of 3

    Methods are treated uniformly unless `idempotent_only` is set, in which
    case POST/PATCH are never retried.
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY,
        *,
        idempotent_only: bool = False,
    ) -> None:
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.idempotent_only = idempotent_only

    @staticmethod
    def is_transient(error: BaseException) -> bool:
        return isinstance(error, (NetworkError, ServerError))

    def should_retry(
        self,
        error: BaseException,
        retries_remaining: int,
        method: Optional[str] = None,
    ) -> bool:
        if retries_remaining <= 0 or not isinstance(error, ApiError):
            return False
        if not self.is_transient(error):
            return False
        if self.idempotent_only and method is not None and method.upper() not in IDEMPOTENT_METHODS:
            return False
        return True

    def backoff(self, retries_remaining: int, budget: Optional[int] = None) -> float:
        """Seconds to wait before the attempt that consumes `retries_remaining`."""
        total = self.max_retries if budget is None else budget
        exponent = max(total - retries_remaining, 0)
        return self.base_delay * (2 ** exponent)

    def retrying(
        self,
        budget: int,
        method: Optional[str] = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        before_sleep: Optional[Callable[[RetryCallState], None]] = None,
    ) -> AsyncRetrying:
        """
        A tenacity controller running at most `1 + budget` attempts.

        tenacity's exponential wait yields the same schedule as `backoff`.
        The last error is re-raised unchanged once retrying stops.
        """

        def _retry(state: RetryCallState) -> bool:
            if state.outcome is None or not state.outcome.failed:
                return False
            remaining = budget - (state.attempt_number - 1)
            return self.should_retry(state.outcome.exception(), remaining, method)

        return AsyncRetrying(
            stop=stop_after_attempt(budget + 1),
            wait=wait_exponential(multiplier=self.base_delay),
            retry=_retry,
            sleep=sleep,
            before_sleep=before_sleep,
            reraise=True,
        )
