"""Middleware pipeline for API requests.

Each stage is an async callable ``(ctx, next_handler) -> ApiResponse`` and
may inspect the request, short-circuit it, or act on the outcome. The client
composes them outermost-first:

    cache -> dedup -> refresh-on-401 -> retry -> auth -> send
"""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Optional, Protocol, Sequence

from tenacity import RetryCallState

from ..application.token_store import TokenStore
from ..domain.constants import SAFE_METHODS
from ..domain.entities import ApiResponse
from ..domain.exceptions import UnauthorizedError
from ..domain.value_objects import RequestConfig
from .cache import ResponseCache
from .dedup import RequestDeduplicator
from .refresh import RefreshCoordinator
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RequestContext:
    """Per-request state shared by all stages."""

    config: RequestConfig
    retries_remaining: int
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    headers: Dict[str, str] = field(default_factory=dict)
    token: Optional[str] = None
    auth_retried: bool = False
    attempts: int = 0
    from_cache: bool = False

    def __post_init__(self) -> None:
        if self.config.headers:
            self.headers.update(self.config.headers)

    @property
    def key(self) -> str:
        return self.config.key

    @property
    def method(self) -> str:
        return self.config.method


Handler = Callable[[RequestContext], Awaitable[ApiResponse]]


class Middleware(Protocol):
    async def __call__(self, ctx: RequestContext, next_handler: Handler) -> ApiResponse:
        ...


def build_chain(middlewares: Sequence[Middleware], handler: Handler) -> Handler:
    """Compose `middlewares` around `handler`; the first one runs outermost."""

    def _link(mw: Middleware, nxt: Handler) -> Handler:
        async def _call(ctx: RequestContext) -> ApiResponse:
            return await mw(ctx, nxt)

        return _call

    chain = handler
    for mw in reversed(middlewares):
        chain = _link(mw, chain)
    return chain


# ---------------------------------------------------------------------- #
# stages
# ---------------------------------------------------------------------- #


def _detached(response: ApiResponse) -> ApiResponse:
    return ApiResponse(response.status_code, copy.deepcopy(response.data), dict(response.headers))


class CacheMiddleware:
    """Serve cacheable requests from the cache; store 2xx results.

    Entries are stored and served as copies, so callers may mutate what they
    get back without touching the cache.
    """

    def __init__(self, cache: ResponseCache) -> None:
        self.cache = cache

    async def __call__(self, ctx: RequestContext, next_handler: Handler) -> ApiResponse:
        if not ctx.config.cacheable:
            return await next_handler(ctx)

        entry = self.cache.lookup(ctx.key)
        if entry is not None:
            logger.debug("Cache hit %s", ctx.key)
            ctx.from_cache = True
            return _detached(entry.data)

        logger.debug("Cache miss %s", ctx.key)
        response = await next_handler(ctx)
        if response.ok:
            self.cache.set(ctx.key, _detached(response), ttl=ctx.config.cache_ttl)
        return response


class DedupMiddleware:
    """Coalesce concurrent identical requests for safe methods."""

    def __init__(
        self,
        deduplicator: RequestDeduplicator,
        methods: FrozenSet[str] = SAFE_METHODS,
    ) -> None:
        self.deduplicator = deduplicator
        self.methods = methods

    async def __call__(self, ctx: RequestContext, next_handler: Handler) -> ApiResponse:
        if ctx.method not in self.methods:
            return await next_handler(ctx)
        return await self.deduplicator.dedupe(ctx.key, lambda: next_handler(ctx))


class RefreshMiddleware:
    """On 401, refresh the session once and replay the request."""

    def __init__(self, coordinator: RefreshCoordinator, token_store: TokenStore) -> None:
        self.coordinator = coordinator
        self.token_store = token_store

    async def __call__(self, ctx: RequestContext, next_handler: Handler) -> ApiResponse:
        try:
            return await next_handler(ctx)
        except UnauthorizedError:
            if not ctx.config.auth or ctx.auth_retried:
                raise
            ctx.auth_retried = True

            current = self.token_store.get_access_token()
            if current is not None and current != ctx.token:
                logger.debug("[%s] Token changed while in flight, replaying", ctx.request_id)
            elif self.token_store.get_refresh_token() is None:
                # anonymous request, nothing to refresh
                raise
            else:
                await self.coordinator.refresh()

        logger.debug("[%s] Replaying %s %s after refresh", ctx.request_id, ctx.method, ctx.config.url)
        return await next_handler(ctx)


class RetryMiddleware:
    """Retry transient failures with exponential backoff."""

    def __init__(
        self,
        policy: RetryPolicy,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.policy = policy
        self._sleep = sleep

    async def __call__(self, ctx: RequestContext, next_handler: Handler) -> ApiResponse:
        def _before_sleep(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome is not None else None
            delay = state.next_action.sleep if state.next_action is not None else 0.0
            logger.warning(
                "[%s] %s %s failed with %s, retrying in %.1fs (%d left)",
                ctx.request_id,
                ctx.method,
                ctx.config.url,
                getattr(exc, "code", type(exc).__name__),
                delay,
                ctx.retries_remaining - 1,
            )
            ctx.retries_remaining -= 1

        retrying = self.policy.retrying(
            ctx.retries_remaining,
            ctx.method,
            sleep=self._sleep,
            before_sleep=_before_sleep,
        )
        return await retrying(next_handler, ctx)


class AuthMiddleware:
    """Attach the bearer token, refreshing it first if it is about to expire."""

    def __init__(
        self,
        token_store: TokenStore,
        coordinator: RefreshCoordinator,
        threshold: float,
    ) -> None:
        self.token_store = token_store
        self.coordinator = coordinator
        self.threshold = threshold

    async def __call__(self, ctx: RequestContext, next_handler: Handler) -> ApiResponse:
        if not ctx.config.auth:
            # only headers the caller set explicitly
            ctx.token = None
            return await next_handler(ctx)

        if (
            self.token_store.get_refresh_token() is not None
            and self.token_store.is_access_token_expiring_soon(self.threshold)
        ):
            await self.coordinator.refresh()

        token = self.token_store.get_access_token()
        ctx.token = token
        if token:
            ctx.headers["Authorization"] = f"Bearer {token}"
        else:
            ctx.headers.pop("Authorization", None)
        return await next_handler(ctx)
