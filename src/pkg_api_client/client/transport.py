from __future__ import annotations

import asyncio
import logging
import mimetypes
import os
import time
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, BinaryIO, Callable, Mapping, Optional, Union

import httpx

from ..application.token_store import TokenStore
from ..domain.entities import ApiResponse
from ..domain.exceptions import ApiError, NetworkError, http_error_class
from ..domain.value_objects import RequestConfig
from .cache import ResponseCache
from .dedup import RequestDeduplicator
from .middleware import (
    AuthMiddleware,
    CacheMiddleware,
    DedupMiddleware,
    Handler,
    RefreshMiddleware,
    RequestContext,
    RetryMiddleware,
    build_chain,
)
from .refresh import RefreshCoordinator, SessionExpiredHook
from .retry import RetryPolicy
from .settings import ClientSettings

logger = logging.getLogger(__name__)

UPLOAD_CHUNK_SIZE = 64 * 1024

FileInput = Union[str, "os.PathLike[str]", bytes, BinaryIO]


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def error_from_response(response: httpx.Response, request_id: str) -> ApiError:
    """
    Map a non-2xx response to the matching ApiError subclass.

    Uses the backend's `{"error": {...}}` envelope when present.
    """
    status = response.status_code
    cls = http_error_class(status)
    request_id = response.headers.get("X-Request-ID") or request_id

    try:
        payload = response.json() if response.content else None
    except ValueError:
        payload = None

    envelope = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(envelope, dict):
        details = envelope.get("details")
        return cls(
            str(envelope.get("code") or f"HTTP_{status}"),
            str(envelope.get("message") or response.reason_phrase or f"HTTP {status}"),
            status_code=status,
            details=details if isinstance(details, list) else None,
            timestamp=envelope.get("timestamp"),
            request_id=envelope.get("requestId") or request_id,
        )

    message = payload.get("message") if isinstance(payload, dict) else None
    return cls(
        f"HTTP_{status}",
        str(message or response.reason_phrase or f"HTTP {status}"),
        status_code=status,
        request_id=request_id,
    )


async def _progress_stream(
    payload: bytes,
    on_progress: Optional[Callable[[int], None]],
    chunk_size: int,
) -> AsyncIterator[bytes]:
    total = len(payload)
    sent = 0
    for start in range(0, total, chunk_size):
        chunk = payload[start:start + chunk_size]
        sent += len(chunk)
        yield chunk
        if on_progress is not None and total:
            on_progress(round(sent * 100 / total))


class HttpTransport:
    """
    Terminal stage of the pipeline: one HTTP exchange, no policy.

    - translates httpx failures into NetworkError
    - translates non-2xx responses into HttpError subclasses
    """

    def __init__(self, client: httpx.AsyncClient, upload_chunk_size: int = UPLOAD_CHUNK_SIZE) -> None:
        self._client = client
        self.upload_chunk_size = upload_chunk_size

    async def send(self, ctx: RequestContext) -> ApiResponse:
        config = ctx.config
        ctx.attempts += 1

        headers = dict(ctx.headers)
        headers.setdefault("X-Request-ID", ctx.request_id)

        kwargs: dict[str, Any] = {
            "params": config.params,
            "headers": headers,
            "timeout": config.timeout if config.timeout is not None else httpx.USE_CLIENT_DEFAULT,
        }
        if config.content is not None:
            # fresh stream per attempt so retries and replays can resend it
            headers["Content-Length"] = str(len(config.content))
            if config.content_type:
                headers["Content-Type"] = config.content_type
            kwargs["content"] = _progress_stream(config.content, config.on_progress, self.upload_chunk_size)
        elif config.body is not None:
            kwargs["json"] = config.body

        try:
            response = await self._client.request(config.method, config.url, **kwargs)
        except httpx.TimeoutException as exc:
            raise NetworkError(
                f"Request timed out: {config.method} {config.url}",
                timed_out=True,
                request_id=ctx.request_id,
            ) from exc
        except httpx.RequestError as exc:
            raise NetworkError(
                str(exc) or f"Network error: {config.method} {config.url}",
                request_id=ctx.request_id,
            ) from exc

        if response.is_error:
            raise error_from_response(response, ctx.request_id)

        return ApiResponse(
            status_code=response.status_code,
            data=_decode_body(response),
            headers=dict(response.headers),
        )


class ApiClient:
    """
    Async job-board API client.

    - attaches bearer tokens and refreshes them before they expire
    - refreshes once on 401 and replays, single-flight across callers
    - caches GET responses for a TTL and coalesces identical in-flight GETs
    - retries network errors and 5xx with exponential backoff

    Owns all of its state; create one per session and `close()` it.
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        *,
        token_store: Optional[TokenStore] = None,
        client: Optional[httpx.AsyncClient] = None,
        on_session_expired: Optional[SessionExpiredHook] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.s = settings or ClientSettings()
        self._client = client or httpx.AsyncClient(
            base_url=self.s.base_url,
            timeout=self.s.timeout,
            verify=self.s.verify_ssl,
            headers={"Content-Type": "application/json"},
        )
        self.token_store = token_store or TokenStore(
            access_key=self.s.token_storage_key,
            refresh_key=self.s.refresh_token_storage_key,
            access_max_age=self.s.access_token_max_age,
            refresh_max_age=self.s.refresh_token_max_age,
        )
        self.cache = ResponseCache(
            max_size=self.s.cache_max_size,
            default_ttl=self.s.cache_ttl,
            sweep_interval=self.s.cache_sweep_interval,
            clock=clock,
        )
        self.deduplicator = RequestDeduplicator()
        self.retry_policy = RetryPolicy(
            max_retries=self.s.max_retries,
            base_delay=self.s.retry_base_delay,
            idempotent_only=self.s.retry_idempotent_only,
        )
        self.refresher = RefreshCoordinator(
            self._client,
            self.token_store,
            refresh_path=self.s.refresh_path,
            timeout=self.s.refresh_timeout,
            login_route=self.s.login_route,
            on_session_expired=on_session_expired,
            on_tokens_cleared=self.cache.invalidate,
        )
        self.transport = HttpTransport(self._client)
        self._handler: Handler = build_chain(
            [
                CacheMiddleware(self.cache),
                DedupMiddleware(self.deduplicator),
                RefreshMiddleware(self.refresher, self.token_store),
                RetryMiddleware(self.retry_policy, sleep=sleep),
                AuthMiddleware(self.token_store, self.refresher, self.s.refresh_threshold),
            ],
            self.transport.send,
        )

    async def close(self) -> None:
        await self.cache.stop()
        await self._client.aclose()

    async def __aenter__(self) -> "ApiClient":
        self.cache.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------ #
    # token management
    # ------------------------------------------------------------------ #

    def get_access_token(self) -> Optional[str]:
        return self.token_store.get_access_token()

    def get_refresh_token(self) -> Optional[str]:
        return self.token_store.get_refresh_token()

    def set_tokens(self, access_token: str, refresh_token: str) -> None:
        self.token_store.set_tokens(access_token, refresh_token)

    def clear_tokens(self) -> None:
        """Forget the session: both tokens and every cached response."""
        self.token_store.clear_tokens()
        self.cache.invalidate()

    def is_token_expiring_soon(self) -> bool:
        return self.token_store.is_access_token_expiring_soon(self.s.refresh_threshold)

    def invalidate_cache(self, pattern: Optional[str] = None) -> int:
        return self.cache.invalidate(pattern)

    # ------------------------------------------------------------------ #
    # requests
    # ------------------------------------------------------------------ #

    async def send(self, config: RequestConfig) -> ApiResponse:
        """Run `config` through the pipeline and return the full response."""
        self.cache.start()
        retries = self.s.max_retries if config.retries is None else config.retries
        ctx = RequestContext(config=config, retries_remaining=retries)
        return await self._handler(ctx)

    async def request(self, config: RequestConfig) -> Any:
        """Run `config` through the pipeline and return the response body."""
        response = await self.send(config)
        return response.data

    async def get(self, url: str, params: Optional[Mapping[str, Any]] = None, **options: Any) -> Any:
        return await self.request(RequestConfig("GET", url, params=params, **options))

    async def post(self, url: str, data: Any = None, **options: Any) -> Any:
        return await self.request(RequestConfig("POST", url, body=data, **options))

    async def put(self, url: str, data: Any = None, **options: Any) -> Any:
        return await self.request(RequestConfig("PUT", url, body=data, **options))

    async def patch(self, url: str, data: Any = None, **options: Any) -> Any:
        return await self.request(RequestConfig("PATCH", url, body=data, **options))

    async def delete(self, url: str, **options: Any) -> Any:
        return await self.request(RequestConfig("DELETE", url, **options))

    async def upload_file(
        self,
        url: str,
        file: FileInput,
        on_progress: Optional[Callable[[int], None]] = None,
        *,
        field_name: str = "file",
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
        **options: Any,
    ) -> Any:
        """
        POST `file` as multipart/form-data.

        `file` may be a path, raw bytes or a binary file object.
        `on_progress` receives the integer percentage of the body sent.
        """
        name, payload = self._read_upload(file, filename)
        mime = content_type or mimetypes.guess_type(name)[0] or "application/octet-stream"

        # let httpx encode the multipart body, then stream it ourselves for progress;
        # built outside the client so its default Content-Type does not apply
        probe = httpx.Request("POST", "http://upload.local/", files={field_name: (name, payload, mime)})
        body = probe.read()

        options.setdefault("cache", False)
        config = RequestConfig(
            "POST",
            url,
            content=body,
            content_type=probe.headers["Content-Type"],
            on_progress=on_progress,
            **options,
        )
        return await self.request(config)

    @staticmethod
    def _read_upload(file: FileInput, filename: Optional[str]) -> tuple[str, bytes]:
        if isinstance(file, bytes):
            return filename or "upload", file
        if isinstance(file, (str, os.PathLike)):
            path = Path(file)
            return filename or path.name, path.read_bytes()
        data = file.read()
        name = filename or os.path.basename(getattr(file, "name", "") or "") or "upload"
        return name, data
