"""Single-flight token refresh."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

import httpx

from ..application.token_store import TokenStore
from ..domain.entities import TokenPair
from ..domain.exceptions import RefreshFailedError

logger = logging.getLogger(__name__)

SessionExpiredHook = Callable[[str], Any]


def _retrieve_exception(task: "asyncio.Task[Any]") -> None:
    # marks the outcome as retrieved even when every waiter was cancelled
    if not task.cancelled():
        task.exception()


def _log_session_expired(login_route: str) -> None:
    logger.warning("Session expired; user must sign in again at %s", login_route)


class RefreshCoordinator:
    """Ensure at most one refresh call is outstanding.

    The shared task is stored *before* the first suspension point, so a
    second caller can never observe "nothing in flight" while a refresh is
    being started. It is cleared in a ``finally`` inside the task itself.

    On failure the session is terminal. Tokens are cleared and
    ``on_tokens_cleared`` drops state tied to them, such as cached
    responses. The ``on_session_expired`` hook is called once with the login
    route, and every waiter receives the same :class:`RefreshFailedError`.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        token_store: TokenStore,
        *,
        refresh_path: str = "/auth/refresh",
        timeout: float = 5.0,
        login_route: str = "/auth/login",
        on_session_expired: Optional[SessionExpiredHook] = None,
        on_tokens_cleared: Optional[Callable[[], Any]] = None,
    ) -> None:
        self._client = client
        self._token_store = token_store
        self.refresh_path = refresh_path
        self.timeout = timeout
        self.login_route = login_route
        self._on_session_expired = on_session_expired or _log_session_expired
        self._on_tokens_cleared = on_tokens_cleared
        self._in_flight: Optional[asyncio.Task[str]] = None
        self.refresh_count = 0

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None

    async def refresh(self) -> str:
        """Return a fresh access token, joining any refresh already running."""
        task = self._in_flight
        if task is None:
            task = asyncio.ensure_future(self._run())
            task.add_done_callback(_retrieve_exception)
            self._in_flight = task
        else:
            logger.debug("Joining in-flight token refresh")
        return await asyncio.shield(task)

    async def _run(self) -> str:
        try:
            return await self._perform_refresh()
        except RefreshFailedError as exc:
            logger.warning("Token refresh failed: %s", exc.message)
            self._token_store.clear_tokens()
            if self._on_tokens_cleared is not None:
                self._on_tokens_cleared()
            await self._notify_session_expired()
            raise
        finally:
            self._in_flight = None

    async def _perform_refresh(self) -> str:
        refresh_token = self._token_store.get_refresh_token()
        if not refresh_token:
            raise RefreshFailedError("No refresh token available")

        self.refresh_count += 1
        logger.info("Refreshing access token")
        try:
            resp = await self._client.post(
                self.refresh_path,
                json={"refreshToken": refresh_token},
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            raise RefreshFailedError(f"Refresh request failed: {exc}") from exc

        if not resp.is_success:
            raise RefreshFailedError(
                f"Refresh rejected with status {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            raise RefreshFailedError("Refresh response is not JSON") from exc

        pair = TokenPair.from_payload(payload)
        if pair is None:
            raise RefreshFailedError("Refresh response is missing tokens")

        self._token_store.set_tokens(pair.access_token, pair.refresh_token)
        return pair.access_token

    async def _notify_session_expired(self) -> None:
        try:
            result = self._on_session_expired(self.login_route)
            if inspect.isawaitable(result):
                await result
        except Exception:  # noqa: BLE001
            # the RefreshFailedError still propagates
            logger.exception("on_session_expired hook raised")
