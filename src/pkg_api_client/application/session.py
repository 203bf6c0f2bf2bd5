from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from ..domain.constants import ErrorCode, UserRole
from ..domain.entities import TokenPair
from ..domain.exceptions import ApiError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AuthSession:
    """
    Login / logout / current-user flows on top of an ApiClient.

    Token writes happen here (login, register) or in the refresh
    coordinator; logout clears them and drops any cached responses.
    """

    client: Any  # ApiClient; untyped to avoid a client <-> application import cycle
    clock: Callable[[], float] = field(default=time.time)

    login_path: str = "/auth/login"
    register_path: str = "/auth/register"
    logout_path: str = "/auth/logout"
    me_path: str = "/auth/me"

    # ------------------------------------------------------------------ #
    # flows
    # ------------------------------------------------------------------ #

    async def login(self, email: str, password: str) -> dict[str, Any]:
        """
        Exchange credentials for tokens and store them.

        Raises:
            ApiError (e.g. UnauthorizedError for bad credentials)
        """
        response = await self.client.post(
            self.login_path,
            {"email": email, "password": password},
            auth=False,
        )
        self._store(response)
        return response

    async def register(self, data: Mapping[str, Any]) -> dict[str, Any]:
        response = await self.client.post(self.register_path, dict(data), auth=False)
        self._store(response)
        return response

    async def logout(self) -> None:
        """
        Tell the server, then always clear local state.

        Sent with the tokens as they are now, bypassing proactive refresh,
        so the refresh token revoked is the one currently held.
        """
        try:
            refresh_token = self.client.get_refresh_token()
            if refresh_token:
                headers = {}
                access_token = self.client.get_access_token()
                if access_token:
                    headers["Authorization"] = f"Bearer {access_token}"
                await self.client.post(
                    self.logout_path,
                    {"refreshToken": refresh_token},
                    auth=False,
                    headers=headers,
                    retries=0,
                )
        except ApiError as exc:
            logger.warning("Logout call failed, clearing session anyway: %s", exc.message)
        finally:
            self.client.clear_tokens()

    async def refresh(self) -> bool:
        if not self.client.get_refresh_token():
            return False
        try:
            await self.client.refresher.refresh()
        except ApiError:
            return False
        return True

    async def current_user(self) -> Optional[dict[str, Any]]:
        if not self.client.get_access_token():
            return None
        try:
            return await self.client.get(self.me_path)
        except ApiError as exc:
            logger.debug("Could not load current user: %s", exc.message)
            return None

    # ------------------------------------------------------------------ #
    # token introspection
    # ------------------------------------------------------------------ #

    def is_authenticated(self) -> bool:
        claims = self.client.token_store.get_claims()
        if claims is None or claims.expires_at is None:
            return False
        return claims.expires_at > self.clock()

    def user_role(self) -> Optional[UserRole]:
        claims = self.client.token_store.get_claims()
        return claims.user_role if claims is not None else None

    def should_refresh(self) -> bool:
        return self.client.is_token_expiring_soon()

    # ------------------------------------------------------------------ #
    # internal
    # ------------------------------------------------------------------ #

    def _store(self, response: Any) -> None:
        pair = TokenPair.from_payload(response)
        if pair is None:
            raise ApiError(ErrorCode.INVALID_AUTH_RESPONSE.value, "Auth response did not contain tokens")
        self.client.set_tokens(pair.access_token, pair.refresh_token)
