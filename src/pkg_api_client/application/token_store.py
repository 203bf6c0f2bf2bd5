from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from ..adapters.jwt_decoder import decode_jwt_claims
from ..adapters.token_storage import MemoryTokenStorage
from ..domain.entities import TokenClaims, TokenPair
from ..domain.ports import TokenStorage

logger = logging.getLogger(__name__)

DEFAULT_ACCESS_TOKEN_KEY = "job_board_token"
DEFAULT_REFRESH_TOKEN_KEY = "job_board_refresh_token"
DEFAULT_ACCESS_TOKEN_MAX_AGE = 15 * 60.0
DEFAULT_REFRESH_TOKEN_MAX_AGE = 7 * 24 * 3600.0
DEFAULT_REFRESH_THRESHOLD = 300.0


class TokenStore:
    """
    Owns the access/refresh token pair.

    Only login, refresh and logout should write through this object; every
    other component reads.
    """

    def __init__(
        self,
        storage: Optional[TokenStorage] = None,
        *,
        access_key: str = DEFAULT_ACCESS_TOKEN_KEY,
        refresh_key: str = DEFAULT_REFRESH_TOKEN_KEY,
        access_max_age: float = DEFAULT_ACCESS_TOKEN_MAX_AGE,
        refresh_max_age: float = DEFAULT_REFRESH_TOKEN_MAX_AGE,
        decoder: Callable[[Optional[str]], Optional[TokenClaims]] = decode_jwt_claims,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._storage: TokenStorage = storage if storage is not None else MemoryTokenStorage(clock=clock)
        self.access_key = access_key
        self.refresh_key = refresh_key
        self.access_max_age = access_max_age
        self.refresh_max_age = refresh_max_age
        self._decode = decoder
        self._clock = clock

    def get_access_token(self) -> Optional[str]:
        return self._storage.get(self.access_key)

    def get_refresh_token(self) -> Optional[str]:
        return self._storage.get(self.refresh_key)

    def get_tokens(self) -> Optional[TokenPair]:
        access = self.get_access_token()
        refresh = self.get_refresh_token()
        if access is None or refresh is None:
            return None
        return TokenPair(access_token=access, refresh_token=refresh)

    def set_tokens(self, access_token: str, refresh_token: str) -> None:
        """Replace the stored pair in a single storage write."""
        self._storage.set_many(
            {
                self.access_key: (access_token, self.access_max_age),
                self.refresh_key: (refresh_token, self.refresh_max_age),
            }
        )
        logger.debug("Stored new token pair")

    def clear_tokens(self) -> None:
        self._storage.delete(self.access_key, self.refresh_key)

    def get_claims(self) -> Optional[TokenClaims]:
        return self._decode(self.get_access_token())

    def is_access_token_expiring_soon(self, threshold: float = DEFAULT_REFRESH_THRESHOLD) -> bool:
        """
        True if the access token expires within `threshold` seconds.

        Missing or undecodable tokens count as expiring, so callers refresh
        instead of sending a dead token.
        """
        claims = self.get_claims()
        if claims is None:
            return True
        return claims.expires_within(threshold, now=self._clock())
