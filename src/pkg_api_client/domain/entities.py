from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .constants import UserRole


@dataclass(frozen=True, slots=True)
class TokenPair:
    """
    Access + refresh token pair as issued by the auth endpoints.
    """
    access_token: str
    refresh_token: str

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["TokenPair"]:
        """Build from an `{accessToken, refreshToken}` body, or None if incomplete."""
        if not isinstance(payload, dict):
            return None
        access = payload.get("accessToken")
        refresh = payload.get("refreshToken")
        if not isinstance(access, str) or not isinstance(refresh, str) or not access or not refresh:
            return None
        return cls(access_token=access, refresh_token=refresh)


@dataclass(frozen=True, slots=True)
class TokenClaims:
    """
    Claims read from an access token.

    Never verified client-side; signature checks are the server's job.
    """
    subject: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    issued_at: Optional[int] = None
    expires_at: Optional[int] = None

    @property
    def user_role(self) -> Optional[UserRole]:
        try:
            return UserRole(self.role) if self.role is not None else None
        except ValueError:
            return None

    def expires_within(self, seconds: float, now: float) -> bool:
        """True if the token expires in less than `seconds`, or has no expiry claim."""
        if self.expires_at is None:
            return True
        return self.expires_at - now < seconds


@dataclass(slots=True)
class CacheEntry:
    """
    A cached successful response.

    Valid iff `now - stored_at < ttl`.
    """
    key: str
    data: Any
    stored_at: float
    ttl: float

    def is_valid(self, now: float) -> bool:
        return now - self.stored_at < self.ttl


@dataclass(slots=True)
class ApiResponse:
    """
    Settled response travelling back through the middleware pipeline.
    """
    status_code: int
    data: Any = None
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300
