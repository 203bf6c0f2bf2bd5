from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from .constants import ErrorCode, UNKNOWN_REQUEST_ID


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ApiError(Exception):
    """
    Base error surfaced to callers of the API client.

    Mirrors the error shape returned by the backend:
    `{code, message, details?, timestamp, requestId}`.
    """

    def __init__(
        self,
        code: str,
        message: str,
        *,
        status_code: Optional[int] = None,
        details: Optional[list[Any]] = None,
        timestamp: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        self.timestamp = timestamp or _utc_now_iso()
        self.request_id = request_id or UNKNOWN_REQUEST_ID

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "timestamp": self.timestamp,
            "requestId": self.request_id,
        }
        if self.details is not None:
            data["details"] = self.details
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class NetworkError(ApiError):
    """Raised when the server could not be reached or the request timed out."""

    def __init__(self, message: str, *, timed_out: bool = False, request_id: Optional[str] = None) -> None:
        super().__init__(ErrorCode.NETWORK_ERROR.value, message, request_id=request_id)
        self.timed_out = timed_out


class HttpError(ApiError):
    """Raised when the server answered with a non-2xx status."""
    pass


class ClientHttpError(HttpError):
    """4xx response."""
    pass


class UnauthorizedError(ClientHttpError):
    """401 response; triggers the refresh-and-replay path."""
    pass


class ServerError(HttpError):
    """5xx response."""
    pass


class RefreshFailedError(ApiError):
    """Raised when the session could not be refreshed. Terminal for the session."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(ErrorCode.REFRESH_FAILURE.value, message, status_code=status_code)


def http_error_class(status_code: int) -> type[HttpError]:
    if status_code == 401:
        return UnauthorizedError
    if 400 <= status_code < 500:
        return ClientHttpError
    if status_code >= 500:
        return ServerError
    return HttpError
