# src/pkg_api_client/domain/value_objects.py

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional


def canonical_json(value: Any) -> str:
    """
    Serialize a value so that dict key order never changes the result.
    None serializes to an empty string.
    """
    if value is None:
        return ""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def request_key(method: str, url: str, params: Any = None, body: Any = None) -> str:
    """
    Canonical identity of a request, shared by the response cache and the
    in-flight deduplicator.
    """
    return f"{method.upper()} {url} {canonical_json(params)} {canonical_json(body)}"


@dataclass(frozen=True, slots=True)
class RequestConfig:
    """
    Declarative description of one API call.

    - cache:     None means "cache GET requests only"
    - cache_ttl: seconds, None means the client default
    - retries:   retry budget for transient failures, None means the client default
    - timeout:   seconds, None means the client default
    - auth:      attach the bearer token and recover from 401 via refresh

    `content`, `content_type` and `on_progress` are only used for raw
    uploads (see `ApiClient.upload_file`).
    """

    method: str
    url: str
    params: Optional[Mapping[str, Any]] = None
    body: Any = None
    headers: Optional[Mapping[str, str]] = None
    cache: Optional[bool] = None
    cache_ttl: Optional[float] = None
    retries: Optional[int] = None
    timeout: Optional[float] = None
    auth: bool = True
    content: Optional[bytes] = None
    content_type: Optional[str] = None
    on_progress: Optional[Callable[[int], None]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())
        if self.retries is not None and self.retries < 0:
            raise ValueError(f"retries must be >= 0, got {self.retries}")

    @property
    def key(self) -> str:
        return request_key(self.method, self.url, self.params, self.body)

    @property
    def cacheable(self) -> bool:
        if self.cache is not None:
            return self.cache
        return self.method == "GET"
