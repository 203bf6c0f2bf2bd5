from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..application.token_store import (
    DEFAULT_ACCESS_TOKEN_KEY,
    DEFAULT_ACCESS_TOKEN_MAX_AGE,
    DEFAULT_REFRESH_THRESHOLD,
    DEFAULT_REFRESH_TOKEN_KEY,
    DEFAULT_REFRESH_TOKEN_MAX_AGE,
)


@dataclass(slots=True)
class ClientSettings:
    """
    API client connection, caching and retry settings.

    Host code decides how to construct this (env, config file, etc.).
    All durations are in seconds.
    """
    base_url: str = "http://localhost:3001/api/v1"
    timeout: float = 10.0
    verify_ssl: bool = True

    # Auth endpoints / routes
    refresh_path: str = "/auth/refresh"
    refresh_timeout: float = 5.0
    login_route: str = "/auth/login"

    # Token persistence
    token_storage_key: str = DEFAULT_ACCESS_TOKEN_KEY
    refresh_token_storage_key: str = DEFAULT_REFRESH_TOKEN_KEY
    access_token_max_age: float = DEFAULT_ACCESS_TOKEN_MAX_AGE
    refresh_token_max_age: float = DEFAULT_REFRESH_TOKEN_MAX_AGE
    refresh_threshold: float = DEFAULT_REFRESH_THRESHOLD
    token_file: Optional[str] = None
    production: bool = False

    # Response cache
    cache_ttl: float = 300.0
    cache_max_size: int = 100
    cache_sweep_interval: float = 60.0

    # Retry
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_idempotent_only: bool = False
