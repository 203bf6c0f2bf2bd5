from __future__ import annotations

import os
from typing import Any, Optional

from ..adapters.token_storage import FileTokenStorage
from ..application.token_store import TokenStore
from .refresh import SessionExpiredHook
from .settings import ClientSettings
from .transport import ApiClient


def settings_from_env() -> ClientSettings:
    """
    Build ClientSettings from JOB_BOARD_* environment variables.

    Millisecond variables (timeout, refresh threshold, cache TTL) keep the
    units of the web front end and are converted to seconds here.
    """
    def _bool(key: str, default: bool = True) -> bool:
        raw = os.getenv(key)
        if raw is None:
            return default
        return str(raw).strip().lower() in {"1", "true", "yes", "on"}

    def _int(key: str, default: int) -> int:
        raw = os.getenv(key)
        if raw is None or not raw.strip():
            return default
        try:
            return int(raw)
        except ValueError as exc:
            raise RuntimeError(f"{key} must be an integer, got {raw!r}") from exc

    def _seconds_from_ms(key: str, default_ms: int) -> float:
        return _int(key, default_ms) / 1000.0

    defaults = ClientSettings()
    return ClientSettings(
        base_url=os.getenv("JOB_BOARD_API_URL") or defaults.base_url,
        timeout=_seconds_from_ms("JOB_BOARD_API_TIMEOUT", 10000),
        verify_ssl=_bool("VERIFY_SSL", True),
        token_storage_key=os.getenv("JOB_BOARD_TOKEN_STORAGE_KEY") or defaults.token_storage_key,
        refresh_token_storage_key=(
            os.getenv("JOB_BOARD_REFRESH_TOKEN_STORAGE_KEY") or defaults.refresh_token_storage_key
        ),
        refresh_threshold=_seconds_from_ms("JOB_BOARD_JWT_REFRESH_THRESHOLD", 300000),
        token_file=os.getenv("JOB_BOARD_TOKEN_FILE") or None,
        production=(os.getenv("JOB_BOARD_ENV") or "development").strip().lower() == "production",
        cache_ttl=_seconds_from_ms("JOB_BOARD_CACHE_TTL", 300000),
        max_retries=_int("JOB_BOARD_MAX_RETRIES", defaults.max_retries),
    )


def token_store_for(settings: ClientSettings) -> Optional[TokenStore]:
    """File-backed TokenStore when `token_file` is configured, else None (in-memory)."""
    if not settings.token_file:
        return None
    return TokenStore(
        FileTokenStorage(settings.token_file, secure=settings.production),
        access_key=settings.token_storage_key,
        refresh_key=settings.refresh_token_storage_key,
        access_max_age=settings.access_token_max_age,
        refresh_max_age=settings.refresh_token_max_age,
    )


def create_api_client_from_env(
    *,
    on_session_expired: Optional[SessionExpiredHook] = None,
    **overrides: Any,
) -> ApiClient:
    """Convenience factory using env-configured settings."""
    settings = settings_from_env()
    for name, value in overrides.items():
        if not hasattr(settings, name):
            raise TypeError(f"Unknown client setting: {name}")
        setattr(settings, name, value)
    return ApiClient(
        settings,
        token_store=token_store_for(settings),
        on_session_expired=on_session_expired,
    )
