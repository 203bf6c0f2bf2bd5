"""
pkg_api_client.client

Resilient async HTTP client for the job-board API:

- ApiClient: httpx-based facade (get/post/put/patch/delete/upload_file).
- ResponseCache: TTL cache of GET responses with periodic sweep.
- RequestDeduplicator: one network call per concurrent identical request.
- RetryPolicy: exponential backoff for network errors and 5xx.
- RefreshCoordinator: single-flight token refresh on 401 / near expiry.
- build_chain + *Middleware: the request pipeline the client is built from.
- settings_from_env / create_api_client_from_env:
    convenience wrappers for env-driven scripts and the CLI.
"""

from __future__ import annotations

from .cache import ResponseCache
from .dedup import RequestDeduplicator
from .env import create_api_client_from_env, settings_from_env
from .middleware import (
    AuthMiddleware,
    CacheMiddleware,
    DedupMiddleware,
    RefreshMiddleware,
    RequestContext,
    RetryMiddleware,
    build_chain,
)
from .refresh import RefreshCoordinator
from .retry import RetryPolicy
from .settings import ClientSettings
from .transport import ApiClient, HttpTransport

__all__ = [
    "ApiClient",
    "AuthMiddleware",
    "CacheMiddleware",
    "ClientSettings",
    "DedupMiddleware",
    "HttpTransport",
    "RefreshCoordinator",
    "RefreshMiddleware",
    "RequestContext",
    "RequestDeduplicator",
    "ResponseCache",
    "RetryMiddleware",
    "RetryPolicy",
    "build_chain",
    "create_api_client_from_env",
    "settings_from_env",
]
