"""
pkg_api_client

Authenticated, caching, retrying async client for the job-board REST API.
The core is resource-agnostic: callers describe requests, the client deals
with tokens, refresh, caching, deduplication and transient failures.
"""

__version__ = "0.1.0"

from .domain.entities import ApiResponse, CacheEntry, TokenClaims, TokenPair
from .domain.constants import ErrorCode, UserRole
from .domain.exceptions import (
    ApiError,
    NetworkError,
    HttpError,
    ClientHttpError,
    UnauthorizedError,
    ServerError,
    RefreshFailedError,
)
from .domain.value_objects import RequestConfig, request_key
from .domain.ports import TokenStorage

from .adapters.jwt_decoder import decode_jwt_claims, decode_jwt_payload
from .adapters.token_storage import FileTokenStorage, MemoryTokenStorage

from .application.token_store import TokenStore
from .application.session import AuthSession

from .client import (
    ApiClient,
    ClientSettings,
    RefreshCoordinator,
    RequestDeduplicator,
    ResponseCache,
    RetryPolicy,
    create_api_client_from_env,
    settings_from_env,
)

__all__ = [
    "__version__",
    # domain core
    "ApiResponse",
    "CacheEntry",
    "TokenClaims",
    "TokenPair",
    "ErrorCode",
    "UserRole",
    "RequestConfig",
    "request_key",
    "TokenStorage",
    # exceptions
    "ApiError",
    "NetworkError",
    "HttpError",
    "ClientHttpError",
    "UnauthorizedError",
    "ServerError",
    "RefreshFailedError",
    # adapters
    "decode_jwt_claims",
    "decode_jwt_payload",
    "FileTokenStorage",
    "MemoryTokenStorage",
    # application
    "TokenStore",
    "AuthSession",
    # client
    "ApiClient",
    "ClientSettings",
    "RefreshCoordinator",
    "RequestDeduplicator",
    "ResponseCache",
    "RetryPolicy",
    "create_api_client_from_env",
    "settings_from_env",
]
