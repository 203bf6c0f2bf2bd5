from enum import Enum


class ErrorCode(str, Enum):
    NETWORK_ERROR = "NETWORK_ERROR"
    REFRESH_FAILURE = "REFRESH_FAILURE"
    INVALID_AUTH_RESPONSE = "INVALID_AUTH_RESPONSE"


class UserRole(str, Enum):
    ADMIN = "admin"
    COMPANY = "company"
    JOB_SEEKER = "job_seeker"


SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})

UNKNOWN_REQUEST_ID = "unknown"
