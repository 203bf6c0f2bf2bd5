import logging
from typing import Any, Dict, Optional

import jwt

from ..domain.entities import TokenClaims

logger = logging.getLogger(__name__)

# Decode only: the client reads claims to schedule refreshes, the API verifies them.
_UNVERIFIED_OPTIONS = {
    "verify_signature": False,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iat": False,
    "verify_aud": False,
    "verify_iss": False,
    "verify_sub": False,
    "verify_jti": False,
}


def decode_jwt_payload(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Return the raw payload of a JWT without verifying it.

    Returns None for anything that is not a well-formed token; callers must
    treat None as "unknown" and assume the worst.
    """
    if not token or not isinstance(token, str):
        return None
    try:
        payload = jwt.decode(token, options=_UNVERIFIED_OPTIONS)
    except jwt.PyJWTError as exc:
        logger.debug("Could not decode token payload: %s", exc)
        return None
    return payload if isinstance(payload, dict) else None


def _int_claim(payload: Dict[str, Any], name: str) -> Optional[int]:
    value = payload.get(name)
    # bool is an int subclass; a boolean exp is not a timestamp
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def _str_claim(payload: Dict[str, Any], name: str) -> Optional[str]:
    value = payload.get(name)
    return value if isinstance(value, str) else None


def decode_jwt_claims(token: Optional[str]) -> Optional[TokenClaims]:
    """
    Decode `{sub, email, role, iat, exp}` from an access token.

    Pure function: no I/O, no clock, never raises.
    """
    payload = decode_jwt_payload(token)
    if payload is None:
        return None

    return TokenClaims(
        subject=_str_claim(payload, "sub"),
        email=_str_claim(payload, "email"),
        role=_str_claim(payload, "role"),
        issued_at=_int_claim(payload, "iat"),
        expires_at=_int_claim(payload, "exp"),
    )
