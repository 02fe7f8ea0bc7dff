"""Local bearer-token introspection.

Tokens are decoded without verifying the signature. The answers are for UI
gating only (showing the admin menu, deciding when to refresh); the backend
re-authorizes every request and is the only authority.
"""

from __future__ import annotations

import logging
import time

import jwt
from pydantic import ValidationError

from taleforge.models import TokenPayload

logger = logging.getLogger(__name__)

ADMINISTRATOR_ROLE = "Administrator"

_DECODE_OPTIONS = {
    "verify_signature": False,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iat": False,
    "verify_aud": False,
    "verify_iss": False,
    "verify_sub": False,
    "verify_jti": False,
}


def get_token_payload(token: str | None) -> TokenPayload | None:
    """Decode the token's claims, or return None if it is not a readable JWT."""
    if not token:
        return None
    try:
        claims = jwt.decode(token, options=_DECODE_OPTIONS)
        return TokenPayload.model_validate(claims)
    except (jwt.PyJWTError, ValidationError) as e:
        logger.warning("Failed to decode JWT token: %s", e)
        return None


def is_token_valid(token: str | None) -> bool:
    payload = get_token_payload(token)
    if payload is None or payload.exp is None:
        return False
    return payload.exp > time.time()


def expires_within(token: str | None, seconds: float) -> bool:
    """True if the token's expiry falls inside the next `seconds` (or has passed).

    Undecodable tokens and tokens without `exp` return False.
    """
    payload = get_token_payload(token)
    if payload is None or payload.exp is None:
        return False
    return payload.exp - time.time() < seconds


def has_administrator_role(token: str | None) -> bool:
    payload = get_token_payload(token)
    if payload is None:
        return False
    return payload.role == ADMINISTRATOR_ROLE


def get_user_email(token: str | None) -> str | None:
    payload = get_token_payload(token)
    if payload is None:
        return None
    return payload.email or None
