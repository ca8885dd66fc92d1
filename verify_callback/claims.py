"""
Read identity claims from a provider access token without verifying it.
Only used to label logs and fill in the user when the verify response omits it;
never for authorization decisions.
"""
import logging
from typing import Any

import jwt

logger = logging.getLogger(__name__)


def peek_claims(access_token: str) -> dict[str, Any]:
    try:
        return jwt.decode(access_token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        logger.debug("Could not decode access token claims: %s", e)
        return {}


def user_from_claims(access_token: str) -> dict[str, Any]:
    claims = peek_claims(access_token)
    user: dict[str, Any] = {}
    if claims.get("sub"):
        user["id"] = claims["sub"]
    if claims.get("email"):
        user["email"] = claims["email"]
    if claims.get("user_metadata"):
        user["user_metadata"] = claims["user_metadata"]
    return user
