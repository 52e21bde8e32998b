"""Bearer-token authentication for API routes.

Tokens are issued by the external identity provider and signed with a
shared secret. The backend only verifies them; the ``sub`` claim is the
application user id.
"""

import logging
from typing import Optional

import jwt
from fastapi import Header, HTTPException, status

from config import settings

logger = logging.getLogger(__name__)


def decode_token(token: str) -> dict:
    """Verify a JWT and return its claims.

    Raises:
        jwt.InvalidTokenError: Signature, expiry or audience check failed
    """
    return jwt.decode(
        token,
        settings.AUTH_JWT_SECRET,
        algorithms=settings.AUTH_JWT_ALGORITHMS,
        audience=settings.AUTH_JWT_AUDIENCE,
        options={"verify_exp": True, "require": ["sub"]},
    )


def get_current_user_id(
    authorization: Optional[str] = Header(None, description="Bearer token from the identity provider"),
) -> str:
    """Verify the bearer token and return the caller's user id.

    Raises:
        HTTPException: 401 if the token is missing, malformed, or invalid
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header",
        )

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization format. Use: Bearer <token>",
        )

    if not settings.AUTH_JWT_SECRET:
        logger.error("AUTH_JWT_SECRET is not configured, rejecting request")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )

    try:
        payload = decode_token(parts[1])
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
        )
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing user ID",
        )
    return str(user_id)


def verify_user_access(requested_user_id: Optional[str], current_user_id: str) -> None:
    """Reject requests that name a user other than the caller.

    Raises:
        HTTPException: 403 if the ids differ
    """
    if requested_user_id and requested_user_id != current_user_id:
        logger.warning(
            "User %s attempted to act for user %s", current_user_id, requested_user_id
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unauthorized: user ID mismatch",
        )
