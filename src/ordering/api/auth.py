"""Bearer token verification.

Tokens are issued elsewhere; this service only verifies them and reads the
``userId`` claim. Verification is stateless.
"""

import jwt
from fastapi import Header

from shared.config import get_settings
from shared.errors import InvalidTokenError, UnauthorizedError


def decode_token(token: str) -> dict:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError as exc:
        raise InvalidTokenError("Invalid or expired token") from exc


def current_user_id(authorization: str | None = Header(default=None)) -> str:
    """FastAPI dependency returning the authenticated user's id."""
    if not authorization or not authorization.startswith("Bearer "):
        raise UnauthorizedError("Missing or invalid token format")

    payload = decode_token(authorization.split(" ", 1)[1].strip())
    user_id = payload.get("userId")
    if not user_id:
        raise InvalidTokenError("Token carries no userId claim")
    return str(user_id)


def issue_token(user_id: str, **claims) -> str:
    """Sign a token for ``user_id``. Used by tests and local tooling."""
    settings = get_settings()
    return jwt.encode({"userId": user_id, **claims}, settings.jwt_secret, algorithm=settings.jwt_algorithm)
