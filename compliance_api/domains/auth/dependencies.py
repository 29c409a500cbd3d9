# compliance_api/domains/auth/dependencies.py
import jwt
from fastapi import Depends, Header

from compliance_api.core.settings import settings
from compliance_api.shared.exceptions import (
    ConfigurationError,
    InvalidTokenError,
    NotAuthorizedError,
)

from .types import JwtPayload


def decode_jwt(token: str) -> JwtPayload:
    """Verify an HS256 bearer token signed with JWT_SECRET."""
    if not settings.JWT_SECRET:
        raise ConfigurationError("JWT_SECRET is not configured")
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=["HS256"],
            options={"verify_aud": False},
        )
    except jwt.PyJWTError:
        raise InvalidTokenError("Invalid or expired token")
    return JwtPayload(**dict(payload))


def get_jwt_payload(authorization: str = Header(None)) -> JwtPayload:
    """
    Extracts and validates the JWT from the Authorization header.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise InvalidTokenError("Missing token")

    token = authorization.split(" ")[1]
    return decode_jwt(token)


def get_session_id(payload: JwtPayload = Depends(get_jwt_payload)) -> str:
    """
    Identifies the Xero session for the caller.
    Prefers an explicit `session_id` claim, falling back to `sub`.
    """
    session_id = payload.session_id or payload.sub
    if not session_id:
        raise InvalidTokenError("Token does not identify a session")
    return session_id


def require_admin(payload: JwtPayload = Depends(get_jwt_payload)) -> JwtPayload:
    if not payload.is_admin:
        raise NotAuthorizedError("Administrator access is required")
    return payload
