"""Auth domain type definitions for type safety."""

from typing import Optional

from pydantic import BaseModel, Field

ADMIN_ROLES = frozenset({"admin", "super_admin"})


class JwtPayload(BaseModel):
    """Bearer token payload issued by the Compliance Hub frontend."""

    # Standard JWT claims
    sub: Optional[str] = Field(None, description="Subject (user ID)")
    iss: Optional[str] = Field(None, description="Token issuer")
    exp: Optional[int] = Field(None, description="Expiration timestamp")
    iat: Optional[int] = Field(None, description="Issued at timestamp")

    email: Optional[str] = Field(None, description="User email address")
    role: Optional[str] = Field(None, description="User role")

    # Session information
    session_id: Optional[str] = Field(None, description="Session identifier")

    model_config = {"extra": "allow"}

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES
