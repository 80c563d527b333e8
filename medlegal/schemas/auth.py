"""Authentication schemas for bearer tokens."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class JWTClaims(BaseModel):
    """Claims read from a verified access token."""

    sub: str = Field(..., description="Subject (user ID)")
    email: Optional[str] = Field(None, description="User email")
    role: str = Field(default="user", description="User role")
    exp: int = Field(..., description="Expiration timestamp")
    iat: Optional[int] = Field(None, description="Issued at timestamp")


class CurrentUser(BaseModel):
    """Current authenticated user information."""

    id: UUID = Field(..., description="User ID")
    email: Optional[str] = Field(None, description="User email")
    role: str = Field(default="user", description="User role")
