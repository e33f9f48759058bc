"""Pydantic schemas for the authenticated principal."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from hakgyo.auth.permissions import UserRole


class UserResponse(BaseModel):
    """Authenticated user, as described by the access token claims."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str | None = None
    name: str | None = None
    role: UserRole = Field(default=UserRole.MURID)

    @classmethod
    def from_claims(cls, payload: dict) -> "UserResponse":
        """Build the user from a decoded access token payload."""
        return cls(
            id=payload["sub"],
            email=payload.get("email"),
            name=payload.get("name"),
            role=payload.get("role", UserRole.MURID.value),
        )
