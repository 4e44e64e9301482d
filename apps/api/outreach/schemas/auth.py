"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel


class UserSession(BaseModel):
    """Session context of the authenticated recruiter."""
    user_id: UUID
    email: str = ""
