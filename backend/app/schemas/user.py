from datetime import datetime

from pydantic import BaseModel


class UserSummary(BaseModel):
    """Sender display attributes embedded in message payloads."""

    id: int
    name: str | None = None
    email: str
    role: str

    class Config:
        from_attributes = True


class UserPublic(UserSummary):
    coach_profile_id: int | None = None
    client_profile_id: int | None = None
    created_at: datetime
