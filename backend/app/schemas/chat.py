from datetime import datetime

from pydantic import BaseModel, Field, validator

from app.schemas.user import UserSummary

MAX_MESSAGE_LENGTH = 5000


class InitiateChatRequest(BaseModel):
    coach_id: int = Field(..., gt=0)


class SendMessageRequest(BaseModel):
    content: str

    @validator("content")
    def strip_and_require_content(cls, v):
        """Trim surrounding whitespace; blank content is rejected."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("Message content required")
        if len(stripped) > MAX_MESSAGE_LENGTH:
            raise ValueError(f"Message cannot exceed {MAX_MESSAGE_LENGTH} characters")
        return stripped


class MessagePublic(BaseModel):
    id: int
    chat_id: int
    sender_id: int
    content: str
    created_at: datetime
    sender: UserSummary

    class Config:
        from_attributes = True


class MessageHistory(BaseModel):
    messages: list[MessagePublic]
    total: int
    limit: int
    offset: int


class NewMessageEvent(BaseModel):
    """Payload carried by the ``new-message`` realtime event."""

    message: MessagePublic


class ChatParticipant(BaseModel):
    profile_id: int
    user: UserSummary


class ChatPublic(BaseModel):
    id: int
    coach_id: int
    client_id: int
    channel_name: str
    coach: ChatParticipant
    client: ChatParticipant
    created_at: datetime
    updated_at: datetime


class ChatDetail(ChatPublic):
    messages: list[MessagePublic]
