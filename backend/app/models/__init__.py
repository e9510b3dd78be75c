from app.models.user import User, UserRole
from app.models.profile import ClientProfile, CoachProfile, CoachStatus
from app.models.chat import Chat, Message

__all__ = [
    "User",
    "UserRole",
    "CoachProfile",
    "CoachStatus",
    "ClientProfile",
    "Chat",
    "Message",
]
