from app.realtime.channels import (
    CHAT_CHANNEL_PREFIX,
    NEW_MESSAGE_EVENT,
    chat_channel_name,
    parse_chat_channel,
)

__all__ = [
    "CHAT_CHANNEL_PREFIX",
    "NEW_MESSAGE_EVENT",
    "chat_channel_name",
    "parse_chat_channel",
]
