"""Live broadcast of chat events after they are durably stored.

Delivery on this path is best effort: the message is already persisted and
reachable through history, so a failed publish is logged and dropped.
"""

from __future__ import annotations

import logging
from typing import Any

from app.models.chat import Chat
from app.realtime.channels import NEW_MESSAGE_EVENT, chat_channel_name
from app.realtime.transport import RealtimeTransport
from app.schemas.chat import MessagePublic, NewMessageEvent

logger = logging.getLogger(__name__)


def broadcast(
    transport: RealtimeTransport,
    coach_profile_id: int,
    client_profile_id: int,
    event: str,
    payload: dict[str, Any],
) -> None:
    channel = chat_channel_name(coach_profile_id, client_profile_id)
    transport.trigger(channel, event, payload)


def broadcast_new_message(
    transport: RealtimeTransport,
    chat: Chat,
    message: MessagePublic,
) -> bool:
    """Publish ``new-message`` for a stored message; never raises."""
    payload = NewMessageEvent(message=message).model_dump(mode="json")
    try:
        broadcast(transport, chat.coach_id, chat.client_id, NEW_MESSAGE_EVENT, payload)
    except Exception:
        logger.exception(
            f"BROADCAST_FAILURE: message {message.id} in chat {chat.id} was stored "
            "but could not be published"
        )
        return False
    return True
