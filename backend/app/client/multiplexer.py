"""Per-chat channel subscriptions shared across call sites.

Several views can listen to the same chat; they share one provider
subscription. The registry counts bound handlers itself rather than relying
on the transport to expose one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from pydantic import ValidationError

from app.client.connection import ConnectionManager
from app.client.socket import Channel, EventHandler
from app.realtime.channels import NEW_MESSAGE_EVENT, chat_channel_name
from app.schemas.chat import MessagePublic, NewMessageEvent

logger = logging.getLogger(__name__)

MessageCallback = Callable[[MessagePublic], None]
Unsubscribe = Callable[[], None]


def _noop() -> None:
    return None


@dataclass
class _ChannelEntry:
    channel: Channel
    handlers: list[EventHandler] = field(default_factory=list)


class ChatSubscriptions:
    def __init__(self, connection: ConnectionManager, event: str = NEW_MESSAGE_EVENT) -> None:
        self._connection = connection
        self._event = event
        self._entries: dict[str, _ChannelEntry] = {}
        connection.add_teardown_listener(self._reset)

    @property
    def active_channels(self) -> list[str]:
        return list(self._entries)

    def handler_count(self, channel_name: str) -> int:
        entry = self._entries.get(channel_name)
        return len(entry.handlers) if entry else 0

    def subscribe_to_chat(
        self,
        chat_id: int,
        coach_profile_id: int,
        client_profile_id: int,
        on_message: MessageCallback,
    ) -> Unsubscribe:
        socket = self._connection.socket
        if socket is None:
            return _noop

        channel_name = chat_channel_name(coach_profile_id, client_profile_id)
        entry = self._entries.get(channel_name)
        if entry is None:
            entry = _ChannelEntry(channel=socket.subscribe(channel_name))
            self._entries[channel_name] = entry

        def handler(data: Any) -> None:
            self._deliver(chat_id, channel_name, data, on_message)

        entry.channel.bind(self._event, handler)
        entry.handlers.append(handler)
        released = False

        def unsubscribe() -> None:
            nonlocal released
            if released:
                return
            released = True
            entry.channel.unbind(self._event, handler)
            # Registry was reset by a connection teardown since this call
            if self._entries.get(channel_name) is not entry:
                return
            entry.handlers.remove(handler)
            if entry.handlers:
                return
            del self._entries[channel_name]
            current = self._connection.socket
            if current is not None:
                current.unsubscribe(channel_name)

        return unsubscribe

    def _deliver(
        self,
        chat_id: int,
        channel_name: str,
        data: Any,
        on_message: MessageCallback,
    ) -> None:
        try:
            event = NewMessageEvent.model_validate(data)
        except ValidationError:
            logger.warning(f"Dropping malformed {self._event} payload on {channel_name}")
            return
        if event.message.chat_id != chat_id:
            logger.warning(
                f"Dropping message {event.message.id} for chat {event.message.chat_id} "
                f"on {channel_name} (expected chat {chat_id})"
            )
            return
        on_message(event.message)

    def _reset(self) -> None:
        self._entries.clear()
