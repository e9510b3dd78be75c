"""Transport-neutral socket and channel abstractions for realtime clients."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], None]
StateCallback = Callable[["ConnectionState"], None]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class TransportError(Exception):
    """The underlying realtime connection failed or dropped."""


class ChannelAuthorizationError(Exception):
    """The handshake endpoint refused to grant a channel subscription."""

    def __init__(self, channel_name: str, status_code: int | None = None, detail: str | None = None):
        self.channel_name = channel_name
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Subscription to {channel_name} denied ({status_code}): {detail}")


class ChannelAuthorizer(Protocol):
    async def authorize(self, socket_id: str, channel_name: str) -> dict[str, Any]:
        ...


class Channel:
    """One provider subscription with per-event handler bindings."""

    def __init__(self, name: str):
        self.name = name
        self.subscribed = False
        self.subscription_error: Exception | None = None
        self._bindings: dict[str, list[EventHandler]] = {}

    def bind(self, event: str, handler: EventHandler) -> None:
        self._bindings.setdefault(event, []).append(handler)

    def unbind(self, event: str, handler: EventHandler) -> None:
        handlers = self._bindings.get(event)
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        if not handlers:
            del self._bindings[event]

    def handler_count(self, event: str | None = None) -> int:
        if event is not None:
            return len(self._bindings.get(event, ()))
        return sum(len(handlers) for handlers in self._bindings.values())

    def dispatch(self, event: str, data: Any) -> None:
        # Copy: handlers may unbind themselves while running
        for handler in list(self._bindings.get(event, ())):
            try:
                handler(data)
            except Exception:
                logger.exception(f"Handler for {event} on {self.name} raised")


class RealtimeSocket(Protocol):
    socket_id: str | None

    async def connect(self) -> None:
        ...

    async def disconnect(self) -> None:
        ...

    def subscribe(self, channel_name: str) -> Channel:
        ...

    def unsubscribe(self, channel_name: str) -> None:
        ...

    def on_state_change(self, callback: StateCallback) -> None:
        ...


SocketFactory = Callable[[str], RealtimeSocket]
AuthorizerFactory = Callable[[str], ChannelAuthorizer]
