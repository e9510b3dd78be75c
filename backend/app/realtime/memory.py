"""In-process realtime broker for local development and tests.

``InMemoryBroker`` is a server-side ``RealtimeTransport`` that signs grants with
the same ``key:hmac-sha256(socket_id:channel)`` scheme Pusher uses, and delivers
triggered events to ``MemorySocket`` clients that joined with a valid grant.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import itertools
import json
import logging
import threading
from dataclasses import dataclass
from typing import Any

from app.client.socket import (
    Channel,
    ChannelAuthorizationError,
    ChannelAuthorizer,
    ConnectionState,
    StateCallback,
    TransportError,
)
from app.realtime.transport import RealtimeTransport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PublishedEvent:
    channel: str
    event: str
    data: dict[str, Any]


class InMemoryBroker(RealtimeTransport):
    def __init__(self, key: str = "local-key", secret: str = "local-secret"):
        self.key = key
        self._secret = secret.encode()
        self.published: list[PublishedEvent] = []
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._sockets: dict[str, MemorySocket] = {}
        self._members: dict[str, set[str]] = {}

    def trigger(self, channel: str, event: str, data: dict[str, Any]) -> None:
        wire_data = json.loads(json.dumps(data))
        with self._lock:
            self.published.append(PublishedEvent(channel, event, wire_data))
            recipients = [self._sockets[sid] for sid in self._members.get(channel, ()) if sid in self._sockets]
        for socket in recipients:
            socket._deliver(channel, event, wire_data)

    def authorize_channel(self, socket_id: str, channel: str) -> dict[str, Any]:
        return {"auth": f"{self.key}:{self._sign(socket_id, channel)}"}

    def _sign(self, socket_id: str, channel: str) -> str:
        return hmac.new(self._secret, f"{socket_id}:{channel}".encode(), hashlib.sha256).hexdigest()

    def verify_grant(self, socket_id: str, channel: str, auth: str) -> bool:
        key, _, signature = auth.partition(":")
        if key != self.key:
            return False
        return hmac.compare_digest(signature, self._sign(socket_id, channel))

    def attach(self, socket: MemorySocket) -> str:
        with self._lock:
            socket_id = f"{next(self._ids)}.{next(self._ids)}"
            self._sockets[socket_id] = socket
        return socket_id

    def detach(self, socket_id: str) -> None:
        with self._lock:
            self._sockets.pop(socket_id, None)
            for members in self._members.values():
                members.discard(socket_id)

    def join(self, socket_id: str, channel: str, auth: str) -> None:
        if not self.verify_grant(socket_id, channel, auth):
            raise ChannelAuthorizationError(channel, 403, "Invalid signature")
        with self._lock:
            self._members.setdefault(channel, set()).add(socket_id)

    def leave(self, socket_id: str, channel: str) -> None:
        with self._lock:
            members = self._members.get(channel)
            if members is None:
                return
            members.discard(socket_id)
            if not members:
                del self._members[channel]

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._members.get(channel, ()))

    def drop(self, socket_id: str) -> None:
        """Force a transport-level disconnect of one client socket."""
        with self._lock:
            socket = self._sockets.get(socket_id)
        self.detach(socket_id)
        if socket is not None:
            socket._connection_lost()

    def events_for(self, channel: str) -> list[PublishedEvent]:
        return [item for item in self.published if item.channel == channel]


class MemorySocket:
    """Client socket attached to an ``InMemoryBroker``."""

    def __init__(self, broker: InMemoryBroker, authorizer: ChannelAuthorizer):
        self.broker = broker
        self.authorizer = authorizer
        self.socket_id: str | None = None
        self.state = ConnectionState.DISCONNECTED
        self.channels: dict[str, Channel] = {}
        self._callbacks: list[StateCallback] = []
        self._tasks: set[asyncio.Task] = set()
        self._loop: asyncio.AbstractEventLoop | None = None

    def on_state_change(self, callback: StateCallback) -> None:
        self._callbacks.append(callback)

    def _set_state(self, state: ConnectionState) -> None:
        if state == self.state:
            return
        self.state = state
        for callback in list(self._callbacks):
            callback(state)

    async def connect(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._set_state(ConnectionState.CONNECTING)
        try:
            self.socket_id = self.broker.attach(self)
        except TransportError:
            self._set_state(ConnectionState.DISCONNECTED)
            raise
        self._set_state(ConnectionState.CONNECTED)
        for channel in list(self.channels.values()):
            self._start_join(channel)

    async def disconnect(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self.socket_id is not None:
            self.broker.detach(self.socket_id)
        self.socket_id = None
        self.channels.clear()
        self._set_state(ConnectionState.DISCONNECTED)

    def subscribe(self, channel_name: str) -> Channel:
        channel = self.channels.get(channel_name)
        if channel is not None:
            return channel
        channel = Channel(channel_name)
        self.channels[channel_name] = channel
        if self.socket_id is not None:
            self._start_join(channel)
        return channel

    def _start_join(self, channel: Channel) -> None:
        task = asyncio.get_running_loop().create_task(self._join(channel))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _join(self, channel: Channel) -> None:
        socket_id = self.socket_id
        if socket_id is None:
            return
        try:
            grant = await self.authorizer.authorize(socket_id, channel.name)
            self.broker.join(socket_id, channel.name, grant.get("auth", ""))
        except ChannelAuthorizationError as exc:
            channel.subscription_error = exc
            logger.warning(f"Subscription to {channel.name} refused: {exc.detail}")
            return
        except Exception as exc:
            channel.subscription_error = exc
            logger.exception(f"Subscription handshake for {channel.name} failed")
            return
        current = self.channels.get(channel.name)
        if self.socket_id != socket_id or current is None:
            self.broker.leave(socket_id, channel.name)
            return
        if current is not channel:
            # Superseded by a newer subscribe to the same name; it owns the membership now
            return
        channel.subscribed = True

    def unsubscribe(self, channel_name: str) -> None:
        channel = self.channels.pop(channel_name, None)
        if channel is not None and self.socket_id is not None:
            self.broker.leave(self.socket_id, channel_name)

    def _deliver(self, channel_name: str, event: str, data: Any) -> None:
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._dispatch, channel_name, event, data)

    def _dispatch(self, channel_name: str, event: str, data: Any) -> None:
        channel = self.channels.get(channel_name)
        if channel is not None and channel.subscribed:
            channel.dispatch(event, data)

    def _connection_lost(self) -> None:
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._on_lost)

    def _on_lost(self) -> None:
        self.socket_id = None
        self.channels.clear()
        self._set_state(ConnectionState.DISCONNECTED)
