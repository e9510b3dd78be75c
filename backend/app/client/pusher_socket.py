"""Websocket client speaking the Pusher Channels protocol (version 7).

Handles the connection handshake, keep-alive pings, private channel
subscription with a grant from the backend, and event dispatch to
``Channel`` bindings. Reconnection is left to the caller.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from app.client.socket import (
    Channel,
    ChannelAuthorizationError,
    ChannelAuthorizer,
    ConnectionState,
    StateCallback,
    TransportError,
)

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = 7
CLIENT_NAME = "coaching-chat-python"
CLIENT_VERSION = "0.1.0"
DEFAULT_ACTIVITY_TIMEOUT = 120.0
PONG_TIMEOUT = 30.0

Connector = Callable[[str], Awaitable[Any]]


def _decode(data: Any) -> Any:
    # Event data is usually a JSON-encoded string inside the JSON frame
    if isinstance(data, str):
        try:
            return json.loads(data)
        except ValueError:
            return data
    return data


class PusherSocket:
    def __init__(
        self,
        key: str,
        authorizer: ChannelAuthorizer,
        cluster: str = "mt1",
        host: str | None = None,
        use_tls: bool = True,
        connector: Connector | None = None,
    ) -> None:
        scheme = "wss" if use_tls else "ws"
        host = host or f"ws-{cluster}.pusher.com"
        self.url = (
            f"{scheme}://{host}/app/{key}"
            f"?protocol={PROTOCOL_VERSION}&client={CLIENT_NAME}&version={CLIENT_VERSION}&flash=false"
        )
        self.authorizer = authorizer
        self.socket_id: str | None = None
        self.state = ConnectionState.DISCONNECTED
        self.channels: dict[str, Channel] = {}
        self.activity_timeout = DEFAULT_ACTIVITY_TIMEOUT
        self._connector = connector or websockets.connect
        self._ws: Any = None
        self._reader: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self._callbacks: list[StateCallback] = []
        self._closing = False

    def on_state_change(self, callback: StateCallback) -> None:
        self._callbacks.append(callback)

    def _set_state(self, state: ConnectionState) -> None:
        if state == self.state:
            return
        self.state = state
        for callback in list(self._callbacks):
            callback(state)

    async def connect(self) -> None:
        self._closing = False
        self._set_state(ConnectionState.CONNECTING)
        try:
            self._ws = await self._connector(self.url)
            frame = json.loads(await self._ws.recv())
        except (OSError, WebSocketException, ValueError) as exc:
            await self._close_ws()
            self._set_state(ConnectionState.DISCONNECTED)
            raise TransportError(f"Could not connect to {self.url}: {exc}") from exc

        if self._closing:
            # disconnect() ran while the handshake was in flight
            await self._close_ws()
            raise TransportError("Disconnected while connecting")

        event = frame.get("event")
        data = _decode(frame.get("data")) or {}
        if event != "pusher:connection_established":
            await self._close_ws()
            self._set_state(ConnectionState.DISCONNECTED)
            raise TransportError(f"Unexpected handshake frame {event}: {data}")

        self.socket_id = data["socket_id"]
        self.activity_timeout = float(data.get("activity_timeout") or DEFAULT_ACTIVITY_TIMEOUT)
        self._reader = asyncio.get_running_loop().create_task(self._read_loop())
        self._set_state(ConnectionState.CONNECTED)
        # Channels requested while connecting are joined now
        for channel in list(self.channels.values()):
            self._spawn(self._join(channel))

    async def disconnect(self) -> None:
        self._closing = True
        tasks = list(self._tasks)
        if self._reader is not None:
            tasks.append(self._reader)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._reader = None
        await self._close_ws()
        self.socket_id = None
        self.channels.clear()
        self._set_state(ConnectionState.DISCONNECTED)

    async def _close_ws(self) -> None:
        ws, self._ws = self._ws, None
        if ws is None:
            return
        try:
            await ws.close()
        except (OSError, WebSocketException) as exc:
            logger.debug(f"Ignoring error while closing websocket: {exc}")

    def subscribe(self, channel_name: str) -> Channel:
        channel = self.channels.get(channel_name)
        if channel is not None:
            return channel
        channel = Channel(channel_name)
        self.channels[channel_name] = channel
        if self.socket_id is not None:
            self._spawn(self._join(channel))
        return channel

    def unsubscribe(self, channel_name: str) -> None:
        channel = self.channels.pop(channel_name, None)
        if channel is not None and self._ws is not None:
            self._spawn(self._send("pusher:unsubscribe", {"channel": channel_name}))

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _join(self, channel: Channel) -> None:
        socket_id = self.socket_id
        if socket_id is None:
            return
        try:
            grant = await self.authorizer.authorize(socket_id, channel.name)
        except ChannelAuthorizationError as exc:
            channel.subscription_error = exc
            logger.warning(f"Subscription to {channel.name} refused: {exc.detail}")
            return
        if self.channels.get(channel.name) is not channel:
            return
        payload = {"channel": channel.name, "auth": grant["auth"]}
        if grant.get("channel_data"):
            payload["channel_data"] = grant["channel_data"]
        await self._send("pusher:subscribe", payload)

    async def _send(self, event: str, data: dict[str, Any]) -> None:
        if self._ws is None:
            return
        try:
            await self._ws.send(json.dumps({"event": event, "data": data}))
        except ConnectionClosed:
            logger.debug(f"Dropped {event}: connection already closed")

    async def _read_loop(self) -> None:
        awaiting_pong = False
        try:
            while self._ws is not None:
                timeout = PONG_TIMEOUT if awaiting_pong else self.activity_timeout
                try:
                    raw = await asyncio.wait_for(self._ws.recv(), timeout=timeout)
                except asyncio.TimeoutError:
                    if awaiting_pong:
                        logger.warning("No pong from realtime server; dropping connection")
                        break
                    await self._send("pusher:ping", {})
                    awaiting_pong = True
                    continue
                awaiting_pong = False
                try:
                    frame = json.loads(raw)
                except ValueError:
                    logger.warning(f"Ignoring non-JSON frame: {raw!r}")
                    continue
                self._handle_frame(frame)
        except ConnectionClosed as exc:
            logger.info(f"Realtime connection closed: {exc}")
        finally:
            if not self._closing:
                await self._close_ws()
                self._on_lost()

    def _handle_frame(self, frame: dict[str, Any]) -> None:
        event = frame.get("event")
        data = _decode(frame.get("data"))
        channel = self.channels.get(frame.get("channel") or "")

        if event == "pusher:ping":
            self._spawn(self._send("pusher:pong", {}))
        elif event == "pusher:pong":
            return
        elif event == "pusher:error":
            logger.warning(f"Realtime server error: {data}")
        elif event == "pusher_internal:subscription_succeeded":
            if channel is not None:
                channel.subscribed = True
        elif event == "pusher:subscription_error":
            if channel is not None:
                status = data.get("status") if isinstance(data, dict) else None
                channel.subscription_error = ChannelAuthorizationError(channel.name, status, str(data))
                logger.warning(f"Subscription error on {channel.name}: {data}")
        elif channel is not None and event:
            channel.dispatch(event, data)

    def _on_lost(self) -> None:
        self._ws = None
        self.socket_id = None
        self.channels.clear()
        self._set_state(ConnectionState.DISCONNECTED)
