"""Client-side ownership of the single realtime connection per session.

The connection follows authentication: a credential arriving moves it to
CONNECTING, losing the credential moves it back to DISCONNECTED. There is
never more than one live socket; a new credential always tears the old one
down first. Transport failures only show up as ``is_connected``/``last_error``
and there is no reconnect loop; callers decide when to ``reconnect()``.
"""

from __future__ import annotations

import logging
from typing import Callable

from app.client.socket import (
    ConnectionState,
    RealtimeSocket,
    SocketFactory,
    StateCallback,
    TransportError,
)

logger = logging.getLogger(__name__)

TeardownCallback = Callable[[], None]


class ConnectionManager:
    def __init__(self, socket_factory: SocketFactory) -> None:
        self._socket_factory = socket_factory
        self._socket: RealtimeSocket | None = None
        self._credential: str | None = None
        self.state = ConnectionState.DISCONNECTED
        self.last_error: Exception | None = None
        self._state_listeners: list[StateCallback] = []
        self._teardown_listeners: list[TeardownCallback] = []

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    @property
    def socket(self) -> RealtimeSocket | None:
        """The live socket, or None while DISCONNECTED."""
        if self.state == ConnectionState.DISCONNECTED:
            return None
        return self._socket

    @property
    def credential(self) -> str | None:
        return self._credential

    def add_state_listener(self, callback: StateCallback) -> Callable[[], None]:
        self._state_listeners.append(callback)
        return lambda: self._remove(self._state_listeners, callback)

    def add_teardown_listener(self, callback: TeardownCallback) -> Callable[[], None]:
        self._teardown_listeners.append(callback)
        return lambda: self._remove(self._teardown_listeners, callback)

    @staticmethod
    def _remove(listeners: list, callback) -> None:
        if callback in listeners:
            listeners.remove(callback)

    async def authenticate(self, credential: str | None) -> None:
        if not credential:
            await self.logout()
            return
        if credential == self._credential and self._socket is not None:
            return

        await self._teardown()
        self._credential = credential
        self.last_error = None
        socket = self._socket_factory(credential)
        self._socket = socket
        socket.on_state_change(lambda state: self._on_socket_state(socket, state))
        self._set_state(ConnectionState.CONNECTING)

        try:
            await socket.connect()
        except Exception as exc:
            if self._socket is not socket:
                return
            logger.warning(f"Realtime connection failed: {exc}")
            self.last_error = exc
            self._socket = None
            self._set_state(ConnectionState.DISCONNECTED)
            return

        # A newer credential may have replaced this socket while it connected
        if self._socket is not socket:
            logger.info("Closing realtime connection superseded while connecting")
            await socket.disconnect()
            return
        self._set_state(ConnectionState.CONNECTED)

    async def logout(self) -> None:
        self._credential = None
        await self._teardown()

    async def reconnect(self) -> None:
        if self._credential and self._socket is None:
            await self.authenticate(self._credential)

    async def _teardown(self) -> None:
        socket = self._socket
        self._socket = None
        if socket is not None:
            self._notify_teardown()
            try:
                await socket.disconnect()
            except Exception as exc:
                logger.warning(f"Error while closing realtime connection: {exc}")
        self._set_state(ConnectionState.DISCONNECTED)

    def _on_socket_state(self, socket: RealtimeSocket, state: ConnectionState) -> None:
        if socket is not self._socket:
            return
        if state == ConnectionState.DISCONNECTED and self.state == ConnectionState.CONNECTED:
            logger.warning("Realtime transport disconnected")
            self.last_error = TransportError("Connection lost")
            self._socket = None
            self._notify_teardown()
            self._set_state(ConnectionState.DISCONNECTED)

    def _notify_teardown(self) -> None:
        for callback in list(self._teardown_listeners):
            callback()

    def _set_state(self, state: ConnectionState) -> None:
        if state == self.state:
            return
        self.state = state
        for callback in list(self._state_listeners):
            callback(state)
