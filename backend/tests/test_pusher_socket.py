import asyncio
import json

import pytest
from websockets.exceptions import ConnectionClosed

from app.client import pusher_socket
from app.client.connection import ConnectionManager
from app.client.multiplexer import ChatSubscriptions
from app.client.pusher_socket import PusherSocket
from app.client.socket import ChannelAuthorizationError, ConnectionState, TransportError

from conftest import eventually, settle


class FakeWebSocket:
    def __init__(self, *frames):
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent: list[dict] = []
        self.closed = False
        for frame in frames:
            self.push(frame)

    def push(self, frame) -> None:
        if isinstance(frame, dict):
            frame = json.dumps(frame)
        self.incoming.put_nowait(frame)

    async def recv(self):
        item = await self.incoming.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def send(self, raw: str) -> None:
        self.sent.append(json.loads(raw))

    async def close(self) -> None:
        self.closed = True

    def sent_events(self) -> list[str]:
        return [frame["event"] for frame in self.sent]


class StaticAuthorizer:
    def __init__(self, error: Exception | None = None):
        self.error = error

    async def authorize(self, socket_id: str, channel_name: str) -> dict:
        if self.error is not None:
            raise self.error
        return {"auth": f"app-key:signature-for-{socket_id}-{channel_name}"}


def _established(socket_id: str = "123.456", activity_timeout: int = 120) -> dict:
    return {
        "event": "pusher:connection_established",
        "data": json.dumps({"socket_id": socket_id, "activity_timeout": activity_timeout}),
    }


def _socket(ws: FakeWebSocket, authorizer=None) -> PusherSocket:
    async def connector(url: str) -> FakeWebSocket:
        ws.url = url
        return ws

    return PusherSocket("app-key", authorizer or StaticAuthorizer(), cluster="eu", connector=connector)


async def test_handshake_records_socket_id():
    ws = FakeWebSocket(_established())
    socket = _socket(ws)

    await socket.connect()

    assert socket.state == ConnectionState.CONNECTED
    assert socket.socket_id == "123.456"
    assert ws.url.startswith("wss://ws-eu.pusher.com/app/app-key?protocol=7")
    await socket.disconnect()


async def test_handshake_error_raises_transport_error():
    ws = FakeWebSocket({"event": "pusher:error", "data": {"code": 4001, "message": "App key not found"}})
    socket = _socket(ws)

    with pytest.raises(TransportError):
        await socket.connect()
    assert socket.state == ConnectionState.DISCONNECTED
    assert ws.closed


async def test_connect_failure_raises_transport_error():
    async def refuse(url):
        raise OSError("connection refused")

    socket = PusherSocket("app-key", StaticAuthorizer(), connector=refuse)

    with pytest.raises(TransportError):
        await socket.connect()
    assert socket.state == ConnectionState.DISCONNECTED


async def test_subscribe_sends_grant_and_dispatches_events():
    ws = FakeWebSocket(_established())
    socket = _socket(ws)
    await socket.connect()
    received = []

    channel = socket.subscribe("private-chat-1-2")
    channel.bind("new-message", received.append)
    await eventually(lambda: "pusher:subscribe" in ws.sent_events())

    [subscribe] = ws.sent
    assert subscribe["data"] == {
        "channel": "private-chat-1-2",
        "auth": "app-key:signature-for-123.456-private-chat-1-2",
    }

    ws.push({"event": "pusher_internal:subscription_succeeded", "channel": "private-chat-1-2", "data": "{}"})
    ws.push({"event": "new-message", "channel": "private-chat-1-2", "data": json.dumps({"message": {"id": 9}})})
    await eventually(lambda: received)

    assert channel.subscribed
    assert received == [{"message": {"id": 9}}]
    await socket.disconnect()


async def test_refused_grant_skips_subscribe_frame():
    ws = FakeWebSocket(_established())
    socket = _socket(ws, StaticAuthorizer(ChannelAuthorizationError("private-chat-1-2", 403, "FORBIDDEN")))
    await socket.connect()

    channel = socket.subscribe("private-chat-1-2")
    await eventually(lambda: channel.subscription_error is not None)

    assert "pusher:subscribe" not in ws.sent_events()
    await socket.disconnect()


async def test_subscription_error_frame_is_recorded():
    ws = FakeWebSocket(_established())
    socket = _socket(ws)
    await socket.connect()
    channel = socket.subscribe("private-chat-1-2")
    await settle()

    ws.push(
        {
            "event": "pusher:subscription_error",
            "channel": "private-chat-1-2",
            "data": json.dumps({"type": "AuthError", "error": "Invalid signature", "status": 401}),
        }
    )
    await eventually(lambda: channel.subscription_error is not None)

    assert channel.subscription_error.status_code == 401
    assert not channel.subscribed
    await socket.disconnect()


async def test_server_ping_is_answered():
    ws = FakeWebSocket(_established(), {"event": "pusher:ping", "data": {}})
    socket = _socket(ws)
    await socket.connect()

    await eventually(lambda: "pusher:pong" in ws.sent_events())
    await socket.disconnect()


async def test_unsubscribe_sends_frame():
    ws = FakeWebSocket(_established())
    socket = _socket(ws)
    await socket.connect()
    socket.subscribe("private-chat-1-2")
    await settle()

    socket.unsubscribe("private-chat-1-2")
    await eventually(lambda: "pusher:unsubscribe" in ws.sent_events())

    assert ws.sent[-1]["data"] == {"channel": "private-chat-1-2"}
    assert "private-chat-1-2" not in socket.channels
    await socket.disconnect()


async def test_closed_connection_reports_disconnected():
    ws = FakeWebSocket(_established())
    socket = _socket(ws)
    states = []
    socket.on_state_change(states.append)
    await socket.connect()

    ws.push(ConnectionClosed(None, None))
    await eventually(lambda: socket.state == ConnectionState.DISCONNECTED)

    assert states == [ConnectionState.CONNECTING, ConnectionState.CONNECTED, ConnectionState.DISCONNECTED]
    assert socket.socket_id is None
    assert ws.closed


async def test_silent_server_is_pinged_then_dropped(monkeypatch):
    monkeypatch.setattr(pusher_socket, "PONG_TIMEOUT", 0.05)
    ws = FakeWebSocket(_established())
    socket = _socket(ws)
    await socket.connect()
    socket.activity_timeout = 0.05

    await eventually(lambda: socket.state == ConnectionState.DISCONNECTED)

    assert "pusher:ping" in ws.sent_events()
    assert ws.closed
    assert socket.socket_id is None


async def test_disconnect_closes_socket_once():
    ws = FakeWebSocket(_established())
    socket = _socket(ws)
    states = []
    socket.on_state_change(states.append)
    await socket.connect()

    await socket.disconnect()

    assert ws.closed
    assert states.count(ConnectionState.DISCONNECTED) == 1


async def test_credential_change_while_connecting_closes_stale_socket():
    gate = asyncio.Event()
    sockets = {"token-a": FakeWebSocket(_established("1.1")), "token-b": FakeWebSocket(_established("2.2"))}

    def factory(credential: str) -> PusherSocket:
        async def connector(url: str) -> FakeWebSocket:
            if credential == "token-a":
                await gate.wait()
            return sockets[credential]

        return PusherSocket("app-key", StaticAuthorizer(), connector=connector)

    manager = ConnectionManager(factory)
    pending = asyncio.create_task(manager.authenticate("token-a"))
    await settle()

    await manager.authenticate("token-b")
    gate.set()
    await pending

    assert manager.is_connected
    assert manager.socket.socket_id == "2.2"
    assert sockets["token-a"].closed
    assert not sockets["token-b"].closed
    await manager.logout()


async def test_subscription_made_while_connecting_is_sent_once_connected():
    gate = asyncio.Event()
    ws = FakeWebSocket()

    async def connector(url: str) -> FakeWebSocket:
        await gate.wait()
        return ws

    manager = ConnectionManager(lambda credential: PusherSocket("app-key", StaticAuthorizer(), connector=connector))
    subscriptions = ChatSubscriptions(manager)
    pending = asyncio.create_task(manager.authenticate("token"))
    await settle()
    assert manager.state == ConnectionState.CONNECTING

    subscriptions.subscribe_to_chat(1, 3, 7, lambda message: None)
    gate.set()
    ws.push(_established())
    await pending
    await eventually(lambda: "pusher:subscribe" in ws.sent_events())

    assert ws.sent_events().count("pusher:subscribe") == 1
    assert ws.sent[0]["data"]["channel"] == "private-chat-3-7"
    assert subscriptions.active_channels == ["private-chat-3-7"]
    await manager.logout()


async def test_channel_requested_before_connect_is_joined_on_connect():
    ws = FakeWebSocket(_established())
    socket = _socket(ws)

    socket.subscribe("private-chat-1-2")
    await settle()
    assert ws.sent == []

    await socket.connect()
    await eventually(lambda: "pusher:subscribe" in ws.sent_events())
    await socket.disconnect()
