import pytest

from app.core.config import get_settings
from app.realtime.factory import get_realtime_transport
from app.realtime.memory import InMemoryBroker
from app.realtime.pusher_transport import PusherTransport


class RecordingPusherClient:
    def __init__(self):
        self.triggered = []

    def trigger(self, channel, event, data):
        self.triggered.append((channel, event, data))

    def authenticate(self, channel, socket_id):
        return {"auth": f"key:{socket_id}:{channel}"}


def test_pusher_transport_delegates_to_client():
    client = RecordingPusherClient()
    transport = PusherTransport("1", "key", "secret", client=client)

    transport.trigger("private-chat-1-2", "new-message", {"message": {"id": 1}})
    grant = transport.authorize_channel("1.2", "private-chat-1-2")

    assert client.triggered == [("private-chat-1-2", "new-message", {"message": {"id": 1}})]
    assert grant == {"auth": "key:1.2:private-chat-1-2"}


def test_pusher_transport_builds_real_client():
    transport = PusherTransport("123", "app-key", "app-secret", cluster="eu")

    assert transport.client is not None
    assert transport.key == "app-key"


@pytest.fixture
def fresh_settings(monkeypatch):
    get_settings.cache_clear()
    get_realtime_transport.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()
    get_realtime_transport.cache_clear()


def test_factory_defaults_to_memory_broker(fresh_settings):
    fresh_settings.setenv("REALTIME_PROVIDER", "memory")

    transport = get_realtime_transport()

    assert isinstance(transport, InMemoryBroker)
    assert get_realtime_transport() is transport


def test_factory_requires_app_id_for_pusher(fresh_settings):
    fresh_settings.setenv("REALTIME_PROVIDER", "pusher")
    fresh_settings.delenv("PUSHER_APP_ID", raising=False)

    with pytest.raises(ValueError):
        get_realtime_transport()


def test_factory_builds_pusher_transport(fresh_settings):
    fresh_settings.setenv("REALTIME_PROVIDER", "pusher")
    fresh_settings.setenv("PUSHER_APP_ID", "123")

    assert isinstance(get_realtime_transport(), PusherTransport)
