import logging
from datetime import datetime, timezone

from app.models.chat import Chat
from app.realtime.channels import NEW_MESSAGE_EVENT
from app.realtime.memory import InMemoryBroker
from app.realtime.publisher import broadcast_new_message
from app.schemas.chat import MessagePublic
from app.schemas.user import UserSummary

from conftest import FlakyBroker


def _message(chat_id: int = 9) -> MessagePublic:
    return MessagePublic(
        id=41,
        chat_id=chat_id,
        sender_id=3,
        content="See you at practice",
        created_at=datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc),
        sender=UserSummary(id=3, name="Coach Carter", email="carter@example.com", role="coach"),
    )


def test_broadcast_publishes_on_pair_channel():
    broker = InMemoryBroker()
    chat = Chat(id=9, coach_id=8, client_id=2)

    assert broadcast_new_message(broker, chat, _message()) is True

    [event] = broker.published
    assert event.channel == "private-chat-2-8"
    assert event.event == NEW_MESSAGE_EVENT
    assert event.data["message"]["id"] == 41
    assert event.data["message"]["sender"]["name"] == "Coach Carter"
    assert isinstance(event.data["message"]["created_at"], str)


def test_broadcast_failure_is_logged_not_raised(caplog):
    broker = FlakyBroker()
    broker.fail_with = ConnectionError("provider unreachable")
    chat = Chat(id=9, coach_id=8, client_id=2)

    with caplog.at_level(logging.ERROR, logger="app.realtime.publisher"):
        assert broadcast_new_message(broker, chat, _message()) is False

    assert "BROADCAST_FAILURE" in caplog.text
    assert broker.published == []
