from functools import lru_cache

from app.core.config import get_settings
from app.realtime.memory import InMemoryBroker
from app.realtime.pusher_transport import PusherTransport
from app.realtime.transport import RealtimeTransport


@lru_cache
def get_realtime_transport() -> RealtimeTransport:
    settings = get_settings()
    if settings.realtime_provider == "pusher":
        if not settings.pusher_app_id:
            raise ValueError("PUSHER_APP_ID must be set when REALTIME_PROVIDER=pusher")
        return PusherTransport(
            app_id=settings.pusher_app_id,
            key=settings.pusher_key,
            secret=settings.pusher_secret,
            cluster=settings.pusher_cluster,
        )
    return InMemoryBroker(key=settings.pusher_key, secret=settings.pusher_secret)
