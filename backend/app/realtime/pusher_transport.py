from __future__ import annotations

from typing import Any

import pusher

from app.realtime.transport import RealtimeTransport


class PusherTransport(RealtimeTransport):
    def __init__(
        self,
        app_id: str,
        key: str,
        secret: str,
        cluster: str = "mt1",
        client: pusher.Pusher | None = None,
    ):
        self.key = key
        self.client = client or pusher.Pusher(
            app_id=app_id,
            key=key,
            secret=secret,
            cluster=cluster,
            ssl=True,
        )

    def trigger(self, channel: str, event: str, data: dict[str, Any]) -> None:
        self.client.trigger(channel, event, data)

    def authorize_channel(self, socket_id: str, channel: str) -> dict[str, Any]:
        return self.client.authenticate(channel=channel, socket_id=socket_id)
