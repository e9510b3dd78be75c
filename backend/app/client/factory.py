"""Socket factories for ``ConnectionManager``: one socket per credential."""

from __future__ import annotations

import httpx

from app.client.authorizer import DEFAULT_AUTH_ENDPOINT, HttpChannelAuthorizer
from app.client.pusher_socket import PusherSocket
from app.client.socket import SocketFactory
from app.realtime.memory import InMemoryBroker, MemorySocket


def memory_socket_factory(
    broker: InMemoryBroker,
    http: httpx.AsyncClient,
    auth_endpoint: str = DEFAULT_AUTH_ENDPOINT,
) -> SocketFactory:
    def create(credential: str) -> MemorySocket:
        return MemorySocket(broker, HttpChannelAuthorizer(credential, http, auth_endpoint))

    return create


def pusher_socket_factory(
    key: str,
    http: httpx.AsyncClient,
    cluster: str = "mt1",
    auth_endpoint: str = DEFAULT_AUTH_ENDPOINT,
    host: str | None = None,
) -> SocketFactory:
    def create(credential: str) -> PusherSocket:
        authorizer = HttpChannelAuthorizer(credential, http, auth_endpoint)
        return PusherSocket(key, authorizer, cluster=cluster, host=host)

    return create
