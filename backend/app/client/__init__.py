from app.client.authorizer import HttpChannelAuthorizer
from app.client.connection import ConnectionManager
from app.client.multiplexer import ChatSubscriptions
from app.client.socket import (
    Channel,
    ChannelAuthorizationError,
    ConnectionState,
    TransportError,
)

__all__ = [
    "Channel",
    "ChannelAuthorizationError",
    "ChatSubscriptions",
    "ConnectionManager",
    "ConnectionState",
    "HttpChannelAuthorizer",
    "TransportError",
]
