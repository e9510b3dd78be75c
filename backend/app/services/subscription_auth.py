"""Authorization handshake for private chat channels.

Each handshake walks RECEIVED -> IDENTIFIED -> CHANNEL_PARSED ->
MEMBERSHIP_CHECKED and ends GRANTED or DENIED. Nothing is kept between
requests; a grant is only ever issued for the one (socket, channel) pair
that was asked for.

The membership step is what stops an authenticated user from listening to a
chat they are not part of just by guessing the two ids in a channel name.
"""

import logging
import re
from enum import Enum

from sqlalchemy.orm import Session

from app.core.errors import (
    ChatError,
    ForbiddenError,
    InvalidChannelError,
    ValidationError,
)
from app.realtime.channels import parse_chat_channel
from app.realtime.transport import RealtimeTransport
from app.schemas.realtime import ChannelGrant
from app.services.identity import authenticate_token, resolve_profile_id

logger = logging.getLogger(__name__)

_SOCKET_ID_RE = re.compile(r"^\d+\.\d+$")


class HandshakeState(str, Enum):
    RECEIVED = "received"
    IDENTIFIED = "identified"
    CHANNEL_PARSED = "channel_parsed"
    MEMBERSHIP_CHECKED = "membership_checked"
    GRANTED = "granted"
    DENIED = "denied"


class SubscriptionAuthorizer:
    def __init__(self, db: Session, transport: RealtimeTransport):
        self.db = db
        self.transport = transport
        self.state = HandshakeState.RECEIVED

    def authorize(
        self,
        credential: str | None,
        socket_id: str | None,
        channel_name: str | None,
    ) -> ChannelGrant:
        try:
            return self._run(credential, socket_id, channel_name)
        except ChatError as exc:
            logger.debug(f"Handshake denied after {self.state.value}: {exc.code}")
            self.state = HandshakeState.DENIED
            raise

    def _run(
        self,
        credential: str | None,
        socket_id: str | None,
        channel_name: str | None,
    ) -> ChannelGrant:
        user = authenticate_token(self.db, credential)
        self.state = HandshakeState.IDENTIFIED

        if not socket_id or not channel_name:
            raise ValidationError("Missing socket_id or channel_name")
        if not _SOCKET_ID_RE.fullmatch(socket_id):
            raise ValidationError("Invalid socket_id")

        profile_ids = parse_chat_channel(channel_name)
        if profile_ids is None:
            logger.warning(
                f"User {user.id} requested malformed channel {channel_name!r}; possible probing"
            )
            raise InvalidChannelError()
        self.state = HandshakeState.CHANNEL_PARSED

        own_profile_id = resolve_profile_id(self.db, user)
        if own_profile_id is None or own_profile_id not in profile_ids:
            logger.warning(
                f"User {user.id} (profile {own_profile_id}) tried to access channel {channel_name}"
            )
            raise ForbiddenError("Not authorized for this channel")
        self.state = HandshakeState.MEMBERSHIP_CHECKED

        grant = self.transport.authorize_channel(socket_id, channel_name)
        self.state = HandshakeState.GRANTED
        logger.info(f"Granted {channel_name} to user {user.id} on socket {socket_id}")
        return ChannelGrant(**grant)
