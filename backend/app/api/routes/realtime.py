from fastapi import APIRouter, Depends, Form
from sqlalchemy.orm import Session

from app.api import deps
from app.db.session import get_db
from app.realtime.transport import RealtimeTransport
from app.schemas.realtime import ChannelGrant
from app.services.subscription_auth import SubscriptionAuthorizer

router = APIRouter()


@router.post("/auth", response_model=ChannelGrant, response_model_exclude_none=True)
def authorize_channel(
    socket_id: str | None = Form(default=None),
    channel_name: str | None = Form(default=None),
    token: str | None = Depends(deps.get_bearer_token),
    db: Session = Depends(get_db),
    transport: RealtimeTransport = Depends(deps.get_transport),
) -> ChannelGrant:
    """Handshake URL for the realtime client library's private channels."""
    authorizer = SubscriptionAuthorizer(db, transport)
    return authorizer.authorize(token, socket_id, channel_name)
