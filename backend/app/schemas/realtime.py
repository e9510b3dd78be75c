from pydantic import BaseModel


class ChannelGrant(BaseModel):
    """Signed grant returned to the realtime client library."""

    auth: str
    channel_data: str | None = None
