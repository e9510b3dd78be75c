"""HTTP handshake against the backend's channel authorization endpoint."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from app.client.socket import ChannelAuthorizationError

logger = logging.getLogger(__name__)

DEFAULT_AUTH_ENDPOINT = "/pusher/auth"


class HttpChannelAuthorizer:
    """Posts ``socket_id``/``channel_name`` with the session's bearer credential."""

    def __init__(
        self,
        credential: str,
        http: httpx.AsyncClient,
        endpoint: str = DEFAULT_AUTH_ENDPOINT,
    ) -> None:
        self.credential = credential
        self.http = http
        self.endpoint = endpoint

    async def authorize(self, socket_id: str, channel_name: str) -> dict[str, Any]:
        try:
            response = await self.http.post(
                self.endpoint,
                data={"socket_id": socket_id, "channel_name": channel_name},
                headers={"Authorization": f"Bearer {self.credential}"},
            )
        except httpx.HTTPError as exc:
            raise ChannelAuthorizationError(channel_name, None, str(exc)) from exc

        if response.status_code != 200:
            detail = _error_detail(response)
            logger.warning(
                f"Channel authorization for {channel_name} failed with {response.status_code}: {detail}"
            )
            raise ChannelAuthorizationError(channel_name, response.status_code, detail)
        return response.json()


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        code = body.get("code")
        detail = body.get("detail")
        return f"{code}: {detail}" if code else str(detail)
    return str(body)
