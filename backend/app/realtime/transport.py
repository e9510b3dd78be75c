from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class RealtimeTransport(ABC):
    """Interface for server-side pub/sub providers."""

    @abstractmethod
    def trigger(self, channel: str, event: str, data: dict[str, Any]) -> None:
        """Publish one event on one channel."""

    @abstractmethod
    def authorize_channel(self, socket_id: str, channel: str) -> dict[str, Any]:
        """Return a signed grant letting ``socket_id`` subscribe to ``channel``."""
