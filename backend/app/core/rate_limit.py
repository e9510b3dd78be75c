"""Fixed-window request counting keyed by identifier.

The store is owned by the application (``app.state.rate_limiter``) so each
app instance, and each test, gets its own counters.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable

from fastapi import Request

from app.core.errors import RateLimitedError

logger = logging.getLogger(__name__)


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimitStore:
    def __init__(
        self,
        limit: int = 10,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, _Window] = {}

    def hit(self, key: str, limit: int | None = None) -> bool:
        """Count one request for ``key``; False once the window is exhausted."""
        max_requests = self.limit if limit is None else limit
        now = self._clock()
        window = self._windows.get(key)
        if window is None or now > window.reset_at:
            self._windows[key] = _Window(count=1, reset_at=now + self.window_seconds)
            return True
        if window.count < max_requests:
            window.count += 1
            return True
        return False

    def remaining(self, key: str, limit: int | None = None) -> int:
        max_requests = self.limit if limit is None else limit
        window = self._windows.get(key)
        if window is None or self._clock() > window.reset_at:
            return max_requests
        return max(0, max_requests - window.count)

    def reset(self, key: str) -> None:
        self._windows.pop(key, None)

    def cleanup_expired(self) -> int:
        now = self._clock()
        expired = [key for key, window in self._windows.items() if now > window.reset_at]
        for key in expired:
            del self._windows[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._windows)


def rate_limit(bucket: str, limit: int | None = None):
    """FastAPI dependency counting requests per bucket and client address."""

    def dep(request: Request) -> None:
        store: RateLimitStore | None = getattr(request.app.state, "rate_limiter", None)
        if store is None:
            return
        client = request.client
        identity = client.host if client else request.headers.get("x-forwarded-for", "unknown")
        key = f"{bucket}:{identity}"
        if not store.hit(key, limit):
            logger.warning(f"Rate limit exceeded for {key}")
            raise RateLimitedError()

    return dep
