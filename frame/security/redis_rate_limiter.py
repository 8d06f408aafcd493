"""Redis-backed fixed window rate limiter shared by every API worker."""

from __future__ import annotations

import time
from typing import Callable

from redis import Redis


class RedisFixedWindowRateLimiter:
    """Counts hits per key in the current window with ``INCR`` + ``EXPIRE``."""

    def __init__(
        self,
        client: Redis,
        *,
        max_requests: int,
        window_seconds: int,
        key_prefix: str = "frame:rate",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._max_requests = max_requests
        self._window = window_seconds
        self._key_prefix = key_prefix
        self._clock = clock

    def _window_key(self, key: str) -> str:
        window_index = int(self._clock()) // self._window
        return f"{self._key_prefix}:{key}:{window_index}"

    def allow(self, key: str) -> bool:
        """Return ``True`` while ``key`` has hits left in the current window."""
        redis_key = self._window_key(key)
        pipe = self._client.pipeline()
        pipe.incr(redis_key)
        pipe.expire(redis_key, self._window)
        count, _ = pipe.execute()
        return int(count) <= self._max_requests
