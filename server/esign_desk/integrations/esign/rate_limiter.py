"""
Sliding-window rate limiters for outbound provider calls.

A limiter is an explicitly owned object injected into the client. The
in-process variant serialises access with an ``asyncio.Lock``; the Redis
variant keeps the window in a sorted set so several processes share one
ceiling.
"""

import asyncio
import time
import uuid
from abc import ABC, abstractmethod
from collections import deque
from typing import Awaitable, Callable, Deque, Optional

from redis.asyncio import Redis

from esign_desk.core.logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


class RateLimiter(ABC):
    """Blocks until one more call may start without exceeding the ceiling."""

    def __init__(self, max_calls: int, window_seconds: float):
        if max_calls < 1:
            raise ValueError("max_calls must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_calls = max_calls
        self.window_seconds = window_seconds

    @abstractmethod
    async def acquire(self) -> None:
        """Wait for a free slot and record one call start."""


class SlidingWindowRateLimiter(RateLimiter):
    def __init__(
        self,
        max_calls: int = 20,
        window_seconds: float = 1.0,
        *,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleeper] = None,
    ):
        super().__init__(max_calls, window_seconds)
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._timestamps: Deque[float] = deque()
        self._lock = asyncio.Lock()

    def _evict(self, now: float) -> None:
        while self._timestamps and now - self._timestamps[0] >= self.window_seconds:
            self._timestamps.popleft()

    @property
    def in_flight(self) -> int:
        self._evict(self._clock())
        return len(self._timestamps)

    async def acquire(self) -> None:
        # Waiters queue on the lock, so slots are granted in arrival order.
        async with self._lock:
            while True:
                now = self._clock()
                self._evict(now)
                if len(self._timestamps) < self.max_calls:
                    self._timestamps.append(now)
                    return
                wait_for = self.window_seconds - (now - self._timestamps[0])
                logger.debug("esign.rate_limit.wait", wait_seconds=round(wait_for, 4))
                await self._sleep(max(wait_for, 0.0))


class RedisSlidingWindowRateLimiter(RateLimiter):
    KEY = "esign_desk:esign:rate_limit"

    # Evict, count and record in one server-side step so processes cannot interleave.
    ACQUIRE_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local max_calls = tonumber(ARGV[3])
redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)
if count < max_calls then
    redis.call('ZADD', key, now, ARGV[4])
    redis.call('PEXPIRE', key, math.ceil(window * 2000))
    return '0'
end
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
return tostring(window - (now - tonumber(oldest[2])))
"""

    def __init__(
        self,
        redis_client: Redis,
        max_calls: int = 20,
        window_seconds: float = 1.0,
        *,
        key: Optional[str] = None,
        sleep: Optional[Sleeper] = None,
    ):
        super().__init__(max_calls, window_seconds)
        self.redis_client = redis_client
        self.key = key or self.KEY
        self._sleep = sleep or asyncio.sleep
        self._script = redis_client.register_script(self.ACQUIRE_SCRIPT)

    async def _try_acquire(self) -> float:
        """Record a call if there is room; otherwise return how long to wait."""
        raw = await self._script(
            keys=[self.key],
            args=[time.time(), self.window_seconds, self.max_calls, uuid.uuid4().hex],
        )
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return float(raw)

    async def acquire(self) -> None:
        while True:
            wait_for = await self._try_acquire()
            if wait_for <= 0:
                return
            logger.debug("esign.rate_limit.wait", wait_seconds=round(wait_for, 4), backend="redis")
            await self._sleep(max(wait_for, 0.001))
