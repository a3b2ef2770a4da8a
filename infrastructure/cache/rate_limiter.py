"""固定窗口限流器

配置了 Redis 时使用 INCR/EXPIRE 在多进程间共享计数；否则退化为进程内计数。
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Optional

from core.logging_config import get_logger
from .redis_cache import RedisCache


logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after: int


class FixedWindowRateLimiter:
    def __init__(
        self,
        name: str,
        *,
        max_requests: int,
        window_seconds: int,
        cache: Optional[RedisCache] = None,
    ) -> None:
        self.name = name
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._cache = cache
        # key -> (count, window reset timestamp)
        self._windows: dict[str, tuple[int, float]] = {}
        self._lock = asyncio.Lock()

    def bind_cache(self, cache: Optional[RedisCache]) -> None:
        self._cache = cache

    async def hit(self, key: str) -> RateLimitDecision:
        if self._cache is not None:
            try:
                count, ttl = await self._cache.incr_window(f"ratelimit:{self.name}:{key}", self.window_seconds)
                return self._decide(count, ttl)
            except Exception as exc:
                # Redis 不可用时不阻断请求，退回进程内计数
                logger.warning("rate_limit_backend_error", limiter=self.name, error=str(exc))
        return await self._hit_local(key)

    async def _hit_local(self, key: str) -> RateLimitDecision:
        now = time.monotonic()
        async with self._lock:
            expired = [k for k, (_, reset_at) in self._windows.items() if reset_at <= now]
            for k in expired:
                del self._windows[k]

            count, reset_at = self._windows.get(key, (0, now + self.window_seconds))
            count += 1
            self._windows[key] = (count, reset_at)
        return self._decide(count, max(int(reset_at - now), 1))

    def _decide(self, count: int, ttl: int) -> RateLimitDecision:
        if count > self.max_requests:
            return RateLimitDecision(allowed=False, remaining=0, retry_after=ttl)
        return RateLimitDecision(allowed=True, remaining=self.max_requests - count, retry_after=0)

    def reset(self) -> None:
        self._windows.clear()
