"""缓存层对外暴露的接口"""
from .redis_cache import (
    RedisCache,
    init_redis_cache,
    shutdown_redis_cache,
    get_redis_cache,
)
from .rate_limiter import FixedWindowRateLimiter, RateLimitDecision
from .webhook_dedupe import RedisProcessedEventStore

__all__ = [
    "RedisCache",
    "init_redis_cache",
    "shutdown_redis_cache",
    "get_redis_cache",
    "FixedWindowRateLimiter",
    "RateLimitDecision",
    "RedisProcessedEventStore",
]
