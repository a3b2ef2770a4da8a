"""Webhook 重投递保护

只在处理成功后记录事件 ID，失败的投递仍可由支付平台重试。
"""
from __future__ import annotations

from core.logging_config import get_logger
from .redis_cache import RedisCache


logger = get_logger(__name__)


class RedisProcessedEventStore:
    def __init__(self, cache: RedisCache, *, ttl_seconds: int) -> None:
        self._cache = cache
        self._ttl = ttl_seconds

    @staticmethod
    def _key(provider: str, event_id: str) -> str:
        return f"webhook:processed:{provider}:{event_id}"

    async def seen(self, provider: str, event_id: str) -> bool:
        try:
            return await self._cache.exists(self._key(provider, event_id))
        except Exception as exc:
            # 查询失败时按未处理对待，依赖处理器自身的幂等性
            logger.warning("webhook_dedupe_lookup_failed", event_id=event_id, error=str(exc))
            return False

    async def remember(self, provider: str, event_id: str) -> None:
        try:
            await self._cache.set(self._key(provider, event_id), 1, ttl=self._ttl)
        except Exception as exc:
            logger.warning("webhook_dedupe_store_failed", event_id=event_id, error=str(exc))
