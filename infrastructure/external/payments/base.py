"""
Base payment client implementing shared concerns: threading, retry, logging, mapping.

Provider SDKs are synchronous; calls are pushed onto a worker thread so the
event loop is never blocked. Read-only calls may be retried on transient
failures; writes are issued exactly once and rely on idempotency keys.
"""
from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception

from core.logging_config import get_logger
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL


logger = get_logger(__name__)


class BasePaymentClient:
    provider: str = "base"

    def __init__(self, *, retry: Optional[dict[str, Any]] = None) -> None:
        self._retry_cfg = retry or {"max": 2, "base": 0.2}

    async def aclose(self) -> None:
        """SDK-managed connections; nothing to release by default."""

    def _is_transient(self, exc: BaseException) -> bool:
        """Whether a failed read may be retried. Providers override."""
        return False

    async def _call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run a blocking SDK call once, off the event loop."""
        return await asyncio.to_thread(fn, *args, **kwargs)

    async def _retry(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run a read-only SDK call with bounded exponential backoff."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception(self._is_transient),
            reraise=True,
        ):
            with attempt:
                return await self._call(fn, *args, **kwargs)

    # Helpers
    @staticmethod
    def _as_dict(obj: Any) -> dict[str, Any]:
        """Convert an SDK response object into plain JSON-compatible dicts."""
        if obj is None:
            return {}
        if type(obj) is dict:
            return obj
        to_dict = getattr(obj, "to_dict", None)
        if to_dict is None:
            return dict(obj)
        try:
            return to_dict(recursive=True)
        except TypeError:
            # older SDKs: to_dict() is shallow, to_dict_recursive() converts nested objects
            return obj.to_dict_recursive()

    def _map_status(self, provider_status: Optional[str]) -> str:
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(self.provider, {})
        if not provider_status:
            return "other"
        return mapping.get(provider_status, "other")

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
