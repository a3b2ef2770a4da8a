"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

import asyncio
from typing import Any, Optional

from core.logging_config import get_logger
from ..tasks import email


logger = get_logger(__name__)


class TaskDispatcher:
    """Internal facade used by application layer to schedule tasks.

    Implements the application ``Notifier`` port. ``delay`` talks to the
    broker synchronously, so publishing runs in a worker thread and never
    holds the event loop. Publishing errors are logged and swallowed so a
    broker outage never fails a payment flow.
    """

    async def _dispatch(self, task: Any, **kwargs: Any) -> None:
        try:
            await asyncio.to_thread(task.delay, **kwargs)
        except Exception as exc:
            logger.warning("task_dispatch_failed", task_name=task.name, error=str(exc), **kwargs)

    async def notify_premium_activated(self, user_id: str) -> None:
        await self._dispatch(email.send_premium_welcome_email, user_id=user_id)

    async def notify_slot_purchased(self, user_id: str, slot_count: int) -> None:
        await self._dispatch(email.send_slot_confirmation_email, user_id=user_id, slot_count=slot_count)

    async def notify_payment_succeeded(
        self, user_id: Optional[str], *, amount: int, currency: str, payment_intent_id: str
    ) -> None:
        await self._dispatch(
            email.send_payment_receipt_email,
            user_id=user_id,
            amount=amount,
            currency=currency,
            payment_intent_id=payment_intent_id,
        )

    async def notify_payment_failed(
        self,
        user_id: Optional[str],
        *,
        amount: int,
        currency: str,
        payment_intent_id: str,
        reason: Optional[str] = None,
    ) -> None:
        await self._dispatch(
            email.send_payment_failed_email,
            user_id=user_id,
            amount=amount,
            currency=currency,
            payment_intent_id=payment_intent_id,
            reason=reason,
        )
