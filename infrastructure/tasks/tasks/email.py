"""Email related Celery tasks

Bodies only log for now; delivery goes through the ESP integration once it
is wired. Recipients are resolved from the user id by the email service.
"""
from __future__ import annotations

from typing import Optional

from celery import shared_task

from ..utils.base_task import BaseTask
from core.logging_config import get_logger

logger = get_logger(__name__)


_RETRY_OPTIONS = dict(
    bind=True,
    base=BaseTask,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)


@shared_task(**_RETRY_OPTIONS)
def send_premium_welcome_email(self, user_id: str) -> None:
    """Welcome mail sent once premium access is granted."""
    logger.info("send_premium_welcome_email", user_id=user_id)


@shared_task(**_RETRY_OPTIONS)
def send_slot_confirmation_email(self, user_id: str, slot_count: int) -> None:
    logger.info("send_slot_confirmation_email", user_id=user_id, slot_count=slot_count)


@shared_task(**_RETRY_OPTIONS)
def send_payment_receipt_email(
    self, user_id: Optional[str], amount: int, currency: str, payment_intent_id: str
) -> None:
    logger.info(
        "send_payment_receipt_email",
        user_id=user_id,
        amount=amount,
        currency=currency,
        payment_intent_id=payment_intent_id,
    )


@shared_task(**_RETRY_OPTIONS)
def send_payment_failed_email(
    self,
    user_id: Optional[str],
    amount: int,
    currency: str,
    payment_intent_id: str,
    reason: Optional[str] = None,
) -> None:
    logger.info(
        "send_payment_failed_email",
        user_id=user_id,
        amount=amount,
        currency=currency,
        payment_intent_id=payment_intent_id,
        reason=reason,
    )
