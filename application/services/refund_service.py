"""
Refund application service.

The payment is always re-derived from the provider before refunding; the
client only names the session. Refunds are issued once against the payment
intent and never retried here.
"""
from __future__ import annotations

import hashlib
from typing import Optional

from application.dtos.payments import PaymentRecord, RefundRecord
from application.ports.payment_gateway import PaymentGateway
from application.services.payment_history_service import PaymentHistoryService
from core.logging_config import get_logger
from domain.payment.events import RefundReason
from domain.payment.exceptions import (
    InvalidRefundAmountException,
    PaymentNotRefundableException,
)


logger = get_logger(__name__)


def refund_idempotency_key(record: PaymentRecord, amount: int, reason: str) -> str:
    # Stable for a given balance: a double submit collapses into one refund,
    # while a later partial refund (different refunded total) gets a new key.
    base = f"refund|{record.session_id}|{record.payment_intent_id}|{amount}|{record.refunded_amount}|{reason}"
    return hashlib.sha256(base.encode("utf-8")).hexdigest()


def resolve_refund_amount(requested: Optional[int], remaining: int) -> int:
    """Omitted means the full remaining balance; otherwise 0 < amount <= remaining."""
    if requested is None:
        if remaining <= 0:
            raise InvalidRefundAmountException(requested, remaining)
        return remaining
    if requested <= 0 or requested > remaining:
        raise InvalidRefundAmountException(requested, remaining)
    return requested


class RefundService:
    def __init__(self, gateway: PaymentGateway, history: PaymentHistoryService) -> None:
        self.gateway = gateway
        self._history = history

    async def issue_refund(
        self,
        session_id: str,
        user_id: str,
        reason: RefundReason | str = RefundReason.REQUESTED_BY_CUSTOMER,
        amount: Optional[int] = None,
    ) -> RefundRecord:
        record = await self._history.get_payment_for_user(user_id, session_id, strict=True)
        if record.status != "paid" or not record.payment_intent_id:
            raise PaymentNotRefundableException(session_id, record.status)

        refund_amount = resolve_refund_amount(amount, record.remaining_amount)
        reason_value = RefundReason(reason).value
        idempotency_key = refund_idempotency_key(record, refund_amount, reason_value)

        logger.info(
            "payment_refund_request",
            session_id=session_id,
            user_id=user_id,
            payment_intent_id=record.payment_intent_id,
            amount=refund_amount,
            remaining=record.remaining_amount,
            idempotency_key=idempotency_key,
        )
        refund = await self.gateway.create_refund(
            payment_intent_id=record.payment_intent_id,
            amount=refund_amount,
            reason=reason_value,
            idempotency_key=idempotency_key,
            metadata={"userId": user_id, "sessionId": session_id},
        )

        logger.info(
            "payment_analytics_refund",
            user_id=user_id,
            session_id=session_id,
            refund_id=refund.id,
            original_amount=record.amount,
            refunded_amount=refund.amount,
            purchase_kind=record.purchase_kind,
            reason=reason_value,
            status=refund.status,
        )
        return refund
