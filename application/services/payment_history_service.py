"""
Payment history application service.

Rebuilds a user's refund-aware payment list from the provider on every
request; nothing here is cached or persisted. Ownership is decided by the
``userId`` metadata on each checkout session, and that filter is applied
even when the provider query was already scoped by customer id.
"""
from __future__ import annotations

from typing import Callable, Optional

from application.dtos.payments import CheckoutSession, PaymentRecord, RefundRecord
from application.ports.payment_gateway import PaymentGateway
from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.exceptions import (
    PaymentAccessDeniedException,
    PaymentProviderUnavailableError,
)


logger = get_logger(__name__)


def can_refund(status: str, amount: int, refunded_amount: int) -> bool:
    return status == "paid" and refunded_amount < amount


class PaymentHistoryService:
    def __init__(
        self,
        gateway: PaymentGateway,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        session_limit: int = 100,
    ) -> None:
        self.gateway = gateway
        self._uow_factory = uow_factory
        self._session_limit = session_limit

    async def _customer_id_for(self, user_id: str) -> Optional[str]:
        try:
            async with self._uow_factory(readonly=True) as uow:
                state = await uow.entitlement_repository.get(user_id)
        except Exception as exc:
            # 查不到客户 ID 只影响查询范围，不影响结果正确性
            logger.warning("payment_history_customer_lookup_failed", user_id=user_id, error=str(exc))
            return None
        return state.provider_customer_id if state else None

    async def _list_sessions(self, customer_id: Optional[str]) -> list[CheckoutSession]:
        if customer_id:
            try:
                return await self.gateway.list_checkout_sessions(
                    customer_id=customer_id, limit=self._session_limit
                )
            except Exception as exc:
                logger.warning(
                    "payment_history_customer_query_failed",
                    customer_id=customer_id,
                    error=str(exc),
                )
        # Unscoped listing; provider errors here fail the whole request
        return await self.gateway.list_checkout_sessions(limit=self._session_limit)

    async def _refunds_for(self, session: CheckoutSession, *, strict: bool) -> list[RefundRecord]:
        if not session.payment_intent_id:
            return []
        try:
            return await self.gateway.list_refunds(session.payment_intent_id)
        except Exception as exc:
            if strict:
                raise PaymentProviderUnavailableError(
                    "Unable to load refunds for payment",
                    provider=self.gateway.provider,
                    details={"session_id": session.id},
                ) from exc
            logger.warning(
                "payment_history_refunds_unavailable",
                session_id=session.id,
                payment_intent_id=session.payment_intent_id,
                error=str(exc),
            )
            return []

    async def _to_record(self, session: CheckoutSession, *, strict: bool = False) -> PaymentRecord:
        refunds = await self._refunds_for(session, strict=strict)
        refunded_amount = sum(r.amount for r in refunds)
        return PaymentRecord(
            session_id=session.id,
            payment_intent_id=session.payment_intent_id,
            amount=session.amount_total,
            currency=session.currency,
            status=session.status,
            purchase_kind=session.purchase_kind,
            created_at=session.created_at,
            refunded_amount=refunded_amount,
            can_refund=can_refund(session.status, session.amount_total, refunded_amount),
            refunds=refunds,
        )

    async def list_payments_for_user(self, user_id: str) -> list[PaymentRecord]:
        """Newest-first list of the user's payments with refund totals."""
        customer_id = await self._customer_id_for(user_id)
        sessions = await self._list_sessions(customer_id)
        owned = [s for s in sessions if s.owner_id == user_id]

        # Provider calls stay sequential within one request
        records = [await self._to_record(s) for s in owned]
        records.sort(key=lambda r: r.created_at, reverse=True)
        logger.info(
            "payment_history_listed",
            user_id=user_id,
            scanned=len(sessions),
            returned=len(records),
        )
        return records

    async def get_payment_for_user(self, user_id: str, session_id: str, *, strict: bool = False) -> PaymentRecord:
        """Single payment lookup with ownership enforcement.

        With ``strict`` a refund-lookup failure raises instead of degrading
        to zero, so callers that act on the refunded total never see a
        stale balance.
        """
        session = await self.gateway.retrieve_checkout_session(session_id)
        if session.owner_id != user_id:
            logger.warning(
                "payment_access_denied",
                user_id=user_id,
                session_id=session_id,
            )
            raise PaymentAccessDeniedException(session_id)
        return await self._to_record(session, strict=strict)
