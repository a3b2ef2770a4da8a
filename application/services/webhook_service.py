"""
Webhook application service: verify inbound provider events and route them.

Routing is a closed mapping from ``PaymentEventKind`` to one handler each.
Anything outside that set is logged and acknowledged so the provider stops
redelivering it. Handler failures surface as ``ReconciliationFailedException``;
the provider's own retry schedule is the recovery path.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping, Optional

from application.ports.event_store import ProcessedEventStore
from application.ports.notifier import Notifier
from application.ports.payment_gateway import PaymentGateway
from application.services.entitlement_service import EntitlementReconciler
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from domain.payment.events import (
    OWNER_METADATA_KEY,
    PURCHASE_KIND_METADATA_KEY,
    PaymentEvent,
    PaymentEventKind,
    PurchaseKind,
)
from domain.payment.exceptions import ReconciliationFailedException


logger = get_logger(__name__)

Handler = Callable[[PaymentEvent], Awaitable[None]]

PAID_CHECKOUT_STATUSES = frozenset({"paid", "no_payment_required"})


def _ref_id(value: Any) -> Optional[str]:
    if isinstance(value, Mapping):
        return value.get("id")
    return value or None


class WebhookService:
    def __init__(
        self,
        gateway: PaymentGateway,
        reconciler: EntitlementReconciler,
        notifier: Notifier,
        *,
        event_store: Optional[ProcessedEventStore] = None,
    ) -> None:
        self.gateway = gateway
        self._reconciler = reconciler
        self._notifier = notifier
        self._event_store = event_store
        self._handlers: dict[PaymentEventKind, Handler] = {
            PaymentEventKind.CHECKOUT_COMPLETED: self._on_checkout_completed,
            PaymentEventKind.PAYMENT_SUCCEEDED: self._on_payment_succeeded,
            PaymentEventKind.PAYMENT_FAILED: self._on_payment_failed,
            PaymentEventKind.DISPUTE_CREATED: self._on_dispute_created,
        }

    def verify(self, headers: Mapping[str, Any], body: bytes) -> PaymentEvent:
        event = self.gateway.parse_webhook(headers, body)
        logger.info("payment_webhook_parsed", provider=self.gateway.provider, event_type=event.type, event_id=event.id)
        return event

    async def handle(self, headers: Mapping[str, Any], body: bytes) -> PaymentEvent:
        """Verify then dispatch; signature errors propagate before any handler runs."""
        event = self.verify(headers, body)
        await self.dispatch(event)
        return event

    async def dispatch(self, event: PaymentEvent) -> None:
        kind = event.kind
        handler = self._handlers.get(kind) if kind is not None else None
        if handler is None:
            logger.info("webhook_event_ignored", event_id=event.id, event_type=event.type)
            return

        if self._event_store is not None and await self._event_store.seen(event.provider, event.id):
            logger.info("webhook_event_redelivered", event_id=event.id, event_type=event.type)
            return

        try:
            await handler(event)
        except BusinessException as exc:
            logger.error(
                "webhook_handler_failed",
                event_id=event.id,
                event_type=event.type,
                user_id=event.metadata(OWNER_METADATA_KEY),
                error_type=exc.error_type,
                error=exc.message,
                details=exc.details,
            )
            raise
        except Exception as exc:
            logger.error(
                "webhook_handler_failed",
                event_id=event.id,
                event_type=event.type,
                error=str(exc),
                exc_info=True,
            )
            raise ReconciliationFailedException(
                event_id=event.id,
                user_id=event.metadata(OWNER_METADATA_KEY),
                operation=event.type,
            ) from exc

        if self._event_store is not None:
            await self._event_store.remember(event.provider, event.id)

    # ---- handlers ----

    async def _on_checkout_completed(self, event: PaymentEvent) -> None:
        session = event.payload
        payment_status = session.get("payment_status")
        if payment_status not in PAID_CHECKOUT_STATUSES:
            logger.info(
                "webhook_checkout_not_paid",
                event_id=event.id,
                session_id=session.get("id"),
                payment_status=payment_status,
            )
            return

        user_id = event.metadata(OWNER_METADATA_KEY)
        if not user_id:
            logger.warning("webhook_checkout_missing_user", event_id=event.id, session_id=session.get("id"))
            return

        raw_kind = event.metadata(PURCHASE_KIND_METADATA_KEY)
        kind = PurchaseKind.parse(raw_kind)
        if kind is PurchaseKind.PREMIUM:
            operation = "grant_premium"
            ok = await self._reconciler.grant_premium(user_id, _ref_id(session.get("customer")))
        elif kind is PurchaseKind.CAR_SLOT:
            operation = "add_capacity_slot"
            ok = await self._reconciler.add_capacity_slot(user_id)
        elif kind is PurchaseKind.SUPPORT:
            logger.info(
                "webhook_support_payment_received",
                event_id=event.id,
                user_id=user_id,
                amount=session.get("amount_total"),
                currency=session.get("currency"),
            )
            return
        else:
            logger.info(
                "webhook_unknown_purchase_kind",
                event_id=event.id,
                user_id=user_id,
                purchase_kind=raw_kind,
            )
            return

        if not ok:
            raise ReconciliationFailedException(event_id=event.id, user_id=user_id, operation=operation)

    async def _on_payment_succeeded(self, event: PaymentEvent) -> None:
        intent = event.payload
        user_id = event.metadata(OWNER_METADATA_KEY)
        amount = int(intent.get("amount_received") or intent.get("amount") or 0)
        currency = str(intent.get("currency") or "usd")
        logger.info(
            "payment_analytics_succeeded",
            event_id=event.id,
            payment_intent_id=intent.get("id"),
            user_id=user_id,
            amount=amount,
            currency=currency,
            purchase_kind=event.metadata(PURCHASE_KIND_METADATA_KEY),
        )
        await self._side_effect(
            event,
            self._notifier.notify_payment_succeeded(
                user_id, amount=amount, currency=currency, payment_intent_id=str(intent.get("id"))
            ),
        )

    async def _on_payment_failed(self, event: PaymentEvent) -> None:
        intent = event.payload
        user_id = event.metadata(OWNER_METADATA_KEY)
        amount = int(intent.get("amount") or 0)
        currency = str(intent.get("currency") or "usd")
        last_error = intent.get("last_payment_error") or {}
        reason = last_error.get("message") if isinstance(last_error, Mapping) else None
        logger.info(
            "payment_analytics_failed",
            event_id=event.id,
            payment_intent_id=intent.get("id"),
            user_id=user_id,
            amount=amount,
            currency=currency,
            reason=reason,
        )
        await self._side_effect(
            event,
            self._notifier.notify_payment_failed(
                user_id,
                amount=amount,
                currency=currency,
                payment_intent_id=str(intent.get("id")),
                reason=reason,
            ),
        )

    async def _on_dispute_created(self, event: PaymentEvent) -> None:
        dispute = event.payload
        logger.warning(
            "payment_dispute_created",
            event_id=event.id,
            dispute_id=dispute.get("id"),
            charge_id=_ref_id(dispute.get("charge")),
            payment_intent_id=_ref_id(dispute.get("payment_intent")),
            amount=dispute.get("amount"),
            reason=dispute.get("reason"),
        )

    @staticmethod
    async def _side_effect(event: PaymentEvent, sending: Awaitable[None]) -> None:
        try:
            await sending
        except Exception as exc:
            logger.warning(
                "webhook_side_effect_failed",
                event_id=event.id,
                event_type=event.type,
                error=str(exc),
            )
