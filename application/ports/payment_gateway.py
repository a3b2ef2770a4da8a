"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, runtime_checkable

from application.dtos.payments import CheckoutSession, RefundRecord
from domain.payment.events import PaymentEvent


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for the payment provider.

    Implementations should be async and side-effect free beyond IO.
    ``create_refund`` and ``create_checkout_session`` are the only writes.
    """

    provider: str

    def parse_webhook(self, headers: Mapping[str, Any], body: bytes) -> PaymentEvent: ...

    async def list_checkout_sessions(
        self, *, customer_id: Optional[str] = None, limit: int = 100
    ) -> list[CheckoutSession]: ...

    async def retrieve_checkout_session(self, session_id: str) -> CheckoutSession: ...

    async def list_refunds(self, payment_intent_id: str) -> list[RefundRecord]: ...

    async def create_refund(
        self,
        *,
        payment_intent_id: str,
        amount: int,
        reason: str,
        idempotency_key: str,
        metadata: Optional[dict[str, str]] = None,
    ) -> RefundRecord: ...

    async def create_checkout_session(
        self,
        *,
        amount: int,
        currency: str,
        name: str,
        description: str,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
        customer_email: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> CheckoutSession: ...

    async def aclose(self) -> None: ...
