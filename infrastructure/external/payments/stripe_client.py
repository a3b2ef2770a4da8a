"""
Stripe Checkout/Refunds adapter using the official stripe-python SDK.

Notes on SDK usage:
- Module-level resources (``stripe.checkout.Session``, ``stripe.Refund``) are
  called with a per-request ``api_key`` so no global SDK state is mutated.
- Webhook verification uses ``stripe.Webhook.construct_event`` with the
  ``Stripe-Signature`` header over the exact raw body. The verified body is
  then decoded with ``json`` rather than going through SDK objects.
- Idempotency keys are passed through the ``idempotency_key`` kwarg.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

import stripe

from application.dtos.payments import CheckoutSession, RefundRecord, coerce_metadata
from core.settings import StripeSettings
from core.logging_config import get_logger
from domain.payment.events import PaymentEvent
from domain.payment.exceptions import (
    InvalidEventPayloadException,
    PaymentNotFoundException,
    PaymentProviderError,
    PaymentProviderUnavailableError,
    PaymentSignatureError,
    RefundFailedError,
)
from infrastructure.external.payments.base import BasePaymentClient


logger = get_logger(__name__)

SIGNATURE_HEADER = "Stripe-Signature"


def _epoch_to_utc(value: Any) -> datetime:
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError):
        return datetime.fromtimestamp(0, tz=timezone.utc)


def _ref_id(value: Any) -> Optional[str]:
    """Expandable references arrive either as an id string or an expanded object."""
    if not value:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        return value.get("id")
    return None


def _header(headers: Mapping[str, Any], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        for key, candidate in headers.items():
            if str(key).lower() == lowered:
                value = candidate
                break
    return str(value) if value else None


class StripeClient(BasePaymentClient):
    provider = "stripe"

    def __init__(
        self,
        settings: StripeSettings,
        *,
        tolerance_seconds: int = 300,
        retry: Optional[dict[str, Any]] = None,
    ):
        super().__init__(retry=retry)
        self._secret_key = settings.secret_key
        self._webhook_secret = settings.webhook_secret
        self._tolerance = tolerance_seconds

    # ---- plumbing ----

    def _api_key(self) -> str:
        if not self._secret_key:
            raise PaymentProviderError(
                "Stripe secret key is not configured",
                provider=self.provider,
                provider_code="configuration",
            )
        return self._secret_key

    def _is_transient(self, exc: BaseException) -> bool:
        return isinstance(exc, (stripe.APIConnectionError, stripe.RateLimitError))

    def _translate(self, exc: Exception) -> PaymentProviderError:
        if self._is_transient(exc):
            return PaymentProviderUnavailableError(
                "Payment provider temporarily unavailable",
                provider=self.provider,
                provider_code=getattr(exc, "code", None),
            )
        return PaymentProviderError(
            getattr(exc, "user_message", None) or str(exc) or "Payment provider error",
            provider=self.provider,
            provider_code=getattr(exc, "code", None),
            details={"http_status": getattr(exc, "http_status", None)},
        )

    def _to_session(self, raw: Mapping[str, Any]) -> CheckoutSession:
        payment_status = raw.get("payment_status")
        return CheckoutSession(
            id=str(raw.get("id")),
            payment_intent_id=_ref_id(raw.get("payment_intent")),
            customer_id=_ref_id(raw.get("customer")),
            amount_total=int(raw.get("amount_total") or 0),
            currency=str(raw.get("currency") or "usd"),
            payment_status=payment_status,
            status=self._map_status(payment_status),
            metadata=coerce_metadata(raw.get("metadata")),
            created_at=_epoch_to_utc(raw.get("created")),
            url=raw.get("url"),
        )

    @staticmethod
    def _to_refund(raw: Mapping[str, Any]) -> RefundRecord:
        return RefundRecord(
            id=str(raw.get("id")),
            amount=int(raw.get("amount") or 0),
            status=raw.get("status"),
            reason=raw.get("reason"),
            created_at=_epoch_to_utc(raw.get("created")),
        )

    # ---- webhook ----

    def parse_webhook(self, headers: Mapping[str, Any], body: bytes) -> PaymentEvent:
        """Verify the signature over the raw body and decode the event envelope.

        Fails closed: every verification problem is reported as
        ``PaymentSignatureError``.
        """
        if not self._webhook_secret:
            raise PaymentSignatureError("Webhook secret is not configured", provider=self.provider)
        sig = _header(headers, SIGNATURE_HEADER)
        if not sig:
            raise PaymentSignatureError(f"Missing {SIGNATURE_HEADER} header", provider=self.provider)
        try:
            stripe.Webhook.construct_event(
                payload=body,
                sig_header=sig,
                secret=self._webhook_secret,
                tolerance=self._tolerance,
            )
        except Exception as exc:
            logger.warning("webhook_signature_rejected", provider=self.provider, error=str(exc))
            raise PaymentSignatureError("Invalid webhook signature", provider=self.provider) from exc

        try:
            envelope = json.loads(body)
        except ValueError:
            raise InvalidEventPayloadException("body is not valid JSON")
        return PaymentEvent.from_envelope(envelope, provider=self.provider)

    # ---- reads ----

    async def list_checkout_sessions(
        self, *, customer_id: Optional[str] = None, limit: int = 100
    ) -> list[CheckoutSession]:
        params: dict[str, Any] = {"limit": limit, "api_key": self._api_key()}
        if customer_id:
            params["customer"] = customer_id
        try:
            result = await self._retry(stripe.checkout.Session.list, **params)
        except stripe.StripeError as exc:
            raise self._translate(exc) from exc
        data = self._as_dict(result).get("data") or []
        self._log("stripe_sessions_listed", customer_id=customer_id, count=len(data))
        return [self._to_session(item) for item in data]

    async def retrieve_checkout_session(self, session_id: str) -> CheckoutSession:
        try:
            result = await self._retry(stripe.checkout.Session.retrieve, session_id, api_key=self._api_key())
        except stripe.InvalidRequestError as exc:
            if getattr(exc, "http_status", None) == 404:
                raise PaymentNotFoundException(session_id) from exc
            raise self._translate(exc) from exc
        except stripe.StripeError as exc:
            raise self._translate(exc) from exc
        return self._to_session(self._as_dict(result))

    async def list_refunds(self, payment_intent_id: str) -> list[RefundRecord]:
        try:
            result = await self._retry(
                stripe.Refund.list,
                payment_intent=payment_intent_id,
                limit=100,
                api_key=self._api_key(),
            )
        except stripe.StripeError as exc:
            raise self._translate(exc) from exc
        data = self._as_dict(result).get("data") or []
        return [self._to_refund(item) for item in data]

    # ---- writes (never retried) ----

    async def create_refund(
        self,
        *,
        payment_intent_id: str,
        amount: int,
        reason: str,
        idempotency_key: str,
        metadata: Optional[dict[str, str]] = None,
    ) -> RefundRecord:
        try:
            refund = await self._call(
                stripe.Refund.create,
                payment_intent=payment_intent_id,
                amount=amount,
                reason=reason,
                metadata=metadata or {},
                idempotency_key=idempotency_key,
                api_key=self._api_key(),
            )
        except stripe.StripeError as exc:
            if self._is_transient(exc):
                raise self._translate(exc) from exc
            raise RefundFailedError(
                getattr(exc, "user_message", None) or str(exc) or "Refund rejected",
                provider=self.provider,
                provider_code=getattr(exc, "code", None),
            ) from exc
        record = self._to_refund(self._as_dict(refund))
        self._log("stripe_refund_created", payment_intent_id=payment_intent_id, refund_id=record.id, status=record.status)
        return record

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
    ) -> CheckoutSession:
        params: dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": currency,
                        "product_data": {"name": name, "description": description},
                        "unit_amount": amount,
                    },
                    "quantity": 1,
                }
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            "allow_promotion_codes": True,
            "billing_address_collection": "required",
            "api_key": self._api_key(),
        }
        if customer_email:
            params["customer_email"] = customer_email
        if idempotency_key:
            params["idempotency_key"] = idempotency_key
        try:
            session = await self._call(stripe.checkout.Session.create, **params)
        except stripe.StripeError as exc:
            raise self._translate(exc) from exc
        result = self._to_session(self._as_dict(session))
        self._log("stripe_checkout_created", session_id=result.id, amount=amount, currency=currency)
        return result
