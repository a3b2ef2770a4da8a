"""
Payment domain events.

Inbound provider notifications are modelled as immutable ``PaymentEvent``
values. The set of event kinds this system acts on is closed; anything else
parses to ``None`` and is acknowledged without handling.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional

from domain.payment.exceptions import InvalidEventPayloadException


class PaymentEventKind(str, Enum):
    CHECKOUT_COMPLETED = "checkout.session.completed"
    PAYMENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_FAILED = "payment_intent.payment_failed"
    DISPUTE_CREATED = "charge.dispute.created"

    @classmethod
    def parse(cls, raw: str | None) -> Optional["PaymentEventKind"]:
        try:
            return cls(raw)
        except ValueError:
            return None


class PurchaseKind(str, Enum):
    """Value of the ``type`` metadata tag set when a checkout is created."""

    PREMIUM = "premium"
    CAR_SLOT = "car_slot"
    SUPPORT = "support"

    @classmethod
    def parse(cls, raw: str | None) -> Optional["PurchaseKind"]:
        try:
            return cls(raw)
        except ValueError:
            return None


class RefundReason(str, Enum):
    REQUESTED_BY_CUSTOMER = "requested_by_customer"
    DUPLICATE = "duplicate"
    FRAUDULENT = "fraudulent"


# Metadata keys written on checkout sessions / payment intents
OWNER_METADATA_KEY = "userId"
PURCHASE_KIND_METADATA_KEY = "type"


@dataclass(frozen=True)
class PaymentEvent:
    id: str
    type: str
    created_at: datetime
    payload: Mapping[str, Any] = field(default_factory=dict, hash=False)
    provider: str = "stripe"

    @property
    def kind(self) -> Optional[PaymentEventKind]:
        return PaymentEventKind.parse(self.type)

    def metadata(self, key: str) -> Optional[str]:
        meta = self.payload.get("metadata") or {}
        value = meta.get(key)
        return str(value) if value not in (None, "") else None

    @classmethod
    def from_envelope(cls, envelope: Mapping[str, Any], *, provider: str = "stripe") -> "PaymentEvent":
        """Build an event from a decoded ``{id, type, created, data: {object}}`` envelope."""
        if not isinstance(envelope, Mapping):
            raise InvalidEventPayloadException("envelope is not an object")
        event_id = envelope.get("id")
        event_type = envelope.get("type")
        if not event_id or not event_type:
            raise InvalidEventPayloadException("missing id or type")
        data = envelope.get("data") or {}
        obj = data.get("object") if isinstance(data, Mapping) else None
        if not isinstance(obj, Mapping):
            raise InvalidEventPayloadException("missing data.object")
        created = envelope.get("created")
        try:
            created_at = datetime.fromtimestamp(int(created), tz=timezone.utc) if created else datetime.now(timezone.utc)
        except (TypeError, ValueError):
            raise InvalidEventPayloadException("invalid created timestamp")
        return cls(
            id=str(event_id),
            type=str(event_type),
            created_at=created_at,
            payload=dict(obj),
            provider=provider,
        )
