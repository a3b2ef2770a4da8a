"""
Payment DTOs (Pydantic v2) used at application boundaries.

Gateway adapters normalize provider objects into ``CheckoutSession`` and
``RefundRecord``; services derive ``PaymentRecord`` from them. JSON field
names are camelCase on the wire, snake_case in Python.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from domain.payment.events import OWNER_METADATA_KEY, PURCHASE_KIND_METADATA_KEY, RefundReason


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---- provider-normalized records ----

class CheckoutSession(CamelModel):
    id: str
    payment_intent_id: Optional[str] = None
    customer_id: Optional[str] = None
    amount_total: int = 0
    currency: str = "usd"
    # Provider payment_status as returned (paid / unpaid / no_payment_required)
    payment_status: Optional[str] = None
    # Internal status: paid / unpaid / other
    status: str = "other"
    metadata: dict[str, str] = Field(default_factory=dict)
    created_at: datetime
    url: Optional[str] = None

    @property
    def owner_id(self) -> Optional[str]:
        return self.metadata.get(OWNER_METADATA_KEY) or None

    @property
    def purchase_kind(self) -> str:
        return self.metadata.get(PURCHASE_KIND_METADATA_KEY) or "unknown"


class RefundRecord(CamelModel):
    id: str
    amount: int
    status: Optional[str] = None
    # Provider may report reasons outside the requestable set (e.g. expired_uncaptured_charge)
    reason: Optional[str] = None
    created_at: datetime


class PaymentRecord(CamelModel):
    session_id: str
    payment_intent_id: Optional[str] = None
    amount: int
    currency: str
    status: str
    purchase_kind: str
    created_at: datetime
    refunded_amount: int = 0
    can_refund: bool = False
    refunds: list[RefundRecord] = Field(default_factory=list)

    @property
    def remaining_amount(self) -> int:
        return max(self.amount - self.refunded_amount, 0)


class EntitlementView(CamelModel):
    user_id: str
    is_premium: bool = False
    premium_granted_at: Optional[datetime] = None
    purchased_slot_count: int = 0


# ---- requests ----

class RefundCreate(CamelModel):
    session_id: str = Field(min_length=1)
    reason: RefundReason = RefundReason.REQUESTED_BY_CUSTOMER
    # Range is checked against the remaining balance by the refund service
    amount: Optional[int] = None


class CheckoutCreate(CamelModel):
    kind: Literal["premium", "car_slot"]
    customer_email: Optional[EmailStr] = None


class SupportCheckoutCreate(CamelModel):
    # 金额下限在服务层校验，缺失或过小统一返回 400
    amount: Optional[int] = None
    description: Optional[str] = Field(default=None, max_length=500)
    customer_email: Optional[EmailStr] = None


# ---- responses ----

class WebhookAck(CamelModel):
    received: bool = True


class PaymentListResponse(CamelModel):
    payments: list[PaymentRecord]


class PaymentDetailResponse(CamelModel):
    payment: PaymentRecord


class RefundResponse(CamelModel):
    refund: RefundRecord


class CheckoutLink(CamelModel):
    session_id: str
    url: Optional[str] = None


class EntitlementResponse(CamelModel):
    entitlement: EntitlementView


def coerce_metadata(raw: Any) -> dict[str, str]:
    """Provider metadata values are strings; drop empties and stringify the rest."""
    if not isinstance(raw, dict):
        return {}
    return {str(k): str(v) for k, v in raw.items() if v not in (None, "")}
