"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so provider credentials can be loaded
(and replaced in tests) without touching the general application config.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentRetry(BaseModel):
    # Applies to read-only provider calls; refund creation is never retried
    max: int = 2
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    tolerance_seconds: int = 300
    dedupe_ttl_seconds: int = 7 * 24 * 3600


class HistorySettings(BaseModel):
    session_limit: int = 100


class CheckoutSettings(BaseModel):
    premium_amount: int = 1000
    slot_amount: int = 200
    support_min_amount: int = 100
    currency: str = "usd"
    platform: str = "web"
    success_url: str = "http://localhost:3000/payment/success?session_id={CHECKOUT_SESSION_ID}"
    cancel_url: str = "http://localhost:3000/payment/cancel"
    support_success_url: str = "http://localhost:3000/support/thank-you"
    # 同一用户同一商品在窗口内的重复提交复用同一个会话
    idempotency_window_seconds: int = 60


class StripeSettings(BaseModel):
    secret_key: Optional[str] = None
    webhook_secret: Optional[str] = None


class PaymentSettings(BaseSettings):
    default_provider: str = Field(default="stripe", validation_alias="PAYMENT__DEFAULT_PROVIDER")
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    history: HistorySettings = Field(default_factory=HistorySettings)
    checkout: CheckoutSettings = Field(default_factory=CheckoutSettings)

    stripe: StripeSettings = Field(default_factory=StripeSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
