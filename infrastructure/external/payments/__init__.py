"""
Factory for payment gateway clients.
"""
from __future__ import annotations

from typing import Optional

from core.settings import PaymentSettings
from application.ports.payment_gateway import PaymentGateway


def get_payment_gateway(settings: PaymentSettings, provider: Optional[str] = None) -> PaymentGateway:
    name = (provider or settings.default_provider).lower()
    if name == "stripe":
        from .stripe_client import StripeClient
        return StripeClient(
            settings.stripe,
            tolerance_seconds=settings.webhook.tolerance_seconds,
            retry={"max": settings.retry.max, "base": settings.retry.base_backoff},
        )
    raise ValueError(f"Unsupported payment provider: {name}")
