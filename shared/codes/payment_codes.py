"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_UNAVAILABLE = 60001
    SIGNATURE_ERROR = 60002
    INVALID_EVENT = 60003
    REFUND_FAILED = 60004

    # Local payment rules (61xxx)
    PAYMENT_NOT_FOUND = 61000
    PAYMENT_ACCESS_DENIED = 61001
    INVALID_REFUND_AMOUNT = 61002
    PAYMENT_NOT_REFUNDABLE = 61003
    ALREADY_PREMIUM = 61004
    RECONCILIATION_FAILED = 61005
    INVALID_PAYMENT_AMOUNT = 61006


# Checkout session payment_status -> PaymentRecord.status
PROVIDER_STATUS_TO_INTERNAL = {
    "stripe": {
        "paid": "paid",
        "unpaid": "unpaid",
        "no_payment_required": "other",
    },
}
