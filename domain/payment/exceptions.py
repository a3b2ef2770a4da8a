"""
Payment exceptions mapped to unified BusinessException variants.

Provider-side failures (signature, availability, refund rejection) and local
rule violations (ownership, refundable balance) share one hierarchy so the
global exception handler can map them to HTTP statuses in one place.
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class PaymentProviderError(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: str | None = None,
        details: Optional[dict] = None,
        code: int = PaymentCode.PROVIDER_ERROR,
        error_type: str = "PaymentProviderError",
    ):
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details=full_details,
        )
        self.provider = provider
        self.provider_code = provider_code


class PaymentProviderUnavailableError(PaymentProviderError):
    """Transient upstream failure: timeouts, connection errors, rate limiting."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(
            message,
            provider=provider,
            provider_code=provider_code,
            details=details,
            code=PaymentCode.PROVIDER_UNAVAILABLE,
            error_type="ProviderUnavailable",
        )


class RefundFailedError(PaymentProviderError):
    """The provider rejected a refund; its message is kept in ``details``."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        merged = {"provider_message": message}
        if details:
            merged.update(details)
        super().__init__(
            message,
            provider=provider,
            provider_code=provider_code,
            details=merged,
            code=PaymentCode.REFUND_FAILED,
            error_type="RefundFailed",
        )


class PaymentSignatureError(BusinessException):
    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        full_details = {"provider": provider}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="InvalidSignature",
            details=full_details,
        )


class InvalidEventPayloadException(BusinessException):
    def __init__(self, reason: str):
        super().__init__(
            code=PaymentCode.INVALID_EVENT,
            message="Malformed event body",
            error_type="InvalidEventPayload",
            details={"reason": reason},
        )


class PaymentNotFoundException(BusinessException):
    def __init__(self, session_id: str):
        super().__init__(
            code=PaymentCode.PAYMENT_NOT_FOUND,
            message="Payment not found",
            error_type="NotFound",
            details={"session_id": session_id},
        )


class PaymentAccessDeniedException(BusinessException):
    def __init__(self, session_id: str):
        super().__init__(
            code=PaymentCode.PAYMENT_ACCESS_DENIED,
            message="Payment does not belong to the current user",
            error_type="UnauthorizedAccess",
            details={"session_id": session_id},
        )


class InvalidRefundAmountException(BusinessException):
    def __init__(self, amount: int | None, remaining: int):
        super().__init__(
            code=PaymentCode.INVALID_REFUND_AMOUNT,
            message=f"Refund amount must be between 1 and {remaining}",
            error_type="InvalidAmount",
            details={"amount": amount, "remaining": remaining},
            field="amount",
        )


class InvalidPaymentAmountException(BusinessException):
    def __init__(self, amount: int | None, minimum: int):
        super().__init__(
            code=PaymentCode.INVALID_PAYMENT_AMOUNT,
            message=f"Invalid amount. Minimum is {minimum}",
            error_type="InvalidAmount",
            details={"amount": amount, "minimum": minimum},
            field="amount",
        )


class PaymentNotRefundableException(BusinessException):
    def __init__(self, session_id: str, status: str):
        super().__init__(
            code=PaymentCode.PAYMENT_NOT_REFUNDABLE,
            message=f"Payment with status '{status}' cannot be refunded",
            error_type="PaymentNotRefundable",
            details={"session_id": session_id, "status": status},
        )


class AlreadyPremiumException(BusinessException):
    def __init__(self, user_id: str):
        super().__init__(
            code=PaymentCode.ALREADY_PREMIUM,
            message="User already has premium access",
            error_type="AlreadyPremium",
            details={"user_id": user_id},
        )


class ReconciliationFailedException(BusinessException):
    def __init__(self, *, event_id: str, user_id: Optional[str], operation: str):
        super().__init__(
            code=PaymentCode.RECONCILIATION_FAILED,
            message="Entitlement reconciliation failed",
            error_type="ReconciliationFailed",
            details={"event_id": event_id, "user_id": user_id, "operation": operation},
        )
