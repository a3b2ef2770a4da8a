"""
Payments API routes.

Keep this thin: verification, reconciliation and aggregation live in the
application services; no SDK details here.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.dependencies import (
    general_rate_limit,
    get_checkout_service,
    get_current_user_id,
    get_history_service,
    get_reconciler,
    get_refund_service,
    get_webhook_service,
    payment_rate_limit,
    webhook_rate_limit,
)
from application.dtos.payments import (
    CheckoutCreate,
    CheckoutLink,
    EntitlementResponse,
    EntitlementView,
    PaymentDetailResponse,
    PaymentListResponse,
    RefundCreate,
    RefundResponse,
    SupportCheckoutCreate,
    WebhookAck,
)
from application.services.checkout_service import CheckoutService
from application.services.entitlement_service import EntitlementReconciler
from application.services.payment_history_service import PaymentHistoryService
from application.services.refund_service import RefundService
from application.services.webhook_service import WebhookService
from core.logging_config import get_logger


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


@router.post(
    "/webhooks/stripe",
    response_model=WebhookAck,
    dependencies=[Depends(webhook_rate_limit)],
)
async def stripe_webhook(
    request: Request,
    service: WebhookService = Depends(get_webhook_service),
):
    # Signature is computed over the exact bytes; never re-serialize
    raw_body = await request.body()
    event = await service.handle(request.headers, raw_body)
    logger.info("payment_webhook_acknowledged", event_id=event.id, event_type=event.type)
    return WebhookAck(received=True)


@router.get(
    "",
    response_model=PaymentListResponse,
    dependencies=[Depends(general_rate_limit)],
)
async def list_payments(
    user_id: str = Depends(get_current_user_id),
    service: PaymentHistoryService = Depends(get_history_service),
):
    payments = await service.list_payments_for_user(user_id)
    return PaymentListResponse(payments=payments)


@router.get(
    "/sessions/{session_id}",
    response_model=PaymentDetailResponse,
    dependencies=[Depends(general_rate_limit)],
)
async def get_payment(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    service: PaymentHistoryService = Depends(get_history_service),
):
    payment = await service.get_payment_for_user(user_id, session_id)
    return PaymentDetailResponse(payment=payment)


@router.post(
    "/refunds",
    response_model=RefundResponse,
    dependencies=[Depends(payment_rate_limit)],
)
async def create_refund(
    req: RefundCreate,
    user_id: str = Depends(get_current_user_id),
    service: RefundService = Depends(get_refund_service),
):
    refund = await service.issue_refund(req.session_id, user_id, req.reason, req.amount)
    return RefundResponse(refund=refund)


@router.post(
    "/checkout",
    response_model=CheckoutLink,
    dependencies=[Depends(payment_rate_limit)],
)
async def create_checkout(
    req: CheckoutCreate,
    user_id: str = Depends(get_current_user_id),
    service: CheckoutService = Depends(get_checkout_service),
):
    session = await service.create_checkout(user_id, req.kind, customer_email=req.customer_email)
    return CheckoutLink(session_id=session.id, url=session.url)


@router.post(
    "/support",
    response_model=CheckoutLink,
    dependencies=[Depends(payment_rate_limit)],
)
async def create_support_checkout(
    req: SupportCheckoutCreate,
    user_id: str = Depends(get_current_user_id),
    service: CheckoutService = Depends(get_checkout_service),
):
    session = await service.create_support_checkout(
        user_id,
        req.amount,
        description=req.description,
        customer_email=req.customer_email,
    )
    return CheckoutLink(session_id=session.id, url=session.url)


@router.get(
    "/entitlements/me",
    response_model=EntitlementResponse,
    dependencies=[Depends(general_rate_limit)],
)
async def my_entitlement(
    user_id: str = Depends(get_current_user_id),
    reconciler: EntitlementReconciler = Depends(get_reconciler),
):
    state = await reconciler.get_entitlement(user_id)
    return EntitlementResponse(
        entitlement=EntitlementView(
            user_id=state.user_id,
            is_premium=state.is_premium,
            premium_granted_at=state.premium_granted_at,
            purchased_slot_count=state.purchased_slot_count,
        )
    )
