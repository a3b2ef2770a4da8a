import hashlib
import hmac
import json
import time

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from api.dependencies import (
    general_limiter,
    get_gateway,
    get_notifier,
    get_reconciler,
    get_service_uow_factory,
    get_uow_factory,
    payment_limiter,
    webhook_limiter,
)
from core.config import settings
from core.settings import StripeSettings
from infrastructure.external.payments.stripe_client import StripeClient
from main import app
from shared.codes.payment_codes import PaymentCode


WEBHOOK_SECRET = "whsec_api_test"


def _token(sub="user_1", ttl=600):
    payload = {"sub": sub, "exp": int(time.time()) + ttl}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def _auth(sub="user_1"):
    return {"Authorization": f"Bearer {_token(sub)}"}


def _signed(envelope: dict) -> tuple[bytes, dict]:
    body = json.dumps(envelope).encode("utf-8")
    ts = int(time.time())
    digest = hmac.new(WEBHOOK_SECRET.encode(), f"{ts}.".encode() + body, hashlib.sha256).hexdigest()
    return body, {"Stripe-Signature": f"t={ts},v1={digest}", "Content-Type": "application/json"}


def _checkout_event(kind="premium", event_id="evt_1"):
    return {
        "id": event_id,
        "type": "checkout.session.completed",
        "created": int(time.time()),
        "data": {
            "object": {
                "id": "cs_1",
                "payment_status": "paid",
                "customer": "cus_1",
                "metadata": {"userId": "user_1", "type": kind},
            }
        },
    }


@pytest_asyncio.fixture
async def client(gateway, notifier, uow_factory):
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_uow_factory] = lambda: uow_factory
    app.dependency_overrides[get_service_uow_factory] = lambda: uow_factory
    app.dependency_overrides[get_notifier] = lambda: notifier
    for limiter in (webhook_limiter, payment_limiter, general_limiter):
        limiter.reset()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def stripe_gateway(client):
    gw = StripeClient(StripeSettings(secret_key="sk_test_123", webhook_secret=WEBHOOK_SECRET))
    app.dependency_overrides[get_gateway] = lambda: gw
    return gw


@pytest.mark.asyncio
async def test_health_and_request_id(client):
    resp = await client.get("/health", headers={"X-Request-ID": "req-123"})
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy"}
    assert resp.headers["X-Request-ID"] == "req-123"


@pytest.mark.asyncio
async def test_listing_requires_bearer_token(client):
    resp = await client.get("/api/v1/payments")
    assert resp.status_code == 401
    assert resp.headers["WWW-Authenticate"] == "Bearer"
    body = resp.json()
    assert body["type"] == "Unauthorized"
    assert "error" in body and "request_id" in body


@pytest.mark.asyncio
async def test_expired_or_forged_tokens_are_rejected(client):
    expired = {"Authorization": f"Bearer {_token(ttl=-60)}"}
    forged = {"Authorization": "Bearer " + jwt.encode({"sub": "user_1", "exp": int(time.time()) + 60}, "other", algorithm="HS256")}

    assert (await client.get("/api/v1/payments", headers=expired)).status_code == 401
    assert (await client.get("/api/v1/payments", headers=forged)).status_code == 401


@pytest.mark.asyncio
async def test_listing_returns_only_callers_payments_in_camel_case(client, gateway):
    gateway.add_session("cs_mine", user_id="user_1", amount=5000)
    gateway.add_session("cs_theirs", user_id="user_2")
    gateway.add_refund("pi_cs_mine", 2000)

    resp = await client.get("/api/v1/payments", headers=_auth())

    assert resp.status_code == 200
    [payment] = resp.json()["payments"]
    assert payment["sessionId"] == "cs_mine"
    assert payment["paymentIntentId"] == "pi_cs_mine"
    assert payment["refundedAmount"] == 2000
    assert payment["canRefund"] is True
    assert payment["purchaseKind"] == "premium"


@pytest.mark.asyncio
async def test_session_detail_ownership(client, gateway):
    gateway.add_session("cs_theirs", user_id="user_2")

    forbidden = await client.get("/api/v1/payments/sessions/cs_theirs", headers=_auth())
    missing = await client.get("/api/v1/payments/sessions/cs_nope", headers=_auth())

    assert forbidden.status_code == 403
    assert forbidden.json()["type"] == "UnauthorizedAccess"
    assert missing.status_code == 404
    assert missing.json()["type"] == "NotFound"


@pytest.mark.asyncio
async def test_refund_flow(client, gateway):
    gateway.add_session("cs_1", user_id="user_1", amount=5000)

    ok = await client.post("/api/v1/payments/refunds", json={"sessionId": "cs_1", "amount": 2000}, headers=_auth())
    too_much = await client.post("/api/v1/payments/refunds", json={"sessionId": "cs_1", "amount": 3001}, headers=_auth())

    assert ok.status_code == 200
    assert ok.json()["refund"]["amount"] == 2000
    assert too_much.status_code == 400
    body = too_much.json()
    assert body["type"] == "InvalidAmount"
    assert body["code"] == PaymentCode.INVALID_REFUND_AMOUNT
    assert body["details"]["remaining"] == 3000


@pytest.mark.asyncio
async def test_refund_reason_is_validated(client, gateway):
    gateway.add_session("cs_1", user_id="user_1")
    resp = await client.post(
        "/api/v1/payments/refunds",
        json={"sessionId": "cs_1", "reason": "changed_my_mind"},
        headers=_auth(),
    )
    assert resp.status_code == 422
    assert resp.json()["type"] == "ValidationError"
    assert gateway.created_refunds == []


@pytest.mark.asyncio
async def test_provider_failure_returns_generic_error(client, gateway):
    gateway.add_session("cs_1", user_id="user_1")
    gateway.failing_refund_lookups.add("pi_cs_1")

    resp = await client.post("/api/v1/payments/refunds", json={"sessionId": "cs_1"}, headers=_auth())

    assert resp.status_code == 500
    body = resp.json()
    assert body["error"] == "Internal server error"
    assert "details" not in body


@pytest.mark.asyncio
async def test_checkout_link(client, gateway):
    resp = await client.post("/api/v1/payments/checkout", json={"kind": "car_slot"}, headers=_auth())

    assert resp.status_code == 200
    assert resp.json() == {"sessionId": "cs_new", "url": "https://checkout.stripe.com/c/pay/cs_new"}
    assert gateway.created_checkouts[0]["metadata"]["userId"] == "user_1"


@pytest.mark.asyncio
async def test_support_link_with_caller_amount(client, gateway):
    resp = await client.post("/api/v1/payments/support", json={"amount": 500}, headers=_auth())

    assert resp.status_code == 200
    assert resp.json()["sessionId"] == "cs_new"
    [call] = gateway.created_checkouts
    assert call["amount"] == 500
    assert call["metadata"]["type"] == "support"


@pytest.mark.parametrize("body", [{"amount": 99}, {"amount": 0}, {}])
@pytest.mark.asyncio
async def test_support_link_below_minimum_is_bad_request(client, gateway, body):
    resp = await client.post("/api/v1/payments/support", json=body, headers=_auth())

    assert resp.status_code == 400
    assert resp.json()["code"] == PaymentCode.INVALID_PAYMENT_AMOUNT
    assert resp.json()["type"] == "InvalidAmount"
    assert gateway.created_checkouts == []


@pytest.mark.asyncio
async def test_support_link_requires_auth(client):
    resp = await client.post("/api/v1/payments/support", json={"amount": 500})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_webhook_rejects_bad_signature_without_side_effects(client, stripe_gateway):
    body, headers = _signed(_checkout_event())
    headers["Stripe-Signature"] = headers["Stripe-Signature"][:-4] + "0000"

    resp = await client.post("/api/v1/payments/webhooks/stripe", content=body, headers=headers)

    assert resp.status_code == 400
    assert resp.json()["code"] == PaymentCode.SIGNATURE_ERROR
    me = await client.get("/api/v1/payments/entitlements/me", headers=_auth())
    assert me.json()["entitlement"]["isPremium"] is False


@pytest.mark.asyncio
async def test_webhook_grants_premium_once_across_redeliveries(client, stripe_gateway, notifier):
    for _ in range(3):
        body, headers = _signed(_checkout_event())
        resp = await client.post("/api/v1/payments/webhooks/stripe", content=body, headers=headers)
        assert resp.status_code == 200
        assert resp.json() == {"received": True}

    me = await client.get("/api/v1/payments/entitlements/me", headers=_auth())
    assert me.json()["entitlement"]["isPremium"] is True
    assert notifier.calls == [("premium_activated", "user_1")]


@pytest.mark.asyncio
async def test_webhook_slot_purchases_accumulate(client, stripe_gateway):
    for i in range(2):
        body, headers = _signed(_checkout_event(kind="car_slot", event_id=f"evt_slot_{i}"))
        assert (await client.post("/api/v1/payments/webhooks/stripe", content=body, headers=headers)).status_code == 200

    me = await client.get("/api/v1/payments/entitlements/me", headers=_auth())
    assert me.json()["entitlement"]["purchasedSlotCount"] == 2


@pytest.mark.asyncio
async def test_webhook_acknowledges_unknown_event_types(client, stripe_gateway):
    envelope = _checkout_event()
    envelope["type"] = "customer.subscription.updated"
    body, headers = _signed(envelope)

    resp = await client.post("/api/v1/payments/webhooks/stripe", content=body, headers=headers)

    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_webhook_reconciliation_failure_is_500(client, stripe_gateway):
    class _FailingReconciler:
        async def grant_premium(self, user_id, provider_customer_id=None):
            return False

        async def add_capacity_slot(self, user_id):
            return False

    app.dependency_overrides[get_reconciler] = lambda: _FailingReconciler()
    body, headers = _signed(_checkout_event())

    resp = await client.post("/api/v1/payments/webhooks/stripe", content=body, headers=headers)

    assert resp.status_code == 500
    assert resp.json()["type"] == "ReconciliationFailed"
    assert resp.json()["error"] == "Internal server error"


@pytest.mark.asyncio
async def test_webhook_rate_limit_runs_before_verification(client, stripe_gateway, monkeypatch):
    monkeypatch.setattr(webhook_limiter, "max_requests", 0)

    resp = await client.post("/api/v1/payments/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "bogus"})

    assert resp.status_code == 429
    assert int(resp.headers["Retry-After"]) > 0
