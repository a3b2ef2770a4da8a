import hashlib
import hmac
import json
import time

import pytest

from core.settings import StripeSettings
from domain.payment.events import PaymentEventKind
from domain.payment.exceptions import InvalidEventPayloadException, PaymentSignatureError
from infrastructure.external.payments.stripe_client import StripeClient


SECRET = "whsec_unit_test"


def _sign(payload: bytes, secret: str = SECRET, timestamp: int | None = None) -> str:
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.".encode("utf-8") + payload
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def _body(**overrides) -> bytes:
    envelope = {
        "id": "evt_1",
        "type": "checkout.session.completed",
        "created": 1735689600,
        "data": {
            "object": {
                "id": "cs_1",
                "payment_status": "paid",
                "customer": "cus_1",
                "metadata": {"userId": "user_1", "type": "premium"},
            }
        },
    }
    envelope.update(overrides)
    return json.dumps(envelope).encode("utf-8")


@pytest.fixture
def client() -> StripeClient:
    return StripeClient(StripeSettings(secret_key="sk_test_123", webhook_secret=SECRET))


def test_valid_signature_yields_typed_event(client):
    body = _body()
    evt = client.parse_webhook({"Stripe-Signature": _sign(body)}, body)

    assert evt.id == "evt_1"
    assert evt.kind is PaymentEventKind.CHECKOUT_COMPLETED
    assert evt.provider == "stripe"
    assert evt.metadata("userId") == "user_1"
    assert evt.payload["customer"] == "cus_1"


def test_signature_header_lookup_is_case_insensitive(client):
    body = _body()
    evt = client.parse_webhook({"stripe-signature": _sign(body)}, body)
    assert evt.type == "checkout.session.completed"


def test_tampered_body_is_rejected(client):
    body = _body()
    header = _sign(body)
    tampered = bytearray(body)
    tampered[-3] = ord("X") if tampered[-3] != ord("X") else ord("Y")

    with pytest.raises(PaymentSignatureError):
        client.parse_webhook({"Stripe-Signature": header}, bytes(tampered))


def test_reserialized_body_is_rejected(client):
    body = _body()
    header = _sign(body)
    reserialized = json.dumps(json.loads(body), indent=2).encode("utf-8")

    with pytest.raises(PaymentSignatureError):
        client.parse_webhook({"Stripe-Signature": header}, reserialized)


def test_wrong_secret_is_rejected(client):
    body = _body()
    with pytest.raises(PaymentSignatureError):
        client.parse_webhook({"Stripe-Signature": _sign(body, secret="whsec_other")}, body)


def test_missing_header_is_rejected(client):
    with pytest.raises(PaymentSignatureError):
        client.parse_webhook({}, _body())


def test_malformed_header_is_rejected(client):
    with pytest.raises(PaymentSignatureError):
        client.parse_webhook({"Stripe-Signature": "garbage"}, _body())


def test_stale_timestamp_is_rejected(client):
    body = _body()
    old = int(time.time()) - 3600
    with pytest.raises(PaymentSignatureError):
        client.parse_webhook({"Stripe-Signature": _sign(body, timestamp=old)}, body)


def test_unconfigured_webhook_secret_fails_closed():
    client = StripeClient(StripeSettings(secret_key="sk_test_123", webhook_secret=None))
    body = _body()
    with pytest.raises(PaymentSignatureError):
        client.parse_webhook({"Stripe-Signature": _sign(body)}, body)


def test_signed_envelope_without_object_is_invalid_payload(client):
    body = json.dumps({"id": "evt_2", "type": "payment_intent.succeeded", "data": {}}).encode("utf-8")
    with pytest.raises(InvalidEventPayloadException):
        client.parse_webhook({"Stripe-Signature": _sign(body)}, body)


def test_unknown_event_type_still_parses(client):
    body = _body(type="customer.created")
    evt = client.parse_webhook({"Stripe-Signature": _sign(body)}, body)
    assert evt.kind is None
