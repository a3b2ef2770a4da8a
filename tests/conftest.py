"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite://")
os.environ.setdefault("STRIPE__SECRET_KEY", "sk_test_123")
os.environ.setdefault("STRIPE__WEBHOOK_SECRET", "whsec_test_secret")

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from application.dtos.payments import CheckoutSession, RefundRecord
from domain.payment.exceptions import (
    PaymentNotFoundException,
    PaymentProviderUnavailableError,
    PaymentSignatureError,
)
from infrastructure.models import Base
from infrastructure.unit_of_work import uow_factory_for


BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


class StubGateway:
    """In-memory PaymentGateway used by service and API tests."""

    provider = "stripe"

    def __init__(self) -> None:
        self.sessions: dict[str, CheckoutSession] = {}
        self.refunds: dict[str, list[RefundRecord]] = {}
        self.failing_refund_lookups: set[str] = set()
        self.customer_query_error: Optional[Exception] = None
        self.listing_error: Optional[Exception] = None
        self.event = None
        self.list_calls: list[Optional[str]] = []
        self.refund_lookups: list[str] = []
        self.created_refunds: list[dict[str, Any]] = []
        self.created_checkouts: list[dict[str, Any]] = []

    def add_session(
        self,
        session_id: str,
        *,
        user_id: Optional[str],
        amount: int = 5000,
        payment_status: str = "paid",
        payment_intent_id: Optional[str] = "auto",
        kind: str = "premium",
        customer_id: Optional[str] = None,
        minutes: int = 0,
    ) -> CheckoutSession:
        metadata = {"type": kind}
        if user_id:
            metadata["userId"] = user_id
        status = {"paid": "paid", "unpaid": "unpaid"}.get(payment_status, "other")
        session = CheckoutSession(
            id=session_id,
            payment_intent_id=f"pi_{session_id}" if payment_intent_id == "auto" else payment_intent_id,
            customer_id=customer_id,
            amount_total=amount,
            currency="usd",
            payment_status=payment_status,
            status=status,
            metadata=metadata,
            created_at=BASE_TIME + timedelta(minutes=minutes),
        )
        self.sessions[session_id] = session
        return session

    def add_refund(self, payment_intent_id: str, amount: int) -> RefundRecord:
        records = self.refunds.setdefault(payment_intent_id, [])
        record = RefundRecord(
            id=f"re_{payment_intent_id}_{len(records) + 1}",
            amount=amount,
            status="succeeded",
            reason="requested_by_customer",
            created_at=BASE_TIME,
        )
        records.append(record)
        return record

    def parse_webhook(self, headers, body):
        if self.event is None:
            raise PaymentSignatureError("Invalid webhook signature", provider=self.provider)
        return self.event

    async def list_checkout_sessions(self, *, customer_id=None, limit=100):
        self.list_calls.append(customer_id)
        if customer_id and self.customer_query_error is not None:
            raise self.customer_query_error
        if self.listing_error is not None:
            raise self.listing_error
        sessions = list(self.sessions.values())
        if customer_id:
            sessions = [s for s in sessions if s.customer_id == customer_id]
        return sessions[:limit]

    async def retrieve_checkout_session(self, session_id):
        try:
            return self.sessions[session_id]
        except KeyError:
            raise PaymentNotFoundException(session_id)

    async def list_refunds(self, payment_intent_id):
        self.refund_lookups.append(payment_intent_id)
        if payment_intent_id in self.failing_refund_lookups:
            raise PaymentProviderUnavailableError("refunds unavailable", provider=self.provider)
        return list(self.refunds.get(payment_intent_id, []))

    async def create_refund(self, *, payment_intent_id, amount, reason, idempotency_key, metadata=None):
        self.created_refunds.append(
            {
                "payment_intent_id": payment_intent_id,
                "amount": amount,
                "reason": reason,
                "idempotency_key": idempotency_key,
                "metadata": metadata,
            }
        )
        return self.add_refund(payment_intent_id, amount)

    async def create_checkout_session(self, **kwargs):
        self.created_checkouts.append(kwargs)
        return CheckoutSession(
            id="cs_new",
            amount_total=kwargs["amount"],
            currency=kwargs["currency"],
            payment_status="unpaid",
            status="unpaid",
            metadata=kwargs["metadata"],
            created_at=BASE_TIME,
            url="https://checkout.stripe.com/c/pay/cs_new",
        )

    async def aclose(self):
        return None


class RecordingNotifier:
    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.fail = False

    def _record(self, *call):
        if self.fail:
            raise RuntimeError("broker down")
        self.calls.append(call)

    async def notify_premium_activated(self, user_id):
        self._record("premium_activated", user_id)

    async def notify_slot_purchased(self, user_id, slot_count):
        self._record("slot_purchased", user_id, slot_count)

    async def notify_payment_succeeded(self, user_id, *, amount, currency, payment_intent_id):
        self._record("payment_succeeded", user_id, amount, currency, payment_intent_id)

    async def notify_payment_failed(self, user_id, *, amount, currency, payment_intent_id, reason=None):
        self._record("payment_failed", user_id, amount, currency, payment_intent_id, reason)


class BrokenUnitOfWork:
    """Unit of work whose storage is unreachable."""

    async def __aenter__(self):
        raise ConnectionError("database unavailable")

    async def __aexit__(self, exc_type, exc, tb):
        return False


def broken_uow_factory(*, readonly: bool = False) -> BrokenUnitOfWork:
    return BrokenUnitOfWork()


@pytest.fixture
def gateway() -> StubGateway:
    return StubGateway()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def broken_uow():
    return broken_uow_factory


@pytest_asyncio.fixture
async def uow_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)
    yield uow_factory_for(session_factory)
    await engine.dispose()
