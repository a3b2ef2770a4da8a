from datetime import datetime, timezone

import pytest

from application.services.payment_history_service import PaymentHistoryService, can_refund
from domain.payment.exceptions import (
    PaymentAccessDeniedException,
    PaymentNotFoundException,
    PaymentProviderUnavailableError,
)


async def _link_customer(uow_factory, user_id, customer_id):
    async with uow_factory() as uow:
        await uow.entitlement_repository.grant_premium_if_absent(
            user_id, customer_id, datetime.now(timezone.utc)
        )


@pytest.mark.asyncio
async def test_listing_only_returns_sessions_owned_by_user(gateway, uow_factory):
    gateway.add_session("cs_mine", user_id="user_1")
    gateway.add_session("cs_theirs", user_id="user_2")
    gateway.add_session("cs_guest", user_id=None)
    svc = PaymentHistoryService(gateway, uow_factory)

    records = await svc.list_payments_for_user("user_1")

    assert [r.session_id for r in records] == ["cs_mine"]


@pytest.mark.asyncio
async def test_ownership_filter_applies_to_customer_scoped_results(gateway, uow_factory):
    await _link_customer(uow_factory, "user_1", "cus_shared")
    gateway.add_session("cs_mine", user_id="user_1", customer_id="cus_shared")
    gateway.add_session("cs_reused", user_id="user_2", customer_id="cus_shared")
    svc = PaymentHistoryService(gateway, uow_factory)

    records = await svc.list_payments_for_user("user_1")

    assert gateway.list_calls == ["cus_shared"]
    assert [r.session_id for r in records] == ["cs_mine"]


@pytest.mark.asyncio
async def test_customer_query_error_falls_back_to_unscoped_listing(gateway, uow_factory):
    await _link_customer(uow_factory, "user_1", "cus_1")
    gateway.customer_query_error = RuntimeError("customer search failed")
    gateway.add_session("cs_1", user_id="user_1")
    svc = PaymentHistoryService(gateway, uow_factory)

    records = await svc.list_payments_for_user("user_1")

    assert gateway.list_calls == ["cus_1", None]
    assert [r.session_id for r in records] == ["cs_1"]


@pytest.mark.asyncio
async def test_user_without_customer_id_uses_unscoped_listing(gateway, uow_factory):
    svc = PaymentHistoryService(gateway, uow_factory)
    assert await svc.list_payments_for_user("user_1") == []
    assert gateway.list_calls == [None]


@pytest.mark.asyncio
async def test_customer_lookup_failure_is_tolerated(gateway, broken_uow):
    gateway.add_session("cs_1", user_id="user_1")
    svc = PaymentHistoryService(gateway, broken_uow)

    records = await svc.list_payments_for_user("user_1")

    assert [r.session_id for r in records] == ["cs_1"]


@pytest.mark.asyncio
async def test_records_are_sorted_newest_first(gateway, uow_factory):
    gateway.add_session("cs_old", user_id="user_1", minutes=0)
    gateway.add_session("cs_new", user_id="user_1", minutes=30)
    gateway.add_session("cs_mid", user_id="user_1", minutes=10)
    svc = PaymentHistoryService(gateway, uow_factory)

    records = await svc.list_payments_for_user("user_1")

    assert [r.session_id for r in records] == ["cs_new", "cs_mid", "cs_old"]


@pytest.mark.asyncio
async def test_refund_totals_and_refundability(gateway, uow_factory):
    gateway.add_session("cs_partial", user_id="user_1", amount=5000)
    gateway.add_session("cs_full", user_id="user_1", amount=1000, minutes=1)
    gateway.add_refund("pi_cs_partial", 1500)
    gateway.add_refund("pi_cs_partial", 500)
    gateway.add_refund("pi_cs_full", 1000)
    svc = PaymentHistoryService(gateway, uow_factory)

    by_id = {r.session_id: r for r in await svc.list_payments_for_user("user_1")}

    assert by_id["cs_partial"].refunded_amount == 2000
    assert by_id["cs_partial"].can_refund is True
    assert len(by_id["cs_partial"].refunds) == 2
    assert by_id["cs_full"].refunded_amount == 1000
    assert by_id["cs_full"].can_refund is False


@pytest.mark.asyncio
async def test_refund_lookup_failure_degrades_single_item(gateway, uow_factory):
    gateway.add_session("cs_ok", user_id="user_1")
    gateway.add_session("cs_flaky", user_id="user_1", minutes=1)
    gateway.add_refund("pi_cs_ok", 700)
    gateway.failing_refund_lookups.add("pi_cs_flaky")
    svc = PaymentHistoryService(gateway, uow_factory)

    by_id = {r.session_id: r for r in await svc.list_payments_for_user("user_1")}

    assert by_id["cs_ok"].refunded_amount == 700
    assert by_id["cs_flaky"].refunded_amount == 0
    assert by_id["cs_flaky"].refunds == []


@pytest.mark.asyncio
async def test_session_without_payment_intent_skips_refund_lookup(gateway, uow_factory):
    gateway.add_session("cs_free", user_id="user_1", payment_intent_id=None, payment_status="no_payment_required")
    svc = PaymentHistoryService(gateway, uow_factory)

    [record] = await svc.list_payments_for_user("user_1")

    assert gateway.refund_lookups == []
    assert record.status == "other"
    assert record.can_refund is False


@pytest.mark.asyncio
async def test_unscoped_listing_failure_surfaces(gateway, uow_factory):
    gateway.listing_error = PaymentProviderUnavailableError("down", provider="stripe")
    svc = PaymentHistoryService(gateway, uow_factory)
    with pytest.raises(PaymentProviderUnavailableError):
        await svc.list_payments_for_user("user_1")


@pytest.mark.asyncio
async def test_session_limit_is_passed_to_provider(gateway, uow_factory):
    for i in range(5):
        gateway.add_session(f"cs_{i}", user_id="user_1", minutes=i)
    svc = PaymentHistoryService(gateway, uow_factory, session_limit=3)

    records = await svc.list_payments_for_user("user_1")

    assert len(records) == 3


@pytest.mark.parametrize(
    "status,amount,refunded,expected",
    [
        ("paid", 5000, 0, True),
        ("paid", 5000, 4999, True),
        ("paid", 5000, 5000, False),
        ("paid", 5000, 6000, False),
        ("unpaid", 5000, 0, False),
        ("other", 1, 0, False),
    ],
)
def test_can_refund(status, amount, refunded, expected):
    assert can_refund(status, amount, refunded) is expected


@pytest.mark.asyncio
async def test_get_payment_enforces_ownership(gateway, uow_factory):
    gateway.add_session("cs_1", user_id="user_2")
    svc = PaymentHistoryService(gateway, uow_factory)
    with pytest.raises(PaymentAccessDeniedException):
        await svc.get_payment_for_user("user_1", "cs_1")


@pytest.mark.asyncio
async def test_get_payment_missing_session(gateway, uow_factory):
    svc = PaymentHistoryService(gateway, uow_factory)
    with pytest.raises(PaymentNotFoundException):
        await svc.get_payment_for_user("user_1", "cs_missing")


@pytest.mark.asyncio
async def test_strict_lookup_raises_when_refunds_unavailable(gateway, uow_factory):
    gateway.add_session("cs_1", user_id="user_1")
    gateway.failing_refund_lookups.add("pi_cs_1")
    svc = PaymentHistoryService(gateway, uow_factory)

    lenient = await svc.get_payment_for_user("user_1", "cs_1")
    assert lenient.refunded_amount == 0

    with pytest.raises(PaymentProviderUnavailableError):
        await svc.get_payment_for_user("user_1", "cs_1", strict=True)
