import asyncio
import time

import pytest

from infrastructure.tasks import TaskDispatcher, celery_app
from infrastructure.tasks.tasks import email


class _UnpublishableTask:
    name = "email.unpublishable"

    def delay(self, **kwargs):
        raise ConnectionError("broker unreachable")


class _SlowBrokerTask:
    """Publishing blocks the calling thread, like kombu retrying a dead broker."""

    name = "email.slow_broker"

    def __init__(self, seconds: float) -> None:
        self.seconds = seconds
        self.published: list[dict] = []

    def delay(self, **kwargs):
        time.sleep(self.seconds)
        self.published.append(kwargs)


def test_tasks_run_eagerly_in_test_environment():
    assert celery_app.conf.task_always_eager is True


@pytest.mark.asyncio
async def test_dispatcher_runs_notification_tasks():
    dispatcher = TaskDispatcher()
    await dispatcher.notify_premium_activated("user_1")
    await dispatcher.notify_slot_purchased("user_1", 2)
    await dispatcher.notify_payment_succeeded("user_1", amount=1000, currency="usd", payment_intent_id="pi_1")
    await dispatcher.notify_payment_failed(
        None, amount=200, currency="usd", payment_intent_id="pi_2", reason="declined"
    )


@pytest.mark.asyncio
async def test_dispatch_failure_is_swallowed():
    await TaskDispatcher()._dispatch(_UnpublishableTask(), user_id="user_1")


@pytest.mark.asyncio
async def test_slow_publish_does_not_stall_the_event_loop():
    task = _SlowBrokerTask(0.3)
    gaps: list[float] = []

    async def ticker():
        last = time.perf_counter()
        for _ in range(10):
            await asyncio.sleep(0.02)
            now = time.perf_counter()
            gaps.append(now - last)
            last = now

    await asyncio.gather(TaskDispatcher()._dispatch(task, user_id="user_1"), ticker())

    assert task.published == [{"user_id": "user_1"}]
    assert max(gaps) < 0.15


@pytest.mark.parametrize(
    "task,queue",
    [
        (email.send_premium_welcome_email, "high"),
        (email.send_slot_confirmation_email, "high"),
    ],
)
def test_entitlement_mails_are_routed_ahead_of_receipts(task, queue):
    assert celery_app.conf.task_routes[task.name] == {"queue": queue}
