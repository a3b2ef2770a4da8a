"""Common base task for notification jobs"""
from __future__ import annotations

from celery import Task
from core.logging_config import get_logger

logger = get_logger(__name__)


class BaseTask(Task):
    """Unified structured logging for task outcomes.

    Task arguments carry user ids and payment intent ids only, so they are
    safe to log as-is.
    """

    def on_failure(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        """Retries are exhausted; the notification is dropped."""
        logger.error(
            "notification_task_failed",
            task_id=task_id,
            task_name=self.name,
            kwargs=kwargs,
            error=str(exc),
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.warning(
            "notification_task_retry",
            task_id=task_id,
            task_name=self.name,
            retries=self.request.retries,
            error=str(exc),
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval, task_id, args, kwargs):  # type: ignore[override]
        logger.info(
            "notification_task_sent",
            task_id=task_id,
            task_name=self.name,
        )
        super().on_success(retval, task_id, args, kwargs)
