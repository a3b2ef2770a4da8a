"""Celery beat schedule configuration.

No periodic jobs yet: provider records are read on demand and webhook
redelivery is driven by the provider, so nothing needs polling.
"""
from __future__ import annotations

CELERY_BEAT_SCHEDULE: dict = {}
