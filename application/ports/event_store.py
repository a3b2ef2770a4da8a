"""
Processed-event store port used to short-circuit webhook redeliveries.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class ProcessedEventStore(Protocol):
    async def seen(self, provider: str, event_id: str) -> bool: ...

    async def remember(self, provider: str, event_id: str) -> None: ...
