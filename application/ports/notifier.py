"""
Notification port used by payment use-cases.

Notifications are fire-and-forget side effects: implementations must not
raise into the caller, must not block the event loop while handing the
message off, and a failed notification never undoes a grant.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class Notifier(Protocol):
    async def notify_premium_activated(self, user_id: str) -> None: ...

    async def notify_slot_purchased(self, user_id: str, slot_count: int) -> None: ...

    async def notify_payment_succeeded(
        self, user_id: Optional[str], *, amount: int, currency: str, payment_intent_id: str
    ) -> None: ...

    async def notify_payment_failed(
        self, user_id: Optional[str], *, amount: int, currency: str, payment_intent_id: str, reason: Optional[str] = None
    ) -> None: ...
