"""
权益领域实体 - 用户购买后获得的派生权益状态
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from domain.common.exceptions import DomainValidationException


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class EntitlementState:
    """
    用户权益状态

    业务规则：
    1. 权益只增不减：is_premium 不会被本子系统重置为 False
    2. purchased_slot_count >= 0，每次成功对账的车位购买事件 +1
    3. 金额等资金状态以支付渠道为准，这里只保存派生标记
    """

    user_id: str
    is_premium: bool = False
    premium_granted_at: Optional[datetime] = None
    purchased_slot_count: int = 0
    provider_customer_id: Optional[str] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.user_id:
            raise DomainValidationException("user_id is required", field="user_id")
        if self.purchased_slot_count < 0:
            raise DomainValidationException(
                f"purchased_slot_count must be >= 0: {self.purchased_slot_count}",
                field="purchased_slot_count",
            )
        self.premium_granted_at = _ensure_utc(self.premium_granted_at)
        self.updated_at = _ensure_utc(self.updated_at)

    @classmethod
    def empty(cls, user_id: str) -> "EntitlementState":
        """尚无记录的用户（从未购买）"""
        return cls(user_id=user_id)

    def with_additional_slot(self) -> "EntitlementState":
        """返回车位数 +1 后的新状态"""
        return EntitlementState(
            user_id=self.user_id,
            is_premium=self.is_premium,
            premium_granted_at=self.premium_granted_at,
            purchased_slot_count=self.purchased_slot_count + 1,
            provider_customer_id=self.provider_customer_id,
            updated_at=datetime.now(timezone.utc),
        )
