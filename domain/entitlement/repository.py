"""
权益仓储接口 - 定义数据访问的抽象接口
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from .entity import EntitlementState


class EntitlementRepository(ABC):
    """权益仓储抽象接口

    两条授予路径必须可以独立替换和测试：
    - grant_premium_if_absent: 存储层的单条条件写（原子）
    - grant_premium_unconditionally: 无条件直接更新（降级路径）
    """

    @abstractmethod
    async def get(self, user_id: str) -> Optional[EntitlementState]:
        """根据用户ID获取权益状态"""
        pass

    @abstractmethod
    async def grant_premium_if_absent(
        self,
        user_id: str,
        provider_customer_id: Optional[str],
        granted_at: datetime,
    ) -> bool:
        """仅当用户尚未是 premium 时写入；返回本次是否发生了变更"""
        pass

    @abstractmethod
    async def grant_premium_unconditionally(
        self,
        user_id: str,
        provider_customer_id: Optional[str],
        granted_at: datetime,
    ) -> None:
        """直接写入 premium 标记（不带条件保护）"""
        pass

    @abstractmethod
    async def save_slot_count(self, user_id: str, slot_count: int) -> None:
        """写回车位数（读-改-写中的写）"""
        pass
