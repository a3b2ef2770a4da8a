"""
权益仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.entitlement.entity import EntitlementState
from domain.entitlement.repository import EntitlementRepository
from infrastructure.models.entitlement import EntitlementModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyEntitlementRepository(EntitlementRepository):
    """权益仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: EntitlementModel) -> EntitlementState:
        """将数据库模型转换为领域实体"""
        return EntitlementState(
            user_id=model.user_id,
            is_premium=bool(model.is_premium),
            premium_granted_at=model.premium_granted_at,
            purchased_slot_count=model.purchased_slot_count or 0,
            provider_customer_id=model.provider_customer_id,
            updated_at=model.updated_at,
        )

    async def _exists(self, user_id: str) -> bool:
        result = await self.session.execute(
            select(EntitlementModel.user_id).where(EntitlementModel.user_id == user_id)
        )
        return result.scalar_one_or_none() is not None

    async def get(self, user_id: str) -> Optional[EntitlementState]:
        """根据用户ID获取权益状态"""
        result = await self.session.execute(
            select(EntitlementModel).where(EntitlementModel.user_id == user_id)
        )
        db_row = result.scalar_one_or_none()
        return self._to_entity(db_row) if db_row else None

    async def grant_premium_if_absent(
        self,
        user_id: str,
        provider_customer_id: Optional[str],
        granted_at: datetime,
    ) -> bool:
        """单条条件 UPDATE；并发的重复投递只会有一条命中"""
        values = {
            "is_premium": True,
            "premium_granted_at": granted_at,
            "updated_at": granted_at,
        }
        if provider_customer_id:
            values["provider_customer_id"] = provider_customer_id

        result = await self.session.execute(
            update(EntitlementModel)
            .where(
                EntitlementModel.user_id == user_id,
                EntitlementModel.is_premium.is_(False),
            )
            .values(**values)
        )
        if result.rowcount:
            return True

        if await self._exists(user_id):
            # 已经是 premium
            return False

        # 首次购买：插入即授予。并发插入会触发唯一约束错误，由调用方走降级路径
        self.session.add(EntitlementModel(user_id=user_id, purchased_slot_count=0, **values))
        await self.session.flush()
        return True

    async def grant_premium_unconditionally(
        self,
        user_id: str,
        provider_customer_id: Optional[str],
        granted_at: datetime,
    ) -> None:
        values = {
            "is_premium": True,
            "premium_granted_at": granted_at,
            "updated_at": granted_at,
        }
        if provider_customer_id:
            values["provider_customer_id"] = provider_customer_id

        result = await self.session.execute(
            update(EntitlementModel)
            .where(EntitlementModel.user_id == user_id)
            .values(**values)
        )
        if not result.rowcount:
            self.session.add(EntitlementModel(user_id=user_id, purchased_slot_count=0, **values))
            await self.session.flush()

    async def save_slot_count(self, user_id: str, slot_count: int) -> None:
        now = datetime.now(timezone.utc)
        result = await self.session.execute(
            update(EntitlementModel)
            .where(EntitlementModel.user_id == user_id)
            .values(purchased_slot_count=slot_count, updated_at=now)
        )
        if not result.rowcount:
            self.session.add(
                EntitlementModel(
                    user_id=user_id,
                    is_premium=False,
                    purchased_slot_count=slot_count,
                    updated_at=now,
                )
            )
            await self.session.flush()
        logger.info("entitlement_slot_count_saved", user_id=user_id, slot_count=slot_count)
