"""
权益对账应用服务（application/services）

把已验证的支付事件落到用户的派生权益上：
- grant_premium: 原子条件写入为主路径，基础设施异常时降级为服务角色直写
- add_capacity_slot: 读-改-写，串行重复投递时每次 +1
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from application.ports.notifier import Notifier
from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.entitlement.entity import EntitlementState


logger = get_logger(__name__)

UowFactory = Callable[..., AbstractUnitOfWork]


class PremiumGrantStrategy:
    """Two-step premium grant over two credential sets.

    ``try_atomic_grant`` runs a single conditional write on the primary
    credentials and reports whether it changed state. ``try_direct_grant``
    writes the flag unconditionally with service-role credentials; callers
    use it only when the atomic path raised.
    """

    def __init__(self, primary_uow_factory: UowFactory, service_uow_factory: Optional[UowFactory] = None) -> None:
        self._primary_uow_factory = primary_uow_factory
        # 未配置服务角色凭证时复用主凭证
        self._service_uow_factory = service_uow_factory or primary_uow_factory

    async def try_atomic_grant(
        self, user_id: str, provider_customer_id: Optional[str], granted_at: datetime
    ) -> bool:
        async with self._primary_uow_factory() as uow:
            return await uow.entitlement_repository.grant_premium_if_absent(
                user_id, provider_customer_id, granted_at
            )

    async def try_direct_grant(
        self, user_id: str, provider_customer_id: Optional[str], granted_at: datetime
    ) -> None:
        async with self._service_uow_factory() as uow:
            await uow.entitlement_repository.grant_premium_unconditionally(
                user_id, provider_customer_id, granted_at
            )


class EntitlementReconciler:
    """权益对账服务，唯一可以修改 EntitlementState 的入口"""

    def __init__(
        self,
        uow_factory: UowFactory,
        notifier: Notifier,
        *,
        grant_strategy: Optional[PremiumGrantStrategy] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._notifier = notifier
        self._grant_strategy = grant_strategy or PremiumGrantStrategy(uow_factory)

    async def grant_premium(self, user_id: str, provider_customer_id: Optional[str] = None) -> bool:
        """授予 premium；重复调用不会重复授予。两条路径都失败时返回 False"""
        granted_at = datetime.now(timezone.utc)
        try:
            changed = await self._grant_strategy.try_atomic_grant(user_id, provider_customer_id, granted_at)
        except Exception as atomic_exc:
            logger.warning(
                "entitlement_atomic_grant_failed",
                user_id=user_id,
                operation="grant_premium",
                path="atomic",
                error=str(atomic_exc),
            )
            try:
                await self._grant_strategy.try_direct_grant(user_id, provider_customer_id, granted_at)
            except Exception as direct_exc:
                logger.error(
                    "entitlement_grant_failed",
                    user_id=user_id,
                    operation="grant_premium",
                    path="direct",
                    atomic_error=str(atomic_exc),
                    error=str(direct_exc),
                    exc_info=True,
                )
                return False
            logger.info("entitlement_premium_granted", user_id=user_id, path="direct")
            await self._notify_premium(user_id)
            return True

        if changed:
            logger.info("entitlement_premium_granted", user_id=user_id, path="atomic")
            await self._notify_premium(user_id)
        else:
            logger.info("entitlement_premium_already_granted", user_id=user_id)
        return True

    async def add_capacity_slot(self, user_id: str) -> bool:
        """车位 +1（读-改-写）。

        同一用户的两个并发投递可能互相覆盖导致少计一次；串行投递 N 次精确 +N。
        """
        try:
            async with self._uow_factory() as uow:
                current = await uow.entitlement_repository.get(user_id) or EntitlementState.empty(user_id)
                updated = current.with_additional_slot()
                await uow.entitlement_repository.save_slot_count(user_id, updated.purchased_slot_count)
        except Exception as exc:
            logger.error(
                "entitlement_grant_failed",
                user_id=user_id,
                operation="add_capacity_slot",
                path="read_modify_write",
                error=str(exc),
                exc_info=True,
            )
            return False

        logger.info(
            "entitlement_slot_added",
            user_id=user_id,
            slot_count=updated.purchased_slot_count,
        )
        await self._notify(
            "slot_purchased",
            user_id,
            self._notifier.notify_slot_purchased(user_id, updated.purchased_slot_count),
        )
        return True

    async def get_entitlement(self, user_id: str) -> EntitlementState:
        async with self._uow_factory(readonly=True) as uow:
            state = await uow.entitlement_repository.get(user_id)
        return state or EntitlementState.empty(user_id)

    async def _notify_premium(self, user_id: str) -> None:
        await self._notify("premium_activated", user_id, self._notifier.notify_premium_activated(user_id))

    @staticmethod
    async def _notify(kind: str, user_id: str, sending: Awaitable[None]) -> None:
        # 通知失败不回滚授予
        try:
            await sending
        except Exception as exc:
            logger.warning("entitlement_notification_failed", kind=kind, user_id=user_id, error=str(exc))
