"""
结账会话应用服务：为 premium / 车位 / 赞助购买创建支付平台托管的 Checkout 会话。

会话 metadata 写入 {type, userId, platform}，Webhook 分发与支付历史的归属过滤都依赖它。
"""
from __future__ import annotations

import hashlib
import time
from typing import Callable, Optional

from application.dtos.payments import CheckoutSession
from application.ports.payment_gateway import PaymentGateway
from core.logging_config import get_logger
from core.settings import CheckoutSettings
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.events import OWNER_METADATA_KEY, PURCHASE_KIND_METADATA_KEY, PurchaseKind
from domain.payment.exceptions import AlreadyPremiumException, InvalidPaymentAmountException


logger = get_logger(__name__)


_PRODUCTS = {
    PurchaseKind.PREMIUM: ("Premium Access", "Unlimited cars and premium features"),
    PurchaseKind.CAR_SLOT: ("Additional Car Slot", "Add one more car to your profile"),
}

_SUPPORT_PRODUCT = ("Support", "Support for development")


def checkout_idempotency_key(
    user_id: str,
    kind: PurchaseKind,
    amount: int,
    customer_email: Optional[str],
    window_seconds: int,
    now: Optional[float] = None,
) -> str:
    # 时间桶内的重复点击折叠为同一会话；跨桶的再次购买得到新 key
    bucket = int((time.time() if now is None else now) // max(window_seconds, 1))
    base = f"checkout|{user_id}|{kind.value}|{amount}|{customer_email or ''}|{bucket}"
    return hashlib.sha256(base.encode("utf-8")).hexdigest()


class CheckoutService:
    def __init__(
        self,
        gateway: PaymentGateway,
        uow_factory: Callable[..., AbstractUnitOfWork],
        config: CheckoutSettings,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.gateway = gateway
        self._uow_factory = uow_factory
        self._config = config
        self._clock = clock

    def _amount_for(self, kind: PurchaseKind) -> int:
        if kind is PurchaseKind.PREMIUM:
            return self._config.premium_amount
        return self._config.slot_amount

    async def _is_premium(self, user_id: str) -> bool:
        try:
            async with self._uow_factory(readonly=True) as uow:
                state = await uow.entitlement_repository.get(user_id)
        except Exception as exc:
            # 查询失败不阻断下单，由 Webhook 幂等授予兜底
            logger.warning("checkout_premium_check_failed", user_id=user_id, error=str(exc))
            return False
        return bool(state and state.is_premium)

    async def create_checkout(
        self,
        user_id: str,
        kind: PurchaseKind | str,
        customer_email: Optional[str] = None,
    ) -> CheckoutSession:
        purchase_kind = PurchaseKind(kind)
        if purchase_kind not in _PRODUCTS:
            raise ValueError(f"Unsupported checkout kind: {purchase_kind.value}")

        # premium 用户已拥有不限量车位，两种购买都拒绝
        if await self._is_premium(user_id):
            raise AlreadyPremiumException(user_id)

        name, description = _PRODUCTS[purchase_kind]
        return await self._open_session(
            user_id,
            purchase_kind,
            amount=self._amount_for(purchase_kind),
            name=name,
            description=description,
            success_url=self._config.success_url,
            customer_email=customer_email,
        )

    async def create_support_checkout(
        self,
        user_id: str,
        amount: Optional[int],
        description: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> CheckoutSession:
        """赞助金额由调用方决定，最低 ``support_min_amount``（最小货币单位）。

        赞助不改变权益，premium 用户同样可以下单。
        """
        minimum = self._config.support_min_amount
        if amount is None or amount < minimum:
            raise InvalidPaymentAmountException(amount, minimum)

        name, default_description = _SUPPORT_PRODUCT
        return await self._open_session(
            user_id,
            PurchaseKind.SUPPORT,
            amount=amount,
            name=name,
            description=description or default_description,
            success_url=self._config.support_success_url,
            customer_email=customer_email,
        )

    async def _open_session(
        self,
        user_id: str,
        purchase_kind: PurchaseKind,
        *,
        amount: int,
        name: str,
        description: str,
        success_url: str,
        customer_email: Optional[str],
    ) -> CheckoutSession:
        idempotency_key = checkout_idempotency_key(
            user_id,
            purchase_kind,
            amount,
            customer_email,
            self._config.idempotency_window_seconds,
            now=self._clock(),
        )
        session = await self.gateway.create_checkout_session(
            amount=amount,
            currency=self._config.currency,
            name=name,
            description=description,
            success_url=success_url,
            cancel_url=self._config.cancel_url,
            metadata={
                PURCHASE_KIND_METADATA_KEY: purchase_kind.value,
                OWNER_METADATA_KEY: user_id,
                "platform": self._config.platform,
            },
            customer_email=customer_email,
            idempotency_key=idempotency_key,
        )
        logger.info(
            "checkout_session_created",
            user_id=user_id,
            purchase_kind=purchase_kind.value,
            amount=amount,
            session_id=session.id,
        )
        return session
