"""
API依赖项 - 认证、限流与服务装配

这里是组合根：只有本模块与 main.py 读取全局配置，
应用服务通过构造函数拿到显式的配置值与客户端。
"""
from typing import AsyncIterator, Callable, Optional

import jwt
import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from api.utils.headers import resolve_client_ip
from application.ports.notifier import Notifier
from application.ports.payment_gateway import PaymentGateway
from application.services.checkout_service import CheckoutService
from application.services.entitlement_service import EntitlementReconciler, PremiumGrantStrategy
from application.services.payment_history_service import PaymentHistoryService
from application.services.refund_service import RefundService
from application.services.webhook_service import WebhookService
from core.config import RateLimitRule, settings
from core.exceptions import RateLimitException, UnauthorizedException
from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings
from infrastructure.cache import (
    FixedWindowRateLimiter,
    RedisCache,
    RedisProcessedEventStore,
    get_redis_cache,
)
from infrastructure.database import AsyncSessionLocal, ServiceSessionLocal
from infrastructure.external.payments import get_payment_gateway
from infrastructure.tasks import TaskDispatcher
from infrastructure.unit_of_work import uow_factory_for


logger = get_logger(__name__)

# HTTP Bearer for direct API calls
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication",
    auto_error=False,
)


# ---- authentication ----

async def get_token(
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> str:
    """从Bearer token中提取token"""
    if bearer_token and bearer_token.credentials:
        return bearer_token.credentials
    raise UnauthorizedException("Missing bearer token")


def decode_user_id(token: str) -> str:
    """校验外部签发的 JWT 并返回 sub（用户ID）"""
    options = {"require": ["sub", "exp"]}
    if not settings.JWT_AUDIENCE:
        options["verify_aud"] = False
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedException("Token expired")
    except jwt.PyJWTError:
        raise UnauthorizedException("Invalid token")
    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedException("Invalid token")
    return str(user_id)


async def get_current_user_id(token: str = Depends(get_token)) -> str:
    """获取当前登录用户ID"""
    user_id = decode_user_id(token)
    structlog.contextvars.bind_contextvars(user_id=user_id)
    return user_id


# ---- rate limiting ----

def _build_limiter(name: str, rule: RateLimitRule) -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(name, max_requests=rule.max_requests, window_seconds=rule.window_seconds)


webhook_limiter = _build_limiter("webhook", settings.rate_limit.webhook)
payment_limiter = _build_limiter("payment", settings.rate_limit.payment)
general_limiter = _build_limiter("general", settings.rate_limit.general)


def bind_rate_limit_cache(cache: Optional[RedisCache]) -> None:
    """启动时调用：有 Redis 时改用共享计数"""
    for limiter in (webhook_limiter, payment_limiter, general_limiter):
        limiter.bind_cache(cache)


def rate_limited(limiter: FixedWindowRateLimiter) -> Callable:
    async def _check(request: Request) -> None:
        if not settings.rate_limit.enabled:
            return
        client_ip = getattr(request.state, "client_ip", None) or resolve_client_ip(
            request.headers, request.client.host if request.client else None
        )
        decision = await limiter.hit(client_ip)
        if not decision.allowed:
            logger.warning("rate_limit_exceeded", limiter=limiter.name, client_ip=client_ip)
            raise RateLimitException(retry_after=decision.retry_after)

    return _check


webhook_rate_limit = rate_limited(webhook_limiter)
payment_rate_limit = rate_limited(payment_limiter)
general_rate_limit = rate_limited(general_limiter)


# ---- service wiring ----

def get_payment_settings() -> PaymentSettings:
    return payment_settings


def get_uow_factory() -> Callable:
    return uow_factory_for(AsyncSessionLocal)


def get_service_uow_factory() -> Callable:
    # 未配置 database.service_url 时 ServiceSessionLocal 绑定到主引擎
    return uow_factory_for(ServiceSessionLocal)


def get_notifier() -> Notifier:
    return TaskDispatcher()


async def get_gateway(
    config: PaymentSettings = Depends(get_payment_settings),
) -> AsyncIterator[PaymentGateway]:
    gateway = get_payment_gateway(config)
    try:
        yield gateway
    finally:
        await gateway.aclose()


def get_reconciler(
    uow_factory: Callable = Depends(get_uow_factory),
    service_uow_factory: Callable = Depends(get_service_uow_factory),
    notifier: Notifier = Depends(get_notifier),
) -> EntitlementReconciler:
    return EntitlementReconciler(
        uow_factory,
        notifier,
        grant_strategy=PremiumGrantStrategy(uow_factory, service_uow_factory),
    )


def get_webhook_service(
    gateway: PaymentGateway = Depends(get_gateway),
    reconciler: EntitlementReconciler = Depends(get_reconciler),
    notifier: Notifier = Depends(get_notifier),
    config: PaymentSettings = Depends(get_payment_settings),
) -> WebhookService:
    cache = get_redis_cache()
    event_store = (
        RedisProcessedEventStore(cache, ttl_seconds=config.webhook.dedupe_ttl_seconds)
        if cache is not None
        else None
    )
    return WebhookService(gateway, reconciler, notifier, event_store=event_store)


def get_history_service(
    gateway: PaymentGateway = Depends(get_gateway),
    uow_factory: Callable = Depends(get_uow_factory),
    config: PaymentSettings = Depends(get_payment_settings),
) -> PaymentHistoryService:
    return PaymentHistoryService(gateway, uow_factory, session_limit=config.history.session_limit)


def get_refund_service(
    gateway: PaymentGateway = Depends(get_gateway),
    history: PaymentHistoryService = Depends(get_history_service),
) -> RefundService:
    return RefundService(gateway, history)


def get_checkout_service(
    gateway: PaymentGateway = Depends(get_gateway),
    uow_factory: Callable = Depends(get_uow_factory),
    config: PaymentSettings = Depends(get_payment_settings),
) -> CheckoutService:
    return CheckoutService(gateway, uow_factory, config.checkout)
