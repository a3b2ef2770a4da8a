"""
FastAPI应用主入口
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from api.dependencies import bind_rate_limit_cache
from api.routes import payments as payments_routes
from api.middleware import RequestIDMiddleware, LoggingMiddleware
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import get_logger, configure_logging
from infrastructure.cache import init_redis_cache, shutdown_redis_cache
from infrastructure.database import create_tables, dispose_engines


# 初始化日志：在入口处显式配置
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动时创建数据库表（仅开发环境）。生产应使用 Alembic 迁移
    if settings.DEBUG:
        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")
    else:
        logger.info(
            "database_migrations_required",
            message="No auto-create in production, use Alembic migrations (alembic upgrade head)"
        )

    if not settings.database.service_url:
        logger.warning(
            "database_service_credentials_missing",
            message="Fallback premium grants will use the primary database credentials",
        )

    # Redis 可选：用于跨进程限流与 Webhook 重投递保护
    if settings.redis.url:
        try:
            cache = await init_redis_cache(
                settings.redis.url,
                namespace=settings.redis.namespace,
                max_connections=settings.redis.max_connections,
                default_ttl=settings.redis.default_ttl,
            )
            bind_rate_limit_cache(cache)
        except Exception as exc:
            logger.error(
                "redis_cache_init_failed",
                error=str(exc)
            )

    yield

    # 关闭时的清理工作
    bind_rate_limit_cache(None)
    if settings.redis.url:
        await shutdown_redis_cache()
        logger.info("redis_cache_shutdown", message="Redis cache shutdown")
    await dispose_engines()
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    # 未捕获异常统一由全局处理器返回通用 500，不输出调试堆栈
    debug=False,
    lifespan=lifespan,
    description="Stripe 支付事件对账：Webhook 验签与分发、权益授予、支付历史与退款",
)

# 添加中间件（注意顺序：后添加的先执行）
# 1. 日志中间件（依赖request_id）
app.add_middleware(LoggingMiddleware)

# 2. Request ID中间件（在日志中间件之前执行，为其提供request_id）
app.add_middleware(RequestIDMiddleware)

# 3. CORS中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册全局异常处理器
register_exception_handlers(app)


# 注册路由
app.include_router(payments_routes.router, prefix="/api/v1")


# 健康检查
@app.get("/health", tags=["Health"])
async def health_check():
    """健康检查端点"""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
