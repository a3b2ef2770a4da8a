"""
数据库配置和连接管理

两套凭证：
- database.url: 公共/匿名权限，用于常规读写与原子授予路径
- database.service_url: 服务角色权限，仅用于权益授予的降级路径；
  未配置时降级路径静默复用公共凭证
"""
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker
from sqlalchemy.engine import make_url
from typing import Optional

from core.config import settings
from infrastructure.models import Base

# 创建异步引擎
def _build_async_url(database_url: str) -> str:
    """确保数据库URL使用异步驱动"""
    url = make_url(database_url)
    drivername = url.drivername

    if "+" in drivername:
        return database_url

    driver_map = {
        "postgresql": "postgresql+asyncpg",
        "postgres": "postgresql+asyncpg",
        "sqlite": "sqlite+aiosqlite",
    }

    if drivername not in driver_map:
        raise ValueError(f"不支持的数据库驱动: {drivername}. 请使用 async 驱动或更新 DATABASE__URL")

    async_driver = driver_map[drivername]
    # str(URL) 会隐藏密码，需显式渲染
    return url.set(drivername=async_driver).render_as_string(hide_password=False)


def _create_engine(database_url: str) -> AsyncEngine:
    return create_async_engine(
        _build_async_url(database_url),
        echo=settings.DEBUG,
        future=True,
    )


engine = _create_engine(settings.database.url)

_service_url: Optional[str] = settings.database.service_url
service_engine = _create_engine(_service_url) if _service_url else engine

# 创建异步会话工厂
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
)

ServiceSessionLocal = async_sessionmaker(
    bind=service_engine,
    expire_on_commit=False,
)


async def create_tables():
    """
    创建所有表

    根据models中定义的所有模型创建对应的数据库表
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engines() -> None:
    """关闭连接池"""
    await engine.dispose()
    if service_engine is not engine:
        await service_engine.dispose()
