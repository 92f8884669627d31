"""
数据库配置和连接管理

引擎与会话工厂由应用 lifespan 显式创建并注入，不在导入时连接数据库。
"""
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.engine import make_url
from sqlalchemy.pool import StaticPool

from core.config import Settings
from infrastructure.models import Base


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
        raise ValueError(f"不支持的数据库驱动: {drivername}. 请使用 async 驱动或更新DATABASE__URL")

    async_driver = driver_map[drivername]
    return url.set(drivername=async_driver).render_as_string(hide_password=False)


def build_engine(
    database_url: str,
    *,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 20,
    pool_pre_ping: bool = True,
) -> AsyncEngine:
    """创建异步引擎；内存 SQLite 共享单连接，否则每个会话看到的是空库"""
    async_url = _build_async_url(database_url)
    if async_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in async_url:
            kwargs["poolclass"] = StaticPool
    else:
        kwargs = {"pool_size": pool_size, "max_overflow": max_overflow, "pool_pre_ping": pool_pre_ping}
    return create_async_engine(async_url, echo=echo, **kwargs)


def build_engine_from_settings(settings: Settings) -> AsyncEngine:
    db = settings.database
    return build_engine(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_pre_ping=db.pool_pre_ping,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """创建异步会话工厂"""
    return async_sessionmaker(
        bind=engine,
        expire_on_commit=False,
    )


async def create_tables(engine: AsyncEngine):
    """
    创建所有表

    根据models中定义的所有模型创建对应的数据库表
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_tables(engine: AsyncEngine):
    """
    删除所有表

    警告：仅用于测试环境，会删除所有数据！
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
