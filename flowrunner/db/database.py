"""Async SQLAlchemy engine and session factory shared by the API, worker and scheduler."""

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from flowrunner.config import config

engine = create_async_engine(config.database_url, echo=config.debug, pool_pre_ping=True)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db():
    """Create all tables. Called at process startup."""
    from flowrunner.db.models import Base
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Dispose pooled connections. Called at process shutdown."""
    await engine.dispose()
