"""Database engine and session management."""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from checkout_engine.config import settings
from checkout_engine.models.order import Base

engine = create_async_engine(settings.database_url, echo=False)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db():
    """Create orders, transactions and audit tables if they do not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_db():
    await engine.dispose()


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """One session per request; uncommitted work is rolled back on close."""
    async with async_session() as session:
        yield session
