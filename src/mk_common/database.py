"""Async engine and session plumbing shared by every marketplace module.

Repositories never open sessions themselves. Request handlers get one from
`get_db_session`; background jobs open their own through `async_session_factory`.
"""
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from config.settings import settings

SessionFactory = async_sessionmaker[AsyncSession]


def build_engine(url: str | None = None) -> AsyncEngine:
    return create_async_engine(
        url or settings.DATABASE_URL,
        echo=settings.DEBUG,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_recycle=settings.DB_POOL_RECYCLE_SECONDS,
        pool_pre_ping=True,
    )


engine: AsyncEngine = build_engine()

# expire_on_commit=False: domain objects built from rows are read after the
# settlement transaction commits.
async_session_factory: SessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """One session per request.

    Services open savepoints with `db.begin_nested()`; the route commits or rolls
    back through `run_in_transaction`.
    """
    async with async_session_factory() as session:
        yield session
