from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from crewdesk.core.config import settings


def build_engine(url: str, *, search_path: Optional[str] = None, **options: Any) -> AsyncEngine:
    """
    Async engine over asyncpg. search_path pins every connection to one
    schema (the test suite uses a throwaway schema per test).
    """
    connect_args: dict[str, Any] = {}
    if search_path:
        connect_args["server_settings"] = {"search_path": search_path}

    kwargs: dict[str, Any] = {
        "echo": False,
        "pool_pre_ping": True,  # detects dead connections before using them
        "pool_recycle": 300,    # recycle connections periodically (seconds)
    }
    kwargs.update(options)
    return create_async_engine(url, connect_args=connect_args, **kwargs)


def build_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: handlers serialize rows after committing.
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Use CLEAN URL to avoid asyncpg errors with sslmode/channel_binding query params.
engine: AsyncEngine = build_engine(settings.DATABASE_URL_ASYNC_CLEAN)
AsyncSessionLocal = build_sessionmaker(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides one AsyncSession per request.
    The session (and its identity map) never outlives the request, so nothing
    loaded for authorization can leak into the next one.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
