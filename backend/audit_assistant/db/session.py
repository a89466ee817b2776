"""
Database engine and session management.

The engine is created lazily from settings.database_url:
  - postgresql+asyncpg://...  in staging / production (pooled)
  - sqlite+aiosqlite://...    for local development and tests

Every repository call runs in its own short transaction via session_scope().
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from audit_assistant.core.config import settings
from audit_assistant.db.models import Base

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Engine / session factory
# ---------------------------------------------------------------------------

def create_engine_from_settings(url: str | None = None) -> AsyncEngine:
    url = url or settings.database_url
    kwargs: dict = {"echo": settings.db_echo_sql}
    if not url.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,          # detect stale connections before use
            pool_recycle=3600,           # recycle connections every hour
        )
    return create_async_engine(url, **kwargs)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False keeps ORM objects usable after commit
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    return create_engine_from_settings()


@lru_cache(maxsize=1)
def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    return create_sessionmaker(get_engine())


@asynccontextmanager
async def session_scope(
    sessions: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """One transaction: commits on clean exit, rolls back on error."""
    factory = sessions or get_sessionmaker()
    async with factory() as session:
        async with session.begin():
            yield session


# ---------------------------------------------------------------------------
# Schema bootstrap (dev and tests only; production uses migrations)
# ---------------------------------------------------------------------------

async def init_models(engine: AsyncEngine | None = None) -> None:
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ensured | url=%s", engine.url.render_as_string(hide_password=True))


async def check_db_health(engine: AsyncEngine | None = None) -> dict:
    """Ping the database."""
    engine = engine or get_engine()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:
        logger.error("DB health check failed: %s", exc)
        return {"status": "error", "detail": str(exc)}
