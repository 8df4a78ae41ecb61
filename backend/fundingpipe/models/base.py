"""Base database configuration and mixins.

Engines and session factories are built on first use by whichever process
owns them (Celery worker, API server, CLI script) and handed to components as
explicit ``Session`` arguments. Importing this module never connects.
"""

import uuid
from functools import lru_cache
from typing import AsyncGenerator

from sqlalchemy import JSON, Column, DateTime, Engine, Uuid, create_engine, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, declared_attr, sessionmaker

from fundingpipe.config import get_settings

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def make_sync_engine(url: str, echo: bool = False) -> Engine:
    kwargs = {"echo": echo}
    if url.startswith("postgresql"):
        kwargs.update(pool_size=5, max_overflow=10, pool_timeout=30)
    return create_engine(url, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


def make_async_engine(url: str, echo: bool = False) -> AsyncEngine:
    kwargs = {"echo": echo}
    if url.startswith("postgresql"):
        kwargs.update(pool_size=10, max_overflow=20, pool_timeout=30)
    return create_async_engine(url, **kwargs)


@lru_cache
def get_sync_engine() -> Engine:
    settings = get_settings()
    return make_sync_engine(settings.sync_database_url, echo=settings.debug)


@lru_cache
def get_session_factory() -> sessionmaker:
    """Sync sessions for Celery tasks and scripts."""
    return make_session_factory(get_sync_engine())


@lru_cache
def get_async_engine() -> AsyncEngine:
    settings = get_settings()
    return make_async_engine(settings.database_url, echo=settings.debug)


@lru_cache
def get_async_session_factory() -> async_sessionmaker:
    """Async sessions for FastAPI."""
    return async_sessionmaker(get_async_engine(), class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    @declared_attr
    def __tablename__(cls) -> str:
        return cls.__name__.lower() + "s"


class TimestampMixin:
    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class UUIDMixin:
    id = Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with get_async_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
