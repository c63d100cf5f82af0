"""
ArtShelf database layer - async SQLAlchemy over SQLite
"""
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from pathlib import Path

from .config import get_settings


def get_database_url() -> str:
    """Get SQLite database URL"""
    settings = get_settings()
    if settings.database_url:
        return settings.database_url
    db_path = Path(settings.data_dir) / 'library.db'
    return f"sqlite+aiosqlite:///{db_path}"


def create_engine_for(url: str):
    """Create an async engine with the SQLite settings ArtShelf relies on."""
    return create_async_engine(
        url,
        echo=False,
        # Workers commit concurrently; wait on the file lock instead of failing fast
        connect_args={"check_same_thread": False, "timeout": 30}
    )


def create_session_factory(bind) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False
    )


# SQLite async engine
engine = create_engine_for(get_database_url())

AsyncSessionLocal = create_session_factory(engine)

Base = declarative_base()


async def get_db():
    """Dependency for getting database sessions."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


def get_session_factory() -> async_sessionmaker:
    """Dependency for code that opens its own sessions (background jobs)."""
    return AsyncSessionLocal


async def init_db(bind=None):
    """Create all tables."""
    # Models must be registered on Base.metadata before create_all
    from . import models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Close database connections."""
    await engine.dispose()
