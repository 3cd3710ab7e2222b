from pathlib import Path
from typing import AsyncIterator, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from photo2video.config import get_settings
from photo2video.utils.logger import logger

# Base class for models
Base = declarative_base()


def create_engine_and_session(
    database_url: str,
    echo: bool = False,
) -> Tuple[AsyncEngine, async_sessionmaker]:
    """Build an async engine and its session factory for the given URL"""
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        # One shared connection, otherwise every session sees an empty database
        engine = create_async_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    elif database_url.startswith("sqlite"):
        engine = create_async_engine(database_url, echo=echo)
    else:
        engine = create_async_engine(
            database_url,
            echo=echo,
            pool_pre_ping=True,  # Detect and recycle stale/broken connections
            pool_recycle=300,  # Recycle connections every 5 minutes
        )

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return engine, session_factory


settings = get_settings()
engine, AsyncSessionLocal = create_engine_and_session(settings.database_url, echo=settings.debug)


# Dependency for FastAPI routes
async def get_db() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


def _ensure_sqlite_directory(database_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database"""
    if not database_url.startswith("sqlite") or ":memory:" in database_url:
        return
    path = database_url.split(":///", 1)[-1]
    Path(path).parent.mkdir(parents=True, exist_ok=True)


async def init_db(target_engine: Optional[AsyncEngine] = None) -> None:
    """Create all database tables"""
    # Import models to register them with Base
    from photo2video.models import user, video, generation_job, credit_ledger  # noqa: F401

    target_engine = target_engine or engine
    _ensure_sqlite_directory(str(target_engine.url))

    async with target_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("database.initialized", extra={"dialect": target_engine.dialect.name})
