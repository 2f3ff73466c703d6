# database.py
# Builds the async engine / session factory and holds the ORM declarative base.
# The engine is created by the process entry point (main.create_app or a script)
# and handed to request handlers through app.state, never imported as a global.

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from config import settings

Base = declarative_base()


def get_db_url():
    """Get the database URL for use in migration scripts."""
    return settings.DATABASE_URL


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine for the given URL."""
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=echo)

    # NullPool: no pooling, a new connection per session (safest for async)
    # asyncpg SSL mode "prefer": try SSL, fall back to plain if unavailable
    return create_async_engine(
        database_url,
        echo=echo,
        poolclass=NullPool,
        connect_args={
            "timeout": 30,
            "server_settings": {"application_name": "kyc_onboarding"},
            "ssl": "prefer",
        },
    )


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,  # Better for read-heavy operations
    )


async def create_all(engine: AsyncEngine) -> None:
    """Create every table defined in models.py."""
    import models  # noqa: F401  registers the mappers on Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
