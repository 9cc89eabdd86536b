import os
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, AsyncEngine, create_async_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import NullPool, StaticPool


engine: Optional[AsyncEngine] = None
AsyncSessionLocal: Optional[sessionmaker] = None
Base = declarative_base()


def database_url() -> str:
    """Return ``DATABASE_URL`` with plain Postgres URLs mapped to asyncpg.

    Shared by the app, Alembic and the seed script so all three open the
    same database the same way.
    """

    url = (os.getenv("DATABASE_URL") or "").strip()
    if not url:
        raise RuntimeError("DATABASE_URL environment variable is required")
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+asyncpg://" + url[len(prefix):]
    return url


def engine_options(url: str) -> dict[str, Any]:
    if not url.startswith("sqlite+aiosqlite://"):
        return {"echo": False, "pool_pre_ping": True}
    if ":memory:" in url:
        # Every session has to see the same in-memory database.
        return {
            "echo": False,
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        }
    return {"echo": False, "poolclass": NullPool}


def get_engine() -> AsyncEngine:
    """Return the engine, creating it from ``DATABASE_URL`` on first use.

    Importing this module has no side effects, so tests can point
    ``DATABASE_URL`` somewhere else before the first session is opened.
    """

    global engine, AsyncSessionLocal

    if engine is None:
        url = database_url()
        engine = create_async_engine(url, **engine_options(url))
        AsyncSessionLocal = sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )

    return engine


def get_sessionmaker() -> sessionmaker:
    if AsyncSessionLocal is None:
        get_engine()

    assert AsyncSessionLocal is not None  # for type checkers
    return AsyncSessionLocal


async def dispose_engine() -> None:
    """Close pooled connections and forget the engine."""

    global engine, AsyncSessionLocal

    if engine is not None:
        await engine.dispose()
    engine = None
    AsyncSessionLocal = None


async def get_session() -> AsyncSession:
    """Provide a database session for FastAPI dependencies."""

    async with get_sessionmaker()() as session:
        yield session
