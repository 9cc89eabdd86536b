import os
import sys
import asyncio

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# Honour any externally provided DATABASE_URL (e.g. CI may set a file-backed DB)
# but fall back to an in-memory SQLite database so local runs remain isolated.
DEFAULT_DB_URL = os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ALLOWED_ORIGINS", "http://testserver")
os.environ.setdefault("DISABLE_RATE_LIMITS", "true")
# The background sweeper is exercised explicitly; keep it off for app startup.
os.environ["EXPIRY_SWEEP_INTERVAL_SECONDS"] = "0"

from sqlalchemy import select  # noqa: E402

from ladder import db, models  # noqa: E402,F401
from ladder.cache import player_stats_cache  # noqa: E402
from ladder.services.locks import league_locks  # noqa: E402
from ladder.services.projector import new_stats  # noqa: E402

LEAGUE = "default"


@pytest.fixture(scope="session")
def session_loop():
    """Single event loop for all sync fixtures that need to run async DB code."""

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    yield loop
    loop.close()


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True, scope="session")
def ensure_database(session_loop):
    """Ensure the test database starts clean and honours DATABASE_URL."""

    mp = pytest.MonkeyPatch()
    desired_url = os.getenv("DATABASE_URL") or DEFAULT_DB_URL
    mp.setenv("DATABASE_URL", desired_url)

    if desired_url.startswith("sqlite") and ":memory:" not in desired_url:
        path = desired_url.split("///")[-1]
        if os.path.exists(path):
            os.remove(path)

    session_loop.run_until_complete(db.dispose_engine())
    yield
    session_loop.run_until_complete(db.dispose_engine())
    mp.undo()


async def _reset_schema(engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(db.Base.metadata.drop_all)
        await conn.run_sync(db.Base.metadata.create_all)


@pytest.fixture(autouse=True)
def reset_schema(session_loop):
    """Reset the schema, league locks and read cache before each test."""

    league_locks.reset()
    session_loop.run_until_complete(player_stats_cache.clear())
    session_loop.run_until_complete(_reset_schema(db.get_engine()))
    yield


@pytest.fixture
async def session():
    async with db.get_sessionmaker()() as s:
        yield s


@pytest.fixture
def make_players(session):
    """Create a league (if needed) and players whose ids are their lowercased names."""

    async def _make(*names: str, league_id: str = LEAGUE) -> list[str]:
        if await session.get(models.League, league_id) is None:
            session.add(models.League(id=league_id, name=f"League {league_id}"))
        ids = []
        for name in names:
            pid = name.lower()
            session.add(
                models.Player(
                    id=pid,
                    name=name,
                    league_id=league_id,
                    stats=[new_stats(pid, mode) for mode in models.GAME_MODES],
                )
            )
            ids.append(pid)
        await session.commit()
        return ids

    return _make


@pytest.fixture
def read_stats(session):
    """Return a fresh ``PlayerStats`` row for ``(player_id, mode)``."""

    async def _read(player_id: str, mode: str = "singles") -> models.PlayerStats:
        return (
            await session.execute(
                select(models.PlayerStats)
                .where(
                    models.PlayerStats.player_id == player_id,
                    models.PlayerStats.mode == mode,
                )
                .execution_options(populate_existing=True)
            )
        ).scalar_one()

    return _read


@pytest.fixture
def set_rating(session):
    async def _set(player_id: str, rating: int, mode: str = "singles") -> None:
        row = await session.get(models.PlayerStats, (player_id, mode))
        row.rating = rating
        await session.commit()

    return _set
