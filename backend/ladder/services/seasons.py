from __future__ import annotations

import logging
import uuid
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import config
from ..cache import player_stats_cache
from ..exceptions import ConflictingSeasonState, SeasonNotFound
from ..models import (
    DOUBLES,
    SEASON_ACTIVE,
    SEASON_COMPLETED,
    SINGLES,
    Match,
    Player,
    PlayerStats,
    Season,
)
from ..time_utils import to_storage, utcnow
from .ledger import require_league
from .locks import league_write
from .projector import reset_league_aggregates
from .rating import INITIAL_RATING

logger = logging.getLogger(__name__)


async def active_season(session: AsyncSession, league_id: str) -> Season | None:
    return (
        await session.execute(
            select(Season)
            .where(Season.league_id == league_id, Season.status == SEASON_ACTIVE)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()


async def start_season(
    session: AsyncSession,
    name: str | None = None,
    *,
    league_id: str | None = None,
    now: datetime | None = None,
) -> Season:
    """Open a new season and reset every aggregate of the league.

    Players and ledger rows are kept; matches played before ``started_at``
    belong to earlier seasons.
    """

    league_id = league_id or config.DEFAULT_LEAGUE_ID
    started_at = to_storage(now) if now is not None else utcnow()
    async with league_write(session, league_id):
        await require_league(session, league_id)
        if await active_season(session, league_id) is not None:
            raise ConflictingSeasonState(
                "A season is already active. End it first."
            )
        previous = (
            await session.execute(
                select(func.max(Season.number)).where(Season.league_id == league_id)
            )
        ).scalar()
        number = (previous or 0) + 1
        season = Season(
            id=uuid.uuid4().hex,
            league_id=league_id,
            name=(name or "").strip() or f"Season {number}",
            number=number,
            status=SEASON_ACTIVE,
            started_at=started_at,
            final_standings=[],
            match_count=0,
        )
        session.add(season)
        reset = await reset_league_aggregates(session, league_id)
        await session.flush()
        logger.info(
            "Started season %d (%s) in league %s; reset %d player(s)",
            number,
            season.name,
            league_id,
            reset,
        )
    await player_stats_cache.clear()
    return season


async def _standings(session: AsyncSession, league_id: str) -> list[dict]:
    players = (
        await session.execute(
            select(Player).where(
                Player.league_id == league_id, Player.deleted_at.is_(None)
            )
        )
    ).scalars().all()
    if not players:
        return []
    rows = (
        await session.execute(
            select(PlayerStats)
            .where(PlayerStats.player_id.in_([p.id for p in players]))
            .execution_options(populate_existing=True)
        )
    ).scalars().all()
    by_player: dict[str, dict[str, PlayerStats]] = {}
    for row in rows:
        by_player.setdefault(row.player_id, {})[row.mode] = row

    entries = []
    for player in players:
        stats = by_player.get(player.id, {})
        singles = stats.get(SINGLES)
        doubles = stats.get(DOUBLES)
        entries.append(
            {
                "playerId": player.id,
                "playerName": player.name,
                "ratingSingles": singles.rating if singles else INITIAL_RATING,
                "ratingDoubles": doubles.rating if doubles else INITIAL_RATING,
                "wins": sum(s.wins for s in stats.values()),
                "losses": sum(s.losses for s in stats.values()),
            }
        )
    # Ties on singles rating fall back to doubles rating, then name.
    entries.sort(
        key=lambda e: (-e["ratingSingles"], -e["ratingDoubles"], e["playerName"].lower())
    )
    for rank, entry in enumerate(entries, start=1):
        entry["rank"] = rank
    return entries


async def end_season(
    session: AsyncSession,
    *,
    league_id: str | None = None,
    now: datetime | None = None,
) -> Season:
    """Close the active season with final standings and a champion."""

    league_id = league_id or config.DEFAULT_LEAGUE_ID
    ended_at = to_storage(now) if now is not None else utcnow()
    async with league_write(session, league_id):
        await require_league(session, league_id)
        season = await active_season(session, league_id)
        if season is None:
            raise ConflictingSeasonState("No active season to end.")

        standings = await _standings(session, league_id)
        match_count = (
            await session.execute(
                select(func.count(Match.id)).where(
                    Match.league_id == league_id,
                    Match.played_at >= season.started_at,
                    Match.played_at <= ended_at,
                )
            )
        ).scalar() or 0

        season.final_standings = standings
        season.champion_id = standings[0]["playerId"] if standings else None
        season.match_count = match_count
        season.ended_at = ended_at
        season.status = SEASON_COMPLETED
        await session.flush()
        logger.info(
            "Ended season %d in league %s: %d match(es), champion=%s",
            season.number,
            league_id,
            match_count,
            season.champion_id,
        )
    return season


async def list_seasons(session: AsyncSession, league_id: str | None = None) -> list[Season]:
    league_id = league_id or config.DEFAULT_LEAGUE_ID
    stmt = (
        select(Season)
        .where(Season.league_id == league_id)
        .order_by(Season.number.desc())
    )
    return list((await session.execute(stmt)).scalars().all())


async def get_season(session: AsyncSession, season_id: str) -> Season:
    season = await session.get(Season, season_id)
    if season is None:
        raise SeasonNotFound(season_id)
    return season
