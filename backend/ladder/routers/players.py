import logging
import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import config
from ..cache import player_stats_cache
from ..db import get_session
from ..exceptions import PlayerAlreadyExists, PlayerNotFound, ProblemDetail, ValidationError
from ..models import (
    DISPUTED,
    GAME_MODES,
    PENDING,
    Match,
    MatchParticipant,
    PendingMatch,
    Player,
)
from ..schemas import (
    GameMode,
    ModeStatsOut,
    PlayerCreate,
    PlayerLeagueUpdate,
    PlayerListOut,
    PlayerOut,
    PlayerStreaksOut,
    RatingHistoryOut,
    RatingHistoryPointOut,
    StreakSummary,
)
from ..services import compute_streaks
from ..services.ledger import player_results, rating_history, require_league
from ..services.locks import league_write
from ..services.projector import new_stats
from ..services.stats import win_percentage
from ..time_utils import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/players",
    tags=["players"],
    responses={400: {"model": ProblemDetail}, 404: {"model": ProblemDetail}},
)


def player_out(player: Player) -> PlayerOut:
    by_mode = {s.mode: s for s in player.stats}
    stats = []
    for mode in GAME_MODES:
        row = by_mode.get(mode)
        if row is None:
            row = new_stats(player.id, mode)
        stats.append(
            ModeStatsOut(
                mode=mode,
                rating=row.rating,
                wins=row.wins,
                losses=row.losses,
                streak=row.streak,
                statsMayBeApproximate=bool(row.stats_may_be_approximate),
            )
        )
    return PlayerOut(
        id=player.id,
        name=player.name,
        leagueId=player.league_id,
        joinedAt=player.joined_at,
        deletedAt=player.deleted_at,
        stats=stats,
    )


async def _get_player(session: AsyncSession, player_id: str) -> Player:
    player = (
        await session.execute(
            select(Player)
            .where(Player.id == player_id)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if player is None:
        raise PlayerNotFound(player_id)
    return player


async def _in_open_pending(session: AsyncSession, league_id: str, player_id: str) -> bool:
    rows = (
        await session.execute(
            select(PendingMatch.winner_ids, PendingMatch.loser_ids).where(
                PendingMatch.league_id == league_id,
                PendingMatch.status.in_((PENDING, DISPUTED)),
            )
        )
    ).all()
    return any(
        player_id in (list(winners or []) + list(losers or []))
        for winners, losers in rows
    )


# POST /api/v0/players
@router.post("", response_model=PlayerOut, status_code=201)
async def create_player(
    body: PlayerCreate, session: AsyncSession = Depends(get_session)
) -> PlayerOut:
    league_id = body.leagueId or config.DEFAULT_LEAGUE_ID
    pid = uuid.uuid4().hex
    async with league_write(session, league_id):
        await require_league(session, league_id)
        exists = (
            await session.execute(
                select(Player.id).where(
                    Player.league_id == league_id,
                    func.lower(Player.name) == body.name.lower(),
                )
            )
        ).scalar_one_or_none()
        if exists:
            raise PlayerAlreadyExists(body.name)
        player = Player(
            id=pid,
            name=body.name,
            league_id=league_id,
            joined_at=utcnow(),
            stats=[new_stats(pid, mode) for mode in GAME_MODES],
        )
        session.add(player)
    logger.info("Created player %s (%s) in league %s", pid, body.name, league_id)
    return player_out(player)


# GET /api/v0/players
@router.get("", response_model=PlayerListOut)
async def list_players(
    q: str = "",
    leagueId: str | None = None,
    includeDeleted: bool = False,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    league_id = leagueId or config.DEFAULT_LEAGUE_ID
    filters = [Player.league_id == league_id]
    if not includeDeleted:
        filters.append(Player.deleted_at.is_(None))
    if q:
        filters.append(Player.name.ilike(f"%{q}%"))
    total = (
        await session.execute(select(func.count()).select_from(Player).where(*filters))
    ).scalar()
    rows = (
        await session.execute(
            select(Player)
            .where(*filters)
            .order_by(func.lower(Player.name))
            .limit(limit)
            .offset(offset)
        )
    ).scalars().all()
    return PlayerListOut(
        players=[player_out(p) for p in rows], total=total, limit=limit, offset=offset
    )


# GET /api/v0/players/{player_id}
@router.get("/{player_id}", response_model=PlayerOut)
async def get_player(player_id: str, session: AsyncSession = Depends(get_session)):
    cache_key = (player_id, "profile")
    cached = await player_stats_cache.get(cache_key)
    if cached is not None:
        return cached
    result = player_out(await _get_player(session, player_id))
    await player_stats_cache.set(cache_key, result)
    return result


# DELETE /api/v0/players/{player_id}
@router.delete("/{player_id}", status_code=204)
async def delete_player(player_id: str, session: AsyncSession = Depends(get_session)):
    player = await _get_player(session, player_id)
    async with league_write(session, player.league_id):
        player = await _get_player(session, player_id)
        if player.deleted_at is None:
            if await _in_open_pending(session, player.league_id, player_id):
                raise ValidationError(
                    f"Player '{player_id}' has pending matches awaiting confirmation."
                )
            player.deleted_at = utcnow()
    await player_stats_cache.invalidate_players([player_id])
    logger.info("Removed player %s from league %s", player_id, player.league_id)


# PUT /api/v0/players/{player_id}/league
@router.put("/{player_id}/league", response_model=PlayerOut)
async def assign_league(
    player_id: str,
    body: PlayerLeagueUpdate,
    session: AsyncSession = Depends(get_session),
):
    player = await _get_player(session, player_id)
    source = player.league_id
    target = body.leagueId
    if source == target:
        return player_out(player)
    await require_league(session, target)

    async with league_write(session, source):
        player = await _get_player(session, player_id)
        if player.deleted_at is not None:
            raise ValidationError(f"Player '{player_id}' has been removed.")
        played = (
            await session.execute(
                select(func.count(Match.id)).where(
                    Match.league_id == source,
                    Match.participants.any(MatchParticipant.player_id == player_id),
                )
            )
        ).scalar()
        in_pending = await _in_open_pending(session, source, player_id)
        if played or in_pending:
            raise ValidationError(
                f"Player '{player_id}' has matches in league '{source}' and cannot move."
            )
        clash = (
            await session.execute(
                select(Player.id).where(
                    Player.league_id == target,
                    func.lower(Player.name) == player.name.lower(),
                )
            )
        ).scalar_one_or_none()
        if clash:
            raise PlayerAlreadyExists(player.name)
        player.league_id = target
    await player_stats_cache.invalidate_players([player_id])
    logger.info("Moved player %s from league %s to %s", player_id, source, target)
    return player_out(player)


# GET /api/v0/players/{player_id}/rating-history?mode=
@router.get("/{player_id}/rating-history", response_model=RatingHistoryOut)
async def get_rating_history(
    player_id: str,
    mode: GameMode = "singles",
    session: AsyncSession = Depends(get_session),
):
    rows = await rating_history(session, player_id, mode)
    return RatingHistoryOut(
        playerId=player_id,
        mode=mode,
        points=[
            RatingHistoryPointOut(
                matchId=row.match_id, ratingAfter=row.rating_after, timestamp=row.timestamp
            )
            for row in rows
        ],
    )


# GET /api/v0/players/{player_id}/streaks?mode=
@router.get("/{player_id}/streaks", response_model=PlayerStreaksOut)
async def get_streaks(
    player_id: str,
    mode: GameMode = "singles",
    session: AsyncSession = Depends(get_session),
):
    cache_key = (player_id, "streaks", mode)
    cached = await player_stats_cache.get(cache_key)
    if cached is not None:
        return cached
    await _get_player(session, player_id)
    results = await player_results(session, player_id, mode)
    wins = sum(1 for r in results if r)
    summary = PlayerStreaksOut(
        playerId=player_id,
        mode=mode,
        streaks=StreakSummary(**compute_streaks(results)),
        winPct=win_percentage(wins, len(results) - wins),
    )
    await player_stats_cache.set(cache_key, summary)
    return summary
