"""Authoritative match ledger.

Committed matches and their rating-history rows live here. Every
mutation goes through the projector so the player aggregates move in the
same transaction as the ledger rows.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import config
from ..cache import player_stats_cache
from ..exceptions import (
    ConflictingSeasonState,
    LeagueNotFound,
    MatchNotFound,
    PlayerNotFound,
    ValidationError,
)
from ..models import GAME_MODES, League, Match, MatchParticipant, Player, RatingHistory
from ..time_utils import utcnow
from . import projector
from .locks import league_write
from .validation import validate_match_result

logger = logging.getLogger(__name__)


async def require_league(session: AsyncSession, league_id: str) -> League:
    league = await session.get(League, league_id)
    if league is None:
        raise LeagueNotFound(league_id)
    return league


async def require_league_players(
    session: AsyncSession, league_id: str, player_ids: Sequence[str]
) -> dict[str, Player]:
    """Return the active players for ``player_ids`` or fail.

    Unknown ids raise ``PlayerNotFound``; players that were removed or that
    belong to another league are a validation failure.
    """

    ids = list(dict.fromkeys(player_ids))
    rows = (
        await session.execute(select(Player).where(Player.id.in_(ids)))
    ).scalars().all()
    players = {p.id: p for p in rows}
    for pid in ids:
        player = players.get(pid)
        if player is None:
            raise PlayerNotFound(pid)
        if player.deleted_at is not None:
            raise ValidationError(f"Player '{pid}' has been removed.")
        if player.league_id != league_id:
            raise ValidationError(
                f"Player '{pid}' does not belong to league '{league_id}'."
            )
    return players


async def _next_sequence(session: AsyncSession, league_id: str) -> int:
    current = (
        await session.execute(
            select(func.max(Match.sequence)).where(Match.league_id == league_id)
        )
    ).scalar()
    return (current or 0) + 1


def _participants(winners: Sequence[str], losers: Sequence[str]) -> list[MatchParticipant]:
    rows = []
    for position, pid in enumerate(winners):
        rows.append(
            MatchParticipant(
                id=uuid.uuid4().hex, player_id=pid, is_winner=True, position=position
            )
        )
    for position, pid in enumerate(losers):
        rows.append(
            MatchParticipant(
                id=uuid.uuid4().hex, player_id=pid, is_winner=False, position=position
            )
        )
    return rows


async def _apply_and_record(
    session: AsyncSession,
    match: Match,
    winners: Sequence[str],
    losers: Sequence[str],
) -> int:
    stats = await projector.load_stats(session, list(winners) + list(losers), match.mode)
    delta = projector.compute_delta(
        stats, winners, losers, is_friendly=match.is_friendly
    )
    projector.apply_result(
        stats,
        winners,
        losers,
        delta,
        counts_toward_record=match.counts_toward_record,
    )
    for pid in list(winners) + list(losers):
        session.add(
            RatingHistory(
                id=uuid.uuid4().hex,
                player_id=pid,
                mode=match.mode,
                match_id=match.id,
                rating_after=stats[pid].rating,
                timestamp=match.played_at,
                sequence=match.sequence,
            )
        )
    return delta


async def commit_match(
    session: AsyncSession,
    *,
    league_id: str,
    mode: str,
    winners: Sequence[str],
    losers: Sequence[str],
    score_winner: int,
    score_loser: int,
    is_friendly: bool = False,
    logged_by: str | None = None,
    pending_match_id: str | None = None,
    match_id: str | None = None,
    played_at: datetime | None = None,
) -> Match:
    """Append a match to the ledger and project it onto the aggregates.

    The caller holds the league lock, has validated the result and owns the
    transaction.
    """

    match = Match(
        id=match_id or uuid.uuid4().hex,
        league_id=league_id,
        mode=mode,
        score_winner=score_winner,
        score_loser=score_loser,
        rating_delta=0,
        is_friendly=is_friendly,
        counts_toward_record=(not is_friendly) or config.friendly_matches_count_record(),
        played_at=played_at or utcnow(),
        sequence=await _next_sequence(session, league_id),
        logged_by=logged_by,
        pending_match_id=pending_match_id,
        participants=_participants(winners, losers),
    )
    session.add(match)
    match.rating_delta = await _apply_and_record(session, match, winners, losers)
    await session.flush()
    logger.info(
        "Committed %s match %s in league %s (delta=%d, friendly=%s)",
        mode,
        match.id,
        league_id,
        match.rating_delta,
        is_friendly,
    )
    return match


async def _reverse_match(session: AsyncSession, match: Match) -> list[str]:
    winners = match.winner_ids
    losers = match.loser_ids
    stats = await projector.load_stats(session, winners + losers, match.mode)
    projector.reverse_result(
        stats,
        winners,
        losers,
        match.rating_delta,
        counts_toward_record=match.counts_toward_record,
    )
    await session.execute(
        delete(RatingHistory).where(RatingHistory.match_id == match.id)
    )
    return winners + losers


async def _match_league(session: AsyncSession, match_id: str) -> str:
    league_id = (
        await session.execute(select(Match.league_id).where(Match.id == match_id))
    ).scalar()
    if league_id is None:
        raise MatchNotFound(match_id)
    return league_id


async def _load_match_for_update(session: AsyncSession, match_id: str) -> Match:
    match = (
        await session.execute(
            select(Match)
            .where(Match.id == match_id)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if match is None:
        raise MatchNotFound(match_id)
    since = await projector.replay_window_start(session, match.league_id)
    if since is not None and match.played_at < since:
        raise ConflictingSeasonState(
            f"match '{match_id}' belongs to a closed season and cannot be changed"
        )
    return match


async def record_match(
    session: AsyncSession,
    *,
    mode: str,
    winners: Sequence[str],
    losers: Sequence[str],
    score_winner: int,
    score_loser: int,
    is_friendly: bool = False,
    league_id: str | None = None,
    logged_by: str | None = None,
) -> Match:
    """Validate and commit a result directly, bypassing confirmation."""

    league_id = league_id or config.DEFAULT_LEAGUE_ID
    winner_ids, loser_ids, sw, sl = validate_match_result(
        mode, winners, losers, score_winner, score_loser
    )
    async with league_write(session, league_id):
        await require_league(session, league_id)
        await require_league_players(session, league_id, winner_ids + loser_ids)
        match = await commit_match(
            session,
            league_id=league_id,
            mode=mode,
            winners=winner_ids,
            losers=loser_ids,
            score_winner=sw,
            score_loser=sl,
            is_friendly=is_friendly,
            logged_by=logged_by,
        )
    await player_stats_cache.invalidate_players(winner_ids + loser_ids)
    return match


async def delete_match(session: AsyncSession, match_id: str) -> None:
    """Remove a match and undo its effects on ratings and records.

    Ratings return exactly to their pre-commit values when no later match
    involved the same players; streaks of all participants reset to 0 and
    are flagged approximate until the next recalculation.
    """

    league_id = await _match_league(session, match_id)
    async with league_write(session, league_id):
        match = await _load_match_for_update(session, match_id)
        delta = match.rating_delta
        affected = await _reverse_match(session, match)
        await session.delete(match)
        await session.flush()
        logger.info(
            "Deleted match %s in league %s (reversed delta=%d)",
            match_id,
            league_id,
            delta,
        )
    await player_stats_cache.invalidate_players(affected)


async def edit_match(
    session: AsyncSession,
    match_id: str,
    *,
    winners: Sequence[str],
    losers: Sequence[str],
    score_winner: int,
    score_loser: int,
) -> Match:
    """Replace a match's teams and score, keeping its id and timestamp.

    The old result is reversed exactly like a delete and the new one is
    committed against the ratings that reversal leaves behind.
    """

    league_id = await _match_league(session, match_id)
    async with league_write(session, league_id):
        match = await _load_match_for_update(session, match_id)
        winner_ids, loser_ids, sw, sl = validate_match_result(
            match.mode, winners, losers, score_winner, score_loser
        )
        await require_league_players(session, league_id, winner_ids + loser_ids)

        affected = await _reverse_match(session, match)
        match.participants.clear()
        await session.flush()

        match.participants.extend(_participants(winner_ids, loser_ids))
        match.score_winner = sw
        match.score_loser = sl
        match.rating_delta = await _apply_and_record(
            session, match, winner_ids, loser_ids
        )
        await session.flush()
        logger.info(
            "Edited match %s in league %s (new delta=%d)",
            match_id,
            league_id,
            match.rating_delta,
        )
    await player_stats_cache.invalidate_players(affected + winner_ids + loser_ids)
    return match


async def recalculate_stats(
    session: AsyncSession, league_id: str | None = None
) -> projector.RecalculateSummary:
    """Replay a league's ledger and swap in the rebuilt aggregates."""

    league_id = league_id or config.DEFAULT_LEAGUE_ID
    async with league_write(session, league_id):
        await require_league(session, league_id)
        try:
            summary = await projector.recalculate(session, league_id)
        except Exception:
            logger.error("Replay of league %s aborted", league_id, exc_info=True)
            raise
    await player_stats_cache.clear()
    return summary


async def get_match(session: AsyncSession, match_id: str) -> Match:
    match = await session.get(Match, match_id)
    if match is None:
        raise MatchNotFound(match_id)
    return match


async def list_matches(
    session: AsyncSession,
    *,
    league_id: str | None = None,
    player_id: str | None = None,
    mode: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> list[Match]:
    """Return ledger matches newest first; fetches ``limit + 1`` rows."""

    stmt = select(Match)
    if league_id:
        stmt = stmt.where(Match.league_id == league_id)
    if mode:
        if mode not in GAME_MODES:
            raise ValidationError(f"Unknown game mode '{mode}'.")
        stmt = stmt.where(Match.mode == mode)
    if player_id:
        stmt = stmt.where(
            Match.id.in_(
                select(MatchParticipant.match_id).where(
                    MatchParticipant.player_id == player_id
                )
            )
        )
    stmt = stmt.order_by(Match.played_at.desc(), Match.sequence.desc())
    stmt = stmt.offset(offset).limit(limit + 1)
    return list((await session.execute(stmt)).scalars().all())


async def rating_history(
    session: AsyncSession, player_id: str, mode: str
) -> list[RatingHistory]:
    player = await session.get(Player, player_id)
    if player is None:
        raise PlayerNotFound(player_id)
    stmt = (
        select(RatingHistory)
        .where(RatingHistory.player_id == player_id, RatingHistory.mode == mode)
        .order_by(RatingHistory.timestamp, RatingHistory.sequence)
    )
    return list((await session.execute(stmt)).scalars().all())


async def player_results(
    session: AsyncSession, player_id: str, mode: str
) -> list[bool]:
    """Return the player's record-counting results in replay order."""

    stmt = (
        select(MatchParticipant.is_winner)
        .join(Match, Match.id == MatchParticipant.match_id)
        .where(
            MatchParticipant.player_id == player_id,
            Match.mode == mode,
            Match.counts_toward_record.is_(True),
        )
        .order_by(Match.played_at, Match.sequence)
    )
    return list((await session.execute(stmt)).scalars().all())
