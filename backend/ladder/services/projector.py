"""Player aggregate projection over the match ledger.

The projector is the only writer of ``PlayerStats``. It offers an
incremental path (apply or reverse a single result) and a full replay that
rebuilds every aggregate of a league from the ledger.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, MutableMapping, Protocol, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import ReplayIntegrityError
from ..models import GAME_MODES, Match, Player, PlayerStats, RatingHistory, Season
from .rating import INITIAL_RATING, next_streak, rating_delta, team_rating
from .validation import TEAM_SIZES

logger = logging.getLogger(__name__)


class AggregateLike(Protocol):
    rating: int
    wins: int
    losses: int
    streak: int
    stats_may_be_approximate: bool


@dataclass
class Aggregate:
    """Scratch aggregate used while replaying."""

    rating: int = INITIAL_RATING
    wins: int = 0
    losses: int = 0
    streak: int = 0
    stats_may_be_approximate: bool = False


@dataclass
class RecalculateSummary:
    league_id: str
    players_updated: int = 0
    matches_replayed: int = 0
    history_repaired: int = 0
    deltas_changed: list[str] = field(default_factory=list)


def compute_delta(
    stats: MutableMapping[str, AggregateLike],
    winners: Sequence[str],
    losers: Sequence[str],
    *,
    is_friendly: bool,
) -> int:
    """Return the rating delta the result is worth given current ratings."""

    if is_friendly:
        return 0
    winner_side = team_rating([stats[pid].rating for pid in winners])
    loser_side = team_rating([stats[pid].rating for pid in losers])
    return rating_delta(winner_side, loser_side)


def apply_result(
    stats: MutableMapping[str, AggregateLike],
    winners: Iterable[str],
    losers: Iterable[str],
    delta: int,
    *,
    counts_toward_record: bool = True,
) -> None:
    """Apply a committed result to the participants' aggregates."""

    for pid in winners:
        agg = stats[pid]
        agg.rating += delta
        if counts_toward_record:
            agg.wins += 1
            agg.streak = next_streak(agg.streak, won=True)
    for pid in losers:
        agg = stats[pid]
        agg.rating -= delta
        if counts_toward_record:
            agg.losses += 1
            agg.streak = next_streak(agg.streak, won=False)


def reverse_result(
    stats: MutableMapping[str, AggregateLike],
    winners: Iterable[str],
    losers: Iterable[str],
    delta: int,
    *,
    counts_toward_record: bool = True,
) -> None:
    """Undo a result's rating and record effects.

    Ratings are restored exactly. Streaks cannot be rebuilt without replaying
    later matches, so every participant's streak drops to 0 and the aggregate
    is flagged as approximate until the next replay.
    """

    for pid in winners:
        agg = stats[pid]
        agg.rating -= delta
        if counts_toward_record:
            agg.wins = max(0, agg.wins - 1)
        agg.streak = 0
        agg.stats_may_be_approximate = True
    for pid in losers:
        agg = stats[pid]
        agg.rating += delta
        if counts_toward_record:
            agg.losses = max(0, agg.losses - 1)
        agg.streak = 0
        agg.stats_may_be_approximate = True


def new_stats(player_id: str, mode: str) -> PlayerStats:
    return PlayerStats(
        player_id=player_id,
        mode=mode,
        rating=INITIAL_RATING,
        wins=0,
        losses=0,
        streak=0,
        stats_may_be_approximate=False,
    )


async def load_stats(
    session: AsyncSession, player_ids: Iterable[str], mode: str
) -> dict[str, PlayerStats]:
    """Load the aggregates of ``player_ids`` for ``mode``, creating missing rows."""

    ids = list(dict.fromkeys(player_ids))
    if not ids:
        return {}
    rows = (
        await session.execute(
            select(PlayerStats)
            .where(PlayerStats.player_id.in_(ids), PlayerStats.mode == mode)
            .execution_options(populate_existing=True)
        )
    ).scalars().all()
    stats = {row.player_id: row for row in rows}
    for pid in ids:
        if pid not in stats:
            row = new_stats(pid, mode)
            session.add(row)
            stats[pid] = row
    return stats


async def reset_league_aggregates(session: AsyncSession, league_id: str) -> int:
    """Return every aggregate of the league's players to its defaults."""

    player_ids = (
        await session.execute(select(Player.id).where(Player.league_id == league_id))
    ).scalars().all()
    if not player_ids:
        return 0

    for mode in GAME_MODES:
        stats = await load_stats(session, player_ids, mode)
        for row in stats.values():
            row.rating = INITIAL_RATING
            row.wins = 0
            row.losses = 0
            row.streak = 0
            row.stats_may_be_approximate = False
    await session.flush()
    return len(player_ids)


async def replay_window_start(session: AsyncSession, league_id: str) -> datetime | None:
    """Return when the live aggregates were last reset, if ever.

    Starting a season resets every aggregate, so only matches played since
    the most recent season start feed the current ratings.
    """

    return (
        await session.execute(
            select(func.max(Season.started_at)).where(Season.league_id == league_id)
        )
    ).scalar()


def _replay_order(match: Match) -> tuple:
    return (match.played_at, match.sequence, match.id)


async def recalculate(session: AsyncSession, league_id: str) -> RecalculateSummary:
    """Rebuild every aggregate of a league by replaying its ledger.

    The replay runs against scratch aggregates first. Only when every match
    replays cleanly are the results written back, together with the
    replayed ``rating_delta`` of each match and the ``rating_after`` of each
    rating-history row. The caller holds the league lock and owns the
    transaction.
    """

    players = (
        await session.execute(select(Player).where(Player.league_id == league_id))
    ).scalars().all()
    known_players = {p.id for p in players}

    scratch: dict[str, dict[str, Aggregate]] = {
        mode: {pid: Aggregate() for pid in known_players} for mode in GAME_MODES
    }

    stmt = (
        select(Match)
        .where(Match.league_id == league_id)
        .execution_options(populate_existing=True)
    )
    since = await replay_window_start(session, league_id)
    if since is not None:
        stmt = stmt.where(Match.played_at >= since)
    matches = (await session.execute(stmt)).scalars().all()
    matches = sorted(matches, key=_replay_order)

    replayed_deltas: dict[str, int] = {}
    ratings_after: dict[tuple[str, str], int] = {}

    for match in matches:
        winners = match.winner_ids
        losers = match.loser_ids
        size = TEAM_SIZES.get(match.mode)
        if size is None:
            raise ReplayIntegrityError(
                f"match '{match.id}' has unknown mode '{match.mode}'",
                match_id=match.id,
            )
        if len(winners) != size or len(losers) != size:
            raise ReplayIntegrityError(
                f"match '{match.id}' has {len(winners)}v{len(losers)} participants "
                f"for mode '{match.mode}'",
                match_id=match.id,
            )
        missing = [pid for pid in winners + losers if pid not in known_players]
        if missing:
            raise ReplayIntegrityError(
                f"match '{match.id}' references unknown player(s): {', '.join(missing)}",
                match_id=match.id,
            )

        stats = scratch[match.mode]
        delta = compute_delta(stats, winners, losers, is_friendly=match.is_friendly)
        apply_result(
            stats,
            winners,
            losers,
            delta,
            counts_toward_record=match.counts_toward_record,
        )
        replayed_deltas[match.id] = delta
        for pid in winners + losers:
            ratings_after[(match.id, pid)] = stats[pid].rating

    summary = RecalculateSummary(league_id=league_id)

    # Swap the staged state in.
    for mode in GAME_MODES:
        rows = await load_stats(session, known_players, mode)
        for pid, agg in scratch[mode].items():
            row = rows[pid]
            row.rating = agg.rating
            row.wins = agg.wins
            row.losses = agg.losses
            row.streak = agg.streak
            row.stats_may_be_approximate = False
    summary.players_updated = len(known_players)

    for match in matches:
        delta = replayed_deltas[match.id]
        if match.rating_delta != delta:
            summary.deltas_changed.append(match.id)
            match.rating_delta = delta
    summary.matches_replayed = len(matches)

    if matches:
        match_by_id = {m.id: m for m in matches}
        history_rows = (
            await session.execute(
                select(RatingHistory).where(
                    RatingHistory.match_id.in_(list(match_by_id))
                )
            )
        ).scalars().all()
        existing = {(h.match_id, h.player_id): h for h in history_rows}
        for key, rating_after in ratings_after.items():
            match = match_by_id[key[0]]
            entry = existing.pop(key, None)
            if entry is None:
                session.add(
                    RatingHistory(
                        id=uuid.uuid4().hex,
                        player_id=key[1],
                        mode=match.mode,
                        match_id=match.id,
                        rating_after=rating_after,
                        timestamp=match.played_at,
                        sequence=match.sequence,
                    )
                )
                summary.history_repaired += 1
            elif entry.rating_after != rating_after:
                entry.rating_after = rating_after
                summary.history_repaired += 1
        for stale in existing.values():
            await session.delete(stale)
            summary.history_repaired += 1

    await session.flush()
    logger.info(
        "Recalculated league %s: %d players, %d matches, %d deltas changed, "
        "%d history rows repaired",
        league_id,
        summary.players_updated,
        summary.matches_replayed,
        len(summary.deltas_changed),
        summary.history_repaired,
    )
    return summary
