import pytest
from sqlalchemy import select, update

from ladder.exceptions import LeagueNotFound, ReplayIntegrityError
from ladder.models import Match, MatchParticipant, PlayerStats, RatingHistory
from ladder.services import delete_match, record_match, recalculate_stats


async def _snapshot(session):
    stats = (
        await session.execute(
            select(PlayerStats)
            .order_by(PlayerStats.player_id, PlayerStats.mode)
            .execution_options(populate_existing=True)
        )
    ).scalars().all()
    matches = (
        await session.execute(
            select(Match.id, Match.rating_delta).order_by(Match.id)
        )
    ).all()
    history = (
        await session.execute(
            select(RatingHistory.match_id, RatingHistory.player_id, RatingHistory.rating_after)
            .order_by(RatingHistory.match_id, RatingHistory.player_id)
        )
    ).all()
    return (
        [
            (s.player_id, s.mode, s.rating, s.wins, s.losses, s.streak, s.stats_may_be_approximate)
            for s in stats
        ],
        [tuple(m) for m in matches],
        [tuple(h) for h in history],
    )


async def _play(session, winners, losers, mode="singles"):
    return await record_match(
        session,
        mode=mode,
        winners=winners,
        losers=losers,
        score_winner=11,
        score_loser=6,
    )


@pytest.mark.anyio
async def test_replay_matches_incremental_state(session, make_players):
    await make_players("A", "B", "C", "D")
    await _play(session, ["a"], ["b"])
    await _play(session, ["b"], ["c"])
    await _play(session, ["a", "b"], ["c", "d"], mode="doubles")
    await _play(session, ["c"], ["a"])
    before = await _snapshot(session)

    summary = await recalculate_stats(session, "default")

    assert summary.players_updated == 4
    assert summary.matches_replayed == 4
    assert summary.deltas_changed == []
    assert summary.history_repaired == 0
    assert await _snapshot(session) == before


@pytest.mark.anyio
async def test_replay_is_idempotent(session, make_players):
    await make_players("A", "B", "C")
    first = await _play(session, ["a"], ["b"])
    await _play(session, ["a"], ["c"])
    await _play(session, ["b"], ["c"])
    await delete_match(session, first.id)

    await recalculate_stats(session, "default")
    once = await _snapshot(session)
    await recalculate_stats(session, "default")
    assert await _snapshot(session) == once


@pytest.mark.anyio
async def test_replay_repairs_streak_after_delete(session, make_players, read_stats):
    await make_players("A", "B")
    await _play(session, ["a"], ["b"])
    middle = await _play(session, ["a"], ["b"])
    await _play(session, ["a"], ["b"])
    assert (await read_stats("a")).streak == 3

    await delete_match(session, middle.id)
    stats_a = await read_stats("a")
    assert stats_a.streak == 0
    assert stats_a.stats_may_be_approximate
    assert stats_a.wins == 2

    summary = await recalculate_stats(session, "default")

    stats_a = await read_stats("a")
    stats_b = await read_stats("b")
    assert summary.matches_replayed == 2
    assert (stats_a.wins, stats_a.streak, stats_a.stats_may_be_approximate) == (2, 2, False)
    assert (stats_b.losses, stats_b.streak) == (2, -2)
    assert stats_a.rating + stats_b.rating == 2400


@pytest.mark.anyio
async def test_replay_realigns_later_deltas_and_history(session, make_players, read_stats):
    await make_players("A", "B")
    first = await _play(session, ["a"], ["b"])
    second = await _play(session, ["a"], ["b"])
    # 1216 vs 1184: the favourite win is worth 15
    assert second.rating_delta == 15

    await delete_match(session, first.id)
    summary = await recalculate_stats(session, "default")

    assert summary.deltas_changed == [second.id]
    assert summary.history_repaired == 2
    replayed = await session.get(Match, second.id)
    assert replayed.rating_delta == 16
    assert (await read_stats("a")).rating == 1216
    rows = (
        await session.execute(
            select(RatingHistory.player_id, RatingHistory.rating_after).where(
                RatingHistory.match_id == second.id
            )
        )
    ).all()
    assert dict(rows) == {"a": 1216, "b": 1184}


@pytest.mark.anyio
async def test_integrity_error_keeps_prior_aggregates(session, make_players, read_stats):
    await make_players("A", "B")
    match = await _play(session, ["a"], ["b"])
    await _play(session, ["a"], ["b"])
    await session.execute(
        update(MatchParticipant)
        .where(MatchParticipant.match_id == match.id, MatchParticipant.player_id == "b")
        .values(player_id="ghost")
    )
    await session.commit()
    session.expunge_all()
    before = await _snapshot(session)

    with pytest.raises(ReplayIntegrityError) as exc:
        await recalculate_stats(session, "default")

    assert exc.value.match_id == match.id
    assert exc.value.status_code == 500
    assert await _snapshot(session) == before
    assert (await read_stats("a")).wins == 2


@pytest.mark.anyio
async def test_recalculate_unknown_league(session):
    with pytest.raises(LeagueNotFound):
        await recalculate_stats(session, "nowhere")
