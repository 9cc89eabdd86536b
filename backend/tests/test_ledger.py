import pytest
from sqlalchemy import func, select

from ladder.exceptions import MatchNotFound, PlayerNotFound, ValidationError
from ladder.models import Match, MatchParticipant, Player, RatingHistory
from ladder.services import delete_match, edit_match, record_match
from ladder.services.ledger import list_matches, player_results, rating_history
from ladder.time_utils import utcnow


async def _history(session, match_id):
    rows = (
        await session.execute(
            select(RatingHistory)
            .where(RatingHistory.match_id == match_id)
            .execution_options(populate_existing=True)
        )
    ).scalars().all()
    return {row.player_id: row.rating_after for row in rows}


@pytest.mark.anyio
async def test_underdog_singles_win(session, make_players, read_stats, set_rating):
    a, b = await make_players("A", "B")
    await set_rating(b, 1400)

    match = await record_match(
        session, mode="singles", winners=[a], losers=[b], score_winner=11, score_loser=5
    )

    assert match.rating_delta == 24
    stats_a = await read_stats(a)
    stats_b = await read_stats(b)
    assert (stats_a.rating, stats_a.wins, stats_a.losses, stats_a.streak) == (1224, 1, 0, 1)
    assert (stats_b.rating, stats_b.wins, stats_b.losses, stats_b.streak) == (1376, 0, 1, -1)
    assert await _history(session, match.id) == {a: 1224, b: 1376}
    # doubles aggregates are untouched by a singles match
    assert (await read_stats(a, "doubles")).rating == 1200


@pytest.mark.anyio
async def test_delete_restores_ratings_and_resets_streaks(
    session, make_players, read_stats, set_rating
):
    a, b = await make_players("A", "B")
    await set_rating(b, 1400)
    await record_match(
        session, mode="singles", winners=[b], losers=[a], score_winner=11, score_loser=3
    )
    before_a = (await read_stats(a)).rating
    before_b = (await read_stats(b)).rating

    match = await record_match(
        session, mode="singles", winners=[a], losers=[b], score_winner=11, score_loser=5
    )
    await delete_match(session, match.id)

    stats_a = await read_stats(a)
    stats_b = await read_stats(b)
    assert (stats_a.rating, stats_b.rating) == (before_a, before_b)
    assert (stats_a.wins, stats_a.losses) == (0, 1)
    assert (stats_b.wins, stats_b.losses) == (1, 0)
    assert stats_a.streak == 0 and stats_b.streak == 0
    assert stats_a.stats_may_be_approximate and stats_b.stats_may_be_approximate
    assert await session.get(Match, match.id) is None
    assert await _history(session, match.id) == {}
    remaining = (
        await session.execute(
            select(func.count(MatchParticipant.id)).where(
                MatchParticipant.match_id == match.id
            )
        )
    ).scalar()
    assert remaining == 0


@pytest.mark.anyio
async def test_doubles_uses_team_average(session, make_players, read_stats, set_rating):
    a, b, c, d = await make_players("A", "B", "C", "D")
    await set_rating(a, 1200, "doubles")
    await set_rating(b, 1300, "doubles")
    await set_rating(c, 1250, "doubles")
    await set_rating(d, 1250, "doubles")

    match = await record_match(
        session,
        mode="doubles",
        winners=[a, b],
        losers=[c, d],
        score_winner=11,
        score_loser=7,
    )

    assert match.rating_delta == 16
    assert [(await read_stats(pid, "doubles")).rating for pid in (a, b, c, d)] == [
        1216,
        1316,
        1234,
        1234,
    ]


@pytest.mark.anyio
async def test_ratings_stay_zero_sum(session, make_players, read_stats):
    players = await make_players("A", "B", "C", "D")
    results = [
        ("singles", ["a"], ["b"]),
        ("singles", ["c"], ["a"]),
        ("doubles", ["a", "b"], ["c", "d"]),
        ("doubles", ["c", "a"], ["b", "d"]),
        ("singles", ["d"], ["b"]),
    ]
    for mode, winners, losers in results:
        await record_match(
            session,
            mode=mode,
            winners=winners,
            losers=losers,
            score_winner=11,
            score_loser=6,
        )

    for mode in ("singles", "doubles"):
        ratings = [(await read_stats(pid, mode)).rating for pid in players]
        assert sum(r - 1200 for r in ratings) == 0


@pytest.mark.anyio
async def test_friendly_match_skips_rating_and_record_by_default(
    session, make_players, read_stats, monkeypatch
):
    monkeypatch.delenv("FRIENDLY_MATCHES_COUNT_RECORD", raising=False)
    a, b = await make_players("A", "B")

    match = await record_match(
        session,
        mode="singles",
        winners=[a],
        losers=[b],
        score_winner=11,
        score_loser=4,
        is_friendly=True,
    )

    assert match.rating_delta == 0
    assert match.counts_toward_record is False
    stats_a = await read_stats(a)
    assert (stats_a.rating, stats_a.wins, stats_a.streak) == (1200, 0, 0)
    assert await _history(session, match.id) == {a: 1200, b: 1200}
    assert await player_results(session, a, "singles") == []


@pytest.mark.anyio
async def test_friendly_match_can_count_toward_record(
    session, make_players, read_stats, monkeypatch
):
    monkeypatch.setenv("FRIENDLY_MATCHES_COUNT_RECORD", "true")
    a, b = await make_players("A", "B")

    match = await record_match(
        session,
        mode="singles",
        winners=[a],
        losers=[b],
        score_winner=11,
        score_loser=4,
        is_friendly=True,
    )
    assert match.counts_toward_record is True
    stats_a = await read_stats(a)
    stats_b = await read_stats(b)
    assert (stats_a.rating, stats_a.wins, stats_a.streak) == (1200, 1, 1)
    assert (stats_b.rating, stats_b.losses, stats_b.streak) == (1200, 1, -1)

    # reversal follows the choice stored on the match, not the current setting
    monkeypatch.setenv("FRIENDLY_MATCHES_COUNT_RECORD", "false")
    await delete_match(session, match.id)
    assert (await read_stats(a)).wins == 0
    assert (await read_stats(b)).losses == 0


@pytest.mark.anyio
async def test_edit_keeps_identity_and_timestamp(session, make_players, read_stats):
    a, b = await make_players("A", "B")
    match = await record_match(
        session, mode="singles", winners=[a], losers=[b], score_winner=11, score_loser=5
    )
    original_id = match.id
    original_played_at = match.played_at
    original_sequence = match.sequence

    edited = await edit_match(
        session, match.id, winners=[b], losers=[a], score_winner=11, score_loser=9
    )

    assert edited.id == original_id
    assert edited.played_at == original_played_at
    assert edited.sequence == original_sequence
    assert edited.winner_ids == [b]
    assert edited.loser_ids == [a]
    assert (edited.score_winner, edited.score_loser) == (11, 9)
    assert edited.rating_delta == 16

    stats_a = await read_stats(a)
    stats_b = await read_stats(b)
    assert (stats_a.rating, stats_a.wins, stats_a.losses) == (1184, 0, 1)
    assert (stats_b.rating, stats_b.wins, stats_b.losses) == (1216, 1, 0)
    assert await _history(session, match.id) == {a: 1184, b: 1216}


@pytest.mark.anyio
async def test_edit_can_swap_in_a_new_player(session, make_players, read_stats):
    a, b, c = await make_players("A", "B", "C")
    match = await record_match(
        session, mode="singles", winners=[a], losers=[b], score_winner=11, score_loser=5
    )

    await edit_match(session, match.id, winners=[a], losers=[c], score_winner=11, score_loser=5)

    assert (await read_stats(b)).rating == 1200
    assert (await read_stats(b)).losses == 0
    assert (await read_stats(c)).rating == 1184
    assert set(await _history(session, match.id)) == {a, c}


@pytest.mark.anyio
async def test_invalid_edit_leaves_match_untouched(session, make_players, read_stats):
    a, b = await make_players("A", "B")
    match = await record_match(
        session, mode="singles", winners=[a], losers=[b], score_winner=11, score_loser=5
    )

    with pytest.raises(ValidationError):
        await edit_match(
            session, match.id, winners=[a], losers=[b], score_winner=11, score_loser=10
        )

    assert (await read_stats(a)).rating == 1216
    assert (await read_stats(a)).streak == 1
    assert not (await read_stats(a)).stats_may_be_approximate


@pytest.mark.anyio
async def test_unknown_match_is_not_found(session, make_players):
    await make_players("A")
    with pytest.raises(MatchNotFound):
        await delete_match(session, "missing")
    with pytest.raises(MatchNotFound):
        await edit_match(
            session, "missing", winners=["a"], losers=["b"], score_winner=11, score_loser=0
        )


@pytest.mark.anyio
async def test_rejects_unknown_removed_and_foreign_players(session, make_players):
    a, b = await make_players("A", "B")
    (c,) = await make_players("C", league_id="other")

    with pytest.raises(PlayerNotFound):
        await record_match(
            session, mode="singles", winners=[a], losers=["ghost"], score_winner=11, score_loser=2
        )
    with pytest.raises(ValidationError, match="does not belong"):
        await record_match(
            session, mode="singles", winners=[a], losers=[c], score_winner=11, score_loser=2
        )

    player = await session.get(Player, b)
    player.deleted_at = utcnow()
    await session.commit()
    with pytest.raises(ValidationError, match="removed"):
        await record_match(
            session, mode="singles", winners=[a], losers=[b], score_winner=11, score_loser=2
        )
    count = (await session.execute(select(func.count(Match.id)))).scalar()
    assert count == 0


@pytest.mark.anyio
async def test_rating_history_and_listing(session, make_players):
    a, b, c = await make_players("A", "B", "C")
    first = await record_match(
        session, mode="singles", winners=[a], losers=[b], score_winner=11, score_loser=5
    )
    second = await record_match(
        session, mode="singles", winners=[c], losers=[a], score_winner=11, score_loser=5
    )
    await record_match(
        session, mode="singles", winners=[b], losers=[c], score_winner=11, score_loser=5
    )

    history = await rating_history(session, a, "singles")
    assert [h.match_id for h in history] == [first.id, second.id]
    assert history[0].rating_after == 1216

    rows = await list_matches(session, league_id="default", player_id=a, limit=1)
    assert [m.id for m in rows] == [second.id, first.id]
    assert await player_results(session, a, "singles") == [True, False]

    with pytest.raises(PlayerNotFound):
        await rating_history(session, "ghost", "singles")
