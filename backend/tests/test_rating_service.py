import pytest

from ladder.services.rating import (
    INITIAL_RATING,
    K_FACTOR,
    expected_score,
    next_streak,
    rating_delta,
    team_rating,
)


def test_constants():
    assert K_FACTOR == 32
    assert INITIAL_RATING == 1200


def test_expected_score_equal_ratings_is_even():
    assert expected_score(1500, 1500) == pytest.approx(0.5)


def test_expected_score_underdog():
    assert expected_score(1200, 1400) == pytest.approx(0.2403, abs=1e-4)
    assert expected_score(1200, 1400) + expected_score(1400, 1200) == pytest.approx(1.0)


def test_underdog_win_is_worth_24_points():
    assert rating_delta(1200, 1400) == 24


def test_favourite_win_is_worth_8_points():
    assert rating_delta(1400, 1200) == 8


def test_even_match_is_worth_half_k():
    assert rating_delta(1250, 1250) == 16


def test_delta_is_never_negative():
    assert rating_delta(3000, 100) >= 0
    assert rating_delta(100, 3000) <= K_FACTOR


def test_custom_k_factor():
    assert rating_delta(1250, 1250, k_factor=10) == 5


@pytest.mark.parametrize(
    "ratings, expected",
    [([1200], 1200), ([1200, 1300], 1250), ([1200, 1201], 1200), ([1251, 1250], 1250)],
)
def test_team_rating_is_floor_mean(ratings, expected):
    assert team_rating(ratings) == expected


def test_team_rating_requires_players():
    with pytest.raises(ValueError):
        team_rating([])


@pytest.mark.parametrize(
    "prior, won, expected",
    [
        (0, True, 1),
        (3, True, 4),
        (-2, True, 1),
        (0, False, -1),
        (-3, False, -4),
        (2, False, -1),
    ],
)
def test_next_streak(prior, won, expected):
    assert next_streak(prior, won) == expected
