import math
from typing import Sequence

K_FACTOR = 32
INITIAL_RATING = 1200


def expected_score(rating_a: int, rating_b: int) -> float:
    """Return the probability that a side rated ``rating_a`` beats ``rating_b``."""

    return 1 / (1 + 10 ** ((rating_b - rating_a) / 400))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def rating_delta(winner_rating: int, loser_rating: int, k_factor: int = K_FACTOR) -> int:
    """Return the points a decisive result moves from the loser to the winner.

    The winner gains exactly this amount and the loser drops exactly this
    amount, so every rated match is zero-sum. The value is never negative.
    """

    delta = _round_half_up(k_factor * (1 - expected_score(winner_rating, loser_rating)))
    return max(delta, 0)


def team_rating(ratings: Sequence[int]) -> int:
    """Collapse a side's ratings into one value (mean rounded down)."""

    if not ratings:
        raise ValueError("a team needs at least one rating")
    return sum(ratings) // len(ratings)


def next_streak(prior: int, won: bool) -> int:
    """Extend a signed streak with one more result."""

    if won:
        return prior + 1 if prior >= 0 else 1
    return prior - 1 if prior <= 0 else -1
