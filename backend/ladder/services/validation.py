from typing import Any, List, Sequence, Tuple

from ..exceptions import ValidationError
from ..models import GAME_MODES, SINGLES

MIN_WINNING_SCORE = 11
MIN_WINNING_MARGIN = 2
MAX_POINTS_PER_SIDE = 1000

TEAM_SIZES = {"singles": 1, "doubles": 2}


def _score(raw: Any, label: str) -> int:
    # Reject booleans explicitly (bool is a subclass of int in Python)
    if isinstance(raw, bool):
        raise ValidationError(f"{label} must be an integer (not a boolean).")
    if isinstance(raw, float) and not raw.is_integer():
        raise ValidationError(f"{label} must be an integer.")
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be an integer.")
    if value < 0:
        raise ValidationError(f"{label} must be >= 0.")
    if value > MAX_POINTS_PER_SIDE:
        raise ValidationError(f"{label} must be <= {MAX_POINTS_PER_SIDE}.")
    return value


def validate_scores(score_winner: Any, score_loser: Any) -> Tuple[int, int]:
    """Validate a reported game score and return it as integers.

    Rules:
    - both scores are non-negative integers (booleans are rejected)
    - the result is decisive and the winner holds the higher score
    - the winner reaches at least ``MIN_WINNING_SCORE`` points
    - the winning margin is at least ``MIN_WINNING_MARGIN`` points
    """

    winner = _score(score_winner, "Winning score")
    loser = _score(score_loser, "Losing score")

    if winner == loser:
        raise ValidationError("Matches cannot end in a tie.")
    if winner < loser:
        raise ValidationError("The winning side must have the higher score.")
    if winner < MIN_WINNING_SCORE:
        raise ValidationError(
            f"The winning score must be at least {MIN_WINNING_SCORE}."
        )
    if winner - loser < MIN_WINNING_MARGIN:
        raise ValidationError(
            f"Matches must be won by at least {MIN_WINNING_MARGIN} points."
        )
    return winner, loser


def validate_teams(
    mode: str, winners: Sequence[str], losers: Sequence[str]
) -> Tuple[List[str], List[str]]:
    """Check team sizes against ``mode`` and reject repeated players."""

    if mode not in GAME_MODES:
        raise ValidationError(
            f"Unknown game mode '{mode}'. Expected one of: {', '.join(GAME_MODES)}."
        )
    if isinstance(winners, (str, bytes)) or isinstance(losers, (str, bytes)):
        raise ValidationError("Winners and losers must be lists of player ids.")

    winner_ids = [str(pid).strip() for pid in winners]
    loser_ids = [str(pid).strip() for pid in losers]
    if any(not pid for pid in winner_ids + loser_ids):
        raise ValidationError("Player ids must not be empty.")

    size = TEAM_SIZES[mode]
    if len(winner_ids) != size or len(loser_ids) != size:
        label = "Singles" if mode == SINGLES else "Doubles"
        raise ValidationError(
            f"{label} matches require exactly {size} winner(s) and {size} loser(s)."
        )

    everyone = winner_ids + loser_ids
    if len(set(everyone)) != len(everyone):
        raise ValidationError("A player cannot appear more than once in a match.")

    return winner_ids, loser_ids


def validate_match_result(
    mode: str,
    winners: Sequence[str],
    losers: Sequence[str],
    score_winner: Any,
    score_loser: Any,
) -> Tuple[List[str], List[str], int, int]:
    """Validation shared by recording, submitting and editing matches."""

    winner_ids, loser_ids = validate_teams(mode, winners, losers)
    sw, sl = validate_scores(score_winner, score_loser)
    return winner_ids, loser_ids, sw, sl
