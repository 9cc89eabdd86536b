"""League scoring services: rating math, ledger, projection, workflow."""

from .rating import (
    INITIAL_RATING,
    K_FACTOR,
    expected_score,
    rating_delta,
    team_rating,
)
from .validation import validate_match_result
from .ledger import (
    record_match,
    delete_match,
    edit_match,
    recalculate_stats,
)
from .confirmation import (
    create_pending_match,
    confirm_pending_match,
    dispute_pending_match,
    force_confirm_pending_match,
    reject_pending_match,
    expire_due_matches,
)
from .seasons import start_season, end_season
from .stats import compute_streaks

__all__ = [
    "INITIAL_RATING",
    "K_FACTOR",
    "expected_score",
    "rating_delta",
    "team_rating",
    "validate_match_result",
    "record_match",
    "delete_match",
    "edit_match",
    "recalculate_stats",
    "create_pending_match",
    "confirm_pending_match",
    "dispute_pending_match",
    "force_confirm_pending_match",
    "reject_pending_match",
    "expire_due_matches",
    "start_season",
    "end_season",
    "compute_streaks",
]
