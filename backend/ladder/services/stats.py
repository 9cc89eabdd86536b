from __future__ import annotations

from typing import Dict, Sequence


def compute_streaks(results: Sequence[bool]) -> Dict[str, int]:
    """Compute current, longest win, and longest loss streaks.

    ``results`` is ordered oldest first; ``True`` is a win. The current
    streak is signed: positive for wins, negative for losses.
    """
    longest_win = longest_loss = 0
    curr_win = curr_loss = 0
    for r in results:
        if r:
            curr_win += 1
            curr_loss = 0
            longest_win = max(longest_win, curr_win)
        else:
            curr_loss += 1
            curr_win = 0
            longest_loss = max(longest_loss, curr_loss)
    current = curr_win if curr_win else -curr_loss
    return {
        "current": current,
        "longestWin": longest_win,
        "longestLoss": longest_loss,
    }


def win_percentage(wins: int, losses: int) -> float:
    total = wins + losses
    return wins / total if total else 0.0
