"""Pending-match confirmation workflow.

A submitted result waits as a ``PendingMatch`` until every other
participant confirms it, an admin forces or rejects it, or it expires.
Every status change is a compare-and-swap on ``status`` performed under the
league lock, so a timer-driven expiry and a user action on the same pending
match cannot both succeed; the loser sees ``AlreadyResolved``.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Iterable, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .. import config
from ..cache import player_stats_cache
from ..exceptions import (
    AlreadyResolved,
    InvalidPendingTransition,
    PendingMatchNotFound,
)
from ..models import (
    CONFIRMED,
    DISPUTED,
    EXPIRED,
    PENDING,
    REJECTED,
    PendingMatch,
)
from ..time_utils import to_storage, utcnow
from .ledger import commit_match, require_league, require_league_players
from .locks import league_write
from .validation import validate_match_result

logger = logging.getLogger(__name__)

MATCH_PRODUCING = {CONFIRMED, EXPIRED}
TERMINAL = {CONFIRMED, EXPIRED, REJECTED}


def _now(now: datetime | None) -> datetime:
    return to_storage(now) if now is not None else utcnow()


def pending_ttl() -> timedelta:
    return timedelta(hours=config.PENDING_MATCH_TTL_HOURS)


def is_due(pending: PendingMatch, now: datetime) -> bool:
    return pending.status == PENDING and now >= pending.expires_at


async def create_pending_match(
    session: AsyncSession,
    *,
    mode: str,
    winners: Sequence[str],
    losers: Sequence[str],
    score_winner: int,
    score_loser: int,
    logged_by: str,
    is_friendly: bool = False,
    league_id: str | None = None,
    now: datetime | None = None,
) -> PendingMatch:
    """Open a pending match on behalf of ``logged_by``.

    The submitter must play in the match and counts as having confirmed it,
    so only the other participants are asked to confirm.
    """

    league_id = league_id or config.DEFAULT_LEAGUE_ID
    winner_ids, loser_ids, sw, sl = validate_match_result(
        mode, winners, losers, score_winner, score_loser
    )
    if logged_by not in winner_ids + loser_ids:
        raise InvalidPendingTransition(
            "Only a participant can submit a match for confirmation.",
            status_code=403,
        )

    created_at = _now(now)
    async with league_write(session, league_id):
        await require_league(session, league_id)
        await require_league_players(session, league_id, winner_ids + loser_ids)
        pending = PendingMatch(
            id=uuid.uuid4().hex,
            league_id=league_id,
            mode=mode,
            winner_ids=winner_ids,
            loser_ids=loser_ids,
            score_winner=sw,
            score_loser=sl,
            is_friendly=is_friendly,
            logged_by=logged_by,
            status=PENDING,
            confirmations=[],
            created_at=created_at,
            expires_at=created_at + pending_ttl(),
        )
        session.add(pending)
        await session.flush()
        logger.info(
            "Pending match %s submitted by %s in league %s (expires %s)",
            pending.id,
            logged_by,
            league_id,
            pending.expires_at.isoformat(),
        )
    return pending


async def _pending_league(session: AsyncSession, pending_id: str) -> str:
    league_id = (
        await session.execute(
            select(PendingMatch.league_id).where(PendingMatch.id == pending_id)
        )
    ).scalar()
    if league_id is None:
        raise PendingMatchNotFound(pending_id)
    return league_id


async def _load_for_update(session: AsyncSession, pending_id: str) -> PendingMatch:
    pending = (
        await session.execute(
            select(PendingMatch)
            .where(PendingMatch.id == pending_id)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if pending is None:
        raise PendingMatchNotFound(pending_id)
    return pending


async def _transition(
    session: AsyncSession,
    pending: PendingMatch,
    new_status: str,
    allowed: Iterable[str],
    now: datetime,
) -> None:
    """Move ``pending`` to ``new_status`` if it is still in ``allowed``.

    A Match-producing status also commits the result to the ledger in the
    same transaction.
    """

    allowed = tuple(allowed)
    if new_status in MATCH_PRODUCING:
        # Players may have left the league since submission.
        await require_league_players(
            session, pending.league_id, pending.participant_ids
        )

    values = {"status": new_status}
    if new_status in TERMINAL:
        values["resolved_at"] = now
    result = await session.execute(
        update(PendingMatch)
        .where(PendingMatch.id == pending.id, PendingMatch.status.in_(allowed))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await session.refresh(pending)
        raise AlreadyResolved(pending.id, pending.status)
    await session.refresh(pending)

    if new_status in MATCH_PRODUCING:
        match = await commit_match(
            session,
            league_id=pending.league_id,
            mode=pending.mode,
            winners=list(pending.winner_ids),
            losers=list(pending.loser_ids),
            score_winner=pending.score_winner,
            score_loser=pending.score_loser,
            is_friendly=pending.is_friendly,
            logged_by=pending.logged_by,
            pending_match_id=pending.id,
            played_at=now,
        )
        pending.match_id = match.id
        await session.flush()

    logger.info(
        "Pending match %s in league %s is now %s",
        pending.id,
        pending.league_id,
        new_status,
    )


async def _expire_if_due(
    session: AsyncSession, pending: PendingMatch, now: datetime
) -> bool:
    if not is_due(pending, now):
        return False
    await _transition(session, pending, EXPIRED, (PENDING,), now)
    return True


def _ensure_open(pending: PendingMatch) -> None:
    if pending.status in TERMINAL:
        raise AlreadyResolved(pending.id, pending.status)


async def confirm_pending_match(
    session: AsyncSession,
    pending_id: str,
    player_id: str,
    *,
    now: datetime | None = None,
) -> PendingMatch:
    """Record ``player_id``'s confirmation; commits once everyone confirmed."""

    now = _now(now)
    league_id = await _pending_league(session, pending_id)
    expired = False
    async with league_write(session, league_id):
        pending = await _load_for_update(session, pending_id)
        expired = await _expire_if_due(session, pending, now)
        if not expired:
            _ensure_open(pending)
            if pending.status == DISPUTED:
                raise InvalidPendingTransition(
                    f"pending match '{pending_id}' is disputed and awaits an admin"
                )
            required = pending.required_confirmers
            if player_id not in required:
                raise InvalidPendingTransition(
                    f"player '{player_id}' is not asked to confirm '{pending_id}'",
                    status_code=403,
                )
            confirmations = list(pending.confirmations or [])
            if player_id not in confirmations:
                confirmations.append(player_id)
            pending.confirmations = confirmations
            await session.flush()

            if required.issubset(confirmations):
                await _transition(session, pending, CONFIRMED, (PENDING,), now)
    if expired:
        await player_stats_cache.invalidate_players(pending.participant_ids)
        raise AlreadyResolved(pending_id, EXPIRED)
    if pending.status == CONFIRMED:
        await player_stats_cache.invalidate_players(pending.participant_ids)
    return pending


async def dispute_pending_match(
    session: AsyncSession,
    pending_id: str,
    player_id: str,
    *,
    now: datetime | None = None,
) -> PendingMatch:
    """Flag a pending match for admin review; it will no longer expire."""

    now = _now(now)
    league_id = await _pending_league(session, pending_id)
    expired = False
    async with league_write(session, league_id):
        pending = await _load_for_update(session, pending_id)
        expired = await _expire_if_due(session, pending, now)
        if not expired:
            _ensure_open(pending)
            if player_id not in pending.required_confirmers:
                raise InvalidPendingTransition(
                    f"player '{player_id}' cannot dispute '{pending_id}'",
                    status_code=403,
                )
            if pending.status == DISPUTED:
                raise InvalidPendingTransition(
                    f"pending match '{pending_id}' is already disputed"
                )
            await _transition(session, pending, DISPUTED, (PENDING,), now)
    if expired:
        await player_stats_cache.invalidate_players(pending.participant_ids)
        raise AlreadyResolved(pending_id, EXPIRED)
    return pending


async def force_confirm_pending_match(
    session: AsyncSession,
    pending_id: str,
    *,
    now: datetime | None = None,
) -> PendingMatch:
    """Admin override: commit a pending or disputed match as confirmed."""

    now = _now(now)
    league_id = await _pending_league(session, pending_id)
    expired = False
    async with league_write(session, league_id):
        pending = await _load_for_update(session, pending_id)
        expired = await _expire_if_due(session, pending, now)
        if not expired:
            _ensure_open(pending)
            await _transition(session, pending, CONFIRMED, (PENDING, DISPUTED), now)
    await player_stats_cache.invalidate_players(pending.participant_ids)
    if expired:
        raise AlreadyResolved(pending_id, EXPIRED)
    return pending


async def reject_pending_match(
    session: AsyncSession,
    pending_id: str,
    *,
    now: datetime | None = None,
) -> PendingMatch:
    """Admin override: discard a pending or disputed match without a ledger entry."""

    now = _now(now)
    league_id = await _pending_league(session, pending_id)
    expired = False
    async with league_write(session, league_id):
        pending = await _load_for_update(session, pending_id)
        expired = await _expire_if_due(session, pending, now)
        if not expired:
            _ensure_open(pending)
            await _transition(session, pending, REJECTED, (PENDING, DISPUTED), now)
    if expired:
        await player_stats_cache.invalidate_players(pending.participant_ids)
        raise AlreadyResolved(pending_id, EXPIRED)
    return pending


async def expire_due_matches(
    session: AsyncSession,
    *,
    now: datetime | None = None,
    league_id: str | None = None,
) -> list[str]:
    """Auto-confirm every pending match whose deadline has passed.

    Each pending match expires in its own transaction under its league's
    lock, so one result that can no longer be committed (for example a
    participant was removed) is logged and skipped without holding back
    the rest. Returns the ids of the pending matches that expired.
    """

    now = _now(now)
    stmt = (
        select(PendingMatch.id, PendingMatch.league_id)
        .where(PendingMatch.status == PENDING, PendingMatch.expires_at <= now)
        .order_by(PendingMatch.expires_at, PendingMatch.created_at)
    )
    if league_id:
        stmt = stmt.where(PendingMatch.league_id == league_id)
    rows = (await session.execute(stmt)).all()

    expired: list[str] = []
    affected: list[str] = []
    for pending_id, pending_league in rows:
        participants: list[str] = []
        try:
            async with league_write(session, pending_league):
                pending = await _load_for_update(session, pending_id)
                # Another writer may have resolved it since the scan.
                if await _expire_if_due(session, pending, now):
                    participants = pending.participant_ids
        except Exception:
            logger.warning(
                "Auto-expiry of pending match %s in league %s failed; "
                "will retry on next sweep",
                pending_id,
                pending_league,
                exc_info=True,
            )
            continue
        if participants:
            expired.append(pending_id)
            affected.extend(participants)

    if expired:
        logger.info("Auto-confirmed %d expired pending match(es)", len(expired))
        await player_stats_cache.invalidate_players(affected)
    return expired


async def get_pending_match(
    session: AsyncSession, pending_id: str, *, now: datetime | None = None
) -> PendingMatch:
    league_id = await _pending_league(session, pending_id)
    await expire_due_matches(session, now=now, league_id=league_id)
    return await _load_for_update(session, pending_id)


async def list_pending_matches(
    session: AsyncSession,
    *,
    league_id: str | None = None,
    status: str | None = None,
    now: datetime | None = None,
) -> list[PendingMatch]:
    league_id = league_id or config.DEFAULT_LEAGUE_ID
    await expire_due_matches(session, now=now, league_id=league_id)
    stmt = (
        select(PendingMatch)
        .where(PendingMatch.league_id == league_id)
        .order_by(PendingMatch.created_at.desc())
        .execution_options(populate_existing=True)
    )
    if status:
        stmt = stmt.where(PendingMatch.status == status)
    return list((await session.execute(stmt)).scalars().all())
