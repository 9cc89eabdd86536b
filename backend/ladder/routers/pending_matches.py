from typing import Literal

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..exceptions import ProblemDetail
from ..models import PendingMatch
from ..rate_limit import limiter, submission_rate_limit
from ..schemas import PendingActionIn, PendingMatchCreate, PendingMatchOut
from ..services import (
    confirm_pending_match,
    create_pending_match,
    dispute_pending_match,
    force_confirm_pending_match,
    reject_pending_match,
)
from ..services.confirmation import get_pending_match, list_pending_matches

router = APIRouter(
    prefix="/pending-matches",
    tags=["pending-matches"],
    responses={
        403: {"model": ProblemDetail},
        404: {"model": ProblemDetail},
        409: {"model": ProblemDetail},
    },
)

PendingStatus = Literal["pending", "confirmed", "disputed", "expired", "rejected"]


def pending_out(pending: PendingMatch) -> PendingMatchOut:
    return PendingMatchOut(
        id=pending.id,
        leagueId=pending.league_id,
        mode=pending.mode,
        winners=list(pending.winner_ids or []),
        losers=list(pending.loser_ids or []),
        scoreWinner=pending.score_winner,
        scoreLoser=pending.score_loser,
        isFriendly=pending.is_friendly,
        loggedBy=pending.logged_by,
        status=pending.status,
        confirmations=list(pending.confirmations or []),
        createdAt=pending.created_at,
        expiresAt=pending.expires_at,
        resolvedAt=pending.resolved_at,
        matchId=pending.match_id,
    )


# GET /api/v0/pending-matches
@router.get("", response_model=list[PendingMatchOut])
async def list_pending_route(
    leagueId: str | None = None,
    status: PendingStatus | None = None,
    session: AsyncSession = Depends(get_session),
):
    rows = await list_pending_matches(session, league_id=leagueId, status=status)
    return [pending_out(p) for p in rows]


# GET /api/v0/pending-matches/{pending_id}
@router.get("/{pending_id}", response_model=PendingMatchOut)
async def get_pending_route(pending_id: str, session: AsyncSession = Depends(get_session)):
    return pending_out(await get_pending_match(session, pending_id))


# POST /api/v0/pending-matches
@router.post("", response_model=PendingMatchOut, status_code=201)
@limiter.limit(submission_rate_limit)
async def create_pending_route(
    request: Request,
    body: PendingMatchCreate,
    session: AsyncSession = Depends(get_session),
) -> PendingMatchOut:
    pending = await create_pending_match(
        session,
        mode=body.mode,
        winners=body.winners,
        losers=body.losers,
        score_winner=body.scoreWinner,
        score_loser=body.scoreLoser,
        logged_by=body.loggedBy,
        is_friendly=body.isFriendly,
        league_id=body.leagueId,
    )
    return pending_out(pending)


# PUT /api/v0/pending-matches/{pending_id}/confirm
@router.put("/{pending_id}/confirm", response_model=PendingMatchOut)
async def confirm_route(
    pending_id: str,
    body: PendingActionIn,
    session: AsyncSession = Depends(get_session),
):
    return pending_out(await confirm_pending_match(session, pending_id, body.playerId))


# PUT /api/v0/pending-matches/{pending_id}/dispute
@router.put("/{pending_id}/dispute", response_model=PendingMatchOut)
async def dispute_route(
    pending_id: str,
    body: PendingActionIn,
    session: AsyncSession = Depends(get_session),
):
    return pending_out(await dispute_pending_match(session, pending_id, body.playerId))


# PUT /api/v0/pending-matches/{pending_id}/force-confirm
@router.put("/{pending_id}/force-confirm", response_model=PendingMatchOut)
async def force_confirm_route(pending_id: str, session: AsyncSession = Depends(get_session)):
    return pending_out(await force_confirm_pending_match(session, pending_id))


# PUT /api/v0/pending-matches/{pending_id}/reject
@router.put("/{pending_id}/reject", response_model=PendingMatchOut)
async def reject_route(pending_id: str, session: AsyncSession = Depends(get_session)):
    return pending_out(await reject_pending_match(session, pending_id))
