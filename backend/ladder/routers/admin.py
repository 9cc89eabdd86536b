from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..exceptions import ProblemDetail
from ..schemas import ExpiryRunOut, RecalculateOut
from ..services import recalculate_stats
from ..services.confirmation import expire_due_matches

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    responses={404: {"model": ProblemDetail}, 500: {"model": ProblemDetail}},
)


# POST /api/v0/admin/recalculate?leagueId=
@router.post("/recalculate", response_model=RecalculateOut)
async def recalculate_route(
    leagueId: str | None = None, session: AsyncSession = Depends(get_session)
):
    summary = await recalculate_stats(session, leagueId)
    return RecalculateOut(
        leagueId=summary.league_id,
        playersUpdated=summary.players_updated,
        matchesReplayed=summary.matches_replayed,
        historyRepaired=summary.history_repaired,
        deltasChanged=summary.deltas_changed,
    )


# POST /api/v0/admin/expire-pending?leagueId=
@router.post("/expire-pending", response_model=ExpiryRunOut)
async def expire_pending_route(
    leagueId: str | None = None, session: AsyncSession = Depends(get_session)
):
    return ExpiryRunOut(expired=await expire_due_matches(session, league_id=leagueId))
