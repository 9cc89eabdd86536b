from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..exceptions import ProblemDetail
from ..models import Match
from ..rate_limit import limiter, submission_rate_limit
from ..schemas import GameMode, MatchCreate, MatchEdit, MatchOut
from ..services import delete_match, edit_match, record_match
from ..services.ledger import get_match, list_matches

router = APIRouter(
    prefix="/matches",
    tags=["matches"],
    responses={
        404: {"model": ProblemDetail},
        422: {"model": ProblemDetail},
    },
)


def match_out(match: Match) -> MatchOut:
    return MatchOut(
        id=match.id,
        leagueId=match.league_id,
        mode=match.mode,
        winners=match.winner_ids,
        losers=match.loser_ids,
        scoreWinner=match.score_winner,
        scoreLoser=match.score_loser,
        ratingDelta=match.rating_delta,
        isFriendly=match.is_friendly,
        countsTowardRecord=match.counts_toward_record,
        playedAt=match.played_at,
        loggedBy=match.logged_by,
        pendingMatchId=match.pending_match_id,
    )


# GET /api/v0/matches
@router.get("", response_model=list[MatchOut])
async def list_matches_route(
    response: Response,
    leagueId: str | None = None,
    playerId: str | None = None,
    mode: GameMode | None = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    rows = await list_matches(
        session,
        league_id=leagueId,
        player_id=playerId,
        mode=mode,
        limit=limit,
        offset=offset,
    )
    has_more = len(rows) > limit
    matches = rows[:limit]

    response.headers["X-Limit"] = str(limit)
    response.headers["X-Offset"] = str(offset)
    response.headers["X-Has-More"] = "true" if has_more else "false"
    if has_more:
        response.headers["X-Next-Offset"] = str(offset + limit)

    return [match_out(m) for m in matches]


# GET /api/v0/matches/{match_id}
@router.get("/{match_id}", response_model=MatchOut)
async def get_match_route(match_id: str, session: AsyncSession = Depends(get_session)):
    return match_out(await get_match(session, match_id))


# POST /api/v0/matches
@router.post("", response_model=MatchOut, status_code=201)
@limiter.limit(submission_rate_limit)
async def create_match_route(
    request: Request,
    body: MatchCreate,
    session: AsyncSession = Depends(get_session),
) -> MatchOut:
    match = await record_match(
        session,
        mode=body.mode,
        winners=body.winners,
        losers=body.losers,
        score_winner=body.scoreWinner,
        score_loser=body.scoreLoser,
        is_friendly=body.isFriendly,
        league_id=body.leagueId,
        logged_by=body.loggedBy,
    )
    return match_out(match)


# PUT /api/v0/matches/{match_id}
@router.put("/{match_id}", response_model=MatchOut)
@limiter.limit(submission_rate_limit)
async def edit_match_route(
    request: Request,
    match_id: str,
    body: MatchEdit,
    session: AsyncSession = Depends(get_session),
) -> MatchOut:
    match = await edit_match(
        session,
        match_id,
        winners=body.winners,
        losers=body.losers,
        score_winner=body.scoreWinner,
        score_loser=body.scoreLoser,
    )
    return match_out(match)


# DELETE /api/v0/matches/{match_id}
@router.delete("/{match_id}", status_code=204)
async def delete_match_route(match_id: str, session: AsyncSession = Depends(get_session)):
    await delete_match(session, match_id)
    return Response(status_code=204)
