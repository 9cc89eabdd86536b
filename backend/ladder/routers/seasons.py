from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..exceptions import ProblemDetail
from ..models import Season
from ..schemas import SeasonEnd, SeasonOut, SeasonStart, StandingOut
from ..services import end_season, start_season
from ..services.seasons import get_season, list_seasons

router = APIRouter(
    prefix="/seasons",
    tags=["seasons"],
    responses={404: {"model": ProblemDetail}, 409: {"model": ProblemDetail}},
)


def season_out(season: Season) -> SeasonOut:
    return SeasonOut(
        id=season.id,
        leagueId=season.league_id,
        name=season.name,
        number=season.number,
        status=season.status,
        startedAt=season.started_at,
        endedAt=season.ended_at,
        finalStandings=[StandingOut(**s) for s in season.final_standings or []],
        matchCount=season.match_count or 0,
        championId=season.champion_id,
    )


# GET /api/v0/seasons
@router.get("", response_model=list[SeasonOut])
async def list_seasons_route(
    leagueId: str | None = None, session: AsyncSession = Depends(get_session)
):
    return [season_out(s) for s in await list_seasons(session, leagueId)]


# GET /api/v0/seasons/{season_id}
@router.get("/{season_id}", response_model=SeasonOut)
async def get_season_route(season_id: str, session: AsyncSession = Depends(get_session)):
    return season_out(await get_season(session, season_id))


# POST /api/v0/seasons/start
@router.post("/start", response_model=SeasonOut, status_code=201)
async def start_season_route(
    body: SeasonStart, session: AsyncSession = Depends(get_session)
):
    season = await start_season(session, body.name, league_id=body.leagueId)
    return season_out(season)


# POST /api/v0/seasons/end
@router.post("/end", response_model=SeasonOut)
async def end_season_route(body: SeasonEnd, session: AsyncSession = Depends(get_session)):
    return season_out(await end_season(session, league_id=body.leagueId))
