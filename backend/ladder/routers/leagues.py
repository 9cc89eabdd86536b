import logging

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..exceptions import ProblemDetail, http_problem
from ..models import League
from ..schemas import LeagueCreate, LeagueOut

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/leagues",
    tags=["leagues"],
    responses={404: {"model": ProblemDetail}, 409: {"model": ProblemDetail}},
)


def league_out(league: League) -> LeagueOut:
    return LeagueOut(
        id=league.id,
        name=league.name,
        description=league.description,
        createdAt=league.created_at,
    )


# POST /api/v0/leagues
@router.post("", response_model=LeagueOut, status_code=201)
async def create_league(
    body: LeagueCreate, session: AsyncSession = Depends(get_session)
) -> LeagueOut:
    clash = (
        await session.execute(
            select(League).where(
                (League.id == body.id) | (func.lower(League.name) == body.name.lower())
            )
        )
    ).scalar_one_or_none()
    if clash is not None:
        raise http_problem(
            status_code=409,
            detail=f"league '{body.id}' or name '{body.name}' already exists",
            code="league_exists",
        )
    league = League(id=body.id, name=body.name, description=body.description)
    session.add(league)
    await session.commit()
    await session.refresh(league)
    logger.info("Created league %s (%s)", league.id, league.name)
    return league_out(league)


# GET /api/v0/leagues
@router.get("", response_model=list[LeagueOut])
async def list_leagues(session: AsyncSession = Depends(get_session)):
    rows = (
        await session.execute(select(League).order_by(League.name))
    ).scalars().all()
    return [league_out(league) for league in rows]
