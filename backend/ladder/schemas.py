from typing import Any, List, Literal, Optional
from datetime import datetime
from pydantic import BaseModel, Field, StrictBool, StrictInt, field_validator, ConfigDict

from .time_utils import coerce_utc

GameMode = Literal["singles", "doubles"]


def _trimmed(value: Any, label: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{label} must be a string")
    trimmed = value.strip()
    if not trimmed:
        raise ValueError(f"{label} must not be empty")
    return trimmed


class UTCModel(BaseModel):
    """Base model that serialises stored naive datetimes as aware UTC."""

    @field_validator("*", mode="after")
    @classmethod
    def _aware_datetimes(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return coerce_utc(value)
        return value


class LeagueCreate(BaseModel):
    id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)

    model_config = ConfigDict(extra="forbid")

    @field_validator("id", mode="before")
    @classmethod
    def _validate_id(cls, value: str) -> str:
        trimmed = _trimmed(value, "id")
        if any(ch.isspace() for ch in trimmed):
            raise ValueError("id must not contain whitespace")
        return trimmed

    @field_validator("name", mode="before")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        return _trimmed(value, "name")


class LeagueOut(UTCModel):
    id: str
    name: str
    description: Optional[str] = None
    createdAt: Optional[datetime] = None


class PlayerCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=20)
    leagueId: Optional[str] = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("name", mode="before")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        return _trimmed(value, "name")


class PlayerLeagueUpdate(BaseModel):
    leagueId: str = Field(..., min_length=1)


class ModeStatsOut(BaseModel):
    mode: GameMode
    rating: int
    wins: int
    losses: int
    streak: int
    statsMayBeApproximate: bool = False


class PlayerOut(UTCModel):
    id: str
    name: str
    leagueId: str
    joinedAt: Optional[datetime] = None
    deletedAt: Optional[datetime] = None
    stats: List[ModeStatsOut] = Field(default_factory=list)


class PlayerListOut(BaseModel):
    players: List[PlayerOut]
    total: int
    limit: int
    offset: int


class RatingHistoryPointOut(UTCModel):
    matchId: str
    ratingAfter: int
    timestamp: datetime


class RatingHistoryOut(BaseModel):
    playerId: str
    mode: GameMode
    points: List[RatingHistoryPointOut]


class StreakSummary(BaseModel):
    current: int
    longestWin: int
    longestLoss: int


class PlayerStreaksOut(BaseModel):
    playerId: str
    mode: GameMode
    streaks: StreakSummary
    winPct: float


class MatchCreate(BaseModel):
    mode: GameMode
    winners: List[str] = Field(..., min_length=1, max_length=2)
    losers: List[str] = Field(..., min_length=1, max_length=2)
    scoreWinner: StrictInt
    scoreLoser: StrictInt
    isFriendly: StrictBool = False
    leagueId: Optional[str] = None
    loggedBy: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class MatchEdit(BaseModel):
    winners: List[str] = Field(..., min_length=1, max_length=2)
    losers: List[str] = Field(..., min_length=1, max_length=2)
    scoreWinner: StrictInt
    scoreLoser: StrictInt

    model_config = ConfigDict(extra="forbid")


class MatchOut(UTCModel):
    id: str
    leagueId: str
    mode: GameMode
    winners: List[str]
    losers: List[str]
    scoreWinner: int
    scoreLoser: int
    ratingDelta: int
    isFriendly: bool
    countsTowardRecord: bool
    playedAt: datetime
    loggedBy: Optional[str] = None
    pendingMatchId: Optional[str] = None


class PendingMatchCreate(MatchCreate):
    loggedBy: str = Field(..., min_length=1)


class PendingActionIn(BaseModel):
    playerId: str = Field(..., min_length=1)


class PendingMatchOut(UTCModel):
    id: str
    leagueId: str
    mode: GameMode
    winners: List[str]
    losers: List[str]
    scoreWinner: int
    scoreLoser: int
    isFriendly: bool
    loggedBy: str
    status: Literal["pending", "confirmed", "disputed", "expired", "rejected"]
    confirmations: List[str]
    createdAt: datetime
    expiresAt: datetime
    resolvedAt: Optional[datetime] = None
    matchId: Optional[str] = None


class SeasonStart(BaseModel):
    name: Optional[str] = Field(default=None, max_length=100)
    leagueId: Optional[str] = None


class SeasonEnd(BaseModel):
    leagueId: Optional[str] = None


class StandingOut(BaseModel):
    rank: int
    playerId: str
    playerName: str
    ratingSingles: int
    ratingDoubles: int
    wins: int
    losses: int


class SeasonOut(UTCModel):
    id: str
    leagueId: str
    name: str
    number: int
    status: Literal["active", "completed"]
    startedAt: datetime
    endedAt: Optional[datetime] = None
    finalStandings: List[StandingOut] = Field(default_factory=list)
    matchCount: int = 0
    championId: Optional[str] = None


class RecalculateOut(BaseModel):
    leagueId: str
    playersUpdated: int
    matchesReplayed: int
    historyRepaired: int
    deltasChanged: List[str] = Field(default_factory=list)


class ExpiryRunOut(BaseModel):
    expired: List[str]
