from fastapi import HTTPException
from pydantic import BaseModel
from typing import Optional


class ProblemDetail(BaseModel):
    """RFC 7807 compliant error response."""

    type: str = "about:blank"
    title: str
    detail: Optional[str] = None
    status: int
    instance: Optional[str] = None
    code: str


class DomainException(Exception):
    """Base class for domain-specific exceptions."""

    def __init__(
        self,
        status_code: int,
        title: str,
        *,
        code: str,
        detail: str | None = None,
        type_: str = "about:blank",
    ) -> None:
        super().__init__(detail or title)
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type = type_
        self.code = code


class ValidationError(DomainException):
    """A submitted result or request failed boundary validation."""

    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=422,
            title="Invalid match",
            detail=detail,
            code="validation_error",
        )


class NotFound(DomainException):
    def __init__(self, resource: str, resource_id: str) -> None:
        label = resource.replace("_", " ")
        super().__init__(
            status_code=404,
            title=f"{label.capitalize()} not found",
            detail=f"{label} '{resource_id}' not found",
            code=f"{resource}_not_found",
        )
        self.resource = resource
        self.resource_id = resource_id


class PlayerNotFound(NotFound):
    def __init__(self, player_id: str) -> None:
        super().__init__("player", player_id)


class MatchNotFound(NotFound):
    def __init__(self, match_id: str) -> None:
        super().__init__("match", match_id)


class PendingMatchNotFound(NotFound):
    def __init__(self, pending_id: str) -> None:
        super().__init__("pending_match", pending_id)


class LeagueNotFound(NotFound):
    def __init__(self, league_id: str) -> None:
        super().__init__("league", league_id)


class SeasonNotFound(NotFound):
    def __init__(self, season_id: str) -> None:
        super().__init__("season", season_id)


class AlreadyResolved(DomainException):
    """The pending match already reached a terminal state."""

    def __init__(self, pending_id: str, status: str) -> None:
        super().__init__(
            status_code=409,
            title="Pending match already resolved",
            detail=f"pending match '{pending_id}' is already {status}",
            code="pending_match_already_resolved",
        )
        self.pending_id = pending_id
        self.status = status


class InvalidPendingTransition(DomainException):
    """The requested action is not allowed for the pending match or actor."""

    def __init__(self, detail: str, *, status_code: int = 409) -> None:
        super().__init__(
            status_code=status_code,
            title="Invalid pending match action",
            detail=detail,
            code="pending_match_invalid_action",
        )


class ConflictingSeasonState(DomainException):
    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=409,
            title="Season conflict",
            detail=detail,
            code="season_conflict",
        )


class ReplayIntegrityError(DomainException):
    """The ledger cannot be replayed; prior aggregates are left untouched."""

    def __init__(self, detail: str, *, match_id: str | None = None) -> None:
        super().__init__(
            status_code=500,
            title="Ledger integrity error",
            detail=detail,
            code="replay_integrity_error",
        )
        self.match_id = match_id


class PlayerAlreadyExists(DomainException):
    def __init__(self, name: str) -> None:
        super().__init__(
            status_code=400,
            title="Player exists",
            detail=f"player name '{name}' already exists",
            code="player_exists",
        )


def http_problem(
    status_code: int,
    detail: str,
    code: str,
    *,
    headers: Optional[dict[str, str]] = None,
) -> HTTPException:
    """Create an HTTPException with an attached problem code."""

    exc = HTTPException(status_code=status_code, detail=detail, headers=headers)
    setattr(exc, "code", code)
    return exc
