from sqlalchemy.orm import relationship
from sqlalchemy import (
    Column,
    String,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    Boolean,
    Text,
    Index,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from .db import Base

SINGLES = "singles"
DOUBLES = "doubles"
GAME_MODES = (SINGLES, DOUBLES)

PENDING = "pending"
CONFIRMED = "confirmed"
DISPUTED = "disputed"
EXPIRED = "expired"
REJECTED = "rejected"

SEASON_ACTIVE = "active"
SEASON_COMPLETED = "completed"


class League(Base):
    __tablename__ = "league"
    id = Column(String, primary_key=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())


class Player(Base):
    __tablename__ = "player"
    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    league_id = Column(String, ForeignKey("league.id"), nullable=False)
    joined_at = Column(DateTime, nullable=False, server_default=func.now())
    deleted_at = Column(DateTime, nullable=True)

    stats = relationship(
        "PlayerStats",
        cascade="all, delete-orphan",
        order_by="PlayerStats.mode",
        back_populates="player",
        lazy="selectin",
    )

    __table_args__ = (
        Index("uq_player_league_name_lower", league_id, func.lower(name), unique=True),
    )


class PlayerStats(Base):
    """Derived aggregate for one player in one game mode.

    Only the projector writes ``rating``, ``wins``, ``losses`` and ``streak``.
    """

    __tablename__ = "player_stats"
    player_id = Column(String, ForeignKey("player.id"), primary_key=True)
    mode = Column(String, primary_key=True)  # "singles" | "doubles"
    rating = Column(Integer, nullable=False, default=1200)
    wins = Column(Integer, nullable=False, default=0)
    losses = Column(Integer, nullable=False, default=0)
    streak = Column(Integer, nullable=False, default=0)
    stats_may_be_approximate = Column(Boolean, nullable=False, default=False)

    player = relationship("Player", back_populates="stats")


class Match(Base):
    __tablename__ = "match"
    id = Column(String, primary_key=True)
    league_id = Column(String, ForeignKey("league.id"), nullable=False)
    mode = Column(String, nullable=False)
    score_winner = Column(Integer, nullable=False)
    score_loser = Column(Integer, nullable=False)
    rating_delta = Column(Integer, nullable=False, default=0)
    is_friendly = Column(Boolean, nullable=False, default=False)
    counts_toward_record = Column(Boolean, nullable=False, default=True)
    played_at = Column(DateTime, nullable=False)
    # insertion order within the league; breaks ties on played_at
    sequence = Column(Integer, nullable=False)
    logged_by = Column(String, nullable=True)
    pending_match_id = Column(String, nullable=True)

    participants = relationship(
        "MatchParticipant",
        cascade="all, delete-orphan",
        order_by="MatchParticipant.position",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_match_league_replay_order", league_id, played_at, sequence),
    )

    @property
    def winner_ids(self) -> list[str]:
        return [p.player_id for p in self.participants if p.is_winner]

    @property
    def loser_ids(self) -> list[str]:
        return [p.player_id for p in self.participants if not p.is_winner]


class MatchParticipant(Base):
    __tablename__ = "match_participant"
    id = Column(String, primary_key=True)
    match_id = Column(String, ForeignKey("match.id"), nullable=False)
    player_id = Column(String, nullable=False)
    is_winner = Column(Boolean, nullable=False)
    position = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint(
            "match_id", "player_id", name="uq_match_participant_match_id_player_id"
        ),
        Index("ix_match_participant_player_id", "player_id"),
    )


class RatingHistory(Base):
    """Rating of one player in one mode right after a committed match."""

    __tablename__ = "rating_history"
    id = Column(String, primary_key=True)
    player_id = Column(String, nullable=False)
    mode = Column(String, nullable=False)
    match_id = Column(String, ForeignKey("match.id"), nullable=False)
    rating_after = Column(Integer, nullable=False)
    timestamp = Column(DateTime, nullable=False)
    sequence = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "match_id", "player_id", name="uq_rating_history_match_id_player_id"
        ),
        Index("ix_rating_history_player_mode", "player_id", "mode"),
    )


class PendingMatch(Base):
    __tablename__ = "pending_match"
    id = Column(String, primary_key=True)
    league_id = Column(String, ForeignKey("league.id"), nullable=False)
    mode = Column(String, nullable=False)
    winner_ids = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)
    loser_ids = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)
    score_winner = Column(Integer, nullable=False)
    score_loser = Column(Integer, nullable=False)
    is_friendly = Column(Boolean, nullable=False, default=False)
    logged_by = Column(String, nullable=False)
    status = Column(String, nullable=False, default=PENDING)
    confirmations = Column(
        JSON().with_variant(JSONB, "postgresql"), nullable=False, default=list
    )
    created_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    resolved_at = Column(DateTime, nullable=True)
    match_id = Column(String, nullable=True)

    __table_args__ = (
        Index("ix_pending_match_status_expires_at", "status", "expires_at"),
    )

    @property
    def participant_ids(self) -> list[str]:
        return list(self.winner_ids or []) + list(self.loser_ids or [])

    @property
    def required_confirmers(self) -> set[str]:
        return {pid for pid in self.participant_ids if pid != self.logged_by}


class Season(Base):
    __tablename__ = "season"
    id = Column(String, primary_key=True)
    league_id = Column(String, ForeignKey("league.id"), nullable=False)
    name = Column(String, nullable=False)
    number = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default=SEASON_ACTIVE)
    started_at = Column(DateTime, nullable=False)
    ended_at = Column(DateTime, nullable=True)
    final_standings = Column(
        JSON().with_variant(JSONB, "postgresql"), nullable=False, default=list
    )
    match_count = Column(Integer, nullable=False, default=0)
    champion_id = Column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("league_id", "number", name="uq_season_league_id_number"),
    )
