from sqlalchemy import (
    Column,
    String,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    Index,
)
from sqlalchemy.sql import func
from .db import Base


class Sport(Base):
    __tablename__ = "sport"
    id = Column(String, primary_key=True)   # e.g., "ping_pong_singles"
    name = Column(String, nullable=False, unique=True)
    family = Column(String, nullable=True)  # e.g., "Ping Pong"; NULL for custom sports


class RuleSet(Base):
    __tablename__ = "ruleset"
    id = Column(String, primary_key=True)
    sport_id = Column(String, ForeignKey("sport.id"), nullable=False)
    name = Column(String, nullable=False)
    config = Column(JSON, nullable=False)


class Match(Base):
    """Immutable match record; rows are inserted once and never updated."""

    __tablename__ = "match"
    id = Column(String, primary_key=True)
    sport_id = Column(String, ForeignKey("sport.id"), nullable=False)
    league_id = Column(String, nullable=True)
    family_key = Column(String, nullable=False)
    played_at = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default="completed")
    finishing_order = Column(JSON, nullable=False)
    record = Column(JSON, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_match_league_played_at", "league_id", "played_at"),
    )


class ParticipantStats(Base):
    """Aggregate stats of one player in one scope.

    ``version`` is bumped on every write; writers update with
    ``WHERE version = <version they read>`` and retry when nothing matched.
    """

    __tablename__ = "participant_stats"
    player_id = Column(String, primary_key=True)
    scope_key = Column(String, primary_key=True)
    scope_kind = Column(String, nullable=False)
    family_key = Column(String, nullable=False)
    sport_id = Column(String, nullable=True)
    league_id = Column(String, nullable=True)
    stats = Column(JSON, nullable=False, default=dict)
    version = Column(Integer, nullable=False, default=1)
    last_updated = Column(DateTime, nullable=True)


class AppliedStatsMatch(Base):
    __tablename__ = "applied_stats_match"
    player_id = Column(String, primary_key=True)
    match_id = Column(String, primary_key=True)
    applied_at = Column(DateTime, server_default=func.now(), nullable=False)
