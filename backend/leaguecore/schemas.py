from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .rules import PlacementPolicy
from .time_utils import require_utc


def freeze(value: Any) -> Any:
    """Return a read-only copy of ``value``; mappings and lists at any depth."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Inverse of :func:`freeze`, for serialisation."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    return value


class RawParticipant(BaseModel):
    """One team or individual as submitted by the match form."""

    id: str = Field(..., min_length=1)
    member_ids: List[str] = Field(default_factory=list)
    stats: Dict[str, Any] = Field(default_factory=dict)
    main_score: Any = None
    comeback: bool = False

    @model_validator(mode="after")
    def _default_members(self) -> "RawParticipant":
        # Individuals are their own only member.
        if not self.member_ids:
            self.member_ids = [self.id]
        return self


class RawRound(BaseModel):
    round_number: int = Field(..., ge=1)
    participant_scores: Dict[str, Any] = Field(default_factory=dict)
    participant_stats: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class RawMatchInput(BaseModel):
    match_id: Optional[str] = None
    sport_id: str = Field(..., min_length=1)
    sport_name: Optional[str] = None
    league_id: Optional[str] = None
    played_at: Optional[datetime] = None
    participants: List[RawParticipant] = Field(default_factory=list)
    rounds: List[RawRound] = Field(default_factory=list)

    @field_validator("played_at")
    @classmethod
    def _validate_played_at(cls, value: Optional[datetime]) -> Optional[datetime]:
        return require_utc(value, field_name="played_at")

    @field_validator("league_id", mode="before")
    @classmethod
    def _blank_league(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class ComputedParticipant(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    member_ids: Tuple[str, ...]
    stats: Mapping[str, Any] = Field(default_factory=dict)
    main_score: Optional[float] = None
    total_score: float = 0.0
    rounds_won: int = 0
    tiebreak_score: float = 0.0
    rank: int = 0
    tied: bool = False
    comeback: bool = False

    @field_validator("stats", mode="after")
    @classmethod
    def _freeze_stats(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return freeze(value)

    @field_serializer("stats")
    def _serialize_stats(self, value: Mapping[str, Any]) -> Dict[str, Any]:
        return thaw(value)


class RoundResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    round_number: int
    participant_scores: Mapping[str, float]
    participant_stats: Mapping[str, Mapping[str, Any]] = Field(default_factory=dict)
    winner_ids: Tuple[str, ...] = ()

    @field_validator("participant_scores", "participant_stats", mode="after")
    @classmethod
    def _freeze_maps(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return freeze(value)

    @field_serializer("participant_scores", "participant_stats")
    def _serialize_maps(self, value: Mapping[str, Any]) -> Dict[str, Any]:
        return thaw(value)


class MatchStatus(str, Enum):
    COMPLETED = "completed"


class MatchRecord(BaseModel):
    """Immutable record of a completed match.

    ``participants`` is in finishing order. Round-based sports keep the
    per-round breakdown in ``rounds`` next to the folded totals so both a
    running scoreline and the final result can be shown.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    sport_id: str
    family_key: str
    league_id: Optional[str] = None
    played_at: datetime
    participants: Tuple[ComputedParticipant, ...]
    rounds: Tuple[RoundResult, ...] = ()
    finishing_order: Tuple[str, ...]
    status: MatchStatus = MatchStatus.COMPLETED
    placement_policy: PlacementPolicy = PlacementPolicy.WINNER_TAKES_ALL
    unresolved_ties: Tuple[Tuple[str, ...], ...] = ()

    def participant(self, participant_id: str) -> ComputedParticipant:
        for participant in self.participants:
            if participant.id == participant_id:
                return participant
        raise KeyError(participant_id)


class MatchResult(str, Enum):
    WIN = "win"
    LOSS = "loss"
    TIE = "tie"


class ParticipantOutcome(BaseModel):
    """One player's view of a match, as fed to the stats updater.

    :func:`~leaguecore.services.stats.apply_match` only reads ``result``,
    ``score``, the shutout and comeback flags, ``league_id`` and
    ``played_at``. ``rank``, ``total_players``, ``opponent_ids`` and
    ``teammate_ids`` are carried for callers that keep a per-player match
    history (head-to-head and partner records, or replaying corrected
    history through :func:`~leaguecore.services.stats.rebuild_stats`).
    """

    model_config = ConfigDict(frozen=True)

    match_id: str
    player_id: str
    participant_id: str
    result: MatchResult
    rank: int
    total_players: int
    score: float
    opponent_scores: Tuple[float, ...] = ()
    opponent_ids: Tuple[str, ...] = ()
    teammate_ids: Tuple[str, ...] = ()
    is_shutout: bool = False
    is_comeback: bool = False
    league_id: Optional[str] = None
    played_at: datetime


class AggregateStats(BaseModel):
    """Win/loss statistics of one player within one scope.

    Stored as camelCase JSON (``matchesPlayed``, ``winPercentage`` ...).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    matches_played: int = 0
    matches_won: int = 0
    matches_lost: int = 0
    matches_tied: int = 0
    win_percentage: float = 0.0
    current_win_streak: int = 0
    current_loss_streak: int = 0
    longest_win_streak: int = 0
    longest_loss_streak: int = 0
    shutouts: int = 0
    comeback_wins: int = 0
    average_score: float = 0.0
    highest_score: Optional[float] = None
    lowest_score: Optional[float] = None
    last_updated: Optional[datetime] = None

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_document(cls, document: dict) -> "AggregateStats":
        return cls.model_validate(document)
