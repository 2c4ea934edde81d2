"""Declarative description of how a sport scores and resolves ties.

Rule sets are stored as JSON on the ``ruleset`` table using the camelCase keys
the league settings editor writes (``usesRounds``, ``customStats``,
``affectsScore`` ...). :func:`load_rule_set` turns that document into a
validated :class:`SportRuleSet`; any inconsistency is reported as a
:class:`~leaguecore.exceptions.ConfigurationError` instead of being patched.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .exceptions import ConfigurationError


class StatDataType(str, Enum):
    NUMBER = "number"
    COUNTER = "counter"
    TEXT = "text"
    BOOLEAN = "boolean"

    @property
    def is_numeric(self) -> bool:
        return self in (StatDataType.NUMBER, StatDataType.COUNTER)


class WinCondition(str, Enum):
    POINTS = "points"
    ROUND_WINS = "roundWins"


class PlacementPolicy(str, Enum):
    WINNER_TAKES_ALL = "winnerTakesAll"
    LAST_PLACE_LOSES = "lastPlaceLoses"


_WIN_CONDITION_LABELS = {
    "first to point limit": WinCondition.POINTS,
    "first to round limit": WinCondition.ROUND_WINS,
}

_RULE_CONFIG = ConfigDict(
    frozen=True,
    populate_by_name=True,
    alias_generator=to_camel,
    extra="ignore",
)


class CustomStatDef(BaseModel):
    model_config = _RULE_CONFIG

    name: str = Field(..., min_length=1)
    data_type: StatDataType = StatDataType.NUMBER
    affects_score: bool = False
    point_value: Optional[float] = None

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _check_numeric(self) -> "CustomStatDef":
        if self.affects_score and not self.data_type.is_numeric:
            raise ConfigurationError(
                f"stat '{self.name}' affects the score but is {self.data_type.value}; "
                "score-affecting stats must be number or counter"
            )
        if self.point_value is not None:
            if not self.data_type.is_numeric:
                raise ConfigurationError(
                    f"stat '{self.name}' has a point value but is {self.data_type.value}"
                )
            if not math.isfinite(self.point_value):
                raise ConfigurationError(f"stat '{self.name}' point value must be finite")
        return self

    @property
    def multiplier(self) -> float:
        return 1.0 if self.point_value is None else self.point_value


class TiebreakerRule(BaseModel):
    model_config = _RULE_CONFIG

    stat_name: str = Field(..., min_length=1)
    weight: float

    @model_validator(mode="after")
    def _check_weight(self) -> "TiebreakerRule":
        if not math.isfinite(self.weight) or self.weight == 0:
            raise ConfigurationError(
                f"tiebreaker on '{self.stat_name}' needs a finite, non-zero weight"
            )
        return self


class SportRuleSet(BaseModel):
    model_config = _RULE_CONFIG

    sport_id: str = Field(..., min_length=1)
    name: str = ""
    family: Optional[str] = None
    uses_rounds: bool = False
    max_rounds: Optional[int] = Field(default=None, ge=1)
    win_condition: WinCondition = WinCondition.POINTS
    ties_allowed: bool = False
    placement_policy: PlacementPolicy = PlacementPolicy.WINNER_TAKES_ALL
    custom_stats: tuple[CustomStatDef, ...] = ()
    tiebreakers: tuple[TiebreakerRule, ...] = ()

    @field_validator("win_condition", mode="before")
    @classmethod
    def _legacy_win_condition(cls, value: Any) -> Any:
        # Settings forms store the human label of the win condition.
        if isinstance(value, str):
            return _WIN_CONDITION_LABELS.get(value.strip().lower(), value)
        return value

    @model_validator(mode="after")
    def _check_consistency(self) -> "SportRuleSet":
        if self.win_condition is WinCondition.ROUND_WINS and not self.uses_rounds:
            raise ConfigurationError(
                f"sport '{self.sport_id}' is won on rounds but does not use rounds"
            )
        if self.max_rounds is not None and not self.uses_rounds:
            raise ConfigurationError(
                f"sport '{self.sport_id}' sets maxRounds but does not use rounds"
            )

        seen: set[str] = set()
        for stat in self.custom_stats:
            if stat.name in seen:
                raise ConfigurationError(f"duplicate custom stat '{stat.name}'")
            seen.add(stat.name)

        stats = self.stats_by_name
        for rule in self.tiebreakers:
            stat = stats.get(rule.stat_name)
            if stat is None:
                raise ConfigurationError(
                    f"tiebreaker references unknown stat '{rule.stat_name}'"
                )
            if not stat.data_type.is_numeric:
                raise ConfigurationError(
                    f"tiebreaker stat '{rule.stat_name}' must be number or counter"
                )
        return self

    @property
    def stats_by_name(self) -> dict[str, CustomStatDef]:
        return {stat.name: stat for stat in self.custom_stats}

    @property
    def score_stats(self) -> tuple[CustomStatDef, ...]:
        return tuple(stat for stat in self.custom_stats if stat.affects_score)


def load_rule_set(config: Mapping[str, Any], *, sport_id: str | None = None) -> SportRuleSet:
    """Build a :class:`SportRuleSet` from a stored configuration document.

    ``sport_id`` fills in the sport when the document itself does not carry
    one (rule set rows keep it in a separate column).
    """

    if not isinstance(config, Mapping):
        raise ConfigurationError("rule set configuration must be an object")

    data = dict(config)
    if sport_id is not None:
        data.setdefault("sportId", sport_id)

    try:
        return SportRuleSet.model_validate(data)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigurationError(problems) from exc
