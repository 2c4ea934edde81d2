"""Statistics scopes: sport family, single sport and sport-within-league."""

from __future__ import annotations

import re
import zlib
from dataclasses import dataclass
from enum import Enum
from typing import Optional

_CUSTOM_FAMILY_NAMES = {"custom", "undefined", "null"}


class ScopeKind(str, Enum):
    SPORT_FAMILY = "sport_family"
    SPORT = "sport"
    LEAGUE = "league"


def sanitize_key(value: str) -> str:
    """Lower-case ``value`` and squash anything outside ``[a-z0-9-_]`` to dashes."""
    value = re.sub(r"[^a-z0-9\-_]", "-", value.strip().lower())
    value = re.sub(r"-+", "-", value)
    return value.strip("-")


def is_custom_family(family: Optional[str]) -> bool:
    return not family or not family.strip() or family.strip().lower() in _CUSTOM_FAMILY_NAMES


def family_key(family: Optional[str], sport_name: str, sport_id: str) -> str:
    """Return the key shared by every variant of a sport family.

    Known families ("Ping Pong" covering singles and doubles) roll up under
    their sanitised name. Custom sports never share a family with another
    sport, so they are suffixed with their sport id (or a short hash of the
    name when no id is known).
    """

    if not is_custom_family(family):
        return sanitize_key(family) or "unknown-sport"

    base = sanitize_key(sport_name or sport_id or "") or "unknown-sport"
    suffix = sanitize_key(sport_id) if sport_id else _short_hash(sport_name or "unknown")
    return f"custom-{base}-{suffix}"


def _short_hash(value: str) -> str:
    return format(zlib.crc32(value.encode("utf-8")), "x")[:8]


@dataclass(frozen=True)
class ScopeKey:
    kind: ScopeKind
    family_key: str
    sport_id: Optional[str] = None
    league_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.kind is not ScopeKind.SPORT_FAMILY and not self.sport_id:
            raise ValueError(f"{self.kind.value} scope requires a sport id")
        if self.kind is ScopeKind.LEAGUE and not self.league_id:
            raise ValueError("league scope requires a league id")

    @property
    def key(self) -> str:
        if self.kind is ScopeKind.SPORT_FAMILY:
            return self.family_key
        if self.kind is ScopeKind.SPORT:
            return f"{self.family_key}/{self.sport_id}"
        return f"{self.family_key}/{self.sport_id}/{self.league_id}"


def scope_keys(
    family: str, sport_id: str, league_id: Optional[str] = None
) -> list[ScopeKey]:
    """Scopes a match feeds, widest first; league only for league matches."""
    keys = [
        ScopeKey(ScopeKind.SPORT_FAMILY, family),
        ScopeKey(ScopeKind.SPORT, family, sport_id),
    ]
    if league_id:
        keys.append(ScopeKey(ScopeKind.LEAGUE, family, sport_id, league_id))
    return keys


def scopes_for_record(record) -> list[ScopeKey]:
    return scope_keys(record.family_key, record.sport_id, record.league_id)
