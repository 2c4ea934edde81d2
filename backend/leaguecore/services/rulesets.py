"""Loading sport rule sets from storage."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import ConfigurationError
from ..models import RuleSet, Sport
from ..rules import SportRuleSet, load_rule_set


@dataclass(frozen=True)
class SportDefinition:
    id: str
    name: str
    family: str | None
    ruleset_id: str
    config: dict[str, Any]


DEFAULT_SPORTS: list[SportDefinition] = [
    SportDefinition(
        id="ping_pong_singles",
        name="Ping Pong Singles",
        family="Ping Pong",
        ruleset_id="ping-pong-singles-default",
        config={"usesRounds": True, "maxRounds": 5, "winCondition": "roundWins"},
    ),
    SportDefinition(
        id="ping_pong_doubles",
        name="Ping Pong Doubles",
        family="Ping Pong",
        ruleset_id="ping-pong-doubles-default",
        config={"usesRounds": True, "maxRounds": 5, "winCondition": "roundWins"},
    ),
    SportDefinition(
        id="foosball",
        name="Foosball",
        family="Foosball",
        ruleset_id="foosball-default",
        config={
            "customStats": [
                {"name": "Goals", "dataType": "counter", "affectsScore": True, "pointValue": 1},
                {"name": "Own Goals", "dataType": "counter"},
            ],
            "tiebreakers": [{"statName": "Own Goals", "weight": -1}],
        },
    ),
    SportDefinition(
        id="basketball",
        name="Basketball",
        family="Basketball",
        ruleset_id="basketball-default",
        config={
            "customStats": [
                {"name": "Free Throws", "dataType": "counter", "affectsScore": True, "pointValue": 1},
                {"name": "Two Pointers", "dataType": "counter", "affectsScore": True, "pointValue": 2},
                {"name": "Three Pointers", "dataType": "counter", "affectsScore": True, "pointValue": 3},
                {"name": "Fouls", "dataType": "counter"},
                {"name": "MVP", "dataType": "text"},
            ],
            "tiebreakers": [{"statName": "Fouls", "weight": -0.01}],
        },
    ),
    SportDefinition(
        id="cornhole",
        name="Cornhole",
        family=None,
        ruleset_id="cornhole-casual",
        config={
            "usesRounds": True,
            "maxRounds": 10,
            "tiesAllowed": True,
            "customStats": [
                {"name": "In Hole", "dataType": "counter", "affectsScore": True, "pointValue": 3},
                {"name": "On Board", "dataType": "counter", "affectsScore": True, "pointValue": 1},
            ],
        },
    ),
]


async def get_rule_set(session: AsyncSession, ruleset_id: str) -> SportRuleSet:
    """Load and validate the rule set stored under ``ruleset_id``."""

    row = (
        await session.execute(
            select(RuleSet, Sport)
            .join(Sport, RuleSet.sport_id == Sport.id)
            .where(RuleSet.id == ruleset_id)
        )
    ).first()
    if row is None:
        raise ConfigurationError(f"no rule set {ruleset_id!r} configured")
    ruleset, sport = row

    config = dict(ruleset.config or {})
    config.setdefault("name", sport.name)
    config.setdefault("family", sport.family)
    return load_rule_set(config, sport_id=ruleset.sport_id)


async def seed_rule_sets(session: AsyncSession) -> list[str]:
    """Insert the default sports and rule sets that are missing.

    Every configuration is validated before anything is written. Returns the
    ids of the rule sets that were added; the caller commits.
    """

    for sport in DEFAULT_SPORTS:
        load_rule_set({"name": sport.name, "family": sport.family, **sport.config}, sport_id=sport.id)

    have_sports = set((await session.execute(select(Sport.id))).scalars().all())
    have_rulesets = set((await session.execute(select(RuleSet.id))).scalars().all())

    added: list[str] = []
    for sport in DEFAULT_SPORTS:
        if sport.id not in have_sports:
            session.add(Sport(id=sport.id, name=sport.name, family=sport.family))
        if sport.ruleset_id not in have_rulesets:
            session.add(
                RuleSet(
                    id=sport.ruleset_id,
                    sport_id=sport.id,
                    name=f"{sport.name} default",
                    config=sport.config,
                )
            )
            added.append(sport.ruleset_id)
    await session.flush()
    return added
