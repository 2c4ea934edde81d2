"""Order the participants of a match and assign their ranks."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Sequence, Tuple, TypeVar

from ..exceptions import UnresolvedTie
from ..rules import SportRuleSet, TiebreakerRule, WinCondition
from ..schemas import ComputedParticipant
from .calculator import numeric_value

logger = logging.getLogger(__name__)

T = TypeVar("T")

# A finishing position: the participants that share it, each with the
# tiebreaker adjustment that placed it there.
_Position = List[Tuple[ComputedParticipant, float]]


# Scores that differ only by float noise (0.1 + 0.2 vs 0.3) compare equal.
SCORE_PRECISION = 9


def _settle(value: float) -> float:
    return round(value, SCORE_PRECISION)


def primary_key(rules: SportRuleSet, participant: ComputedParticipant) -> tuple:
    if rules.win_condition is WinCondition.ROUND_WINS:
        return (participant.rounds_won, _settle(participant.total_score))
    return (_settle(participant.total_score),)


def _group_consecutive(items: Iterable[T], key: Callable[[T], object]) -> list[list[T]]:
    groups: list[list[T]] = []
    last = object()
    for item in items:
        k = key(item)
        if groups and k == last:
            groups[-1].append(item)
        else:
            groups.append([item])
            last = k
    return groups


def _break_tie(
    tiebreakers: Sequence[TiebreakerRule], group: Sequence[ComputedParticipant]
) -> list[_Position]:
    """Split an equal-score group using the tiebreakers in declared order.

    Each rule only re-sorts the sub-groups the previous rules left tied. The
    adjustment accumulates across rules; within a sub-group every earlier
    contribution is equal so the running sum orders it the same way as the
    current rule alone.
    """

    pending: list[_Position] = [[(p, 0.0) for p in group]]
    for rule in tiebreakers:
        split: list[_Position] = []
        for sub in pending:
            if len(sub) == 1:
                split.append(sub)
                continue
            scored = [
                (p, adj + numeric_value(p.stats.get(rule.stat_name)) * rule.weight)
                for p, adj in sub
            ]
            scored.sort(key=lambda item: _settle(item[1]), reverse=True)
            split.extend(_group_consecutive(scored, key=lambda item: _settle(item[1])))
        pending = split
    return pending


def _assign_ranks(positions: Sequence[_Position]) -> list[ComputedParticipant]:
    ranked: list[ComputedParticipant] = []
    rank = 1
    for position in positions:
        shared = len(position) > 1
        for participant, adjustment in position:
            ranked.append(
                participant.model_copy(
                    update={
                        "rank": rank,
                        "tied": shared,
                        "tiebreak_score": participant.total_score + adjustment,
                    }
                )
            )
        rank += len(position)
    return ranked


def rank_participants(
    rules: SportRuleSet, computed: Sequence[ComputedParticipant]
) -> list[ComputedParticipant]:
    """Return ``computed`` in finishing order with ranks assigned.

    Participants are ordered by total score (round wins first for sports won
    on rounds). When ties are allowed, equal participants share a rank and
    the next rank skips ahead (1, 1, 3). Otherwise the tiebreakers must
    produce a total order; a group they cannot separate raises
    :class:`UnresolvedTie`, whose ``fallback`` keeps the submitted order inside
    the group.
    """

    ordered = sorted(computed, key=lambda p: primary_key(rules, p), reverse=True)
    positions: list[_Position] = []
    unresolved: list[_Position] = []

    for group in _group_consecutive(ordered, key=lambda p: primary_key(rules, p)):
        if len(group) == 1 or rules.ties_allowed:
            positions.append([(p, 0.0) for p in group])
            continue
        for position in _break_tie(rules.tiebreakers, group):
            positions.append(position)
            if len(position) > 1:
                unresolved.append(position)

    if unresolved:
        groups = [[p.id for p, _ in position] for position in unresolved]
        fallback_positions: list[_Position] = []
        for position in positions:
            fallback_positions.extend([[entry] for entry in position])
        logger.debug("Unresolved tie in sport %s: %s", rules.sport_id, groups)
        raise UnresolvedTie(groups, _assign_ranks(fallback_positions))

    return _assign_ranks(positions)
