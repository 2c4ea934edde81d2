"""Assemble, store and read back immutable match records."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..db_errors import is_unique_violation
from ..exceptions import MatchRecordExists, UnresolvedTie
from ..models import Match
from ..rules import PlacementPolicy, SportRuleSet
from ..schemas import (
    ComputedParticipant,
    MatchRecord,
    MatchResult,
    ParticipantOutcome,
    RawMatchInput,
    RawParticipant,
    RoundResult,
)
from ..scopes import family_key
from ..scoring import compute_score, numeric_value, rank_participants, score_from_stats
from ..time_utils import coerce_utc, naive_utc, utcnow
from .validation import validate_match_input

logger = logging.getLogger(__name__)


def _merge_round_stats(
    rules: SportRuleSet, totals: Dict[str, Any], round_stats: Dict[str, Any]
) -> None:
    """Fold one round's stats into the running per-match totals.

    Numeric stats add up across rounds; text and boolean stats keep the last
    value recorded.
    """

    defs = rules.stats_by_name
    for name, value in round_stats.items():
        stat = defs.get(name)
        if stat is not None:
            numeric = stat.data_type.is_numeric
        else:
            numeric = isinstance(value, (int, float)) and not isinstance(value, bool)
        if numeric:
            totals[name] = numeric_value(totals.get(name)) + numeric_value(value)
        else:
            totals[name] = value


def _fold_rounds(
    rules: SportRuleSet, raw: RawMatchInput
) -> tuple[list[RoundResult], list[ComputedParticipant]]:
    participants = raw.participants
    stats = {p.id: dict(p.stats) for p in participants}
    totals = {p.id: 0.0 for p in participants}
    wins = {p.id: 0 for p in participants}
    results: List[RoundResult] = []

    for rnd in sorted(raw.rounds, key=lambda r: r.round_number):
        scores: Dict[str, float] = {}
        for p in participants:
            round_stats = rnd.participant_stats.get(p.id, {})
            scores[p.id] = score_from_stats(
                rules, round_stats, rnd.participant_scores.get(p.id)
            )
            totals[p.id] += scores[p.id]
            _merge_round_stats(rules, stats[p.id], round_stats)

        best = max(scores.values())
        leaders = tuple(pid for pid, score in scores.items() if score == best)
        # A drawn round counts for nobody.
        winners = leaders if len(leaders) == 1 else ()
        for pid in winners:
            wins[pid] += 1

        results.append(
            RoundResult(
                round_number=rnd.round_number,
                participant_scores=scores,
                participant_stats={
                    pid: dict(values) for pid, values in rnd.participant_stats.items()
                },
                winner_ids=winners,
            )
        )

    computed = [
        _computed(p, stats=stats[p.id], total=totals[p.id], rounds_won=wins[p.id])
        for p in participants
    ]
    return results, computed


def _computed(
    participant: RawParticipant,
    *,
    stats: Dict[str, Any],
    total: float,
    rounds_won: int = 0,
) -> ComputedParticipant:
    main = participant.main_score
    return ComputedParticipant(
        id=participant.id,
        member_ids=tuple(m for m in participant.member_ids if m),
        stats=stats,
        main_score=None if main is None else numeric_value(main),
        total_score=total,
        rounds_won=rounds_won,
        tiebreak_score=total,
        comeback=participant.comeback,
    )


def build_match_record(
    rules: SportRuleSet,
    raw: RawMatchInput,
    *,
    allow_unresolved: bool = False,
) -> MatchRecord:
    """Score, rank and freeze one completed match.

    Raises :class:`~leaguecore.exceptions.UnresolvedTie` when ties are not
    allowed and the tiebreakers cannot separate participants. With
    ``allow_unresolved`` the submitted order is kept inside the tied groups
    instead, and the groups are listed in ``unresolved_ties``.
    """

    validate_match_input(rules, raw)

    if rules.uses_rounds and raw.rounds:
        rounds, computed = _fold_rounds(rules, raw)
    else:
        rounds = []
        computed = [
            _computed(p, stats=dict(p.stats), total=compute_score(rules, p))
            for p in raw.participants
        ]

    match_id = raw.match_id or uuid.uuid4().hex
    unresolved: tuple = ()
    try:
        ranked = rank_participants(rules, computed)
    except UnresolvedTie as exc:
        if not allow_unresolved:
            raise
        logger.warning(
            "Match %s: falling back to submitted order for tied participants %s",
            match_id,
            exc.groups,
        )
        ranked = exc.fallback
        unresolved = exc.groups

    return MatchRecord(
        id=match_id,
        sport_id=raw.sport_id,
        family_key=family_key(rules.family, raw.sport_name or rules.name, rules.sport_id),
        league_id=raw.league_id,
        played_at=raw.played_at or utcnow(),
        participants=tuple(ranked),
        rounds=tuple(rounds),
        finishing_order=tuple(p.id for p in ranked),
        placement_policy=rules.placement_policy,
        unresolved_ties=unresolved,
    )


def result_for_rank(
    rank: int, tied: bool, last_rank: int, policy: PlacementPolicy
) -> MatchResult:
    if rank == 1:
        return MatchResult.TIE if tied else MatchResult.WIN
    if policy is PlacementPolicy.LAST_PLACE_LOSES and rank != last_rank:
        return MatchResult.TIE
    return MatchResult.LOSS


def outcomes_for_record(record: MatchRecord) -> list[ParticipantOutcome]:
    """Return one outcome per player, in finishing order.

    Team members share their team's rank and score. A shutout is a win where
    every opposing participant scored exactly zero; comebacks are taken from
    the flag submitted with the match and only count for wins.
    """

    last_rank = max(p.rank for p in record.participants)
    outcomes: List[ParticipantOutcome] = []
    for participant in record.participants:
        others = [p for p in record.participants if p.id != participant.id]
        result = result_for_rank(
            participant.rank, participant.tied, last_rank, record.placement_policy
        )
        opponent_scores = tuple(p.total_score for p in others)
        won = result is MatchResult.WIN
        for player_id in participant.member_ids:
            outcomes.append(
                ParticipantOutcome(
                    match_id=record.id,
                    player_id=player_id,
                    participant_id=participant.id,
                    result=result,
                    rank=participant.rank,
                    total_players=len(record.participants),
                    score=participant.total_score,
                    opponent_scores=opponent_scores,
                    opponent_ids=tuple(m for p in others for m in p.member_ids),
                    teammate_ids=tuple(
                        m for m in participant.member_ids if m != player_id
                    ),
                    is_shutout=won
                    and bool(opponent_scores)
                    and all(score == 0 for score in opponent_scores),
                    is_comeback=won and participant.comeback,
                    league_id=record.league_id,
                    played_at=record.played_at,
                )
            )
    return outcomes


async def save_match_record(session: AsyncSession, record: MatchRecord) -> Match:
    """Insert ``record``; an already stored match id raises ``MatchRecordExists``.

    The caller owns the transaction and commits.
    """

    if await session.get(Match, record.id) is not None:
        raise MatchRecordExists(record.id)

    row = Match(
        id=record.id,
        sport_id=record.sport_id,
        league_id=record.league_id,
        family_key=record.family_key,
        played_at=naive_utc(record.played_at),
        status=record.status.value,
        finishing_order=list(record.finishing_order),
        record=record.model_dump(mode="json"),
    )
    session.add(row)
    try:
        await session.flush()
    except IntegrityError as exc:
        if not is_unique_violation(exc):
            raise
        raise MatchRecordExists(record.id) from exc
    return row


async def get_match_record(session: AsyncSession, match_id: str) -> Optional[MatchRecord]:
    row = await session.get(Match, match_id)
    if row is None:
        return None
    record = MatchRecord.model_validate(row.record)
    return record.model_copy(update={"played_at": coerce_utc(record.played_at)})
