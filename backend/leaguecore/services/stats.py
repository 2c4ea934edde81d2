from __future__ import annotations

from typing import Iterable, Optional

from ..schemas import AggregateStats, MatchResult, ParticipantOutcome
from ..scopes import ScopeKey, ScopeKind


def win_percentage(won: int, played: int) -> float:
    return won / played if played else 0.0


def apply_match(
    scope: ScopeKey,
    prior: Optional[AggregateStats],
    outcome: ParticipantOutcome,
) -> AggregateStats:
    """Return ``prior`` with one match outcome applied.

    The same function serves every scope (sport family, sport, league); each
    call only sees the state of its own scope. It is pure: the result depends
    on ``prior`` and ``outcome`` alone (``last_updated`` is the match time),
    so applying a match exactly once per scope is up to the caller.

    Args:
        scope: Scope the stats belong to.
        prior: Current stats, or ``None`` when the player has none yet.
        outcome: The player's result in the match.
    """
    if scope.kind is ScopeKind.LEAGUE and scope.league_id != outcome.league_id:
        raise ValueError(
            f"outcome of match {outcome.match_id} does not belong to league "
            f"{scope.league_id!r}"
        )

    s = prior or AggregateStats()
    played = s.matches_played + 1
    won, lost, tied = s.matches_won, s.matches_lost, s.matches_tied
    win_streak, loss_streak = s.current_win_streak, s.current_loss_streak
    longest_win, longest_loss = s.longest_win_streak, s.longest_loss_streak
    shutouts, comebacks = s.shutouts, s.comeback_wins

    if outcome.result is MatchResult.WIN:
        won += 1
        win_streak += 1
        loss_streak = 0
        longest_win = max(longest_win, win_streak)
        if outcome.is_shutout:
            shutouts += 1
        if outcome.is_comeback:
            comebacks += 1
    elif outcome.result is MatchResult.LOSS:
        lost += 1
        loss_streak += 1
        win_streak = 0
        longest_loss = max(longest_loss, loss_streak)
    else:
        # A tie ends any streak without starting a new one.
        tied += 1
        win_streak = loss_streak = 0

    score = outcome.score
    highest = score if s.highest_score is None else max(s.highest_score, score)
    lowest = score if s.lowest_score is None else min(s.lowest_score, score)
    average = s.average_score + (score - s.average_score) / played

    return AggregateStats(
        matches_played=played,
        matches_won=won,
        matches_lost=lost,
        matches_tied=tied,
        win_percentage=win_percentage(won, played),
        current_win_streak=win_streak,
        current_loss_streak=loss_streak,
        longest_win_streak=longest_win,
        longest_loss_streak=longest_loss,
        shutouts=shutouts,
        comeback_wins=comebacks,
        average_score=average,
        highest_score=highest,
        lowest_score=lowest,
        last_updated=outcome.played_at,
    )


def rebuild_stats(
    scope: ScopeKey, outcomes: Iterable[ParticipantOutcome]
) -> AggregateStats:
    """Recompute a player's stats for ``scope`` from their match history.

    Outcomes are replayed oldest first (ties on time keep their given order).
    Used after a match is corrected: the corrected history is replayed
    instead of editing the stored numbers.
    """
    stats = AggregateStats()
    for outcome in sorted(outcomes, key=lambda o: o.played_at):
        if scope.kind is ScopeKind.LEAGUE and outcome.league_id != scope.league_id:
            continue
        stats = apply_match(scope, stats, outcome)
    return stats
