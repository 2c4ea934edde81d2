import pytest

from leaguecore.exceptions import UnresolvedTie
from leaguecore.rules import load_rule_set
from leaguecore.schemas import ComputedParticipant
from leaguecore.scoring import rank_participants


def _p(pid, total, rounds_won=0, **stats):
    return ComputedParticipant(
        id=pid,
        member_ids=(pid,),
        stats=stats,
        total_score=total,
        rounds_won=rounds_won,
        tiebreak_score=total,
    )


def _ranks(ranked):
    return [(p.id, p.rank) for p in ranked]


def test_higher_score_ranks_first(goals_rules):
    ranked = rank_participants(goals_rules, [_p("a", 1), _p("b", 4), _p("c", 2)])
    assert _ranks(ranked) == [("b", 1), ("c", 2), ("a", 3)]
    assert not any(p.tied for p in ranked)


def test_ties_allowed_share_rank(goals_rules):
    ranked = rank_participants(goals_rules, [_p("a", 3, Goals=3), _p("b", 3, Goals=3)])
    assert _ranks(ranked) == [("a", 1), ("b", 1)]
    assert all(p.tied for p in ranked)


def test_competition_ranking_skips_after_shared_rank(goals_rules):
    ranked = rank_participants(
        goals_rules, [_p("a", 5), _p("b", 5), _p("c", 2), _p("d", 1)]
    )
    assert _ranks(ranked) == [("a", 1), ("b", 1), ("c", 3), ("d", 4)]


def test_tiebreaker_separates_equal_scores(fouls_rules):
    ranked = rank_participants(
        fouls_rules,
        [_p("a", 3, Goals=3, Fouls=2), _p("b", 3, Goals=3, Fouls=1)],
    )
    assert _ranks(ranked) == [("b", 1), ("a", 2)]
    assert ranked[0].tiebreak_score == pytest.approx(2.99)
    assert ranked[1].tiebreak_score == pytest.approx(2.98)


def test_tiebreakers_do_not_reorder_different_scores(fouls_rules):
    ranked = rank_participants(
        fouls_rules,
        [_p("a", 4, Fouls=50), _p("b", 3, Fouls=0)],
    )
    assert _ranks(ranked) == [("a", 1), ("b", 2)]
    assert ranked[0].tiebreak_score == 4


def test_unresolved_tie_offers_submitted_order(fouls_rules):
    with pytest.raises(UnresolvedTie) as exc:
        rank_participants(
            fouls_rules,
            [
                _p("low", 1, Fouls=0),
                _p("x", 3, Fouls=1),
                _p("y", 3, Fouls=1),
            ],
        )
    assert exc.value.groups == (("x", "y"),)
    assert exc.value.code == "unresolved_tie"
    assert _ranks(exc.value.fallback) == [("x", 1), ("y", 2), ("low", 3)]


def test_no_tiebreakers_and_ties_disallowed_is_unresolved():
    rules = load_rule_set({}, sport_id="darts")
    with pytest.raises(UnresolvedTie):
        rank_participants(rules, [_p("a", 0), _p("b", 0)])


def test_tiebreakers_cascade_in_declared_order():
    rules = load_rule_set(
        {
            "customStats": [
                {"name": "Cards", "dataType": "counter"},
                {"name": "Assists", "dataType": "number"},
            ],
            "tiebreakers": [
                {"statName": "Cards", "weight": -1},
                {"statName": "Assists", "weight": 1},
            ],
        },
        sport_id="futsal",
    )
    ranked = rank_participants(
        rules,
        [
            _p("a", 2, Cards=1, Assists=9),
            _p("b", 2, Cards=0, Assists=1),
            _p("c", 2, Cards=0, Assists=4),
        ],
    )
    # Cards split b and c from a; assists then split c from b.
    assert _ranks(ranked) == [("c", 1), ("b", 2), ("a", 3)]


def test_round_wins_rank_before_points(ping_pong_rules):
    ranked = rank_participants(
        ping_pong_rules,
        [_p("a", 40, rounds_won=1), _p("b", 35, rounds_won=2)],
    )
    assert _ranks(ranked) == [("b", 1), ("a", 2)]


def test_ranking_is_a_permutation(goals_rules):
    participants = [_p(str(i), i % 3) for i in range(7)]
    ranked = rank_participants(goals_rules, participants)
    assert sorted(p.id for p in ranked) == sorted(p.id for p in participants)
    assert ranked[0].rank == 1
    assert all(1 <= p.rank <= len(participants) for p in ranked)


def test_float_noise_does_not_split_equal_scores():
    rules = load_rule_set({"tiesAllowed": True}, sport_id="darts")
    ranked = rank_participants(rules, [_p("a", 0.1 + 0.2), _p("b", 0.3)])
    assert _ranks(ranked) == [("a", 1), ("b", 1)]
