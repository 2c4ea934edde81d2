import math
from typing import Any, Dict, List

from ..exceptions import MatchInputError
from ..rules import SportRuleSet
from ..schemas import RawMatchInput


def _check_score(value: Any, label: str) -> None:
    """Reject explicit scores that are not plain non-negative numbers."""

    if value is None:
        return
    # Reject booleans explicitly (bool is a subclass of int in Python)
    if isinstance(value, bool):
        raise MatchInputError(f"{label} must be a number (not a boolean).")
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            raise MatchInputError(f"{label} must be a number.")
    if not isinstance(value, (int, float)):
        raise MatchInputError(f"{label} must be a number.")
    if not math.isfinite(value):
        raise MatchInputError(f"{label} must be finite.")
    if value < 0:
        raise MatchInputError(f"{label} must be >= 0.")


def validate_participants(raw: RawMatchInput) -> None:
    if len(raw.participants) < 2:
        raise MatchInputError("At least 2 participants are required.")

    seen: set[str] = set()
    owner: Dict[str, str] = {}
    for participant in raw.participants:
        if participant.id in seen:
            raise MatchInputError(f"Participant '{participant.id}' is listed twice.")
        seen.add(participant.id)

        members = [m for m in participant.member_ids if m]
        if not members:
            raise MatchInputError(f"Participant '{participant.id}' has no players.")
        for member in members:
            if member in owner:
                raise MatchInputError(
                    f"Player '{member}' appears in both '{owner[member]}' and "
                    f"'{participant.id}'."
                )
            owner[member] = participant.id

        _check_score(participant.main_score, f"Score of '{participant.id}'")


def validate_rounds(rules: SportRuleSet, raw: RawMatchInput) -> None:
    if not raw.rounds:
        return
    if not rules.uses_rounds:
        raise MatchInputError(f"{rules.name or rules.sport_id} matches are not played in rounds.")
    if rules.max_rounds is not None and len(raw.rounds) > rules.max_rounds:
        raise MatchInputError(f"Too many rounds. Max allowed is {rules.max_rounds}.")

    known = {p.id for p in raw.participants}
    numbers: List[int] = []
    for rnd in raw.rounds:
        if rnd.round_number in numbers:
            raise MatchInputError(f"Round #{rnd.round_number} is listed twice.")
        numbers.append(rnd.round_number)

        unknown = (set(rnd.participant_scores) | set(rnd.participant_stats)) - known
        if unknown:
            raise MatchInputError(
                f"Round #{rnd.round_number} references unknown participants: "
                f"{', '.join(sorted(unknown))}."
            )
        for pid, value in rnd.participant_scores.items():
            _check_score(value, f"Round #{rnd.round_number} score of '{pid}'")


def validate_match_input(rules: SportRuleSet, raw: RawMatchInput) -> None:
    """Check that ``raw`` can be scored under ``rules``.

    Rules:
    - The match must be for the rule set's sport
    - At least two participants, each listed once with at least one player
    - A player may only play for one participant
    - Explicit scores must be numbers >= 0 (booleans are rejected)
    - Rounds only for round-based sports, at most ``max_rounds``, each round
      numbered once and only mentioning known participants
    """

    if raw.sport_id != rules.sport_id:
        raise MatchInputError(
            f"Match is for sport '{raw.sport_id}' but the rule set is for "
            f"'{rules.sport_id}'."
        )
    validate_participants(raw)
    validate_rounds(rules, raw)
