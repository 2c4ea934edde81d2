"""Turn a participant's raw stat inputs into a numeric score.

Sports either use a single flat score field or split scoring into named,
weighted statistics (two- and three-pointers in basketball). As soon as any
custom stat is marked as score-affecting the flat score is ignored.
"""

from __future__ import annotations

import math
from typing import Any, Mapping, Optional

from ..rules import SportRuleSet


def numeric_value(value: Any) -> float:
    """Coerce a recorded stat value to a number.

    Missing, unparsable, boolean and non-finite values count as ``0``: a
    participant who did not record a stat simply scored nothing for it.
    """

    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    return number if math.isfinite(number) else 0.0


def score_from_stats(
    rules: SportRuleSet, stats: Mapping[str, Any], main_score: Optional[Any] = None
) -> float:
    score_stats = rules.score_stats
    if score_stats:
        return sum(
            numeric_value(stats.get(stat.name)) * stat.multiplier
            for stat in score_stats
        )
    return numeric_value(main_score)


def compute_score(rules: SportRuleSet, participant) -> float:
    """Return ``participant``'s score under ``rules``.

    ``participant`` is anything with ``stats`` and ``main_score`` attributes
    (a raw participant or a computed one).
    """

    return score_from_stats(rules, participant.stats or {}, participant.main_score)
