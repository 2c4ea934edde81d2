"""Match record assembly and stats services."""

from .validation import validate_match_input
from .match_records import (
    build_match_record,
    outcomes_for_record,
    save_match_record,
    get_match_record,
)
from .stats import apply_match, rebuild_stats
from .stats_store import SqlStatsStore, StatsStore
from .batch import (
    ApplyStatus,
    BatchResult,
    PlayerApplyResult,
    apply_match_to_all_participants,
    complete_match,
)
from .rulesets import get_rule_set, seed_rule_sets

__all__ = [
    "validate_match_input",
    "build_match_record",
    "outcomes_for_record",
    "save_match_record",
    "get_match_record",
    "apply_match",
    "rebuild_stats",
    "SqlStatsStore",
    "StatsStore",
    "ApplyStatus",
    "BatchResult",
    "PlayerApplyResult",
    "apply_match_to_all_participants",
    "complete_match",
    "get_rule_set",
    "seed_rule_sets",
]
