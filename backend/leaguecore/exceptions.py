import asyncio
from typing import Optional, Sequence


class EngineError(Exception):
    """Base class for errors raised by the scoring and stats engine."""

    def __init__(
        self,
        title: str,
        *,
        code: str,
        detail: str | None = None,
    ) -> None:
        super().__init__(detail or title)
        self.title = title
        self.detail = detail
        self.code = code


class ConfigurationError(EngineError):
    """The sport rule set is internally inconsistent."""

    def __init__(self, detail: str) -> None:
        super().__init__(
            title="Invalid sport configuration",
            detail=detail,
            code="configuration_error",
        )


class MatchInputError(EngineError):
    """Raw match input does not fit the sport's rule set."""

    def __init__(self, detail: str) -> None:
        super().__init__(
            title="Invalid match input",
            detail=detail,
            code="invalid_match_input",
        )


class UnresolvedTie(EngineError):
    """Participants stayed tied after every tiebreaker was applied.

    ``groups`` holds the ids of each group that could not be separated and
    ``fallback`` is the ranking obtained by keeping the submitted order inside
    those groups, for callers that choose to accept it.
    """

    def __init__(self, groups: Sequence[Sequence[str]], fallback: list) -> None:
        self.groups = tuple(tuple(g) for g in groups)
        self.fallback = fallback
        names = "; ".join(", ".join(g) for g in self.groups)
        super().__init__(
            title="Unresolved tie",
            detail=f"tiebreakers could not separate: {names}",
            code="unresolved_tie",
        )


class ConcurrentUpdateConflict(EngineError):
    def __init__(self, player_id: str, scope_key: Optional[str] = None) -> None:
        self.player_id = player_id
        self.scope_key = scope_key
        where = f" ({scope_key})" if scope_key else ""
        super().__init__(
            title="Concurrent update conflict",
            detail=f"stats for player '{player_id}'{where} changed during update",
            code="concurrent_update_conflict",
        )


class MatchRecordExists(EngineError):
    def __init__(self, match_id: str) -> None:
        self.match_id = match_id
        super().__init__(
            title="Match record exists",
            detail=f"match '{match_id}' has already been recorded",
            code="match_record_exists",
        )


class BatchCancelled(asyncio.CancelledError):
    """The batch was cancelled; ``result`` lists what each player reached."""

    def __init__(self, result) -> None:
        super().__init__("stats batch cancelled")
        self.result = result
