import logging
import os

logger = logging.getLogger(__name__)


def _int_env(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(
            "%s is not a valid integer (got %r); defaulting to %d", name, raw, default
        )
        return default
    if value < minimum:
        logger.warning("%s must be >= %d; defaulting to %d", name, minimum, default)
        return default
    return value


def _float_env(name: str, default: float, *, minimum: float = 0.0) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(
            "%s is not a valid float (got %r); defaulting to %.2f", name, raw, default
        )
        return default
    if value < minimum:
        logger.warning("%s must be >= %.2f; defaulting to %.2f", name, minimum, default)
        return default
    return value


# Optimistic-concurrency retry policy for stats writes.
STATS_MAX_ATTEMPTS = _int_env("STATS_MAX_ATTEMPTS", 4, minimum=1)
STATS_BACKOFF_BASE_SECONDS = _float_env("STATS_BACKOFF_BASE_SECONDS", 0.05)
