import logging
import os

logger = logging.getLogger(__name__)


def _canon_prefix(val):
    """
    Normalize API prefix to always be exactly like '/api':
      - defaults to '/api' when unset/empty
      - ensures a single leading slash
      - removes any trailing slash (except for root)
    """
    val = (val or "/api").strip()
    if not val.startswith("/"):
        val = "/" + val
    if len(val) > 1 and val.endswith("/"):
        val = val[:-1]
    return val


def env_number(env_var: str, default: float, *, minimum: float = 0.0) -> float:
    raw_value = os.getenv(env_var)
    if raw_value is None or not raw_value.strip():
        return default

    try:
        value = float(raw_value)
    except ValueError:
        logger.warning(
            "%s is not a valid number (got %r); defaulting to %s",
            env_var,
            raw_value,
            default,
        )
        return default

    if value < minimum:
        logger.warning("%s cannot be below %s; defaulting to %s", env_var, minimum, default)
        return default

    return value


def _env_flag(env_var: str, default: bool = False) -> bool:
    raw_value = os.getenv(env_var)
    if raw_value is None or not raw_value.strip():
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


API_PREFIX = _canon_prefix(os.getenv("API_PREFIX"))

DEFAULT_LEAGUE_ID = (os.getenv("DEFAULT_LEAGUE_ID") or "default").strip() or "default"

PENDING_MATCH_TTL_HOURS = env_number("PENDING_MATCH_TTL_HOURS", 24.0, minimum=0.0)
EXPIRY_SWEEP_INTERVAL_SECONDS = env_number(
    "EXPIRY_SWEEP_INTERVAL_SECONDS", 60.0, minimum=0.0
)


def friendly_matches_count_record() -> bool:
    """Whether friendly matches update wins, losses and streaks.

    Read on every call so tests and operators can flip the setting without
    re-importing the module. Ratings are never touched by friendly matches.
    """

    return _env_flag("FRIENDLY_MATCHES_COUNT_RECORD", default=False)


def rate_limits_disabled() -> bool:
    return _env_flag("DISABLE_RATE_LIMITS", default=False)
