"""Central configuration for the territory conquest engine.

All values are constants imported by the rest of the package. Game-rule
constants must keep their defaults for behavioural compatibility with existing
clients; operational knobs can be overridden from environment variables
(optionally via a local `.env`).
"""

from __future__ import annotations

import importlib
import os


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


# Load .env variables when python-dotenv is available.
_load_dotenv = None
try:
    _dotenv_mod = importlib.import_module("dotenv")
    _load_dotenv = getattr(_dotenv_mod, "load_dotenv", None)
except Exception:
    _load_dotenv = None

if callable(_load_dotenv):
    # Load .env from the current directory or any parent folder.
    _load_dotenv()


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------
# Mean Earth radius (metres) used by haversine and spherical area.
EARTH_RADIUS_M = 6_371_000.0

# A path closes when its first and last points are this close (metres).
POLYGON_CLOSURE_THRESHOLD_M = 50.0

# A path revisiting an earlier point within this distance forms a sub-loop.
SELF_LOOP_THRESHOLD_M = 30.0

# Minimum number of indices between the two ends of a detected sub-loop.
SELF_LOOP_MIN_GAP = 3

# Minimum number of raw points accepted in a claim path.
MIN_PATH_POINTS = 4


# ---------------------------------------------------------------------------
# Territory rules
# ---------------------------------------------------------------------------
# Smallest claimable area (m^2).
MINIMUM_AREA_M2 = 50.0

# Largest claimable area (m^2). Applies to every level.
MAX_CLAIM_AREA_M2 = 5_000_000.0

# Overlap ratio of an existing territory that turns a claim into a steal or
# a reinforcement.
STEAL_OVERLAP_THRESHOLD = 0.8

# Overlap ratio above which a territory takes part in partial-carve handling.
PARTIAL_OVERLAP_THRESHOLD = 0.1

# Protection window after any successful claim.
PROTECTION_DURATION_MS = 24 * 60 * 60 * 1000

# Cooldown between steal attempts on the same territory.
STEAL_COOLDOWN_MS = 6 * 60 * 60 * 1000

# The required pace to steal a territory never drops below this (min/km).
MIN_REQUIRED_PACE = 2.5

# Defense bonus (min/km) subtracted from the owner's pace, keyed by the
# minimum owner level that earns it. Evaluated from the highest level down.
DEFENSE_BONUS_BY_LEVEL = ((11, 1.0), (6, 0.75), (1, 0.5))


# ---------------------------------------------------------------------------
# Rewards
# ---------------------------------------------------------------------------
STEAL_BASE_REWARD = 75
NEW_TERRITORY_BASE_REWARD = 50
AREA_POINTS_DIVISOR_M2 = 2000
DISTANCE_POINTS_PER_KM = 10

# Points needed to reach each level (index + 1). Past the last entry every
# LEVEL_POINTS_PER_EXTRA_LEVEL points grants one more level.
LEVEL_THRESHOLDS = (
    0,
    100,
    250,
    500,
    850,
    1300,
    1900,
    2600,
    3400,
    4300,
    5300,
    6500,
    7900,
    9500,
    11300,
    13300,
    15500,
    18000,
    20800,
    24000,
)
LEVEL_POINTS_PER_EXTRA_LEVEL = 3000


# ---------------------------------------------------------------------------
# Side effects
# ---------------------------------------------------------------------------
# Seconds the POI catalog stays cached between claims. Set to 0 to disable.
POI_CACHE_TTL_SECONDS = _env_int("POI_CACHE_TTL_SECONDS", 300)

# Mission types advanced by run metrics rather than POI categories.
RUN_METRIC_MISSION_TYPES = ("runs", "territories", "stolen", "distance")

# Clan mission types; POI categories plus aggregate counters.
CLAN_MISSION_TYPES = ("park", "fountain", "district", "territories", "points")


# ---------------------------------------------------------------------------
# Concurrency / persistence
# ---------------------------------------------------------------------------
# Re-evaluate a claim against a fresh snapshot this many times when the
# persistence layer reports a concurrent modification.
CLAIM_MAX_RETRIES = _env_int("CLAIM_MAX_RETRIES", 3)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------
# Push gateway receiving notification intents. Empty disables delivery.
NOTIFICATION_WEBHOOK_URL = os.getenv("NOTIFICATION_WEBHOOK_URL", "")
NOTIFICATION_WEBHOOK_TOKEN = os.getenv("NOTIFICATION_WEBHOOK_TOKEN", "")
NOTIFICATION_TIMEOUT_SECONDS = _env_float("NOTIFICATION_TIMEOUT_SECONDS", 5.0)
NOTIFICATIONS_ENABLED = _env_bool("NOTIFICATIONS_ENABLED", True)


# ---------------------------------------------------------------------------
# HTTP server
# ---------------------------------------------------------------------------
HTTP_HOST = os.getenv("TERRITORY_HTTP_HOST", "localhost")
HTTP_PORT = _env_int("TERRITORY_HTTP_PORT", 8080)

# Static bearer tokens for the development server, "token:user_id" pairs
# separated by commas.
DEV_AUTH_TOKENS = os.getenv("TERRITORY_DEV_AUTH_TOKENS", "")

LOG_LEVEL = os.getenv("TERRITORY_LOG_LEVEL", "INFO").upper()
