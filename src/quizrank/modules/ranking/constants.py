"""
Ranking engine constants.

Single source of truth for:
- Pass threshold used by the streak rule
- Time-window lengths and caps (weekly, monthly)
- Cache key templates
- Event names

Pure data only. Behavior lives in the ranking modules and services.
"""

from datetime import timedelta
from typing import Final


# ============================================================================
# SCORING
# ============================================================================

# Minimum correct/total ratio that counts as a pass (extends the streak)
PASS_THRESHOLD: Final[float] = 0.70

SECONDS_PER_MINUTE: Final[int] = 60


# ============================================================================
# TIME WINDOWS
# ============================================================================

WEEKLY_WINDOW: Final[timedelta] = timedelta(days=7)
WEEKLY_LIMIT: Final[int] = 50

MONTHLY_WINDOW: Final[timedelta] = timedelta(days=30)
MONTHLY_LIMIT: Final[int] = 100

DEFAULT_HISTORY_RETENTION_DAYS: Final[int] = 90


# ============================================================================
# CACHE KEYS
# ============================================================================

SNAPSHOT_KEY_TEMPLATE: Final[str] = "{prefix}:snapshot"
HISTORY_KEY_TEMPLATE: Final[str] = "{prefix}:history:{user_id}"
HISTORY_INDEX_KEY_TEMPLATE: Final[str] = "{prefix}:history_index"


# ============================================================================
# EVENTS
# ============================================================================

RANKING_CHANGED_EVENT: Final[str] = "ranking.changed"
