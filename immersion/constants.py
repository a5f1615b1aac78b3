"""
immersion.constants — Shared Constants & Helpers
=================================================

Single source of truth for pagination, the quiz engine's global settings,
and number formatting.  Import from here instead of duplicating in cogs
and services.
"""

from __future__ import annotations

from datetime import timedelta

# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------
LEADERBOARD_PAGE_SIZE: int = 15
LOG_ENTRY_PAGE_SIZE: int = 15

# Discord rejects embeds whose description is longer than this.
EMBED_DESCRIPTION_LIMIT: int = 4096
HISTORY_NOTE_MAX_LENGTH: int = 100

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
# Bounds of the 32-bit delta column.
LOG_DELTA_MIN: int = -(2**31)
LOG_DELTA_MAX: int = 2**31 - 1

# ---------------------------------------------------------------------------
# Active-status refresh
# ---------------------------------------------------------------------------
USER_ACTIVE_STATUS_REFRESH_INTERVAL: timedelta = timedelta(hours=2)

# ---------------------------------------------------------------------------
# Kotoba quiz verification
# ---------------------------------------------------------------------------
KOTOBA_BOT_ID: int = 251239170058616833
GAME_REPORT_FIELD_NAME: str = "Game Report"

# Every gate quiz must be played with exactly these settings.
QUIZ_FONT: str = "Eishiikaisho"
QUIZ_TIME_LIMIT_MS: int = 20000

RANK_BADGES: list[str] = ["\U0001f947", "\U0001f948", "\U0001f949"]  # 🥇🥈🥉


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------
def format_with_commas(num: int) -> str:
    """Render *num* with thousands separators, keeping the sign.

    >>> format_with_commas(-1234567)
    '-1,234,567'
    """
    return f"{num:,}"


def page_count(total: int, page_size: int) -> int:
    """Number of pages needed to show *total* rows; never less than 1."""
    if total <= 0:
        return 1
    return -(-total // page_size)
