"""
immersion.services.ledger_service — Character Ledger & Aggregate Store
=======================================================================

Shared service module callable from any cog.  Owns the append-only
``character_log_entries`` journal and the denormalized running total in
``character_statistics``.

Every public function opens one session (one transaction) via
:func:`~immersion.database.engine.get_session`; call them through
:func:`~immersion.database.engine.run_db` from async code.

Invariants maintained by :func:`append`:

* ``total_characters`` never drops below zero.  A negative delta is
  clamped per append to ``-total_characters``; the clamped value is what
  gets persisted.
* A no-op append (clamped delta of 0 and blank notes) writes no log entry.
* ``total_characters`` equals the sum of persisted deltas for the user.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import Engine, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from immersion.constants import (
    LEADERBOARD_PAGE_SIZE,
    LOG_DELTA_MAX,
    LOG_DELTA_MIN,
    LOG_ENTRY_PAGE_SIZE,
)
from immersion.database.engine import get_session
from immersion.database.models import LogEntry, UserStatistics

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Session-level helpers
# ---------------------------------------------------------------------------
def get_or_create_statistics(
    session: Session, user_id: int, display_name: str | None = None
) -> UserStatistics:
    """Fetch the user's statistics row, locking it, or insert a zero row.

    The row is read ``FOR UPDATE`` so concurrent appends for the same user
    serialize on PostgreSQL.  A concurrent first insert for the same user
    surfaces as an :class:`IntegrityError` inside the SAVEPOINT; the
    winner's row is then re-read.
    """
    stats = session.get(UserStatistics, user_id, with_for_update=True)
    if stats is not None:
        return stats

    stats = UserStatistics(
        user_id=user_id,
        total_characters=0,
        display_name=display_name or "",
        is_active=True,
    )
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(stats)
            session.flush()
    except IntegrityError:
        logger.debug("Statistics row for %d created concurrently; re-reading", user_id)
        stats = session.get(
            UserStatistics, user_id, with_for_update=True, populate_existing=True
        )
        assert stats is not None
    return stats


def clamp_delta(delta: int, current_total: int) -> int:
    """Clamp a negative *delta* so the total cannot go below zero."""
    if delta >= 0:
        return delta
    return max(delta, -current_total)


def is_noop(delta: int, notes: str | None) -> bool:
    """True when an entry would carry no information worth persisting."""
    return delta == 0 and (notes is None or not notes.strip())


# ---------------------------------------------------------------------------
# Public API — one transaction each
# ---------------------------------------------------------------------------
def append(
    engine: Engine,
    user_id: int,
    display_name: str,
    delta: int,
    timestamp: datetime,
    notes: str | None = None,
) -> UserStatistics:
    """Log *delta* characters for a user and return the updated statistics.

    Reads-or-initializes the statistics row, clamps negative corrections,
    inserts the log entry unless it is a no-op, and updates the total and
    display name — all inside one transaction.  Raises ValueError when
    *delta* does not fit the 32-bit log column.
    """
    if not LOG_DELTA_MIN <= delta <= LOG_DELTA_MAX:
        raise ValueError(
            f"delta {delta} out of range [{LOG_DELTA_MIN}, {LOG_DELTA_MAX}]"
        )
    with get_session(engine) as session:
        stats = get_or_create_statistics(session, user_id, display_name)
        applied = clamp_delta(delta, stats.total_characters)
        if applied != delta:
            logger.info(
                "Clamped correction for %d: requested %d, applied %d (total %d)",
                user_id, delta, applied, stats.total_characters,
            )

        if is_noop(applied, notes):
            logger.debug("Skipping no-op log entry for %d", user_id)
        else:
            session.add(LogEntry(
                user_id=user_id,
                delta=applied,
                timestamp=timestamp,
                notes=notes,
            ))

        stats.total_characters += applied
        stats.display_name = display_name
        session.flush()
        return stats


def statistics(
    engine: Engine, user_id: int, display_name: str | None = None
) -> UserStatistics:
    """Return the user's statistics, initializing a zero row if absent.

    The stored display name is only overwritten when the row is created;
    lookups of other members shouldn't rewrite their names.
    """
    with get_session(engine) as session:
        return get_or_create_statistics(session, user_id, display_name)


def exists(engine: Engine, user_id: int) -> bool:
    """Whether the user has a statistics row.  Never creates one."""
    with get_session(engine) as session:
        return session.get(UserStatistics, user_id) is not None


def rank(engine: Engine, stats: UserStatistics) -> int:
    """``1 + count(active users with a strictly greater total)``.

    Equal totals share a rank; the next distinct total skips ahead.
    """
    with get_session(engine) as session:
        above: int = session.scalar(
            select(func.count())
            .select_from(UserStatistics)
            .where(
                UserStatistics.is_active.is_(True),
                UserStatistics.total_characters > stats.total_characters,
            )
        ) or 0
        return above + 1


def leaderboard_page(
    engine: Engine, page_number: int, page_size: int = LEADERBOARD_PAGE_SIZE
) -> list[UserStatistics]:
    """Active users with a positive total, highest first.

    Ties are broken by ``user_id`` so pages are stable.
    """
    with get_session(engine) as session:
        return list(session.scalars(
            select(UserStatistics)
            .where(
                UserStatistics.is_active.is_(True),
                UserStatistics.total_characters > 0,
            )
            .order_by(UserStatistics.total_characters.desc(), UserStatistics.user_id.asc())
            .limit(page_size)
            .offset(page_number * page_size)
        ).all())


def log_history_page(
    engine: Engine,
    user_id: int,
    page_number: int,
    page_size: int = LOG_ENTRY_PAGE_SIZE,
) -> list[LogEntry]:
    """The user's log entries, newest first."""
    with get_session(engine) as session:
        return list(session.scalars(
            select(LogEntry)
            .where(LogEntry.user_id == user_id)
            .order_by(LogEntry.timestamp.desc(), LogEntry.id.desc())
            .limit(page_size)
            .offset(page_number * page_size)
        ).all())


def total_active_users(engine: Engine) -> int:
    """Number of rows the leaderboard can show."""
    with get_session(engine) as session:
        return session.scalar(
            select(func.count())
            .select_from(UserStatistics)
            .where(
                UserStatistics.is_active.is_(True),
                UserStatistics.total_characters > 0,
            )
        ) or 0


def total_log_entries(engine: Engine, user_id: int) -> int:
    with get_session(engine) as session:
        return session.scalar(
            select(func.count())
            .select_from(LogEntry)
            .where(LogEntry.user_id == user_id)
        ) or 0


def set_active_in_session(
    session: Session, user_id: int, active: bool, latest_name: str | None = None
) -> None:
    """Update the active flag (and name, when known) within *session*.

    Unknown users are left alone: no row is created.
    """
    values: dict = {"is_active": active}
    if latest_name is not None:
        values["display_name"] = latest_name
    session.execute(
        update(UserStatistics)
        .where(UserStatistics.user_id == user_id)
        .values(**values)
    )


def set_active(
    engine: Engine, user_id: int, active: bool, latest_name: str | None = None
) -> None:
    """Mark a user active/inactive.  A no-op for users never seen before."""
    with get_session(engine) as session:
        set_active_in_session(session, user_id, active, latest_name)
