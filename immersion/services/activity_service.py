"""
immersion.services.activity_service — Active-Status Reconciliation
===================================================================

Members who leave the server stay in the ledger but drop off the
leaderboard.  This job compares every stored user against the guild's
member roster and flips ``is_active`` accordingly.

How it works:
    1. Skip entirely unless the cooldown (default 2 hours) has elapsed
       since ``metadata.last_activity_refresh``.
    2. Page through the guild roster into an ``{user_id: display_name}``
       map, stopping on the first empty page.
    3. Page through ``character_statistics`` by ``user_id`` and set each
       row's active flag to roster membership (refreshing the name when
       the member is present).
    4. Stamp ``metadata.last_activity_refresh``.

It never touches totals, log entries, or roles.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from immersion.constants import LEADERBOARD_PAGE_SIZE
from immersion.database.engine import get_session, run_db
from immersion.database.models import Metadata, UserStatistics
from immersion.services.ledger_service import set_active_in_session

logger = logging.getLogger(__name__)

RosterPage = list[tuple[int, str]]


# ---------------------------------------------------------------------------
# Metadata singleton
# ---------------------------------------------------------------------------
def get_last_refresh(engine: Engine) -> datetime | None:
    with get_session(engine) as session:
        meta = session.scalar(select(Metadata).limit(1))
        return meta.last_activity_refresh if meta else None


def stamp_refresh(session: Session, when: datetime) -> None:
    """Upsert the singleton ``metadata`` row within *session*."""
    meta = session.scalar(select(Metadata).limit(1))
    if meta is None:
        session.add(Metadata(last_activity_refresh=when))
    else:
        meta.last_activity_refresh = when


def should_refresh(
    last_refresh: datetime | None,
    cooldown: timedelta,
    now: datetime | None = None,
) -> bool:
    """True when no refresh has happened yet or *cooldown* has elapsed."""
    if last_refresh is None:
        return True
    now = now or datetime.now(UTC)
    if last_refresh.tzinfo is None:
        # SQLite hands back naive datetimes; they were written as UTC.
        last_refresh = last_refresh.replace(tzinfo=UTC)
    return now - last_refresh > cooldown


# ---------------------------------------------------------------------------
# Roster paging (async — talks to Discord)
# ---------------------------------------------------------------------------
async def fetch_roster(
    fetch_page: Callable[[int | None], Awaitable[RosterPage]],
    *,
    max_pages: int = 10_000,
) -> dict[int, str]:
    """Collect the full member roster via *fetch_page*.

    *fetch_page* receives the last member id seen (``None`` for the first
    page) and returns ``(user_id, display_name)`` pairs.  Paging stops on
    an empty page, on a page that doesn't advance the cursor, or after
    *max_pages*.
    """
    roster: dict[int, str] = {}
    after: int | None = None
    for _ in range(max_pages):
        page = await fetch_page(after)
        if not page:
            break
        last_id = page[-1][0]
        for user_id, name in page:
            roster[user_id] = name
        if after is not None and last_id <= after:
            logger.warning("Roster paging stalled at member %d; stopping", last_id)
            break
        after = last_id
    else:
        logger.warning("Roster paging hit the %d page cap", max_pages)
    return roster


# ---------------------------------------------------------------------------
# Reconciliation (sync — run via run_db)
# ---------------------------------------------------------------------------
def reconcile_active_users(
    engine: Engine,
    roster: dict[int, str],
    *,
    page_size: int = LEADERBOARD_PAGE_SIZE,
    now: datetime | None = None,
) -> dict:
    """Set every stored user's active flag to roster membership.

    Returns ``{"checked": N, "activated": A, "deactivated": D}``.
    """
    checked = activated = deactivated = 0

    with get_session(engine) as session:
        page_number = 0
        while True:
            users = session.scalars(
                select(UserStatistics)
                .order_by(UserStatistics.user_id.asc())
                .limit(page_size)
                .offset(page_number * page_size)
            ).all()
            if not users:
                break
            for user in users:
                checked += 1
                is_member = user.user_id in roster
                if is_member and not user.is_active:
                    activated += 1
                elif not is_member and user.is_active:
                    deactivated += 1
                set_active_in_session(
                    session, user.user_id, is_member, roster.get(user.user_id)
                )
            page_number += 1

        stamp_refresh(session, now or datetime.now(UTC))

    logger.info(
        "Active-status refresh: checked=%d activated=%d deactivated=%d",
        checked, activated, deactivated,
    )
    return {"checked": checked, "activated": activated, "deactivated": deactivated}


async def refresh_active_users(
    engine: Engine,
    fetch_page: Callable[[int | None], Awaitable[RosterPage]],
    *,
    cooldown: timedelta,
    page_size: int = LEADERBOARD_PAGE_SIZE,
) -> dict | None:
    """Run the full guarded refresh.  Returns ``None`` when skipped."""
    last = await run_db(get_last_refresh, engine)
    if not should_refresh(last, cooldown):
        logger.info("Skipping active-status refresh; last run at %s", last)
        return None

    roster = await fetch_roster(fetch_page)
    return await run_db(reconcile_active_users, engine, roster, page_size=page_size)
