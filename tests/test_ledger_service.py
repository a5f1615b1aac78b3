"""
tests/test_ledger_service.py — Ledger & Aggregate Store Tests
==============================================================
Append/clamp/no-op rules, rank ties, leaderboard ordering and paging,
history ordering, and the active flag.

Uses an in-memory SQLite database via the shared conftest fixtures.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import func, select

from immersion.constants import LOG_DELTA_MAX, LOG_DELTA_MIN
from immersion.database.engine import get_session
from immersion.database.models import LogEntry, UserStatistics
from immersion.services import ledger_service

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def engine(db_engine):
    """Re-use the shared conftest db_engine (SQLite, StaticPool)."""
    return db_engine


def _entries(engine, user_id: int) -> list[LogEntry]:
    with get_session(engine) as session:
        return list(session.scalars(
            select(LogEntry).where(LogEntry.user_id == user_id).order_by(LogEntry.id)
        ).all())


def _sum_deltas(engine, user_id: int) -> int:
    with get_session(engine) as session:
        return session.scalar(
            select(func.coalesce(func.sum(LogEntry.delta), 0))
            .where(LogEntry.user_id == user_id)
        )


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------
class TestHelpers:
    def test_positive_delta_untouched(self):
        assert ledger_service.clamp_delta(500, 0) == 500

    def test_negative_delta_clamped_to_total(self):
        assert ledger_service.clamp_delta(-150, 100) == -100

    def test_negative_delta_within_total(self):
        assert ledger_service.clamp_delta(-40, 100) == -40

    def test_noop_requires_zero_and_blank_notes(self):
        assert ledger_service.is_noop(0, None)
        assert ledger_service.is_noop(0, "   ")
        assert not ledger_service.is_noop(0, "Re:Zero vol. 3")
        assert not ledger_service.is_noop(5, None)


# ---------------------------------------------------------------------------
# append
# ---------------------------------------------------------------------------
class TestAppend:
    def test_first_append_creates_row(self, engine):
        stats = ledger_service.append(engine, 1, "Alice", 4000, NOW, "Kino")
        assert stats.total_characters == 4000
        assert stats.display_name == "Alice"
        assert stats.is_active is True
        entries = _entries(engine, 1)
        assert [(e.delta, e.notes) for e in entries] == [(4000, "Kino")]

    def test_total_matches_sum_of_deltas(self, engine):
        for delta in (1000, 2500, -300, 0):
            ledger_service.append(engine, 1, "Alice", delta, NOW)
        stats = ledger_service.statistics(engine, 1)
        assert stats.total_characters == 3200
        assert _sum_deltas(engine, 1) == 3200

    def test_negative_correction_is_clamped(self, engine):
        ledger_service.append(engine, 1, "Alice", 100, NOW)
        stats = ledger_service.append(engine, 1, "Alice", -150, NOW)
        assert stats.total_characters == 0
        assert [e.delta for e in _entries(engine, 1)] == [100, -100]

    def test_correction_on_empty_total_writes_nothing(self, engine):
        stats = ledger_service.append(engine, 1, "Alice", -50, NOW)
        assert stats.total_characters == 0
        assert _entries(engine, 1) == []

    def test_zero_delta_without_notes_not_persisted(self, engine):
        ledger_service.append(engine, 1, "Alice", 10, NOW)
        ledger_service.append(engine, 1, "Alice", 0, NOW)
        assert len(_entries(engine, 1)) == 1

    def test_zero_delta_with_notes_persisted(self, engine):
        ledger_service.append(engine, 1, "Alice", 0, NOW, "started a new book")
        entries = _entries(engine, 1)
        assert len(entries) == 1
        assert entries[0].delta == 0

    def test_display_name_updated_on_append(self, engine):
        ledger_service.append(engine, 1, "Alice", 10, NOW)
        stats = ledger_service.append(engine, 1, "Alicia", 10, NOW)
        assert stats.display_name == "Alicia"

    def test_failed_transaction_leaves_no_trace(self, engine):
        ledger_service.append(engine, 1, "Alice", 100, NOW)
        with pytest.raises(RuntimeError):
            with get_session(engine) as session:
                stats = ledger_service.get_or_create_statistics(session, 1)
                session.add(LogEntry(user_id=1, delta=50, timestamp=NOW))
                stats.total_characters += 50
                session.flush()
                raise RuntimeError("boom")
        assert ledger_service.statistics(engine, 1).total_characters == 100
        assert len(_entries(engine, 1)) == 1

    def test_delta_outside_column_range_rejected(self, engine):
        ledger_service.append(engine, 1, "Alice", 100, NOW)
        with pytest.raises(ValueError, match="out of range"):
            ledger_service.append(engine, 1, "Alice", LOG_DELTA_MAX + 1, NOW)
        with pytest.raises(ValueError, match="out of range"):
            ledger_service.append(engine, 1, "Alice", LOG_DELTA_MIN - 1, NOW)
        assert ledger_service.statistics(engine, 1).total_characters == 100
        assert len(_entries(engine, 1)) == 1

    def test_delta_at_column_bounds_accepted(self, engine):
        stats = ledger_service.append(engine, 1, "Alice", LOG_DELTA_MAX, NOW)
        assert stats.total_characters == LOG_DELTA_MAX
        stats = ledger_service.append(engine, 1, "Alice", LOG_DELTA_MIN, NOW)
        assert stats.total_characters == 0


# ---------------------------------------------------------------------------
# statistics / exists
# ---------------------------------------------------------------------------
class TestStatistics:
    def test_unknown_user_gets_zero_row(self, engine):
        stats = ledger_service.statistics(engine, 7, "Bob")
        assert stats.total_characters == 0
        assert stats.display_name == "Bob"
        assert ledger_service.exists(engine, 7)

    def test_lookup_does_not_rename(self, engine):
        ledger_service.append(engine, 7, "Bob", 10, NOW)
        stats = ledger_service.statistics(engine, 7, "Someone Else")
        assert stats.display_name == "Bob"

    def test_exists_never_creates(self, engine):
        assert not ledger_service.exists(engine, 8)
        assert not ledger_service.exists(engine, 8)


# ---------------------------------------------------------------------------
# rank / leaderboard
# ---------------------------------------------------------------------------
def _seed(engine, totals: dict[int, int], inactive: set[int] = frozenset()):
    for user_id, total in totals.items():
        ledger_service.append(engine, user_id, f"user{user_id}", total, NOW)
    for user_id in inactive:
        ledger_service.set_active(engine, user_id, False)


class TestRank:
    def test_ties_share_rank(self, engine):
        _seed(engine, {1: 900, 2: 800, 3: 700, 4: 500, 5: 500, 6: 100})
        s4 = ledger_service.statistics(engine, 4)
        s5 = ledger_service.statistics(engine, 5)
        s6 = ledger_service.statistics(engine, 6)
        assert ledger_service.rank(engine, s4) == 4
        assert ledger_service.rank(engine, s5) == 4
        assert ledger_service.rank(engine, s6) == 6

    def test_inactive_users_not_counted(self, engine):
        _seed(engine, {1: 5000, 2: 100}, inactive={1})
        assert ledger_service.rank(engine, ledger_service.statistics(engine, 2)) == 1

    def test_leader_is_first(self, engine):
        _seed(engine, {1: 5000, 2: 100})
        assert ledger_service.rank(engine, ledger_service.statistics(engine, 1)) == 1


class TestLeaderboard:
    def test_order_and_filters(self, engine):
        _seed(engine, {3: 500, 1: 500, 2: 900, 4: 1000, 5: 50}, inactive={4})
        ledger_service.statistics(engine, 6)   # zero total
        rows = ledger_service.leaderboard_page(engine, 0, 15)
        assert [r.user_id for r in rows] == [2, 1, 3, 5]
        assert ledger_service.total_active_users(engine) == 4

    def test_pagination(self, engine):
        _seed(engine, {i: 100 * i for i in range(1, 8)})
        first = ledger_service.leaderboard_page(engine, 0, 3)
        second = ledger_service.leaderboard_page(engine, 1, 3)
        third = ledger_service.leaderboard_page(engine, 2, 3)
        assert [r.user_id for r in first] == [7, 6, 5]
        assert [r.user_id for r in second] == [4, 3, 2]
        assert [r.user_id for r in third] == [1]
        assert ledger_service.leaderboard_page(engine, 3, 3) == []


# ---------------------------------------------------------------------------
# history
# ---------------------------------------------------------------------------
class TestHistory:
    def test_newest_first(self, engine):
        for i, delta in enumerate((10, 20, 30)):
            ledger_service.append(engine, 1, "Alice", delta, NOW + timedelta(minutes=i))
        page = ledger_service.log_history_page(engine, 1, 0, 15)
        assert [e.delta for e in page] == [30, 20, 10]
        assert ledger_service.total_log_entries(engine, 1) == 3

    def test_same_timestamp_falls_back_to_insert_order(self, engine):
        for delta in (1, 2, 3):
            ledger_service.append(engine, 1, "Alice", delta, NOW)
        page = ledger_service.log_history_page(engine, 1, 0, 2)
        assert [e.delta for e in page] == [3, 2]
        assert [e.delta for e in ledger_service.log_history_page(engine, 1, 1, 2)] == [1]

    def test_other_users_excluded(self, engine):
        ledger_service.append(engine, 1, "Alice", 10, NOW)
        ledger_service.append(engine, 2, "Bob", 20, NOW)
        assert [e.user_id for e in ledger_service.log_history_page(engine, 1, 0)] == [1]


# ---------------------------------------------------------------------------
# active flag
# ---------------------------------------------------------------------------
class TestSetActive:
    def test_unknown_user_is_noop(self, engine):
        ledger_service.set_active(engine, 99, False, "Ghost")
        assert not ledger_service.exists(engine, 99)

    def test_deactivate_and_rename(self, engine):
        ledger_service.append(engine, 1, "Alice", 10, NOW)
        ledger_service.set_active(engine, 1, False)
        stats = ledger_service.statistics(engine, 1)
        assert stats.is_active is False
        assert stats.display_name == "Alice"

        ledger_service.set_active(engine, 1, True, "Alicia")
        stats = ledger_service.statistics(engine, 1)
        assert stats.is_active is True
        assert stats.display_name == "Alicia"

    def test_deactivation_keeps_totals(self, engine):
        ledger_service.append(engine, 1, "Alice", 10, NOW)
        ledger_service.set_active(engine, 1, False)
        with get_session(engine) as session:
            assert session.get(UserStatistics, 1).total_characters == 10
