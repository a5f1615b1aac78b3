"""
immersion.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- character_statistics — one row per member; the running character total
- character_log_entries — append-only log backing the running total
- metadata             — singleton row for bookkeeping timestamps

Quiz gates are deliberately **not** stored here: holding the gate role in
Discord is the fact.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Immersion ORM models."""


# ---------------------------------------------------------------------------
# UserStatistics — one row per Discord member, created lazily
# ---------------------------------------------------------------------------
class UserStatistics(Base):
    __tablename__ = "character_statistics"

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    total_characters: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    log_entries: Mapped[list[LogEntry]] = relationship(back_populates="user")

    __table_args__ = (
        CheckConstraint("total_characters >= 0", name="ck_statistics_total_non_negative"),
        Index("ix_statistics_active_total", "is_active", "total_characters"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserStatistics user={self.user_id} total={self.total_characters} "
            f"active={self.is_active}>"
        )


# ---------------------------------------------------------------------------
# LogEntry — immutable once written
# ---------------------------------------------------------------------------
class LogEntry(Base):
    __tablename__ = "character_log_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("character_statistics.user_id"), nullable=False
    )
    delta: Mapped[int] = mapped_column(Integer, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)

    user: Mapped[UserStatistics] = relationship(back_populates="log_entries")

    __table_args__ = (
        Index("ix_log_entries_user_time", "user_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<LogEntry id={self.id} user={self.user_id} delta={self.delta}>"


# ---------------------------------------------------------------------------
# Metadata — singleton bookkeeping row
# ---------------------------------------------------------------------------
class Metadata(Base):
    __tablename__ = "metadata"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    last_activity_refresh: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )

    def __repr__(self) -> str:
        return f"<Metadata last_activity_refresh={self.last_activity_refresh}>"
