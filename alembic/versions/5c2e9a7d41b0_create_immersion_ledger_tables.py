"""Create immersion ledger tables

Revision ID: 5c2e9a7d41b0
Revises:
Create Date: 2026-10-19 10:12:03.418220

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '5c2e9a7d41b0'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create character_statistics, character_log_entries and metadata."""

    # --- character_statistics ---
    op.create_table(
        "character_statistics",
        sa.Column("user_id", sa.BigInteger, primary_key=True, autoincrement=False),
        sa.Column("total_characters", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("display_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.CheckConstraint(
            "total_characters >= 0", name="ck_statistics_total_non_negative"
        ),
    )
    op.create_index(
        "ix_statistics_active_total", "character_statistics",
        ["is_active", "total_characters"],
    )

    # --- character_log_entries ---
    op.create_table(
        "character_log_entries",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.BigInteger,
            sa.ForeignKey("character_statistics.user_id"),
            nullable=False,
        ),
        sa.Column("delta", sa.Integer, nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
    )
    op.create_index(
        "ix_log_entries_user_time", "character_log_entries",
        ["user_id", "timestamp"],
    )

    # --- metadata (singleton) ---
    op.create_table(
        "metadata",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("last_activity_refresh", sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    """Drop the ledger tables."""
    op.drop_table("metadata")
    op.drop_index("ix_log_entries_user_time", table_name="character_log_entries")
    op.drop_table("character_log_entries")
    op.drop_index("ix_statistics_active_total", table_name="character_statistics")
    op.drop_table("character_statistics")
