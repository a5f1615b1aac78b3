"""
tests/test_membership.py — Join/Leave Listener Tests
=====================================================
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import MagicMock

from immersion.bot.cogs.membership import Membership
from immersion.services import ledger_service


def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.run(coro)


def _member(user_id: int, name: str = "Member", *, bot: bool = False, guild_id: int = 1):
    member = MagicMock()
    member.id = user_id
    member.display_name = name
    member.bot = bot
    member.guild.id = guild_id
    return member


def _cog(cfg, engine) -> Membership:
    return Membership(SimpleNamespace(cfg=cfg, engine=engine))


class TestMembership:
    def test_leave_deactivates(self, cfg, db_engine):
        ledger_service.append(db_engine, 10, "Leaver", 500, datetime.now(UTC))
        run_async(_cog(cfg, db_engine).on_member_remove(_member(10)))
        assert ledger_service.statistics(db_engine, 10).is_active is False

    def test_rejoin_reactivates_and_renames(self, cfg, db_engine):
        ledger_service.append(db_engine, 10, "Leaver", 500, datetime.now(UTC))
        ledger_service.set_active(db_engine, 10, False)
        run_async(_cog(cfg, db_engine).on_member_join(_member(10, "Returner")))
        stats = ledger_service.statistics(db_engine, 10)
        assert stats.is_active is True
        assert stats.display_name == "Returner"

    def test_join_of_new_member_creates_nothing(self, cfg, db_engine):
        run_async(_cog(cfg, db_engine).on_member_join(_member(11)))
        assert not ledger_service.exists(db_engine, 11)

    def test_bots_and_other_guilds_ignored(self, cfg, db_engine):
        ledger_service.append(db_engine, 12, "Bot", 5, datetime.now(UTC))
        cog = _cog(cfg, db_engine)
        run_async(cog.on_member_remove(_member(12, bot=True)))
        run_async(cog.on_member_remove(_member(12, guild_id=999)))
        assert ledger_service.statistics(db_engine, 12).is_active is True
