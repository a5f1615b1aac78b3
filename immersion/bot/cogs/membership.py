"""
immersion.bot.cogs.membership — Member Join/Leave Tracking
===========================================================

Keeps the leaderboard's active flag current between roster refreshes.
Requires the GUILD_MEMBERS privileged intent.  Members who never logged
have no row and are left alone.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from immersion.database.engine import run_db
from immersion.services import ledger_service

if TYPE_CHECKING:
    from immersion.bot.core import ImmersionBot

logger = logging.getLogger(__name__)


class Membership(commands.Cog, name="Membership"):
    """Flips the active flag when members join or leave."""

    def __init__(self, bot: ImmersionBot) -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member) -> None:
        """A returning member shows up on the leaderboard again."""
        if member.bot or member.guild.id != self.bot.cfg.guild_id:
            return
        try:
            if await run_db(ledger_service.exists, self.bot.engine, member.id):
                await run_db(
                    ledger_service.set_active,
                    self.bot.engine, member.id, True, member.display_name,
                )
                logger.info("Member returned: %s (ID: %d)", member.display_name, member.id)
        except Exception:
            logger.exception(
                "Error processing member_join for %s", member.id,
                extra={"event_type": "member_join", "user_id": member.id},
            )

    @commands.Cog.listener()
    async def on_member_remove(self, member: discord.Member) -> None:
        """A departed member drops off the leaderboard; their log is kept."""
        if member.bot or member.guild.id != self.bot.cfg.guild_id:
            return
        try:
            await run_db(ledger_service.set_active, self.bot.engine, member.id, False)
            logger.info("Member left: %s (ID: %d)", member.display_name, member.id)
        except Exception:
            logger.exception(
                "Error processing member_leave for %s", member.id,
                extra={"event_type": "member_leave", "user_id": member.id},
            )


async def setup(bot: ImmersionBot) -> None:
    await bot.add_cog(Membership(bot))
