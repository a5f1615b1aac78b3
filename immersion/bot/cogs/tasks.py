"""
immersion.bot.cogs.tasks — Periodic Background Tasks
=====================================================

Scheduled jobs that run on ``discord.ext.tasks`` loops:

- **Active-status refresh** — checks every 30 minutes, does work only
  when the configured cooldown (default 2 hours) has elapsed since the
  last run.  The first iteration fires right after the bot is ready.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

import discord
from discord.ext import commands, tasks

from immersion.services.activity_service import RosterPage, refresh_active_users

if TYPE_CHECKING:
    from immersion.bot.core import ImmersionBot

logger = logging.getLogger(__name__)

ROSTER_PAGE_LIMIT = 1000


class PeriodicTasks(commands.Cog):
    """Cog for scheduled background maintenance tasks."""

    def __init__(self, bot: ImmersionBot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        """Start task loops when the cog is loaded."""
        self.activity_loop.start()

    async def cog_unload(self) -> None:
        """Cancel task loops on unload."""
        self.activity_loop.cancel()

    async def _fetch_roster_page(self, after: int | None) -> RosterPage:
        guild = self.bot.primary_guild
        if guild is None:
            return []
        members = [
            m async for m in guild.fetch_members(
                limit=ROSTER_PAGE_LIMIT,
                after=discord.Object(id=after) if after is not None else discord.utils.MISSING,
            )
        ]
        return [(m.id, m.display_name) for m in members]

    # -------------------------------------------------------------------
    # Active-status refresh
    # -------------------------------------------------------------------
    @tasks.loop(minutes=30)
    async def activity_loop(self):
        """Mark members who left inactive and returning members active."""
        if self.bot.primary_guild is None:
            logger.warning("Primary guild %d not found — skipping refresh", self.bot.cfg.guild_id)
            return

        cooldown = timedelta(hours=self.bot.cfg.activity_refresh_hours)
        try:
            result = await refresh_active_users(
                self.bot.engine,
                self._fetch_roster_page,
                cooldown=cooldown,
                page_size=self.bot.cfg.page_size,
            )
            if result is not None:
                logger.info(
                    "Activity task complete: checked=%d deactivated=%d",
                    result["checked"], result["deactivated"],
                )
        except Exception:
            logger.exception("Activity task failed", extra={"task": "activity_refresh"})

    @activity_loop.before_loop
    async def _wait_activity(self):
        await self.bot.wait_until_ready()


async def setup(bot: ImmersionBot) -> None:
    await bot.add_cog(PeriodicTasks(bot))
