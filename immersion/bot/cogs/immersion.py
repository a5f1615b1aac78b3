"""
immersion.bot.cogs.immersion — Logging, Stats & Leaderboard Commands
=====================================================================

Hybrid commands for members:
- /log — log characters read (negative values correct mistakes)
- /stats — total, rank, tier and what's needed next
- /leaderboard — active members by characters read
- /history — your log entries, newest first
- /roles — the tier ladder
- /quizzes — the gate quizzes and their required settings
- /usage, /how_to_track — how the bot works and how to count characters
- /edit_characters — moderators adjust another member's total
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from immersion.constants import (
    LOG_DELTA_MAX,
    LOG_DELTA_MIN,
    format_with_commas,
    page_count,
)
from immersion.database.engine import run_db
from immersion.engine.tiers import highest_eligible_tier, next_requirement
from immersion.services import ledger_service
from immersion.services.announcement_service import sync_and_announce
from immersion.services.badge_service import held_gates
from immersion.services.embeds import (
    build_history_embed,
    build_how_to_track_embed,
    build_ladder_embed,
    build_leaderboard_embed,
    build_quizzes_embed,
    build_stats_embed,
    build_usage_embed,
)

if TYPE_CHECKING:
    from immersion.bot.core import ImmersionBot
    from immersion.database.models import UserStatistics

logger = logging.getLogger(__name__)

CharacterDelta = commands.Range[int, LOG_DELTA_MIN, LOG_DELTA_MAX]


class Immersion(commands.Cog, name="Immersion"):
    """Character logging and progress commands."""

    def __init__(self, bot: ImmersionBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # /log
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="log",
        description="Log immersion characters (use a negative number to correct).",
    )
    @app_commands.describe(
        characters="The amount of characters read",
        notes="Extra information such as the title of the book or VN",
    )
    async def log(
        self, ctx: commands.Context, characters: CharacterDelta, *, notes: str | None = None
    ) -> None:
        stats = await self._record(ctx.author, characters, notes)
        await ctx.send(
            f"Logged {format_with_commas(characters)} characters. "
            f"Total characters logged: {format_with_commas(stats.total_characters)}."
        )
        await self._sync(ctx, ctx.author, stats.total_characters)

    # -------------------------------------------------------------------
    # /edit_characters
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="edit_characters",
        description="Add to or subtract from another member's total (moderators only).",
    )
    @commands.has_permissions(manage_roles=True)
    @app_commands.describe(
        member="The member whose total to change",
        characters="Characters to add (negative to subtract)",
        notes="Reason for the change",
    )
    async def edit_characters(
        self,
        ctx: commands.Context,
        member: discord.Member,
        characters: CharacterDelta,
        *,
        notes: str | None = None,
    ) -> None:
        stats = await self._record(member, characters, notes)
        logger.info(
            "%s edited %s's total by %d (now %d)",
            ctx.author.id, member.id, characters, stats.total_characters,
            extra={"user_id": member.id},
        )
        await ctx.send(
            f"Edited {member.mention}'s characters by {format_with_commas(characters)}. "
            f"New total: {format_with_commas(stats.total_characters)}."
        )
        await self._sync(ctx, member, stats.total_characters)

    async def _record(
        self, member: discord.abc.User, characters: int, notes: str | None
    ) -> UserStatistics:
        return await run_db(
            ledger_service.append,
            self.bot.engine,
            member.id,
            member.display_name,
            characters,
            datetime.now(UTC),
            notes,
        )

    async def _sync(
        self, ctx: commands.Context, member: discord.abc.User, total_characters: int
    ) -> None:
        try:
            await sync_and_announce(
                self.bot,
                user_id=member.id,
                total_characters=total_characters,
                avatar_url=member.display_avatar.url,
                fallback_channel=ctx.channel,
            )
        except discord.HTTPException:
            logger.exception(
                "Tier sync failed for %s", member.id,
                extra={"user_id": member.id},
            )

    # -------------------------------------------------------------------
    # /stats
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="stats",
        description="View your (or another member's) characters, rank and tier.",
    )
    @app_commands.describe(member="The member to look up (defaults to you)")
    async def stats(
        self, ctx: commands.Context, member: discord.Member | None = None
    ) -> None:
        target = member or ctx.author
        own_name = target.display_name if target.id == ctx.author.id else None
        stats = await run_db(ledger_service.statistics, self.bot.engine, target.id, own_name)
        rank = await run_db(ledger_service.rank, self.bot.engine, stats)

        gates: set[str] = set()
        if self.bot.badges is not None:
            gates = await held_gates(self.bot.badges, self.bot.cfg, target.id)
        ladder = self.bot.cfg.tiers
        current = highest_eligible_tier(ladder, stats.total_characters, gates)
        upcoming = next_requirement(ladder, stats.total_characters, gates)

        embed = build_stats_embed(
            target.display_name,
            target.display_avatar.url,
            stats,
            rank,
            current,
            upcoming,
            self.bot.cfg,
        )
        await ctx.send(embed=embed)

    # -------------------------------------------------------------------
    # /leaderboard
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="leaderboard",
        description="View the members who have read the most characters.",
    )
    @app_commands.describe(page="Page number (starts at 1)")
    async def leaderboard(self, ctx: commands.Context, page: int = 1) -> None:
        page_size = self.bot.cfg.page_size
        total = await run_db(ledger_service.total_active_users, self.bot.engine)
        pages = page_count(total, page_size)
        page_number = min(max(page, 1), pages) - 1

        rows = await run_db(
            ledger_service.leaderboard_page, self.bot.engine, page_number, page_size
        )
        await ctx.send(embed=build_leaderboard_embed(rows, page_number, pages, page_size))

    # -------------------------------------------------------------------
    # /history
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="history",
        description="View your logged entries, newest first.",
    )
    @app_commands.describe(page="Page number (starts at 1)")
    async def history(self, ctx: commands.Context, page: int = 1) -> None:
        page_size = self.bot.cfg.page_size
        user_id = ctx.author.id
        total = await run_db(ledger_service.total_log_entries, self.bot.engine, user_id)
        pages = page_count(total, page_size)
        page_number = min(max(page, 1), pages) - 1

        entries = await run_db(
            ledger_service.log_history_page, self.bot.engine, user_id, page_number, page_size
        )
        embed = build_history_embed(ctx.author.display_name, entries, page_number, pages)
        await ctx.send(embed=embed, ephemeral=True)

    # -------------------------------------------------------------------
    # /roles, /quizzes
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="roles",
        description="Show the tier roles and what it takes to reach them.",
    )
    async def roles(self, ctx: commands.Context) -> None:
        await ctx.send(embed=build_ladder_embed(self.bot.cfg))

    @commands.hybrid_command(  # type: ignore[arg-type]
        name="quizzes",
        description="Show the gate quizzes and the settings they must be played with.",
    )
    async def quizzes(self, ctx: commands.Context) -> None:
        await ctx.send(embed=build_quizzes_embed(self.bot.cfg))

    # -------------------------------------------------------------------
    # /usage, /how_to_track
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="usage",
        description="Explain how logging, tiers and quizzes work.",
    )
    async def usage(self, ctx: commands.Context) -> None:
        await ctx.send(embed=build_usage_embed(self.bot.cfg), ephemeral=True)

    @commands.hybrid_command(  # type: ignore[arg-type]
        name="how_to_track",
        description="Ways to count the characters you read.",
    )
    async def how_to_track(self, ctx: commands.Context) -> None:
        await ctx.send(embed=build_how_to_track_embed(), ephemeral=True)

    # -------------------------------------------------------------------
    # Error handling
    # -------------------------------------------------------------------
    async def cog_command_error(
        self, ctx: commands.Context, error: commands.CommandError
    ) -> None:
        if isinstance(error, commands.CheckFailure):
            await ctx.send(
                "\U0001f512 You need the Manage Roles permission to use this command.",
                ephemeral=True,
            )
        elif isinstance(error, commands.BadArgument):
            await ctx.send(f"⚠️ {error}", ephemeral=True)
        else:
            logger.error("Command %s failed", ctx.command, exc_info=error)


async def setup(bot: ImmersionBot) -> None:
    await bot.add_cog(Immersion(bot))
