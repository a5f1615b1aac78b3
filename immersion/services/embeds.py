"""
immersion.services.embeds — Discord embed builders
===================================================

All embed construction lives here so the cogs and announcement service
only need to supply data — no layout concerns.
"""

from __future__ import annotations

from collections.abc import Sequence

import discord

from immersion.config import ImmersionConfig, TierRequirement
from immersion.constants import (
    EMBED_DESCRIPTION_LIMIT,
    HISTORY_NOTE_MAX_LENGTH,
    RANK_BADGES,
    format_with_commas,
)
from immersion.database.models import LogEntry, UserStatistics


def build_level_up_embed(
    user_id: int,
    avatar_url: str,
    tier: TierRequirement,
    total_characters: int,
) -> discord.Embed:
    """Build a tier-up celebration embed with @mention."""
    embed = discord.Embed(
        title="\U0001f389 New Tier!",
        description=(
            f"<@{user_id}> reached **{tier.name}** with "
            f"{format_with_commas(total_characters)} characters read!"
        ),
        color=discord.Color.gold(),
    )
    if avatar_url:
        embed.set_thumbnail(url=avatar_url)
    return embed


def build_stats_embed(
    display_name: str,
    avatar_url: str,
    stats: UserStatistics,
    rank: int,
    current: TierRequirement | None,
    upcoming: TierRequirement | None,
    cfg: ImmersionConfig,
) -> discord.Embed:
    """Build the /stats card: total, rank, tier, and what's next."""
    embed = discord.Embed(
        title=f"\U0001f4d6 {display_name}",
        color=discord.Color.blurple(),
    )
    embed.add_field(
        name="Characters", value=format_with_commas(stats.total_characters), inline=True
    )
    embed.add_field(name="Rank", value=f"#{rank}", inline=True)
    embed.add_field(
        name="Tier", value=current.name if current else "Unranked", inline=True
    )
    embed.add_field(name="Next", value=describe_requirement(stats, upcoming, cfg), inline=False)
    if avatar_url:
        embed.set_thumbnail(url=avatar_url)
    return embed


def describe_requirement(
    stats: UserStatistics,
    upcoming: TierRequirement | None,
    cfg: ImmersionConfig,
) -> str:
    """Human-readable progress line for the next rung."""
    if upcoming is None:
        return "You've reached the top of the ladder!"
    missing = upcoming.threshold - stats.total_characters
    if missing > 0:
        return (
            f"{format_with_commas(missing)} more characters for **{upcoming.name}**"
        )
    quiz = cfg.quiz(upcoming.required_gate) if upcoming.required_gate else None
    quiz_name = quiz.name if quiz else upcoming.required_gate
    return f"Pass the **{quiz_name}** quiz to unlock **{upcoming.name}**"


def build_leaderboard_embed(
    rows: Sequence[UserStatistics],
    page_number: int,
    total_pages: int,
    page_size: int,
) -> discord.Embed:
    """Build one page of the character leaderboard."""
    lines: list[str] = []
    for i, row in enumerate(rows):
        position = page_number * page_size + i
        badge = RANK_BADGES[position] if position < len(RANK_BADGES) else f"`#{position + 1}`"
        lines.append(
            f"{badge} **{row.display_name or row.user_id}** — "
            f"{format_with_commas(row.total_characters)}"
        )

    embed = discord.Embed(
        title="\U0001f3c6 Leaderboard",
        description="\n".join(lines) or "Nobody has logged any characters yet.",
        color=discord.Color.gold(),
    )
    embed.set_footer(text=f"Page {page_number + 1}/{total_pages}")
    return embed


def build_history_embed(
    display_name: str,
    entries: Sequence[LogEntry],
    page_number: int,
    total_pages: int,
) -> discord.Embed:
    """Build one page of a member's log history.

    Long notes are shortened and entries that would push the description
    past Discord's limit are dropped from the end of the page.
    """
    lines: list[str] = []
    for entry in entries:
        stamp = discord.utils.format_dt(entry.timestamp, style="d")
        sign = "+" if entry.delta >= 0 else ""
        line = f"{stamp} **{sign}{format_with_commas(entry.delta)}**"
        if entry.notes:
            line += f" — {_shorten(entry.notes, HISTORY_NOTE_MAX_LENGTH)}"
        lines.append(line)

    embed = discord.Embed(
        title=f"\U0001f4dc {display_name}'s log",
        description=_join_within_limit(lines) or "No log entries yet.",
        color=discord.Color.blurple(),
    )
    embed.set_footer(text=f"Page {page_number + 1}/{total_pages}")
    return embed


def _shorten(text: str, limit: int) -> str:
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"


def _join_within_limit(lines: Sequence[str], limit: int = EMBED_DESCRIPTION_LIMIT) -> str:
    kept: list[str] = []
    size = 0
    for line in lines:
        added = len(line) + (1 if kept else 0)
        if size + added > limit:
            break
        kept.append(line)
        size += added
    return "\n".join(kept)


def build_ladder_embed(cfg: ImmersionConfig) -> discord.Embed:
    """List every tier with its threshold and gate."""
    lines = []
    for tier in cfg.tiers:
        line = f"<@&{tier.role_id}> — {format_with_commas(tier.threshold)} characters"
        if tier.required_gate:
            line += f" + **{cfg.quiz(tier.required_gate).name}** quiz"
        lines.append(line)
    return discord.Embed(
        title="\U0001f451 Tier roles",
        description="\n".join(lines),
        color=discord.Color.purple(),
    )


def build_quizzes_embed(cfg: ImmersionConfig) -> discord.Embed:
    """List every gate quiz with the exact settings it must be played with."""
    embed = discord.Embed(
        title="\U0001f4dd Gate quizzes",
        description=(
            f"Play solo with font `{cfg.quiz_font}` and a "
            f"{cfg.quiz_answer_time_limit_ms // 1000}s answer time limit."
        ),
        color=discord.Color.teal(),
    )
    for quiz in cfg.quizzes:
        embed.add_field(
            name=quiz.name,
            value=(
                f"Decks: `{'+'.join(quiz.sorted_deck_ids)}`\n"
                f"Score limit: {quiz.score_limit} · "
                f"Max missed: {quiz.max_missed_questions}\n"
                f"Role: <@&{quiz.role_id}>"
            ),
            inline=False,
        )
    return embed


def build_usage_embed(cfg: ImmersionConfig) -> discord.Embed:
    """Explain how logging, tiers and gate quizzes fit together."""
    embed = discord.Embed(
        title=f"\u2753 Using the {cfg.community_name} bot",
        description=(
            "Log what you read with `/log`, and the bot keeps a running total. "
            "Your total unlocks tier roles as it grows; some tiers also need "
            "a gate quiz to be passed first."
        ),
        color=discord.Color.blurple(),
    )
    embed.add_field(
        name="Logging",
        value=(
            "`/log <characters> [notes]` adds to your total.\n"
            "Made a mistake? Log a negative number to correct it.\n"
            "`/history` shows your entries, newest first."
        ),
        inline=False,
    )
    embed.add_field(
        name="Progress",
        value=(
            "`/stats` shows your total, rank, tier and what's next.\n"
            "`/leaderboard` ranks everyone in the server.\n"
            "`/roles` lists every tier and its requirements."
        ),
        inline=False,
    )
    embed.add_field(
        name="Gate quizzes",
        value=(
            "`/quizzes` lists the quizzes and the exact settings to use. "
            "Play one solo with Kotoba and the role is granted as soon as "
            "the game report shows a pass."
        ),
        inline=False,
    )
    embed.set_footer(text="See /how_to_track for counting characters.")
    return embed


def build_how_to_track_embed() -> discord.Embed:
    """Point members at the usual ways of counting characters."""
    embed = discord.Embed(
        title="\U0001f4cf How to track characters",
        description=(
            "Log the number of Japanese characters you read.  "
            "Round to what your tool reports; exact counts aren't required."
        ),
        color=discord.Color.teal(),
    )
    embed.add_field(
        name="Visual novels",
        value="Use a texthooker page: it counts every line the game sends to the clipboard.",
        inline=False,
    )
    embed.add_field(
        name="Books and manga",
        value=(
            "E-book readers such as ttu Ebook Reader show characters read per session. "
            "For manga, Mokuro pages can be counted the same way."
        ),
        inline=False,
    )
    embed.add_field(
        name="Everything else",
        value="Paste what you read into any character counter and log the total.",
        inline=False,
    )
    return embed
