"""
immersion.services.announcement_service — Tier-Up Celebrations
================================================================

Resolves where celebrations go and sends them.  Only promotions are
announced: :attr:`TierChange.announce` is already False for demotions and
lateral role corrections.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from discord.abc import Messageable

from immersion.services.badge_service import sync_tier
from immersion.services.embeds import build_level_up_embed

if TYPE_CHECKING:
    import discord

    from immersion.bot.core import ImmersionBot
    from immersion.engine.tiers import TierChange

logger = logging.getLogger(__name__)


def resolve_announce_channels(
    bot: ImmersionBot,
    fallback_channel: Messageable | None = None,
) -> list[Messageable]:
    """Configured congratulate channels, or *fallback_channel* if none resolve."""
    channels: list[Messageable] = []
    for ch_id in bot.cfg.congratulate_channel_ids:
        ch = bot.get_channel(ch_id)
        if ch is not None and isinstance(ch, Messageable):
            channels.append(ch)
    if not channels and isinstance(fallback_channel, Messageable):
        channels.append(fallback_channel)
    return channels


async def _send_embed(channel: Messageable, embed: discord.Embed) -> None:
    try:
        await channel.send(embed=embed)
    except Exception:
        logger.exception(
            "Failed to send announcement embed to channel %s",
            getattr(channel, "id", "?"),
        )


async def announce_tier_change(
    bot: ImmersionBot,
    *,
    change: TierChange,
    user_id: int,
    avatar_url: str,
    total_characters: int,
    fallback_channel: Messageable | None = None,
) -> bool:
    """Celebrate a promotion.  Returns True if an announcement was sent."""
    if not change.announce or change.grant is None:
        return False

    tier = bot.cfg.tier(change.grant)
    embed = build_level_up_embed(user_id, avatar_url, tier, total_characters)
    targets = resolve_announce_channels(bot, fallback_channel)
    for channel in targets:
        await _send_embed(channel, embed)
    return bool(targets)


async def sync_and_announce(
    bot: ImmersionBot,
    *,
    user_id: int,
    total_characters: int,
    avatar_url: str = "",
    fallback_channel: Messageable | None = None,
    extra_gates: Iterable[str] = (),
) -> TierChange | None:
    """Bring the member's tier roles in line, then celebrate a promotion.

    Returns None when no role gateway is bound yet (before on_ready).
    """
    if bot.badges is None:
        logger.warning("Role gateway not ready; skipping tier sync for %d", user_id)
        return None
    change = await sync_tier(
        bot.badges, bot.cfg, user_id, total_characters, extra_gates=extra_gates
    )
    await announce_tier_change(
        bot,
        change=change,
        user_id=user_id,
        avatar_url=avatar_url,
        total_characters=total_characters,
        fallback_channel=fallback_channel,
    )
    return change
