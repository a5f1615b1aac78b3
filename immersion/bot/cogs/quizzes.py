"""
immersion.bot.cogs.quizzes — Kotoba Game Report Listener
=========================================================

Hands every guild message to :func:`immersion.services.quiz_service.handle_message`,
which ignores anything not posted by the trusted quiz bot.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from immersion.services.quiz_service import handle_message

if TYPE_CHECKING:
    from immersion.bot.core import ImmersionBot

logger = logging.getLogger(__name__)


class Quizzes(commands.Cog, name="Quizzes"):
    """Grants gate roles for passed Kotoba quizzes."""

    def __init__(self, bot: ImmersionBot) -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if message.guild is None or message.author.id != self.bot.cfg.quiz_bot_id:
            return
        try:
            await handle_message(self.bot, message)
        except Exception:
            logger.exception(
                "Error processing quiz message %s", message.id,
                extra={"message_id": message.id},
            )


async def setup(bot: ImmersionBot) -> None:
    await bot.add_cog(Quizzes(bot))
