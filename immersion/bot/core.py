"""
immersion.bot.core — Bot Instance & Cog Loader
===============================================

Defines :class:`ImmersionBot`, a ``commands.Bot`` subclass that:

1. Stores the shared config (``bot.cfg``), DB engine (``bot.engine``) and
   HTTP client (``bot.http_client``) so every Cog can reach them.
2. Loads every Cog listed in :data:`EXTENSIONS`.
3. Syncs the slash-command tree on startup (guild-scoped for dev, global
   otherwise — controlled by the ``DEV_GUILD_ID`` env var).
4. Binds the role gateway (``bot.badges``) to the primary guild.
"""

from __future__ import annotations

import logging
import os

import discord
import httpx
from discord.ext import commands
from sqlalchemy import Engine

from immersion.config import ImmersionConfig
from immersion.services.badge_service import BadgeGateway, DiscordBadgeGateway

logger = logging.getLogger(__name__)

# Cog modules to load on startup.
EXTENSIONS: list[str] = [
    "immersion.bot.cogs.immersion",
    "immersion.bot.cogs.quizzes",
    "immersion.bot.cogs.membership",
    "immersion.bot.cogs.tasks",
]

HTTP_TIMEOUT_SECONDS = 10


class ImmersionBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state.

    Parameters
    ----------
    cfg:
        The parsed :class:`ImmersionConfig` from ``config.yaml``.
    engine:
        A SQLAlchemy :class:`Engine`.
    """

    def __init__(self, cfg: ImmersionConfig, engine: Engine) -> None:
        # MESSAGE_CONTENT — read Kotoba's game report embeds
        # GUILD_MEMBERS   — join/leave tracking, roster paging
        intents = discord.Intents.default()
        intents.message_content = True
        intents.members = True
        intents.presences = False

        super().__init__(
            command_prefix=cfg.bot_prefix,
            intents=intents,
            description=f"{cfg.community_name} immersion tracker",
        )

        self.cfg = cfg
        self.engine = engine
        self.http_client: httpx.AsyncClient | None = None

        # Bound to the primary guild in on_ready
        self.badges: BadgeGateway | None = None

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Open the HTTP client and load all Cog extensions.

        A Cog that fails to load is logged and skipped.
        """
        transport = httpx.AsyncHTTPTransport(retries=1)
        self.http_client = httpx.AsyncClient(
            timeout=HTTP_TIMEOUT_SECONDS, transport=transport
        )

        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        """Fired when the bot has connected and the cache is populated."""
        assert self.user is not None  # guaranteed after on_ready
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)

        dev_guild_id = os.getenv("DEV_GUILD_ID")
        if dev_guild_id:
            guild = discord.Object(id=int(dev_guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
        else:
            synced = await self.tree.sync()
            logger.info("Synced %d commands globally", len(synced))

        guild = self.primary_guild
        if guild is None:
            logger.warning(
                "Primary guild %d not found — role sync disabled", self.cfg.guild_id
            )
            return
        self.badges = DiscordBadgeGateway(guild)

    @property
    def primary_guild(self) -> discord.Guild | None:
        return self.get_guild(self.cfg.guild_id)

    async def close(self) -> None:
        """Graceful shutdown — close the HTTP client."""
        logger.info("Bot shutting down…")
        if self.http_client is not None:
            await self.http_client.aclose()
        await super().close()
