"""
immersion.bot.__main__ — Entry point for ``python -m immersion.bot``
=====================================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (identity, tier ladder, quiz catalog).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Create the ImmersionBot and hand it config + engine.
5. Start the bot (blocking — runs the asyncio event loop).
"""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv

from immersion.bot.core import ImmersionBot
from immersion.config import load_config
from immersion.database.engine import create_db_engine, init_db

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("immersion")


def main() -> None:
    """Bootstrap and run the immersion bot."""

    # 1. Environment variables (secrets).
    load_dotenv()

    token = os.getenv("DISCORD_TOKEN")
    if not token or token == "your-discord-bot-token-here":
        logger.critical(
            "DISCORD_TOKEN is not set.  "
            "Copy .env.example → .env and paste your bot token."
        )
        sys.exit(1)

    # 2. Configuration.
    cfg = load_config(os.getenv("IMMERSION_CONFIG", "config.yaml"))
    logger.info(
        "Config loaded — %s: %d tiers, %d gate quizzes",
        cfg.community_name, len(cfg.tiers), len(cfg.quizzes),
    )

    # 3. Database.
    engine = create_db_engine()
    init_db(engine)

    # 4. Bot.
    bot = ImmersionBot(cfg=cfg, engine=engine)

    # 5. Run (blocks until Ctrl+C or SIGTERM).
    logger.info("Starting immersion bot…")
    try:
        bot.run(token, log_handler=None)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()
