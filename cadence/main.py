"""
Cadence - Application Entry Point
=================================

Bootstrap
---------
- Config validation (the bot token and guild id are required here only)
- Progression settings
- Database initialization
- Bot lifecycle management
- Graceful shutdown
"""

import asyncio
import sys

from cadence.bot.client import CadenceBot
from cadence.core.config.config import Config
from cadence.core.config.errors import ConfigValidationError
from cadence.core.config.progression import load_progression_settings
from cadence.core.database.service import DatabaseService
from cadence.core.logging.logger import get_logger, shutdown_logging

logger = get_logger(__name__)


# ============================================================================
# Application Bootstrap
# ============================================================================

async def _startup() -> CadenceBot:
    """Initialize infrastructure before launching the bot."""
    logger.info("========== CADENCE INITIALIZATION START ==========")

    # Step 1: Validate configuration early
    Config.validate()
    if Config.DISCORD_GUILD_ID is None:
        raise ConfigValidationError("DISCORD_GUILD_ID is required to start the Discord bot")
    logger.info("✓ Configuration validated")

    # Step 2: Progression settings
    settings = load_progression_settings(Config.PROGRESSION_CONFIG_PATH)
    logger.info("✓ Progression settings loaded")

    # Step 3: Database
    try:
        await DatabaseService.initialize()
        await DatabaseService.create_all()
        logger.info("✓ Database service initialized")
    except Exception as exc:
        logger.critical(f"Database initialization failed: {exc}", exc_info=True)
        raise

    bot = CadenceBot(settings, Config.DISCORD_GUILD_ID)
    logger.info("========== INFRASTRUCTURE INITIALIZED SUCCESSFULLY ==========")
    return bot


# ============================================================================
# Application Shutdown
# ============================================================================

async def _shutdown(bot: CadenceBot | None) -> None:
    logger.info("========== CADENCE SHUTDOWN START ==========")

    if bot and not bot.is_closed():
        try:
            await bot.close()
            logger.info("✓ Bot closed")
        except Exception as exc:
            logger.error(f"Error while closing bot: {exc}", exc_info=True)

    try:
        await DatabaseService.shutdown()
        logger.info("✓ Database service shut down")
    except Exception as exc:
        logger.error(f"Database service shutdown error: {exc}", exc_info=True)

    logger.info("========== SHUTDOWN COMPLETE ==========")


# ============================================================================
# Application Entrypoint
# ============================================================================

async def main() -> None:
    bot: CadenceBot | None = None

    try:
        token = Config.require_discord_token()
        bot = await _startup()

        logger.info("Starting Cadence Discord bot...")
        await bot.start(token)

    except asyncio.CancelledError:
        logger.warning("Asyncio task cancellation received; shutting down gracefully.")
        raise

    except KeyboardInterrupt:
        logger.info("Manual shutdown via keyboard interrupt.")

    except Exception as exc:
        logger.critical(f"Fatal startup error: {exc}", exc_info=True)
        sys.exit(1)

    finally:
        await _shutdown(bot)
        shutdown_logging()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Bot manually stopped via keyboard interrupt.")
