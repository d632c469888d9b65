"""
RagBot
======

A Discord bot that answers Ragnarok Online lookups (items, monsters, maps,
wiki, market) through slash commands, with an in-memory cache in front of
every external data source.
"""

import os
import sys
from pathlib import Path

def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. RAGBOT_HOME environment variable, if set.
    2. If running frozen (PyInstaller, Nuitka), the executable's directory.
    3. Otherwise the repository root two levels above this file's package.
    """
    if env_home := os.getenv("RAGBOT_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]

BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
import discord
from dotenv import load_dotenv

from ragbot.cache.api_cache import api_cache, configure_api_cache
from ragbot.configuration.app_configuration import app_config
from ragbot.util.logger import get_logger, handle_exception


logger = get_logger("main")


def load_environment() -> str:
    """Load environment variables and return the Discord bot token.

    Raises
    ------
    SystemExit
        If the required ``DISCORD_BOT_TOKEN`` variable is missing.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    """Construct the Discord intents RagBot needs (slash commands only)."""
    intents = discord.Intents.default()
    intents.guilds = True
    return intents


def load_cogs(discord_bot_instance: discord.Bot) -> None:
    """Register all cogs with the provided Discord bot instance."""
    from ragbot.bot.cogs import cache_cmds, events_listener

    events_listener.setup(discord_bot_instance)
    cache_cmds.setup(discord_bot_instance)

    logger.info("All cogs loaded successfully.")


def create_bot() -> discord.Bot:
    """Instantiate the Discord bot and register all cogs."""
    bot = discord.Bot(intents=build_intents())
    load_cogs(bot)
    return bot


def initialize_cache() -> None:
    """Apply the YAML cache settings and start the periodic expiry sweep.

    Must be called with the event loop running.
    """
    configure_api_cache(app_config.cache_settings)
    api_cache.start_cleanup()


async def start_bot(bot: discord.Bot, token: str) -> None:
    """Start the Discord bot and log around the connection lifecycle."""
    logger.info("Attempting to connect to Discord…")
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    finally:
        logger.info("Discord bot start routine finished.")


async def close_bot_instance(bot: discord.Bot | None) -> None:
    """Close the Discord bot instance if it is active."""
    if bot is None or bot.is_closed():
        return

    try:
        await bot.close()
        logger.info("Discord bot connection closed.")
    except Exception as exc:
        logger.exception("Error while closing Discord bot: %s", exc)


async def shutdown_runtime(bot: discord.Bot | None = None) -> None:
    """Gracefully stop the Discord bot and the API cache sweep."""
    await close_bot_instance(bot)

    try:
        await api_cache.close()
    except Exception as exc:
        logger.exception("Error during API cache shutdown: %s", exc)

    logger.info("Shutdown complete. Final cache stats: %s", api_cache.get_stats())


async def async_main() -> int:
    """Bootstrap the bot and the API cache, returning an exit code."""
    token = load_environment()

    try:
        initialize_cache()
    except Exception as exc:
        logger.critical("Failed to initialize API cache: %s", exc)
        return 1

    try:
        bot = create_bot()
    except Exception as exc:
        logger.critical("Failed to initialize Discord bot: %s", exc)
        await shutdown_runtime(None)
        return 1

    exit_code = 0
    try:
        await start_bot(bot, token)
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(bot)

    return exit_code


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process exit code."""
    logger.info("Starting RagBot…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except SystemExit as exit_exc:
        code = exit_exc.code
        if isinstance(code, int):
            return code
        if code is None:
            return 1
        try:
            return int(code)
        except (ValueError, TypeError):
            logger.warning("SystemExit.code is not an int (%r); defaulting to 1", code)
            return 1
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the bot: %s", exc)
        return 1


if __name__ == "__main__":
    sys.excepthook = handle_exception
    sys.exit(main())
