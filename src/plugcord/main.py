"""
plugcord
========

A Discord bot whose features are guild plugins: each guild gets its own
effective plugin configuration (defaults plus level, channel and role
overrides) and plugins load in dependency order per guild.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. PLUGCORD_HOME environment variable, if set.
    2. If running in a frozen/compiled context, use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("PLUGCORD_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
import discord
from dotenv import load_dotenv

from plugcord.configuration.app_configuration import app_config
from plugcord.database.cases import CaseStore
from plugcord.database.db_connection import db_connection
from plugcord.plugins.builtin import BUILTIN_PLUGINS
from plugcord.plugins.lifecycle import GuildPluginManager
from plugcord.plugins.registry import PluginRegistry
from plugcord.services.contracts import PluginServices
from plugcord.services.identity import DiscordIdentityResolver
from plugcord.services.log_sink import DiscordLogSink
from plugcord.util.logger import get_logger, handle_exception

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
    intents = discord.Intents.default()
    intents.guilds = True
    intents.members = True
    return intents


def build_registry() -> PluginRegistry:
    """Register and seal the built-in plugins."""
    registry = PluginRegistry()
    registry.register_all(BUILTIN_PLUGINS)
    registry.seal()
    return registry


def create_bot(manager_factory) -> tuple:
    """Instantiate the Discord bot, its plugin manager and cogs."""
    from plugcord.bot import events_listener

    bot = discord.Bot(intents=build_intents())
    manager = manager_factory(bot)
    events_listener.setup(bot, manager)
    logger.info("All cogs loaded successfully.")
    return bot, manager


async def shutdown_runtime(bot: discord.Bot | None, manager: GuildPluginManager | None) -> None:
    """Unload every guild, close the bot and the case store."""
    if manager is not None:
        try:
            await manager.shutdown()
        except Exception as exc:
            logger.exception("Error during plugin shutdown: %s", exc)

    if bot is not None and not bot.is_closed():
        await bot.close()

    await db_connection.close()
    logger.info("Shutdown complete.")


async def async_main() -> int:
    """Bootstrap the case store, plugins and bot, returning an exit code."""
    token = load_environment()

    try:
        logger.info("Opening case store at %s", app_config.database_path)
        await db_connection.open(app_config.database_path)
        case_store = CaseStore(db_connection)
        await case_store.initialize()
    except Exception as exc:
        logger.critical("Failed to initialize database: %s", exc)
        return 1

    try:
        registry = build_registry()
    except Exception as exc:
        logger.critical("Failed to register plugins: %s", exc)
        await db_connection.close()
        return 1

    def manager_factory(bot: discord.Bot) -> GuildPluginManager:
        services = PluginServices(
            case_store=case_store,
            identity=DiscordIdentityResolver(bot),
            extra={"log_sink": DiscordLogSink(bot)},
        )
        return GuildPluginManager(registry, config=app_config, services=services)

    bot, manager = create_bot(manager_factory)

    exit_code = 0
    logger.info("Attempting to connect to Discord…")
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(bot, manager)

    return exit_code


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process exit code."""
    sys.excepthook = handle_exception
    logger.info("Starting plugcord…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0


if __name__ == "__main__":
    sys.exit(main())
