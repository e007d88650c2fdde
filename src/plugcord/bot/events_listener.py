"""Event listener Cog for plugcord.

Ties guild plugin activation to the bot's guild lifecycle: every guild the bot
is in is activated once the bot is ready, joined guilds are activated and
removed guilds are deactivated.
"""

import discord
from discord.ext import commands

from plugcord.errors import PlugcordError
from plugcord.plugins.lifecycle import GuildPluginManager
from plugcord.util.logger import get_logger

logger = get_logger("events_listener")


class EventsListenerCog(commands.Cog):
    """Cog activating and deactivating guild plugins."""

    def __init__(self, discord_bot_instance, manager: GuildPluginManager):
        self.bot = discord_bot_instance
        self.manager = manager
        logger.info("[EVENTS LISTENER] Events listener cog loaded")

    @commands.Cog.listener(name='on_ready')
    async def on_ready(self):
        """Activate plugins for every guild the bot is in."""
        if self.bot.user:
            logger.info("[EVENTS LISTENER] Bot connected as %s (ID: %s)", self.bot.user, self.bot.user.id)
        else:
            logger.warning("[EVENTS LISTENER] Bot partially connected, but user information not yet available.")

        guild_ids = [guild.id for guild in self.bot.guilds if not self.manager.is_active(guild.id)]
        if not guild_ids:
            return
        results = await self.manager.activate_many(guild_ids)
        failed = sum(1 for result in results.values() if isinstance(result, BaseException))
        logger.info("[EVENTS LISTENER] Activated %d of %d guilds", len(results) - failed, len(results))

    @commands.Cog.listener(name='on_guild_join')
    async def on_guild_join(self, guild: discord.Guild):
        logger.debug("[EVENTS LISTENER] Bot joined guild: %s (ID: %s)", guild.name, guild.id)
        try:
            await self.manager.activate(guild.id)
        except PlugcordError as exc:
            logger.error("[EVENTS LISTENER] Failed to activate guild %s (ID: %s): %s", guild.name, guild.id, exc)

    @commands.Cog.listener(name='on_guild_remove')
    async def on_guild_remove(self, guild: discord.Guild):
        logger.debug("[EVENTS LISTENER] Bot removed from guild: %s (ID: %s)", guild.name, guild.id)
        if not await self.manager.deactivate(guild.id):
            logger.debug("[EVENTS LISTENER] Guild %s was not active", guild.id)


def setup(discord_bot_instance, manager: GuildPluginManager):
    """
    Register the EventsListenerCog with the bot.

    Parameters
    ----------
    discord_bot_instance:
        The Discord bot instance to add this cog to.
    manager:
        Plugin manager owning guild plugin state.
    """
    discord_bot_instance.add_cog(EventsListenerCog(discord_bot_instance, manager))
