"""
Identity lookups over the py-cord client.
"""

from __future__ import annotations

from typing import Any, Optional

import discord

from plugcord.util.logger import get_logger

logger = get_logger("identity")


class DiscordIdentityResolver:
    """Resolves users and members, preferring the client cache over API calls.

    Both lookups return ``None`` when the user or member does not exist.
    """

    def __init__(self, client: discord.Client) -> None:
        self.client = client

    async def resolve_user(self, user_id: Any) -> Optional[discord.User]:
        user = self.client.get_user(int(user_id))
        if user is not None:
            return user
        try:
            return await self.client.fetch_user(int(user_id))
        except discord.NotFound:
            return None

    async def resolve_member(self, guild_id: Any, user_id: Any) -> Optional[discord.Member]:
        guild = self.client.get_guild(int(guild_id))
        if guild is None:
            logger.debug("[IDENTITY] Guild %s is not cached, cannot resolve member %s", guild_id, user_id)
            return None
        member = guild.get_member(int(user_id))
        if member is not None:
            return member
        try:
            return await guild.fetch_member(int(user_id))
        except discord.NotFound:
            return None
