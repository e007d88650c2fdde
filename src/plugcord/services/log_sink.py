"""
Delivery of guild log entries to Discord channels.
"""

from __future__ import annotations

from typing import Any, Mapping

import discord

from plugcord.ui.log_embed import build_log_embed
from plugcord.util.logger import get_logger

logger = get_logger("log_sink")


class DiscordLogSink:
    """``log_sink`` service posting log entries as embeds.

    Delivery failures are logged and swallowed so that a misconfigured log
    channel never breaks the action being logged.
    """

    def __init__(self, client: discord.Client) -> None:
        self.client = client

    async def _channel(self, channel_id: int) -> Any:
        channel = self.client.get_channel(channel_id)
        if channel is not None:
            return channel
        try:
            return await self.client.fetch_channel(channel_id)
        except (discord.NotFound, discord.Forbidden):
            return None

    async def __call__(self, channel_id: Any, log_type: str, data: Mapping[str, Any]) -> bool:
        channel = await self._channel(int(channel_id))
        if channel is None:
            logger.warning("[LOG SINK] Log channel %s not found, dropping %s", channel_id, log_type)
            return False
        try:
            await channel.send(embed=build_log_embed(log_type, data))
        except discord.HTTPException as exc:
            logger.error("[LOG SINK] Failed to send %s to channel %s: %s", log_type, channel_id, exc)
            return False
        return True
