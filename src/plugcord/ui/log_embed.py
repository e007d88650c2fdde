"""
Embed creation for guild log channels.
"""

import datetime
from typing import Any, Mapping

import discord

# Emoji mapping for log types
LOG_EMOJIS = {
    "CASE_CREATE": "📁",
    "MEMBER_MUTE": "🔇",
    "MEMBER_UNMUTE": "🔊",
    "MOD_MENU_OPENED": "🛠️",
}

# Color mapping for log types
LOG_COLORS = {
    "CASE_CREATE": discord.Color.gold(),
    "MEMBER_MUTE": discord.Color.orange(),
    "MEMBER_UNMUTE": discord.Color.green(),
    "MOD_MENU_OPENED": discord.Color.blue(),
}

MENTION_FIELDS = ("user_id", "mod_id")


def _field_name(key: str) -> str:
    return key.removesuffix("_id").replace("_", " ").title()


def build_log_embed(log_type: str, data: Mapping[str, Any]) -> discord.Embed:
    """
    Create the embed of one log entry.

    Args:
        log_type: Log type, e.g. ``CASE_CREATE``.
        data: Fields of the entry; ``user_id`` and ``mod_id`` render as mentions
            and empty values are skipped.

    Returns:
        discord.Embed: Embed titled after the log type with one field per entry.
    """
    emoji = LOG_EMOJIS.get(log_type, "📝")
    embed = discord.Embed(
        title=f"{emoji} {log_type.replace('_', ' ').title()}",
        color=LOG_COLORS.get(log_type, discord.Color.light_grey()),
        timestamp=datetime.datetime.now(datetime.timezone.utc),
    )

    for key, value in data.items():
        if value is None or value == "":
            continue
        if key in MENTION_FIELDS:
            value = f"<@{value}>"
        embed.add_field(name=_field_name(key), value=str(value), inline=key != "reason")

    return embed
