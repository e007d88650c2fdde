"""
Time and date plugin: the guild's timezone and date formats.

Implements the time formatter contract used by other plugins: timestamps are
converted to the guild's (or a member's) timezone, then rendered with one of
the guild's named ``strftime`` patterns.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from plugcord.datatypes.discord_datatypes import UserID
from plugcord.plugins.plugin import GuildPlugin


def _as_utc(timestamp: datetime) -> datetime:
    # Naive timestamps are taken to be UTC.
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp


def load_timezone(name: str) -> ZoneInfo:
    """Return the named timezone, raising ``ValueError`` for unknown names."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone '{name}'") from exc


class TimeAndDatePlugin(GuildPlugin):
    name = "time_and_date"
    config_schema = {
        "type": "object",
        "properties": {
            "timezone": {"type": "string", "default": "Etc/UTC"},
            "date_formats": {
                "type": "object",
                "properties": {
                    "date": {"type": "string", "default": "%Y-%m-%d"},
                    "time": {"type": "string", "default": "%H:%M:%S"},
                    "pretty_datetime": {"type": "string", "default": "%b %d %Y, %H:%M:%S %Z"},
                },
            },
            "can_set_timezone": {"type": "boolean", "default": False},
        },
    }
    default_options = {
        "overrides": [
            {"level": ">=50", "config": {"can_set_timezone": True}},
        ],
    }

    def before_load(self) -> None:
        self.guild_tz = load_timezone(self.config.get()["timezone"])
        self.member_timezones: Dict[UserID, ZoneInfo] = {}

    def get_date_format(self, name: str) -> str:
        formats = self.config.get()["date_formats"]
        if name not in formats:
            raise KeyError(f"Unknown date format '{name}'")
        return formats[name]

    def convert_to_guild_time(self, timestamp: datetime) -> datetime:
        return _as_utc(timestamp).astimezone(self.guild_tz)

    def set_member_timezone(self, member_id: Any, name: Optional[str]) -> None:
        """Set (or with ``None`` clear) a member's personal timezone."""
        if name is None:
            self.member_timezones.pop(UserID(member_id), None)
            return
        self.member_timezones[UserID(member_id)] = load_timezone(name)

    def member_timezone(self, member_id: Any) -> ZoneInfo:
        return self.member_timezones.get(UserID(member_id), self.guild_tz)

    def in_member_tz(self, member_id: Any, timestamp: datetime) -> datetime:
        return _as_utc(timestamp).astimezone(self.member_timezone(member_id))

    def format(self, localized: datetime, pattern: str) -> str:
        return localized.strftime(pattern)

    def format_named(self, localized: datetime, format_name: str) -> str:
        return self.format(localized, self.get_date_format(format_name))
