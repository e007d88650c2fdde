"""
Logs plugin: routes guild events to the configured log channels.

Each log channel lists the event types it accepts::

    channels:
      "1234567890":
        include: [CASE_CREATE, MEMBER_MUTE]
      "2345678901":
        exclude: [MOD_MENU_OPENED]

An empty ``include`` accepts every type. Delivery is delegated to the
``log_sink`` service, a callable ``(channel_id, log_type, data)`` that may be
async.
"""

from __future__ import annotations

import inspect
from typing import Any, Dict, List

from plugcord.datatypes.case_datatypes import Case
from plugcord.datatypes.discord_datatypes import ChannelID
from plugcord.plugins.builtin.cases import CasesPlugin
from plugcord.plugins.plugin import GuildPlugin
from plugcord.util.logger import get_logger

logger = get_logger("logs_plugin")


class LogsPlugin(GuildPlugin):
    name = "logs"
    dependencies = (CasesPlugin,)
    config_schema = {
        "type": "object",
        "properties": {
            "channels": {
                "type": "object",
                "default": {},
                "additionalProperties": {
                    "type": "object",
                    "properties": {
                        "include": {"type": "array", "items": {"type": "string"}, "default": []},
                        "exclude": {"type": "array", "items": {"type": "string"}, "default": []},
                    },
                    "additionalProperties": False,
                },
            },
        },
    }

    def before_load(self) -> None:
        self.cases = self.plugin_data.get_plugin(CasesPlugin)

    def channels_for(self, log_type: str) -> List[ChannelID]:
        """Log channels accepting ``log_type``."""
        targets = []
        for channel_id, rules in self.config.get()["channels"].items():
            include = rules.get("include") or []
            if include and log_type not in include:
                continue
            if log_type in (rules.get("exclude") or []):
                continue
            targets.append(ChannelID(channel_id))
        return targets

    async def log(self, log_type: str, data: Dict[str, Any]) -> List[ChannelID]:
        """Send one log entry to every accepting channel and return them."""
        targets = self.channels_for(log_type)
        for channel_id in targets:
            await self.log_to_channel(channel_id, log_type, data)
        return targets

    async def log_to_channel(self, channel_id: Any, log_type: str, data: Dict[str, Any]) -> None:
        sink = self.services.extra.get("log_sink")
        if sink is None:
            logger.debug("[LOGS] No log sink configured, dropping %s for guild %s", log_type, self.guild_id)
            return
        result = sink(ChannelID(channel_id), log_type, data)
        if inspect.isawaitable(result):
            await result

    async def log_case(self, case: Case) -> List[ChannelID]:
        return await self.log("CASE_CREATE", {
            "case_number": case.case_number,
            "case_type": str(case.case_type),
            "user_id": str(case.user_id),
            "mod_id": str(case.mod_id) if case.mod_id is not None else None,
            "reason": case.reason,
        })

    async def log_case_number(self, case_number: int) -> List[ChannelID]:
        """Log an existing case; nothing is sent when the case does not exist."""
        case = await self.cases.get_case(case_number)
        if case is None:
            logger.warning("[LOGS] Case #%d not found in guild %s", case_number, self.guild_id)
            return []
        return await self.log_case(case)
