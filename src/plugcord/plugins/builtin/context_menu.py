"""
Context menu plugin: the moderator menu opened on a user.

Permissions are level based. By default nobody may use the menu; members at
level 50 or above may use it and open the mod menu.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple

from plugcord.database.cases import GuildCases
from plugcord.datatypes.case_datatypes import Case
from plugcord.plugins.builtin.cases import CasesPlugin
from plugcord.plugins.builtin.logs import LogsPlugin
from plugcord.plugins.builtin.mutes import MutesPlugin
from plugcord.plugins.builtin.utility import UserInfo, UtilityPlugin
from plugcord.plugins.plugin import GuildPlugin
from plugcord.util.logger import get_logger

logger = get_logger("context_menu_plugin")


@dataclass(frozen=True)
class ModMenu:
    """Data shown in the mod menu for one target user."""

    target: UserInfo
    cases: Tuple[Case, ...]
    mute_count: int
    can_view_mutes: bool


class ContextMenuPlugin(GuildPlugin):
    name = "context_menu"
    dependencies = (CasesPlugin, MutesPlugin, LogsPlugin, UtilityPlugin)
    config_schema = {
        "type": "object",
        "properties": {
            "can_use": {"type": "boolean", "default": False},
            "can_open_mod_menu": {"type": "boolean", "default": False},
            "log_channel": {"type": ["string", "null"], "default": None},
        },
    }
    default_options = {
        "config": {
            "can_use": False,
            "can_open_mod_menu": False,
            "log_channel": None,
        },
        "overrides": [
            {"level": ">=50", "config": {"can_use": True, "can_open_mod_menu": True}},
        ],
    }

    cases: GuildCases

    def before_load(self) -> None:
        self.cases = self.services.require("case_store").for_guild(self.guild_id)

    def can_use(self, member: Any, channel: Any = None) -> bool:
        return bool(self.config.for_member(member, channel)["can_use"])

    def can_open_mod_menu(self, member: Any, channel: Any = None) -> bool:
        config = self.config.for_member(member, channel)
        return bool(config["can_use"] and config["can_open_mod_menu"])

    async def build_mod_menu(self, member: Any, target_user_id: Any, channel: Any = None) -> Optional[ModMenu]:
        """Collect the mod menu of ``target_user_id`` for ``member``.

        Returns ``None`` when ``member`` may not open the menu or the target
        user does not exist.
        """
        if not self.can_open_mod_menu(member, channel):
            logger.debug("[CONTEXT MENU] %s may not open the mod menu in guild %s", member.id, self.guild_id)
            return None

        utility = self.plugin_data.get_plugin(UtilityPlugin)
        target = await utility.get_user_info(target_user_id, compact=True, requester_id=member.id)
        if target is None:
            return None

        cases = [case for case in await self.cases.get_cases_for_user(target.user_id) if not case.is_hidden]
        cases.sort(key=lambda case: case.created_at, reverse=True)

        mutes = self.plugin_data.get_plugin(MutesPlugin)
        can_view_mutes = bool(mutes.config.for_member(member, channel)["can_view_list"])
        mute_count = len(await mutes.get_mute_history(target.user_id)) if can_view_mutes else 0

        log_channel = self.config.get()["log_channel"]
        if log_channel is not None:
            logs = self.plugin_data.get_plugin(LogsPlugin)
            await logs.log_to_channel(log_channel, "MOD_MENU_OPENED", {
                "mod_id": str(member.id),
                "user_id": str(target.user_id),
            })

        return ModMenu(target=target, cases=tuple(cases), mute_count=mute_count, can_view_mutes=can_view_mutes)
