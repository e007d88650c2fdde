"""
Mutes plugin: mute bookkeeping on top of cases and logs.
"""

from __future__ import annotations

from typing import Any, List

from plugcord.datatypes.case_datatypes import Case, CaseType
from plugcord.plugins.builtin.cases import CasesPlugin
from plugcord.plugins.builtin.logs import LogsPlugin
from plugcord.plugins.plugin import GuildPlugin

MUTE_CASE_TYPES = (CaseType.MUTE, CaseType.UNMUTE)


class MutesPlugin(GuildPlugin):
    name = "mutes"
    dependencies = (CasesPlugin, LogsPlugin)
    config_schema = {
        "type": "object",
        "properties": {
            "mute_role": {"type": ["string", "null"], "default": None},
            "can_view_list": {"type": "boolean", "default": False},
        },
    }
    default_options = {
        "overrides": [
            {"level": ">=50", "config": {"can_view_list": True}},
        ],
    }

    def before_load(self) -> None:
        self.cases = self.plugin_data.get_plugin(CasesPlugin)
        self.logs = self.plugin_data.get_plugin(LogsPlugin)

    @property
    def mute_role(self) -> str | None:
        return self.config.get()["mute_role"]

    async def get_mute_history(self, user_id: Any) -> List[Case]:
        """Visible mute and unmute cases of ``user_id``, oldest first."""
        cases = await self.cases.get_cases_for_user(user_id)
        return [case for case in cases if case.case_type in MUTE_CASE_TYPES]

    async def record_mute(self, user_id: Any, *, mod_id: Any = None, reason: str = "") -> Case:
        """Create a mute case and log it."""
        case = await self.cases.create_case(user_id, CaseType.MUTE, mod_id=mod_id, reason=reason)
        await self.logs.log_case(case)
        return case

    async def record_unmute(self, user_id: Any, *, mod_id: Any = None, reason: str = "") -> Case:
        case = await self.cases.create_case(user_id, CaseType.UNMUTE, mod_id=mod_id, reason=reason)
        await self.logs.log_case(case)
        return case
