"""
Cases plugin: guild-scoped access to moderation cases.
"""

from __future__ import annotations

from typing import Any, List, Optional

from plugcord.database.cases import GuildCases
from plugcord.datatypes.case_datatypes import Case, CaseType
from plugcord.plugins.plugin import GuildPlugin
from plugcord.util.logger import get_logger

logger = get_logger("cases_plugin")


class CasesPlugin(GuildPlugin):
    name = "cases"

    cases: GuildCases

    def before_load(self) -> None:
        self.cases = self.services.require("case_store").for_guild(self.guild_id)

    async def get_cases_for_user(self, user_id: Any, *, include_hidden: bool = False) -> List[Case]:
        """Cases of ``user_id`` in this guild, oldest first."""
        cases = await self.cases.get_cases_for_user(user_id)
        if include_hidden:
            return list(cases)
        return [case for case in cases if not case.is_hidden]

    async def create_case(
        self,
        user_id: Any,
        case_type: CaseType,
        *,
        mod_id: Any = None,
        reason: str = "",
        is_hidden: bool = False,
    ) -> Case:
        case = await self.cases.create_case(user_id, case_type, mod_id=mod_id, reason=reason, is_hidden=is_hidden)
        logger.info("[CASES] Case #%d (%s) created for %s in guild %s", case.case_number, case_type, user_id, self.guild_id)
        return case

    async def get_case(self, case_number: int) -> Optional[Case]:
        return await self.cases.get_by_case_number(case_number)
