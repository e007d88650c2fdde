"""
Utility plugin: user information summaries.

:meth:`UtilityPlugin.get_user_info` gathers what a moderator sees about a
user: account and membership times in the guild's (or the requester's)
timezone, the member's roles, and a summary of visible moderation cases.
Rendering the summary is left to the caller. :meth:`UtilityPlugin.userinfo_for`
adds the level-based ``can_userinfo`` check for a requesting member.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple

from plugcord.database.cases import GuildCases
from plugcord.datatypes.case_datatypes import Case, CaseType
from plugcord.datatypes.discord_datatypes import ChannelID, RoleID, UserID
from plugcord.plugins.builtin.time_and_date import TimeAndDatePlugin
from plugcord.plugins.plugin import GuildPlugin
from plugcord.util.logger import get_logger

MAX_ROLES_TO_DISPLAY = 15
RECENT_CASES_TO_DISPLAY = 3

logger = get_logger("utility_plugin")


@dataclass(frozen=True)
class CaseSummary:
    case_number: int
    case_type: CaseType
    log_location: Optional[Tuple[ChannelID, int]] = None

    @classmethod
    def from_case(cls, case: Case) -> "CaseSummary":
        return cls(case.case_number, case.case_type, case.log_message_location())

    def __str__(self) -> str:
        return f"{self.case_type} (#{self.case_number})"


@dataclass(frozen=True)
class UserInfo:
    """Summary of one user as seen from one guild.

    ``created_at`` and ``joined_at`` are pre-formatted with the guild's
    ``pretty_datetime`` format. ``roles`` holds at most
    ``MAX_ROLES_TO_DISPLAY`` roles, highest first; ``hidden_role_count`` counts
    the rest. Compact summaries carry no roles or cases.
    """

    user_id: UserID
    username: str
    is_bot: bool
    on_server: bool
    created_at: str
    joined_at: Optional[str] = None
    display_name: Optional[str] = None
    nickname: Optional[str] = None
    roles: Tuple[RoleID, ...] = ()
    hidden_role_count: int = 0
    total_cases: int = 0
    recent_cases: Tuple[CaseSummary, ...] = ()
    compact: bool = False

    @property
    def kind(self) -> str:
        return "Bot" if self.is_bot else "User"

    @property
    def case_summary_label(self) -> str:
        return f"Last {RECENT_CASES_TO_DISPLAY} cases" if self.total_cases > RECENT_CASES_TO_DISPLAY else "Summary"


class UtilityPlugin(GuildPlugin):
    name = "utility"
    dependencies = (TimeAndDatePlugin,)
    config_schema = {
        "type": "object",
        "properties": {
            "can_userinfo": {"type": "boolean", "default": False},
            "userinfo_show_cases": {"type": "boolean", "default": True},
        },
    }
    default_options = {
        "overrides": [
            {"level": ">=50", "config": {"can_userinfo": True}},
        ],
    }

    cases: GuildCases

    def before_load(self) -> None:
        self.time_and_date = self.plugin_data.get_plugin(TimeAndDatePlugin)
        self.cases = self.services.require("case_store").for_guild(self.guild_id)

    def _pretty(self, timestamp: Any, requester_id: Any) -> str:
        if requester_id is not None:
            localized = self.time_and_date.in_member_tz(requester_id, timestamp)
        else:
            localized = self.time_and_date.convert_to_guild_time(timestamp)
        return self.time_and_date.format(localized, self.time_and_date.get_date_format("pretty_datetime"))

    def can_userinfo(self, member: Any, channel: Any = None) -> bool:
        return bool(self.config.for_member(member, channel)["can_userinfo"])

    async def userinfo_for(
        self, member: Any, user_id: Any, *, channel: Any = None, compact: bool = False
    ) -> Optional[UserInfo]:
        """Summary of ``user_id`` as requested by ``member``.

        Returns ``None`` when ``member`` may not look users up or the user does not exist.
        """
        if not self.can_userinfo(member, channel):
            logger.debug("[UTILITY] %s may not use userinfo in guild %s", member.id, self.guild_id)
            return None
        return await self.get_user_info(user_id, compact=compact, requester_id=member.id)

    async def get_user_info(
        self, user_id: Any, *, compact: bool = False, requester_id: Any = None
    ) -> Optional[UserInfo]:
        """Build the summary of ``user_id``; ``None`` when the user does not exist.

        Args:
            user_id: User to describe.
            compact: Only identity and timestamps, no roles or cases.
            requester_id: Member asking; their personal timezone is used when set.
        """
        identity = self.services.require("identity")
        user = await identity.resolve_user(user_id)
        if user is None:
            return None
        member = await identity.resolve_member(self.guild_id, user.id)

        created_at = self._pretty(user.created_at, requester_id)
        joined_at = None
        if member is not None and getattr(member, "joined_at", None) is not None:
            joined_at = self._pretty(member.joined_at, requester_id)

        base = dict(
            user_id=UserID(user.id),
            username=user.name,
            is_bot=bool(getattr(user, "bot", False)),
            on_server=member is not None,
            created_at=created_at,
            joined_at=joined_at,
            display_name=getattr(user, "global_name", None),
            nickname=getattr(member, "nick", None) if member is not None else None,
        )
        if compact:
            return UserInfo(compact=True, **base)

        roles: Tuple[RoleID, ...] = ()
        hidden_role_count = 0
        if member is not None:
            member_roles = [role for role in member.roles if role.id != self.guild_id]
            member_roles.sort(key=lambda role: role.position, reverse=True)
            roles = tuple(RoleID(role.id) for role in member_roles[:MAX_ROLES_TO_DISPLAY])
            hidden_role_count = max(0, len(member_roles) - MAX_ROLES_TO_DISPLAY)

        total_cases = 0
        recent: Tuple[CaseSummary, ...] = ()
        if self.config.get()["userinfo_show_cases"]:
            cases = [case for case in await self.cases.get_cases_for_user(user.id) if not case.is_hidden]
            cases.sort(key=lambda case: case.created_at, reverse=True)
            total_cases = len(cases)
            recent = tuple(CaseSummary.from_case(case) for case in cases[:RECENT_CASES_TO_DISPLAY])

        return UserInfo(
            roles=roles,
            hidden_role_count=hidden_role_count,
            total_cases=total_cases,
            recent_cases=recent,
            **base,
        )
