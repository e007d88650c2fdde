"""
Permission levels of guild members.

A guild's configuration maps user ids and role ids to numeric levels::

    levels:
      "108552944961454080": 100   # a user
      "411238946581528576": 50    # a role

A member's level is the level of their own user entry when one exists,
otherwise the highest level among their roles, otherwise 0. The level is the
primary input of level-based config overrides.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Optional

import discord

from plugcord.datatypes.discord_datatypes import ChannelID, RoleID, UserID
from plugcord.datatypes.evaluation_context import EvaluationContext
from plugcord.errors import ConfigValidationError, SchemaIssue


class PermissionLevels:
    """Level lookup for one guild."""

    def __init__(self, levels: Optional[Mapping[Any, Any]] = None) -> None:
        self._levels: Dict[int, int] = {}
        issues = []
        for raw_id, raw_level in (levels or {}).items():
            try:
                snowflake = int(UserID(raw_id))
            except ValueError:
                issues.append(SchemaIssue(("levels", raw_id), "snowflake id", repr(raw_id), "invalid id"))
                continue
            if isinstance(raw_level, bool) or not isinstance(raw_level, int):
                issues.append(SchemaIssue(("levels", raw_id), "integer", type(raw_level).__name__, "invalid level"))
                continue
            self._levels[snowflake] = raw_level
        if issues:
            raise ConfigValidationError(issues, source="levels")

    def __len__(self) -> int:
        return len(self._levels)

    def level_for(self, user_id: Any, role_ids: Iterable[Any] = ()) -> int:
        """Return the level of a user holding ``role_ids``."""
        if user_id is not None and int(user_id) in self._levels:
            return self._levels[int(user_id)]
        role_levels = [self._levels[int(role)] for role in role_ids if int(role) in self._levels]
        return max(role_levels, default=0)

    def level_for_member(self, member: discord.Member) -> int:
        return self.level_for(member.id, [role.id for role in getattr(member, "roles", ())])

    def context_for_member(
        self,
        member: discord.Member,
        channel: Optional[discord.abc.GuildChannel] = None,
        **extra: Any,
    ) -> EvaluationContext:
        """Build the evaluation context of ``member`` acting in ``channel``.

        Threads contribute their own id as ``thread_id`` and their parent as
        ``channel_id``; the category is taken from the (parent) channel.
        """
        role_ids = frozenset(RoleID(role.id) for role in getattr(member, "roles", ()))
        channel_id = category_id = thread_id = None
        is_thread = False

        if channel is not None:
            if isinstance(channel, discord.Thread):
                is_thread = True
                thread_id = ChannelID(channel.id)
                channel_id = ChannelID(channel.parent_id) if channel.parent_id else None
                parent = channel.parent
                category_id = getattr(parent, "category_id", None) if parent is not None else None
            else:
                channel_id = ChannelID(channel.id)
                category_id = getattr(channel, "category_id", None)

        return EvaluationContext(
            level=self.level_for(member.id, role_ids),
            user_id=UserID(member.id),
            channel_id=channel_id,
            category_id=category_id,
            thread_id=thread_id,
            is_thread=is_thread,
            role_ids=role_ids,
            extra=extra,
        )
