"""
Moderation case records as returned by the case store.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from plugcord.datatypes.discord_datatypes import ChannelID, GuildID, UserID


class CaseType(Enum):
    """Kinds of moderation cases, numbered as stored in the database."""

    BAN = 1
    UNBAN = 2
    NOTE = 3
    WARN = 4
    KICK = 5
    MUTE = 6
    UNMUTE = 7
    DELETED = 8
    SOFTBAN = 9

    def __str__(self) -> str:
        return self.name.capitalize()


@dataclass(frozen=True, slots=True)
class Case:
    """One moderation case recorded against a user in a guild.

    Attributes:
        guild_id: Guild the case belongs to.
        case_number: Per-guild sequential case number.
        user_id: User the case was created against.
        mod_id: Moderator who created the case, if known.
        case_type: Kind of case.
        created_at: Creation time (timezone-aware, UTC).
        is_hidden: Hidden cases are excluded from summaries.
        log_message_id: ``"<channel_id>-<message_id>"`` of the case log post, if any.
        reason: Free-form reason text.
    """

    guild_id: GuildID
    case_number: int
    user_id: UserID
    case_type: CaseType
    created_at: datetime
    mod_id: Optional[UserID] = None
    is_hidden: bool = False
    log_message_id: Optional[str] = None
    reason: str = ""

    def log_message_location(self) -> Optional[Tuple[ChannelID, int]]:
        """Split ``log_message_id`` into its channel and message parts."""
        if not self.log_message_id:
            return None
        channel_part, _, message_part = self.log_message_id.partition("-")
        if not message_part:
            return None
        return ChannelID(channel_part), int(message_part)
