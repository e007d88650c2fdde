"""
Type-safe wrappers for Discord snowflake identifiers.

Snowflakes travel through the engine as ints (Discord API), strings (YAML
configuration keys, JSON) and library objects. The wrappers normalise all
three so guild, user, channel and role identifiers can be compared and used as
dictionary keys interchangeably with plain ints.
"""

from __future__ import annotations

from typing import Any, Union

import discord


class Snowflake:
    """
    Base class for 64-bit Discord identifiers.

    Instances compare equal to the int and decimal-string forms of the same
    snowflake and hash like the int, so ``{GuildID(1): ...}[1]`` works.

    Example:
        >>> gid = GuildID("123456789012345678")
        >>> gid.to_int()
        123456789012345678
        >>> gid == 123456789012345678
        True
    """

    __slots__ = ("_value",)

    def __init__(self, value: Union[str, int, "Snowflake"]) -> None:
        if isinstance(value, Snowflake):
            self._value = value._value
        elif isinstance(value, bool):
            raise ValueError(f"Cannot create {type(self).__name__} from bool")
        elif isinstance(value, int):
            self._value = value
        elif isinstance(value, str):
            self._value = int(value.strip())
        else:
            raise ValueError(f"Cannot create {type(self).__name__} from {type(value).__name__}: {value}")
        if self._value < 0:
            raise ValueError(f"{type(self).__name__} must be non-negative, got {self._value}")

    @classmethod
    def from_int(cls, value: int):
        return cls(value)

    @classmethod
    def from_object(cls, obj: Any):
        """Build an identifier from any object exposing an ``id`` attribute."""
        return cls(obj.id)

    def to_int(self) -> int:
        """Return the raw integer for Discord API calls."""
        return self._value

    def __int__(self) -> int:
        return self._value

    def __str__(self) -> str:
        return str(self._value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self._value)!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Snowflake):
            return type(self) is type(other) and self._value == other._value
        if isinstance(other, bool):
            return False
        if isinstance(other, int):
            return self._value == other
        if isinstance(other, str):
            return str(self._value) == other.strip()
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)

    def __lt__(self, other: "Snowflake") -> bool:
        return self._value < int(other)


class GuildID(Snowflake):
    """Identifier of a guild, the tenant unit of the engine."""

    __slots__ = ()

    @classmethod
    def from_guild(cls, guild: discord.Guild) -> "GuildID":
        return cls(guild.id)


class UserID(Snowflake):
    """Identifier of a user or guild member."""

    __slots__ = ()

    @classmethod
    def from_user(cls, member: Union[discord.Member, discord.User]) -> "UserID":
        return cls(member.id)


class ChannelID(Snowflake):
    """Identifier of a channel, category or thread."""

    __slots__ = ()

    @classmethod
    def from_channel(cls, channel: discord.abc.Snowflake) -> "ChannelID":
        return cls(channel.id)


class RoleID(Snowflake):
    """Identifier of a guild role."""

    __slots__ = ()

    @classmethod
    def from_role(cls, role: discord.Role) -> "RoleID":
        return cls(role.id)
