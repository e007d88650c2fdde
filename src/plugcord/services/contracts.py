"""
Contracts of the collaborators plugins consume during their lifecycle.

The engine only depends on these narrow interfaces, never on the internals
of the chat client, the case store or the time formatting layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Protocol, Sequence, runtime_checkable

from plugcord.datatypes.case_datatypes import Case


@runtime_checkable
class CaseHistory(Protocol):
    """Guild-scoped moderation case queries."""

    async def get_cases_for_user(self, user_id: Any) -> Sequence[Case]:
        """Return the user's cases in this guild, oldest first."""
        ...


@runtime_checkable
class CaseStore(Protocol):
    """Source of guild-scoped :class:`CaseHistory` handles."""

    def for_guild(self, guild_id: Any) -> CaseHistory:
        ...


@runtime_checkable
class TimeFormatter(Protocol):
    """Timezone conversion and formatting for one guild."""

    def convert_to_guild_time(self, timestamp: datetime) -> datetime:
        ...

    def format(self, localized: datetime, pattern: str) -> str:
        ...


@runtime_checkable
class IdentityResolver(Protocol):
    """Lookup of users and guild members; ``None`` means not found."""

    async def resolve_user(self, user_id: Any) -> Optional[Any]:
        ...

    async def resolve_member(self, guild_id: Any, user_id: Any) -> Optional[Any]:
        ...


@dataclass
class PluginServices:
    """Collaborators shared by every plugin of every guild.

    Attributes:
        case_store: Moderation case store.
        identity: User and member lookup.
        extra: Additional named collaborators for third-party plugins.
    """

    case_store: Optional[CaseStore] = None
    identity: Optional[IdentityResolver] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def require(self, name: str) -> Any:
        """Return a configured collaborator or raise ``LookupError``."""
        value = getattr(self, name, None) if name in ("case_store", "identity") else self.extra.get(name)
        if value is None:
            raise LookupError(f"Service '{name}' is not configured")
        return value
