"""
Moderation case storage.

:class:`CaseStore` hands out one :class:`GuildCases` query handle per guild;
the ``cases`` plugin attaches its guild's handle while loading. Case numbers
are sequential per guild.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional

import aiosqlite

from plugcord.database.db_connection import ConnectionManager, db_connection
from plugcord.database.db_schema import SchemaManager
from plugcord.datatypes.case_datatypes import Case, CaseType
from plugcord.datatypes.discord_datatypes import GuildID, UserID
from plugcord.util.logger import get_logger

logger = get_logger("database_cases")

_COLUMNS = "guild_id, case_number, user_id, mod_id, case_type, reason, is_hidden, log_message_id, created_at"


def _row_to_case(row: aiosqlite.Row) -> Case:
    created_at = datetime.fromisoformat(row["created_at"])
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return Case(
        guild_id=GuildID(row["guild_id"]),
        case_number=row["case_number"],
        user_id=UserID(row["user_id"]),
        mod_id=UserID(row["mod_id"]) if row["mod_id"] is not None else None,
        case_type=CaseType(row["case_type"]),
        reason=row["reason"],
        is_hidden=bool(row["is_hidden"]),
        log_message_id=row["log_message_id"],
        created_at=created_at,
    )


class GuildCases:
    """Case queries scoped to one guild."""

    def __init__(self, connection: ConnectionManager, guild_id: GuildID) -> None:
        self._connection = connection
        self.guild_id = guild_id

    async def get_cases_for_user(self, user_id: Any) -> List[Case]:
        """Return every case of ``user_id`` in this guild, oldest first."""
        async with self._connection.read() as conn:
            cursor = await conn.execute(
                f"SELECT {_COLUMNS} FROM cases WHERE guild_id = ? AND user_id = ? ORDER BY case_number ASC",
                (self.guild_id.to_int(), int(user_id)),
            )
            rows = await cursor.fetchall()
        return [_row_to_case(row) for row in rows]

    async def get_by_case_number(self, case_number: int) -> Optional[Case]:
        async with self._connection.read() as conn:
            cursor = await conn.execute(
                f"SELECT {_COLUMNS} FROM cases WHERE guild_id = ? AND case_number = ?",
                (self.guild_id.to_int(), case_number),
            )
            row = await cursor.fetchone()
        return _row_to_case(row) if row is not None else None

    async def create_case(
        self,
        user_id: Any,
        case_type: CaseType,
        *,
        mod_id: Any = None,
        reason: str = "",
        is_hidden: bool = False,
        log_message_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Case:
        """Record a new case with the guild's next case number."""
        created_at = created_at or datetime.now(timezone.utc)
        async with self._connection.transaction() as conn:
            cursor = await conn.execute(
                "SELECT COALESCE(MAX(case_number), 0) + 1 FROM cases WHERE guild_id = ?",
                (self.guild_id.to_int(),),
            )
            (case_number,) = await cursor.fetchone()
            await conn.execute(
                f"INSERT INTO cases ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    self.guild_id.to_int(),
                    case_number,
                    int(user_id),
                    int(mod_id) if mod_id is not None else None,
                    case_type.value,
                    reason,
                    int(is_hidden),
                    log_message_id,
                    created_at.isoformat(),
                ),
            )
        logger.debug("[CASES] Created case #%d (%s) for user %s in guild %s",
                     case_number, case_type, user_id, self.guild_id)
        return Case(
            guild_id=self.guild_id,
            case_number=case_number,
            user_id=UserID(user_id),
            mod_id=UserID(mod_id) if mod_id is not None else None,
            case_type=case_type,
            reason=reason,
            is_hidden=is_hidden,
            log_message_id=log_message_id,
            created_at=created_at,
        )

    async def set_log_message_id(self, case_number: int, log_message_id: str) -> bool:
        async with self._connection.transaction() as conn:
            cursor = await conn.execute(
                "UPDATE cases SET log_message_id = ? WHERE guild_id = ? AND case_number = ?",
                (log_message_id, self.guild_id.to_int(), case_number),
            )
        return cursor.rowcount > 0


class CaseStore:
    """Source of per-guild case handles sharing one connection."""

    def __init__(self, connection: ConnectionManager = db_connection) -> None:
        self._connection = connection

    async def initialize(self) -> None:
        await SchemaManager.initialize_schema(self._connection.connection)

    def for_guild(self, guild_id: Any) -> GuildCases:
        """Query handle scoped to ``guild_id``; plugins keep it while their guild is active."""
        return GuildCases(self._connection, GuildID(guild_id))
