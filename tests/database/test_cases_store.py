"""
Tests for the SQLite case store.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from plugcord.database.cases import CaseStore
from plugcord.database.db_connection import ConnectionManager
from plugcord.datatypes.case_datatypes import CaseType
from plugcord.datatypes.discord_datatypes import GuildID, UserID


@pytest_asyncio.fixture
async def connection(tmp_path):
    """Open a fresh database file for each test."""
    manager = ConnectionManager()
    await manager.open(tmp_path / "cases.db")
    yield manager
    await manager.close()


@pytest_asyncio.fixture
async def store(connection):
    case_store = CaseStore(connection)
    await case_store.initialize()
    return case_store


@pytest.mark.asyncio
async def test_case_numbers_are_sequential_per_guild(store):
    first_guild = store.for_guild(1)
    second_guild = store.for_guild(2)

    numbers = [
        (await first_guild.create_case(10, CaseType.WARN)).case_number,
        (await first_guild.create_case(11, CaseType.BAN)).case_number,
        (await second_guild.create_case(10, CaseType.NOTE)).case_number,
    ]

    assert numbers == [1, 2, 1]


@pytest.mark.asyncio
async def test_concurrent_creates_never_share_a_number(store):
    guild_cases = store.for_guild(1)
    cases = await asyncio.gather(*(guild_cases.create_case(10 + i, CaseType.WARN) for i in range(10)))
    assert sorted(case.case_number for case in cases) == list(range(1, 11))


@pytest.mark.asyncio
async def test_cases_for_user_round_trip(store):
    guild_cases = store.for_guild(GuildID(5))
    created_at = datetime(2024, 3, 1, 12, 30, tzinfo=timezone.utc)
    await guild_cases.create_case(
        UserID(42), CaseType.MUTE, mod_id=7, reason="spam", is_hidden=True,
        log_message_id="100-200", created_at=created_at,
    )
    await guild_cases.create_case(42, CaseType.UNMUTE, created_at=created_at + timedelta(hours=1))
    await guild_cases.create_case(43, CaseType.KICK)

    cases = await guild_cases.get_cases_for_user(42)

    assert [case.case_number for case in cases] == [1, 2]
    first = cases[0]
    assert first.guild_id == GuildID(5)
    assert first.user_id == UserID(42)
    assert first.mod_id == UserID(7)
    assert first.case_type is CaseType.MUTE
    assert first.reason == "spam"
    assert first.is_hidden is True
    assert first.created_at == created_at
    assert first.log_message_location() == (100, 200)
    assert cases[1].mod_id is None


@pytest.mark.asyncio
async def test_cases_are_scoped_to_their_guild(store):
    await store.for_guild(1).create_case(42, CaseType.WARN)
    assert await store.for_guild(2).get_cases_for_user(42) == []
    assert await store.for_guild(2).get_by_case_number(1) is None


@pytest.mark.asyncio
async def test_set_log_message_id(store):
    guild_cases = store.for_guild(1)
    await guild_cases.create_case(42, CaseType.BAN)

    assert await guild_cases.set_log_message_id(1, "300-400") is True
    assert await guild_cases.set_log_message_id(99, "300-400") is False
    assert (await guild_cases.get_by_case_number(1)).log_message_id == "300-400"


def test_for_guild_handles_are_not_retained():
    connection = ConnectionManager()
    store = CaseStore(connection)
    first, second = store.for_guild(1), store.for_guild("1")
    assert first is not second
    assert first.guild_id == second.guild_id == 1
    assert first._connection is second._connection is connection
    assert not hasattr(store, "_guilds")


@pytest.mark.asyncio
async def test_closed_connection_raises():
    manager = ConnectionManager()
    assert not manager.is_open
    with pytest.raises(RuntimeError):
        await CaseStore(manager).for_guild(1).get_cases_for_user(1)
