"""
Pytest configuration and fixtures for plugcord tests.
"""

import os
import sys
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

# Keep session logs and the shared app config out of the working tree.
# These must be set before any imports from src/plugcord
_TMP_ROOT = Path(tempfile.mkdtemp(prefix="plugcord-tests-"))
os.environ.setdefault("PLUGCORD_LOG_DIR", str(_TMP_ROOT / "logs"))
os.environ.setdefault("PLUGCORD_CONFIG", str(_TMP_ROOT / "app_config.yml"))

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from plugcord.datatypes.case_datatypes import Case  # noqa: E402
from plugcord.datatypes.discord_datatypes import GuildID, UserID  # noqa: E402
from plugcord.services.contracts import PluginServices  # noqa: E402


class InMemoryGuildCases:
    """Case history of one guild kept in a list."""

    def __init__(self, guild_id):
        self.guild_id = GuildID(guild_id)
        self.cases = []

    def add(self, user_id, case_type, *, created_at=None, is_hidden=False, log_message_id=None, mod_id=None, reason=""):
        case = Case(
            guild_id=self.guild_id,
            case_number=len(self.cases) + 1,
            user_id=UserID(user_id),
            case_type=case_type,
            created_at=created_at or datetime(2024, 1, len(self.cases) + 1, tzinfo=timezone.utc),
            is_hidden=is_hidden,
            log_message_id=log_message_id,
            mod_id=UserID(mod_id) if mod_id is not None else None,
            reason=reason,
        )
        self.cases.append(case)
        return case

    async def get_cases_for_user(self, user_id):
        return [case for case in self.cases if case.user_id == UserID(user_id)]

    async def get_by_case_number(self, case_number):
        return next((case for case in self.cases if case.case_number == case_number), None)

    async def create_case(self, user_id, case_type, *, mod_id=None, reason="", is_hidden=False):
        return self.add(user_id, case_type, is_hidden=is_hidden, mod_id=mod_id, reason=reason)


class InMemoryCaseStore:
    def __init__(self):
        self.guilds = {}

    def for_guild(self, guild_id):
        guild_id = GuildID(guild_id)
        if guild_id not in self.guilds:
            self.guilds[guild_id] = InMemoryGuildCases(guild_id)
        return self.guilds[guild_id]


class FakeIdentity:
    """Identity resolver over dicts of SimpleNamespace users and members."""

    def __init__(self):
        self.users = {}
        self.members = {}

    async def resolve_user(self, user_id):
        return self.users.get(int(user_id))

    async def resolve_member(self, guild_id, user_id):
        return self.members.get((int(guild_id), int(user_id)))


@pytest.fixture
def make_member():
    """Factory of member-like objects holding roles with the given ids."""
    def build(member_id, *roles):
        return SimpleNamespace(id=member_id, roles=[SimpleNamespace(id=role_id, position=0) for role_id in roles])
    return build


@pytest.fixture
def case_store():
    return InMemoryCaseStore()


@pytest.fixture
def identity():
    return FakeIdentity()


@pytest.fixture
def services(case_store, identity):
    sent = []

    def log_sink(channel_id, log_type, data):
        sent.append((channel_id, log_type, data))

    plugin_services = PluginServices(case_store=case_store, identity=identity, extra={"log_sink": log_sink})
    plugin_services.extra["sent_logs"] = sent
    return plugin_services


@pytest.fixture
def tmp_config(tmp_path):
    """Write a YAML app config and return its path."""
    def write(text):
        path = tmp_path / "app_config.yml"
        path.write_text(text, encoding="utf-8")
        return path
    return write
