import sys
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from plugcord import main


def test_resolve_base_dir_env_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("PLUGCORD_HOME", str(tmp_path))
    assert main.resolve_base_dir() == tmp_path.resolve()


def test_resolve_base_dir_compiled(tmp_path, monkeypatch):
    monkeypatch.delenv("PLUGCORD_HOME", raising=False)
    monkeypatch.setattr(sys, "frozen", True, raising=False)
    monkeypatch.setattr(sys, "argv", [str(tmp_path / "plugcord.exe")])
    assert main.resolve_base_dir() == (tmp_path / "plugcord.exe").resolve().parent


def test_resolve_base_dir_source(monkeypatch):
    monkeypatch.delenv("PLUGCORD_HOME", raising=False)
    monkeypatch.setattr(sys, "frozen", False, raising=False)
    monkeypatch.setattr(sys, "compiled", False, raising=False)
    assert main.resolve_base_dir() == main.Path(main.__file__).resolve().parents[2]


def test_load_environment_requires_token(monkeypatch):
    monkeypatch.setattr(main, "load_dotenv", lambda **kwargs: None)
    monkeypatch.delenv("DISCORD_BOT_TOKEN", raising=False)
    with pytest.raises(SystemExit):
        main.load_environment()

    monkeypatch.setenv("DISCORD_BOT_TOKEN", "token")
    assert main.load_environment() == "token"


def test_build_intents_enables_members():
    intents = main.build_intents()
    assert intents.guilds is True
    assert intents.members is True


def test_build_registry_seals_builtin_plugins():
    registry = main.build_registry()
    assert registry.sealed
    assert registry.load_order[0] == "cases"
    assert registry.load_order[-1] == "context_menu"


@pytest.mark.asyncio
async def test_shutdown_runtime_closes_everything(monkeypatch):
    close_db = AsyncMock()
    monkeypatch.setattr(main.db_connection, "close", close_db)
    bot = SimpleNamespace(is_closed=MagicMock(return_value=False), close=AsyncMock())
    manager = SimpleNamespace(shutdown=AsyncMock(side_effect=RuntimeError("boom")))

    await main.shutdown_runtime(bot, manager)

    manager.shutdown.assert_awaited_once()
    bot.close.assert_awaited_once()
    close_db.assert_awaited_once()


@pytest.mark.asyncio
async def test_async_main_fails_when_database_cannot_open(monkeypatch):
    monkeypatch.setattr(main, "load_environment", lambda: "token")
    monkeypatch.setattr(main.db_connection, "open", AsyncMock(side_effect=OSError("read-only")))
    assert await main.async_main() == 1
