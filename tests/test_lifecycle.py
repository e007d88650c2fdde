"""Tests for per-guild plugin activation, rollback and teardown."""

import asyncio
import random
import time

import pytest

from plugcord.configuration.app_configuration import AppConfig
from plugcord.errors import (
    ConfigValidationError,
    DependencyNotReadyError,
    GuildNotActiveError,
    InitializationError,
    InitializationTimeoutError,
    MissingDependencyError,
    UnknownPluginError,
)
from plugcord.plugins.lifecycle import GuildPluginManager, run_hook
from plugcord.plugins.plugin import GuildPlugin, PluginState
from plugcord.plugins.registry import PluginRegistry
from plugcord.services.contracts import PluginServices


STUB_SCHEMA = {
    "type": "object",
    "properties": {
        "fail": {"type": "boolean", "default": False},
        "fail_after_load": {"type": "boolean", "default": False},
        "fail_unload": {"type": "boolean", "default": False},
        "delay": {"type": "number", "default": 0},
        "can_use": {"type": "boolean", "default": False},
    },
}


class RecordingPlugin(GuildPlugin):
    """Plugin whose hooks record themselves and misbehave on demand through config."""

    config_schema = STUB_SCHEMA
    default_options = {"overrides": [{"level": ">=50", "config": {"can_use": True}}]}

    def _record(self, hook):
        self.services.extra["events"].append((hook, int(self.guild_id), self.name))

    async def before_load(self):
        for dependency in self.dependency_names():
            self.plugin_data.get_plugin(dependency)
        self._record("before_load")
        config = self.config.get()
        if config["delay"]:
            started = self.services.extra.get("started")
            if started is not None:
                started.set()
            await asyncio.sleep(config["delay"])
        if config["fail"]:
            raise RuntimeError(f"{self.name} exploded")

    async def after_load(self):
        self._record("after_load")
        if self.config.get()["fail_after_load"]:
            raise RuntimeError(f"{self.name} after_load exploded")

    async def before_unload(self):
        self._record("before_unload")
        if self.config.get()["fail_unload"]:
            raise RuntimeError(f"{self.name} unload exploded")


def make_plugin(plugin_name, *dependencies, base=RecordingPlugin):
    return type(f"{plugin_name.title()}Stub", (base,), {"name": plugin_name, "dependencies": tuple(dependencies)})


def scenario_registry():
    registry = PluginRegistry()
    registry.register_all([
        make_plugin("cases"),
        make_plugin("logs", "cases"),
        make_plugin("mutes", "cases", "logs"),
        make_plugin("context_menu", "cases", "mutes", "logs", "utility"),
        make_plugin("utility"),
    ])
    return registry


def events_of(events, hook, guild_id):
    return [name for kind, guild, name in events if kind == hook and guild == guild_id]


@pytest.fixture
def plugin_services():
    return PluginServices(extra={"events": []})


@pytest.fixture
def manager(plugin_services):
    return GuildPluginManager(scenario_registry(), services=plugin_services, init_timeout=5)


@pytest.fixture
def transitions(manager):
    recorded = []
    manager.add_state_listener(lambda guild_id, name, state: recorded.append((int(guild_id), name, state)))
    return recorded


class TestActivate:
    """Tests for successful activation."""

    @pytest.mark.asyncio
    async def test_loads_every_plugin_in_dependency_order(self, manager, plugin_services, transitions):
        guild = await manager.activate(1)

        expected = ["cases", "utility", "logs", "mutes", "context_menu"]
        assert guild.load_order == expected
        assert guild.ready_plugins() == expected
        assert events_of(plugin_services.extra["events"], "before_load", 1) == expected
        assert events_of(plugin_services.extra["events"], "after_load", 1) == expected
        assert manager.get_guild(1) is guild
        assert manager.is_active("1")
        assert manager.active_guilds == [1]
        assert [state for guild_id, name, state in transitions if name == "cases"] == [
            PluginState.INITIALIZING, PluginState.READY,
        ]

    @pytest.mark.asyncio
    async def test_subset_activation_pulls_dependencies(self, manager):
        guild = await manager.activate(1, plugins=["mutes"])
        assert guild.load_order == ["cases", "logs", "mutes"]
        assert manager.plugin_state(1, "context_menu") is PluginState.UNLOADED

    @pytest.mark.asyncio
    async def test_activating_active_guild_returns_same_context(self, manager):
        first = await manager.activate(1)
        assert await manager.activate(1) is first

    @pytest.mark.asyncio
    async def test_guild_options_reach_plugin_config(self, manager):
        guild = await manager.activate(1, options={"logs": {"config": {"can_use": True}}})
        assert guild.get_plugin("logs").config.get()["can_use"] is True
        assert guild.get_plugin("cases").config.get()["can_use"] is False
        assert guild.resolve("cases") == guild.get_plugin("cases").config.get()

    @pytest.mark.asyncio
    async def test_levels_drive_overrides(self, manager):
        guild = await manager.activate(1, levels={"10": 50})
        config = guild.get_plugin("context_menu").config
        assert config.for_user(10)["can_use"] is True
        assert config.for_user(11)["can_use"] is False
        assert config.for_level(50)["can_use"] is True
        assert config.get()["can_use"] is False

    @pytest.mark.asyncio
    async def test_sync_hooks_are_supported(self, plugin_services):
        calls = []

        class SyncPlugin(GuildPlugin):
            name = "sync_plugin"

            def before_load(self):
                calls.append("before_load")

            def before_unload(self):
                calls.append("before_unload")

        registry = PluginRegistry()
        registry.register(SyncPlugin)
        manager = GuildPluginManager(registry, services=plugin_services)

        await manager.activate(1)
        await manager.deactivate(1)
        assert calls == ["before_load", "before_unload"]


class TestDependencyHandles:
    """Tests for dependency handle lookups from inside plugins."""

    @pytest.mark.asyncio
    async def test_handle_errors_are_distinct(self, plugin_services):
        seen = {}

        class LookupPlugin(RecordingPlugin):
            name = "lookup"
            dependencies = ("cases",)

            async def before_load(self):
                await super().before_load()
                self.cases = self.plugin_data.get_plugin("cases")
                for label, target, error in (
                    ("undeclared", "logs", MissingDependencyError),
                    ("unregistered", "ghost", UnknownPluginError),
                ):
                    try:
                        self.plugin_data.get_plugin(target)
                    except error as exc:
                        seen[label] = exc
                try:
                    self.plugin_data.guild.get_plugin("later")
                except DependencyNotReadyError as exc:
                    seen["not_ready"] = exc

        registry = PluginRegistry()
        registry.register_all([
            make_plugin("cases"),
            make_plugin("logs", "cases"),
            LookupPlugin,
            make_plugin("later", "lookup"),
        ])
        manager = GuildPluginManager(registry, services=plugin_services)
        guild = await manager.activate(1, plugins=["later", "logs"])

        assert isinstance(seen["undeclared"], MissingDependencyError)
        assert seen["undeclared"].requester == "lookup"
        assert isinstance(seen["unregistered"], UnknownPluginError)
        assert seen["not_ready"].dependency == "later"

        lookup = guild.get_plugin(LookupPlugin)
        assert isinstance(lookup, LookupPlugin)
        assert lookup.cases is guild.get_plugin("cases")
        assert guild.get_dependency_handle("lookup", "cases") is lookup.cases

        guild.data["cases"].state = PluginState.UNLOADING
        with pytest.raises(DependencyNotReadyError) as exc_info:
            guild.get_dependency_handle("lookup", "cases")
        assert exc_info.value.requester == "lookup"


class TestActivationFailure:
    """Tests for failed, timed out and cancelled activations."""

    @pytest.mark.asyncio
    async def test_failing_mutes_keeps_dependents_unloaded_and_spares_other_guilds(
        self, manager, plugin_services, transitions
    ):
        results = await asyncio.gather(
            manager.activate(1, options={"mutes": {"config": {"fail": True}}}),
            manager.activate(2),
            return_exceptions=True,
        )

        error = results[0]
        assert isinstance(error, InitializationError)
        assert error.plugin_name == "mutes"
        assert int(error.guild_id) == 1
        assert isinstance(error.__cause__, RuntimeError)

        assert [t for t in transitions if t[0] == 1 and t[1] == "context_menu"] == []
        for name in ("cases", "utility", "logs", "mutes", "context_menu"):
            assert manager.plugin_state(1, name) is PluginState.UNLOADED
        assert not manager.is_active(1)
        with pytest.raises(GuildNotActiveError):
            manager.get_guild(1)

        events = plugin_services.extra["events"]
        assert events_of(events, "before_unload", 1) == ["logs", "utility", "cases"]
        assert events_of(events, "after_load", 1) == []

        assert manager.get_guild(2).ready_plugins() == ["cases", "utility", "logs", "mutes", "context_menu"]
        assert events_of(events, "before_unload", 2) == []

    @pytest.mark.asyncio
    async def test_failing_plugin_transitions_back_to_unloaded(self, manager, transitions):
        with pytest.raises(InitializationError):
            await manager.activate(1, plugins=["logs"], options={"logs": {"config": {"fail": True}}})
        assert [state for guild_id, name, state in transitions if name == "logs"] == [
            PluginState.INITIALIZING, PluginState.UNLOADED,
        ]
        assert [state for guild_id, name, state in transitions if name == "cases"] == [
            PluginState.INITIALIZING, PluginState.READY, PluginState.UNLOADING, PluginState.UNLOADED,
        ]

    @pytest.mark.asyncio
    async def test_timeout_aborts_activation(self, manager, plugin_services):
        with pytest.raises(InitializationTimeoutError) as exc_info:
            await manager.activate(1, plugins=["mutes"], options={"mutes": {"config": {"delay": 5}}}, timeout=0.05)

        assert exc_info.value.plugin_name == "mutes"
        assert exc_info.value.timeout == 0.05
        assert isinstance(exc_info.value, InitializationError)
        assert manager.plugin_state(1, "mutes") is PluginState.UNLOADED
        assert events_of(plugin_services.extra["events"], "before_unload", 1) == ["logs", "cases"]
        assert not manager.is_active(1)

    @pytest.mark.asyncio
    async def test_blocking_sync_hook_is_bounded(self, plugin_services):
        class BlockingPlugin(GuildPlugin):
            name = "blocking"

            def before_load(self):
                time.sleep(0.5)

        registry = scenario_registry()
        registry.register(BlockingPlugin)
        manager = GuildPluginManager(registry, services=plugin_services, init_timeout=5)

        started = time.monotonic()
        blocked, other = await asyncio.gather(
            manager.activate(1, plugins=["blocking"], timeout=0.05),
            manager.activate(2, plugins=["cases"], timeout=0.05),
            return_exceptions=True,
        )
        elapsed = time.monotonic() - started

        assert isinstance(blocked, InitializationTimeoutError)
        assert blocked.plugin_name == "blocking"
        assert other.ready_plugins() == ["cases"]
        assert elapsed < 0.4
        assert manager.plugin_state(1, "blocking") is PluginState.UNLOADED
        assert not manager.is_active(1)

    @pytest.mark.asyncio
    async def test_explicit_none_timeout_disables_bound(self, plugin_services):
        manager = GuildPluginManager(scenario_registry(), services=plugin_services, init_timeout=0.05)
        options = {"cases": {"config": {"delay": 0.2}}}

        with pytest.raises(InitializationTimeoutError):
            await manager.activate(1, plugins=["cases"], options=options)

        guild = await manager.activate(1, plugins=["cases"], options=options, timeout=None)
        assert guild.ready_plugins() == ["cases"]

    @pytest.mark.asyncio
    async def test_cancellation_rolls_back_ready_plugins(self, manager, plugin_services):
        started = asyncio.Event()
        plugin_services.extra["started"] = started

        task = asyncio.create_task(
            manager.activate(1, plugins=["mutes"], options={"mutes": {"config": {"delay": 30}}})
        )
        await asyncio.wait_for(started.wait(), timeout=1)
        assert manager.plugin_state(1, "mutes") is PluginState.INITIALIZING
        assert manager.plugin_state(1, "logs") is PluginState.READY
        assert not manager.is_active(1)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        for name in ("cases", "logs", "mutes"):
            assert manager.plugin_state(1, name) is PluginState.UNLOADED
        assert events_of(plugin_services.extra["events"], "before_unload", 1) == ["logs", "cases"]
        assert not manager.is_active(1)

        # The guild can be activated again afterwards
        guild = await manager.activate(1, plugins=["mutes"])
        assert guild.ready_plugins() == ["cases", "logs", "mutes"]

    @pytest.mark.asyncio
    async def test_after_load_failure_rolls_back_everything(self, manager, plugin_services):
        with pytest.raises(InitializationError) as exc_info:
            await manager.activate(1, plugins=["mutes"], options={"logs": {"config": {"fail_after_load": True}}})
        assert exc_info.value.plugin_name == "logs"
        assert events_of(plugin_services.extra["events"], "before_unload", 1) == ["mutes", "logs", "cases"]
        assert not manager.is_active(1)

    @pytest.mark.asyncio
    async def test_invalid_guild_options_fail_before_any_hook(self, manager, plugin_services):
        with pytest.raises(InitializationError) as exc_info:
            await manager.activate(1, options={"logs": {"config": {"no_such_key": 1}}})
        assert exc_info.value.plugin_name == "logs"
        assert isinstance(exc_info.value.__cause__, ConfigValidationError)
        assert plugin_services.extra["events"] == []

    @pytest.mark.asyncio
    async def test_activate_many_isolates_failures(self, manager):
        results = await manager.activate_many([1, 2, 3], plugins=["cases"])
        assert all(not isinstance(result, BaseException) for result in results.values())
        assert sorted(int(guild_id) for guild_id in manager.active_guilds) == [1, 2, 3]


class TestDeactivate:
    """Tests for teardown."""

    @pytest.mark.asyncio
    async def test_teardown_runs_in_reverse_load_order(self, manager, plugin_services, transitions):
        guild = await manager.activate(1)
        assert await manager.deactivate(1) is True

        assert events_of(plugin_services.extra["events"], "before_unload", 1) == list(reversed(guild.load_order))
        assert not manager.is_active(1)
        assert guild.plugins == {}
        assert all(data.state is PluginState.UNLOADED for data in guild.data.values())

    @pytest.mark.asyncio
    async def test_unload_hook_failure_does_not_stop_teardown(self, manager, plugin_services):
        await manager.activate(1, options={"mutes": {"config": {"fail_unload": True}}})
        assert await manager.deactivate(1) is True
        assert events_of(plugin_services.extra["events"], "before_unload", 1) == [
            "context_menu", "mutes", "logs", "utility", "cases",
        ]

    @pytest.mark.asyncio
    async def test_deactivate_inactive_guild(self, manager):
        assert await manager.deactivate(1) is False

    @pytest.mark.asyncio
    async def test_shutdown_deactivates_every_guild(self, manager):
        await manager.activate_many([1, 2], plugins=["cases"])
        await manager.shutdown()
        assert manager.active_guilds == []

    @pytest.mark.asyncio
    async def test_reload_rebuilds_guild(self, manager, plugin_services):
        first = await manager.activate(1, plugins=["logs"])
        second = await manager.reload(1)
        assert second is not first
        assert second.load_order == ["cases", "logs"]
        assert manager.get_guild(1) is second
        assert events_of(plugin_services.extra["events"], "before_load", 1) == ["cases", "logs", "cases", "logs"]

    @pytest.mark.asyncio
    async def test_reload_all_reads_config_again(self, tmp_config, plugin_services):
        path = tmp_config(
            "plugins:\n"
            "  default_enabled: [cases]\n"
            "guilds:\n"
            "  '1':\n"
            "    plugins:\n"
            "      cases:\n"
            "        config: {can_use: false}\n"
        )
        manager = GuildPluginManager(scenario_registry(), config=AppConfig(path), services=plugin_services)
        guild = await manager.activate(1)
        assert guild.get_plugin("cases").config.get()["can_use"] is False

        path.write_text(
            "plugins:\n"
            "  default_enabled: [cases, logs]\n"
            "guilds:\n"
            "  '1':\n"
            "    plugins:\n"
            "      cases:\n"
            "        config: {can_use: true}\n",
            encoding="utf-8",
        )
        results = await manager.reload_all()

        reloaded = results[1]
        assert reloaded.load_order == ["cases", "logs"]
        assert reloaded.get_plugin("cases").config.get()["can_use"] is True


class TestOrderingProperty:
    """Randomized graphs: a plugin is only ever initializing or ready while its dependencies are ready."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", range(8))
    async def test_random_graphs_and_interleavings(self, seed):
        rng = random.Random(seed)
        names = [f"p{index}" for index in range(rng.randint(3, 9))]
        dependencies = {
            name: rng.sample(names[:index], rng.randint(0, min(index, 3)))
            for index, name in enumerate(names)
        }
        declared = names[:]
        rng.shuffle(declared)

        registry = PluginRegistry()
        registry.register_all(make_plugin(name, *dependencies[name]) for name in declared)
        manager = GuildPluginManager(registry, services=PluginServices(extra={"events": []}), init_timeout=5)

        dependents = {name: [other for other in names if name in dependencies[other]] for name in names}
        states = {}
        violations = []

        def check(guild_id, name, state):
            if state in (PluginState.INITIALIZING, PluginState.READY):
                for dependency in dependencies[name]:
                    if states.get((guild_id, dependency)) is not PluginState.READY:
                        violations.append((guild_id, name, state, dependency))
            if state is PluginState.UNLOADING:
                for dependent in dependents[name]:
                    if states.get((guild_id, dependent)) is PluginState.READY:
                        violations.append((guild_id, name, state, dependent))
            states[(guild_id, name)] = state

        manager.add_state_listener(check)

        guild_ids = [10, 20, 30]
        options = {
            guild_id: {name: {"config": {"delay": rng.choice([0, 0.001, 0.002])}} for name in names}
            for guild_id in guild_ids
        }
        failing_guild = rng.choice(guild_ids)
        failing_plugin = rng.choice(names)
        options[failing_guild][failing_plugin]["config"]["fail"] = True

        results = await asyncio.gather(
            *(manager.activate(guild_id, options=options[guild_id]) for guild_id in guild_ids),
            return_exceptions=True,
        )
        await manager.shutdown()

        assert violations == []
        for guild_id, result in zip(guild_ids, results):
            if guild_id == failing_guild:
                assert isinstance(result, InitializationError)
                assert result.plugin_name == failing_plugin
            else:
                assert not isinstance(result, BaseException)
        assert all(state is PluginState.UNLOADED for state in states.values())


class TestRunHook:
    @pytest.mark.asyncio
    async def test_run_hook_handles_sync_and_async(self):
        calls = []

        async def async_hook():
            calls.append("async")

        await run_hook(lambda: calls.append("sync"))
        await run_hook(async_hook, timeout=1)
        assert calls == ["sync", "async"]

    @pytest.mark.asyncio
    async def test_run_hook_timeout(self):
        with pytest.raises(asyncio.TimeoutError):
            await run_hook(lambda: asyncio.sleep(1), timeout=0.01)
        with pytest.raises(asyncio.TimeoutError):
            await run_hook(lambda: time.sleep(0.2), timeout=0.01)
