"""
Per-guild plugin lifecycle management.

The :class:`GuildPluginManager` activates the enabled plugins of a guild in
dependency order, keeps the resulting :class:`GuildContext` reachable once
every plugin is ready, and tears plugins down in reverse order on deactivation.

Lifecycle of one plugin in one guild::

    UNLOADED -> INITIALIZING -> READY -> UNLOADING -> UNLOADED
                     |
                     +-> UNLOADED   (hook failed, timed out or was cancelled)

Activation is all-or-nothing: when any plugin fails to initialize, every
plugin that became ready during the same attempt is torn down again and the
guild is never published. Guilds activate concurrently; activation and
deactivation of one guild are serialised by a per-guild lock.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from plugcord.configuration.app_configuration import AppConfig
from plugcord.configuration.config_resolver import ConfigResolver, build_plugin_options
from plugcord.configuration.permission_levels import PermissionLevels
from plugcord.datatypes.discord_datatypes import GuildID
from plugcord.errors import (
    ConfigValidationError,
    GuildNotActiveError,
    InitializationError,
    InitializationTimeoutError,
    MalformedPredicateError,
)
from plugcord.plugins.plugin import GuildContext, GuildPlugin, PluginState
from plugcord.plugins.registry import PluginRef, PluginRegistry
from plugcord.services.contracts import PluginServices
from plugcord.util.logger import get_logger

logger = get_logger("plugin_lifecycle")

StateListener = Callable[[GuildID, str, PluginState], None]

# Marks a timeout argument that was not given; the manager's init_timeout applies.
DEFAULT_TIMEOUT: Any = object()


async def run_hook(hook: Callable[[], Any], timeout: Optional[float] = None) -> None:
    """Call a sync or async lifecycle hook, bounded by ``timeout`` seconds.

    Sync hooks run in a worker thread so that blocking work neither stalls the
    event loop nor escapes the bound. A timed out thread is abandoned, not killed.
    """
    if inspect.iscoroutinefunction(hook):
        await asyncio.wait_for(hook(), timeout)
        return
    result = await asyncio.wait_for(asyncio.to_thread(hook), timeout)
    if inspect.isawaitable(result):
        await asyncio.wait_for(result, timeout)


class GuildPluginManager:
    """Owns the plugin state of every active guild.

    Args:
        registry: Plugin registry; sealed on construction if it is not already.
        config: Application configuration providing enabled plugins, levels and
            plugin options per guild. Without one, every registered plugin is
            enabled with its default options.
        services: Collaborators handed to every plugin.
        init_timeout: Default bound, in seconds, of each load hook. Falls back to
            the app config's ``plugins.init_timeout_seconds``; ``None`` without
            a config disables the bound.
    """

    def __init__(
        self,
        registry: PluginRegistry,
        *,
        config: Optional[AppConfig] = None,
        services: Optional[PluginServices] = None,
        init_timeout: Optional[float] = None,
    ) -> None:
        registry.seal()
        self.registry = registry
        self.config = config
        self.services = services if services is not None else PluginServices()
        if init_timeout is None and config is not None:
            init_timeout = config.plugin_init_timeout
        self.init_timeout = init_timeout

        self._guilds: Dict[GuildID, GuildContext] = {}
        self._pending: Dict[GuildID, GuildContext] = {}
        self._locks: Dict[GuildID, asyncio.Lock] = {}
        self._listeners: List[StateListener] = []

    # --------------------------
    # State tracking
    # --------------------------
    def add_state_listener(self, listener: StateListener) -> None:
        """Call ``listener(guild_id, plugin_name, state)`` on every state transition."""
        self._listeners.append(listener)

    def remove_state_listener(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _set_state(self, guild: GuildContext, name: str, state: PluginState) -> None:
        guild.data[name].state = state
        for listener in list(self._listeners):
            try:
                listener(guild.guild_id, name, state)
            except Exception:
                logger.exception("[PLUGIN LIFECYCLE] State listener failed for %s in guild %s", name, guild.guild_id)

    def _hook_timeout(self, timeout: Optional[float]) -> Optional[float]:
        return self.init_timeout if timeout is DEFAULT_TIMEOUT else timeout

    def _lock_for(self, guild_id: GuildID) -> asyncio.Lock:
        lock = self._locks.get(guild_id)
        if lock is None:
            lock = self._locks[guild_id] = asyncio.Lock()
        return lock

    # --------------------------
    # Lookup
    # --------------------------
    @property
    def active_guilds(self) -> List[GuildID]:
        return list(self._guilds)

    def is_active(self, guild_id: Any) -> bool:
        return GuildID(guild_id) in self._guilds

    def get_guild(self, guild_id: Any) -> GuildContext:
        """Return the context of an active guild.

        Raises:
            GuildNotActiveError: The guild is not (or not yet) fully activated.
        """
        guild = self._guilds.get(GuildID(guild_id))
        if guild is None:
            raise GuildNotActiveError(guild_id)
        return guild

    def plugin_state(self, guild_id: Any, plugin: PluginRef) -> PluginState:
        """State of ``plugin`` in ``guild_id``, including activations still in flight."""
        guild_id = GuildID(guild_id)
        guild = self._guilds.get(guild_id) or self._pending.get(guild_id)
        if guild is None:
            return PluginState.UNLOADED
        return guild.plugin_state(plugin)

    def get_plugin(self, guild_id: Any, plugin: PluginRef) -> GuildPlugin:
        return self.get_guild(guild_id).get_plugin(plugin)

    # --------------------------
    # Activation
    # --------------------------
    async def activate(
        self,
        guild_id: Any,
        *,
        plugins: Optional[Iterable[PluginRef]] = None,
        options: Optional[Mapping[str, Mapping[str, Any]]] = None,
        levels: Optional[Mapping[Any, Any]] = None,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
    ) -> GuildContext:
        """Load the plugins of one guild and publish its context.

        Args:
            guild_id: Guild to activate.
            plugins: Plugins to enable; their dependencies are enabled too.
                Defaults to the guild's enabled plugins from the app config,
                or every registered plugin.
            options: Per-plugin guild options (``config``/``overrides``),
                defaulting to the app config's entries.
            levels: Permission level mapping, defaulting to the app config's.
            timeout: Bound of each load hook; defaults to ``init_timeout``.
                ``None`` disables the bound.

        Returns:
            The published guild context. Activating an active guild returns
            its current context.

        Raises:
            InitializationError: A plugin's options were invalid or its hook failed.
            InitializationTimeoutError: A load hook exceeded ``timeout``.
        """
        guild_id = GuildID(guild_id)
        async with self._lock_for(guild_id):
            existing = self._guilds.get(guild_id)
            if existing is not None:
                logger.debug("[PLUGIN LIFECYCLE] Guild %s is already active", guild_id)
                return existing
            return await self._activate_locked(guild_id, plugins, options, levels, timeout)

    async def activate_many(
        self, guild_ids: Iterable[Any], **kwargs: Any
    ) -> Dict[GuildID, Union[GuildContext, BaseException]]:
        """Activate several guilds concurrently; one guild's failure never affects another."""
        guild_ids = [GuildID(guild_id) for guild_id in guild_ids]
        results = await asyncio.gather(
            *(self.activate(guild_id, **kwargs) for guild_id in guild_ids),
            return_exceptions=True,
        )
        outcome: Dict[GuildID, Union[GuildContext, BaseException]] = {}
        for guild_id, result in zip(guild_ids, results):
            if isinstance(result, BaseException):
                logger.error("[PLUGIN LIFECYCLE] Activation of guild %s failed: %s", guild_id, result)
            outcome[guild_id] = result
        return outcome

    async def _activate_locked(
        self,
        guild_id: GuildID,
        plugins: Optional[Iterable[PluginRef]],
        options: Optional[Mapping[str, Mapping[str, Any]]],
        levels: Optional[Mapping[Any, Any]],
        timeout: Optional[float],
    ) -> GuildContext:
        if plugins is None:
            plugins = self.config.enabled_plugins(guild_id) if self.config is not None else self.registry.names()
        if levels is None:
            levels = self.config.guild_levels(guild_id) if self.config is not None else {}
        timeout = self._hook_timeout(timeout)

        load_order = self.registry.compute_load_order(plugins)
        guild = GuildContext(
            guild_id,
            self.registry,
            load_order,
            levels=PermissionLevels(levels),
            services=self.services,
            resolver=ConfigResolver(),
        )
        for name in load_order:
            definition = self.registry.get(name)
            guild_options = self._guild_options(guild_id, name, options)
            try:
                plugin_options = build_plugin_options(name, definition.schema, definition.default_options, guild_options)
            except (ConfigValidationError, MalformedPredicateError) as exc:
                raise InitializationError(guild_id, name, f"Invalid options for '{name}' in guild {guild_id}: {exc}") from exc
            guild.add_plugin_data(name, plugin_options)

        logger.info("[PLUGIN LIFECYCLE] Activating guild %s: %s", guild_id, ", ".join(load_order) or "no plugins")
        self._pending[guild_id] = guild
        try:
            await self._load(guild, timeout)
        finally:
            self._pending.pop(guild_id, None)

        self._guilds[guild_id] = guild
        logger.info("[PLUGIN LIFECYCLE] Guild %s active with %d plugins", guild_id, len(load_order))
        return guild

    def _guild_options(
        self, guild_id: GuildID, name: str, options: Optional[Mapping[str, Mapping[str, Any]]]
    ) -> Mapping[str, Any]:
        if options is not None:
            return options.get(name) or {}
        if self.config is not None:
            return self.config.plugin_options(guild_id, name)
        return {}

    async def _load(self, guild: GuildContext, timeout: Optional[float]) -> None:
        ready: List[str] = []
        try:
            for name in guild.load_order:
                plugin = self.registry.get(name).plugin_class(guild.data[name])
                guild.plugins[name] = plugin
                self._set_state(guild, name, PluginState.INITIALIZING)
                try:
                    await self._run_load_hook(guild, name, plugin.before_load, timeout)
                except BaseException:
                    del guild.plugins[name]
                    self._set_state(guild, name, PluginState.UNLOADED)
                    raise
                self._set_state(guild, name, PluginState.READY)
                ready.append(name)
                logger.debug("[PLUGIN LIFECYCLE] %s ready in guild %s", name, guild.guild_id)

            for name in guild.load_order:
                await self._run_load_hook(guild, name, guild.plugins[name].after_load, timeout)
        except BaseException as exc:
            if isinstance(exc, asyncio.CancelledError):
                logger.warning("[PLUGIN LIFECYCLE] Activation of guild %s cancelled, rolling back", guild.guild_id)
            else:
                logger.error("[PLUGIN LIFECYCLE] Activation of guild %s failed, rolling back: %s", guild.guild_id, exc)
            await self._teardown(guild, reversed(ready), timeout)
            raise

    async def _run_load_hook(
        self, guild: GuildContext, name: str, hook: Callable[[], Any], timeout: Optional[float]
    ) -> None:
        try:
            await run_hook(hook, timeout)
        except asyncio.TimeoutError as exc:
            raise InitializationTimeoutError(guild.guild_id, name, timeout or 0.0) from exc
        except InitializationError:
            raise
        except Exception as exc:
            raise InitializationError(
                guild.guild_id, name, f"Plugin '{name}' failed to initialize in guild {guild.guild_id}: {exc}"
            ) from exc

    # --------------------------
    # Deactivation
    # --------------------------
    async def deactivate(self, guild_id: Any, *, timeout: Optional[float] = DEFAULT_TIMEOUT) -> bool:
        """Unload every plugin of a guild, dependents first.

        Returns:
            ``False`` when the guild was not active.
        """
        guild_id = GuildID(guild_id)
        async with self._lock_for(guild_id):
            return await self._deactivate_locked(guild_id, timeout)

    async def _deactivate_locked(self, guild_id: GuildID, timeout: Optional[float]) -> bool:
        guild = self._guilds.pop(guild_id, None)
        if guild is None:
            return False
        logger.info("[PLUGIN LIFECYCLE] Deactivating guild %s", guild_id)
        await self._teardown(guild, reversed(guild.ready_plugins()), self._hook_timeout(timeout))
        return True

    async def _teardown(self, guild: GuildContext, names: Iterable[str], timeout: Optional[float]) -> None:
        # Unload hook failures are logged; the plugin is unloaded regardless.
        for name in list(names):
            plugin = guild.plugins.get(name)
            if plugin is None:
                continue
            self._set_state(guild, name, PluginState.UNLOADING)
            try:
                await run_hook(plugin.before_unload, timeout)
            except asyncio.TimeoutError:
                logger.error("[PLUGIN LIFECYCLE] %s did not unload within %ss in guild %s", name, timeout, guild.guild_id)
            except Exception:
                logger.exception("[PLUGIN LIFECYCLE] %s failed to unload in guild %s", name, guild.guild_id)
            del guild.plugins[name]
            self._set_state(guild, name, PluginState.UNLOADED)
            guild.resolver.invalidate(name)

    async def reload(self, guild_id: Any, *, plugins: Optional[Iterable[PluginRef]] = None,
                     timeout: Optional[float] = DEFAULT_TIMEOUT) -> GuildContext:
        """Deactivate a guild and activate it again with freshly read configuration.

        Without ``plugins``, a guild without app config keeps its previous plugin set.
        """
        guild_id = GuildID(guild_id)
        async with self._lock_for(guild_id):
            previous = self._guilds.get(guild_id)
            if plugins is None and self.config is None and previous is not None:
                plugins = list(previous.load_order)
            await self._deactivate_locked(guild_id, timeout)
            return await self._activate_locked(guild_id, plugins, None, None, timeout)

    async def reload_all(self) -> Dict[GuildID, Union[GuildContext, BaseException]]:
        """Re-read the app config from disk and reload every active guild."""
        if self.config is not None:
            self.config.reload()
        guild_ids = self.active_guilds
        results = await asyncio.gather(*(self.reload(guild_id) for guild_id in guild_ids), return_exceptions=True)
        outcome: Dict[GuildID, Union[GuildContext, BaseException]] = {}
        for guild_id, result in zip(guild_ids, results):
            if isinstance(result, BaseException):
                logger.error("[PLUGIN LIFECYCLE] Reload of guild %s failed: %s", guild_id, result)
            outcome[guild_id] = result
        return outcome

    async def shutdown(self) -> None:
        """Deactivate every active guild."""
        guild_ids = self.active_guilds
        if guild_ids:
            logger.info("[PLUGIN LIFECYCLE] Shutting down %d guilds", len(guild_ids))
        await asyncio.gather(*(self.deactivate(guild_id) for guild_id in guild_ids))
