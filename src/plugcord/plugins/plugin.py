"""
Guild plugins and their per-guild state.

A plugin is a :class:`GuildPlugin` subclass declaring its name, config
schema, default options and dependencies. The registry holds plugin classes;
activating a guild creates one plugin instance per (guild, plugin), wrapped
around a :class:`PluginData` that carries the guild-scoped options, config
accessor and lifecycle state.

Example::

    class MutesPlugin(GuildPlugin):
        name = "mutes"
        dependencies = (CasesPlugin, LogsPlugin)
        config_schema = {
            "type": "object",
            "properties": {"mute_role": {"type": ["string", "null"], "default": None}},
        }

        async def before_load(self) -> None:
            self.cases = self.plugin_data.get_plugin(CasesPlugin)
"""

from __future__ import annotations

import copy
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    ClassVar,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Type,
    TypeVar,
    Union,
    overload,
)

from plugcord.configuration.config_resolver import ConfigResolver, PluginOptions
from plugcord.configuration.permission_levels import PermissionLevels
from plugcord.datatypes.discord_datatypes import GuildID
from plugcord.datatypes.evaluation_context import DEFAULT_CONTEXT, EvaluationContext
from plugcord.errors import (
    DependencyNotReadyError,
    MissingDependencyError,
)
from plugcord.services.contracts import PluginServices

if TYPE_CHECKING:
    from plugcord.plugins.registry import PluginRegistry

P = TypeVar("P", bound="GuildPlugin")


class PluginState(Enum):
    """Lifecycle state of one plugin in one guild."""

    UNLOADED = "unloaded"
    INITIALIZING = "initializing"
    READY = "ready"
    UNLOADING = "unloading"

    def __str__(self) -> str:
        return self.value


class GuildPlugin:
    """Base class of guild plugins.

    Class attributes:
        name: Unique plugin identity.
        config_schema: JSON Schema of the plugin configuration.
        default_options: ``{"config": {...}, "overrides": [...]}`` applied to
            every guild before the guild's own options.
        dependencies: Plugin classes (or names) that must be ready first.

    Lifecycle hooks (sync or async) run per guild:
        ``before_load`` while the plugin is initializing, ``after_load`` once
        every plugin of the guild is ready, ``before_unload`` while unloading.
    """

    name: ClassVar[str] = ""
    config_schema: ClassVar[Mapping[str, Any]] = {"type": "object", "properties": {}}
    default_options: ClassVar[Mapping[str, Any]] = {}
    dependencies: ClassVar[Sequence[Union[Type["GuildPlugin"], str]]] = ()

    def __init__(self, plugin_data: "PluginData") -> None:
        self.plugin_data = plugin_data

    @classmethod
    def dependency_names(cls) -> Tuple[str, ...]:
        return tuple(plugin_name(dependency) for dependency in cls.dependencies)

    @property
    def guild_id(self) -> GuildID:
        return self.plugin_data.guild_id

    @property
    def config(self) -> "PluginConfig":
        return self.plugin_data.config

    @property
    def services(self) -> PluginServices:
        return self.plugin_data.services

    def before_load(self) -> Any:
        return None

    def after_load(self) -> Any:
        return None

    def before_unload(self) -> Any:
        return None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r} guild={self.guild_id}>"


def plugin_name(plugin: Union[Type[GuildPlugin], GuildPlugin, str]) -> str:
    """Return the identity of a plugin class, instance or name."""
    if isinstance(plugin, str):
        return plugin
    return plugin.name


class PluginConfig:
    """Config accessor of one plugin in one guild.

    ``get()`` returns the guild's base config; the ``for_*`` helpers return the
    effective config with matching overrides applied.
    """

    def __init__(self, options: PluginOptions, resolver: ConfigResolver, levels: PermissionLevels) -> None:
        self._options = options
        self._resolver = resolver
        self._levels = levels

    @property
    def options(self) -> PluginOptions:
        return self._options

    def get(self) -> Dict[str, Any]:
        return copy.deepcopy(dict(self._options.config))

    def for_context(self, context: EvaluationContext) -> Dict[str, Any]:
        return self._resolver.resolve(self._options, context)

    def for_level(self, level: int) -> Dict[str, Any]:
        return self.for_context(EvaluationContext(level=level))

    def for_user(self, user_id: Any, role_ids: Sequence[Any] = (), **attributes: Any) -> Dict[str, Any]:
        level = self._levels.level_for(user_id, role_ids)
        return self.for_context(EvaluationContext.create(level=level, user_id=user_id, role_ids=role_ids, **attributes))

    def for_member(self, member: Any, channel: Any = None, **extra: Any) -> Dict[str, Any]:
        return self.for_context(self._levels.context_for_member(member, channel, **extra))


class PluginData:
    """Guild-scoped data of one plugin: options, config accessor and state."""

    def __init__(self, guild: "GuildContext", plugin_name: str, options: PluginOptions) -> None:
        self.guild = guild
        self.plugin_name = plugin_name
        self.options = options
        self.config = PluginConfig(options, guild.resolver, guild.levels)
        self.state = PluginState.UNLOADED

    @property
    def guild_id(self) -> GuildID:
        return self.guild.guild_id

    @property
    def services(self) -> PluginServices:
        return self.guild.services

    @overload
    def get_plugin(self, dependency: Type[P]) -> P: ...

    @overload
    def get_plugin(self, dependency: str) -> GuildPlugin: ...

    def get_plugin(self, dependency):
        """Return the live instance of a declared, ready dependency in this guild."""
        return self.guild.get_dependency_handle(self.plugin_name, dependency)


class GuildContext:
    """All plugin state of one guild.

    Owned by the lifecycle manager; published to other code only once every
    plugin of the guild is ready.
    """

    def __init__(
        self,
        guild_id: GuildID,
        registry: "PluginRegistry",
        load_order: Sequence[str],
        *,
        levels: Optional[PermissionLevels] = None,
        services: Optional[PluginServices] = None,
        resolver: Optional[ConfigResolver] = None,
    ) -> None:
        self.guild_id = guild_id
        self.registry = registry
        self.load_order: List[str] = list(load_order)
        self.levels = levels if levels is not None else PermissionLevels()
        self.services = services if services is not None else PluginServices()
        self.resolver = resolver if resolver is not None else ConfigResolver()
        self.data: Dict[str, PluginData] = {}
        self.plugins: Dict[str, GuildPlugin] = {}

    def add_plugin_data(self, name: str, options: PluginOptions) -> PluginData:
        data = PluginData(self, name, options)
        self.data[name] = data
        return data

    def plugin_state(self, plugin: Union[Type[GuildPlugin], str]) -> PluginState:
        data = self.data.get(plugin_name(plugin))
        return data.state if data is not None else PluginState.UNLOADED

    def ready_plugins(self) -> List[str]:
        return [name for name in self.load_order if self.plugin_state(name) is PluginState.READY]

    def has_plugin(self, plugin: Union[Type[GuildPlugin], str]) -> bool:
        return self.plugin_state(plugin) is PluginState.READY

    @overload
    def get_plugin(self, plugin: Type[P]) -> P: ...

    @overload
    def get_plugin(self, plugin: str) -> GuildPlugin: ...

    def get_plugin(self, plugin):
        """Return a ready plugin instance of this guild (outside-in access, no dependency check)."""
        name = self.registry.get(plugin_name(plugin)).name
        if self.plugin_state(name) is not PluginState.READY:
            raise DependencyNotReadyError(None, name, self.guild_id)
        return self.plugins[name]

    def get_dependency_handle(self, requester: str, dependency: Union[Type[GuildPlugin], str]) -> GuildPlugin:
        """Return ``dependency``'s instance on behalf of plugin ``requester``.

        Raises:
            UnknownPluginError: ``dependency`` is not a registered plugin.
            MissingDependencyError: ``requester`` did not declare ``dependency``.
            DependencyNotReadyError: ``dependency`` is not ready in this guild.
        """
        name = self.registry.get(plugin_name(dependency)).name
        if name not in self.registry.get(requester).dependencies:
            raise MissingDependencyError(requester, name)
        if self.plugin_state(name) is not PluginState.READY:
            raise DependencyNotReadyError(requester, name, self.guild_id)
        return self.plugins[name]

    def resolve(
        self, plugin: Union[Type[GuildPlugin], str], context: EvaluationContext = DEFAULT_CONTEXT
    ) -> Dict[str, Any]:
        """Effective config of ``plugin`` in this guild for ``context``."""
        data = self.data.get(plugin_name(plugin))
        if data is None:
            raise DependencyNotReadyError(None, plugin_name(plugin), self.guild_id)
        return data.config.for_context(context)

    def __repr__(self) -> str:
        return f"<GuildContext guild={self.guild_id} plugins={self.ready_plugins()}>"
