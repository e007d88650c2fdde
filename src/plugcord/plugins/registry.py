"""
Process-wide registry of guild plugins and their dependency graph.

Plugins are registered once at startup. Registration validates the plugin's
default options against its schema; sealing validates the dependency graph
(every dependency registered, no cycles) and freezes the registry so it can be
shared by every guild without locking.

Load order is computed with Kahn's algorithm, one wave at a time: each wave
holds every plugin whose dependencies are all placed, in declaration order.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Type, Union

from plugcord.configuration.config_resolver import build_plugin_options
from plugcord.configuration.config_schema import ConfigSchema
from plugcord.errors import (
    ConfigValidationError,
    CycleError,
    RegistrationError,
    SchemaIssue,
    UnknownPluginError,
)
from plugcord.plugins.plugin import GuildPlugin, plugin_name
from plugcord.util.logger import get_logger

logger = get_logger("plugin_registry")

_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")

PluginRef = Union[Type[GuildPlugin], str]


@dataclass(frozen=True)
class PluginDefinition:
    """Registered plugin: its class, compiled schema and dependency names."""

    name: str
    plugin_class: Type[GuildPlugin]
    schema: ConfigSchema
    default_options: Mapping[str, Any]
    dependencies: Tuple[str, ...]
    index: int


class PluginRegistry:
    """Registered plugins, in declaration order."""

    def __init__(self) -> None:
        self._definitions: Dict[str, PluginDefinition] = {}
        self._sealed = False
        self._load_order: Tuple[str, ...] = ()

    # --------------------------
    # Registration
    # --------------------------
    def register(self, plugin_class: Type[GuildPlugin]) -> PluginDefinition:
        """Register a plugin class.

        Dependencies may be registered later; they are checked by :meth:`seal`.

        Raises:
            RegistrationError: Bad declaration, duplicate name or sealed registry.
            ConfigValidationError: Default config is invalid or leaves a schema key without a value.
            MalformedPredicateError: A default override cannot be parsed.
        """
        if self._sealed:
            raise RegistrationError("Cannot register plugins after the registry is sealed")
        if not isinstance(plugin_class, type) or not issubclass(plugin_class, GuildPlugin):
            raise RegistrationError(f"{plugin_class!r} is not a GuildPlugin subclass")

        name = plugin_class.name
        if not isinstance(name, str) or not _NAME_PATTERN.match(name):
            raise RegistrationError(f"{plugin_class.__name__} has an invalid plugin name {name!r}")
        if name in self._definitions:
            raise RegistrationError(f"Plugin '{name}' is already registered")

        dependencies = plugin_class.dependency_names()
        if name in dependencies:
            raise CycleError([name, name])
        if len(set(dependencies)) != len(dependencies):
            raise RegistrationError(f"Plugin '{name}' declares a dependency more than once")

        schema = ConfigSchema(plugin_class.config_schema, name=name)
        default_options = plugin_class.default_options or {}
        options = build_plugin_options(name, schema, default_options)

        missing = [key for key in schema.keys if key not in options.config]
        if missing:
            raise ConfigValidationError(
                [SchemaIssue((key,), "a default value", "nothing", "schema key has no default") for key in missing],
                source=name,
            )

        definition = PluginDefinition(
            name=name,
            plugin_class=plugin_class,
            schema=schema,
            default_options=default_options,
            dependencies=dependencies,
            index=len(self._definitions),
        )
        self._definitions[name] = definition
        logger.debug("[PLUGIN REGISTRY] Registered plugin '%s' (dependencies: %s)", name, list(dependencies) or "none")
        return definition

    def register_all(self, plugin_classes: Iterable[Type[GuildPlugin]]) -> List[PluginDefinition]:
        return [self.register(plugin_class) for plugin_class in plugin_classes]

    def seal(self) -> Tuple[str, ...]:
        """Validate the dependency graph and freeze the registry.

        Returns:
            The load order of every registered plugin.
        """
        if not self._sealed:
            self._load_order = tuple(self.compute_load_order())
            self._sealed = True
            logger.info("[PLUGIN REGISTRY] Sealed %d plugins, load order: %s",
                        len(self._load_order), ", ".join(self._load_order))
        return self._load_order

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def load_order(self) -> Tuple[str, ...]:
        return self._load_order if self._sealed else tuple(self.compute_load_order())

    # --------------------------
    # Lookup
    # --------------------------
    def get(self, plugin: PluginRef) -> PluginDefinition:
        name = plugin_name(plugin)
        definition = self._definitions.get(name)
        if definition is None:
            raise UnknownPluginError(name)
        return definition

    def names(self) -> List[str]:
        return list(self._definitions)

    def __contains__(self, plugin: object) -> bool:
        if isinstance(plugin, str):
            return plugin in self._definitions
        name = getattr(plugin, "name", None)
        return isinstance(name, str) and name in self._definitions

    def __iter__(self) -> Iterator[PluginDefinition]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)

    # --------------------------
    # Graph
    # --------------------------
    def dependency_closure(self, plugins: Iterable[PluginRef]) -> List[str]:
        """Return ``plugins`` plus every transitive dependency, in discovery order.

        Raises:
            UnknownPluginError: A requested plugin or one of its dependencies is not registered.
        """
        closure: Dict[str, None] = {}
        stack: List[Tuple[str, Optional[str]]] = [(plugin_name(plugin), None) for plugin in reversed(list(plugins))]
        while stack:
            name, required_by = stack.pop()
            if name in closure:
                continue
            definition = self._definitions.get(name)
            if definition is None:
                raise UnknownPluginError(name, required_by=required_by)
            closure[name] = None
            stack.extend((dependency, name) for dependency in reversed(definition.dependencies))
        return list(closure)

    def compute_load_order(self, plugins: Optional[Iterable[PluginRef]] = None) -> List[str]:
        """Topologically order ``plugins`` (default: every registered plugin) and their dependencies.

        Dependencies always precede their dependents. Plugins without a relative
        ordering constraint keep declaration order within their wave.

        Raises:
            UnknownPluginError: A dependency is not registered.
            CycleError: The graph has a cycle; the error names every plugin on it.
        """
        names = self.dependency_closure(self.names() if plugins is None else plugins)
        pending = sorted(names, key=lambda name: self._definitions[name].index)
        placed: Dict[str, None] = {}

        while pending:
            wave = [name for name in pending
                    if all(dependency in placed for dependency in self._definitions[name].dependencies)]
            if not wave:
                raise CycleError(self._find_cycle(pending, placed))
            for name in wave:
                placed[name] = None
            pending = [name for name in pending if name not in placed]

        return list(placed)

    def _find_cycle(self, pending: Sequence[str], placed: Mapping[str, None]) -> List[str]:
        # Every pending plugin has an unplaced dependency, so following them always ends on a cycle.
        path: List[str] = []
        seen: Dict[str, int] = {}
        current = pending[0]
        while current not in seen:
            seen[current] = len(path)
            path.append(current)
            current = next(dependency for dependency in self._definitions[current].dependencies
                           if dependency not in placed)
        return path[seen[current]:] + [current]

    def __repr__(self) -> str:
        return f"<PluginRegistry plugins={self.names()} sealed={self._sealed}>"
