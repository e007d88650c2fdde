"""
Effective configuration resolution.

The effective configuration of a plugin for one evaluation context is the
plugin's validated base configuration with every matching override partial
folded over it, in rule order:

* nested mappings are merged key by key;
* scalars and lists are replaced, never appended.

Resolution is pure and never raises for a registered plugin. Results are
cached per ``(plugin name, context signature)``; each entry remembers the
options object and rule set revision it was computed from, so a changed rule
set or a reloaded options object is never served stale.
"""

from __future__ import annotations

import copy
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Hashable, Iterable, Mapping, Optional, Tuple

from plugcord.configuration.config_schema import ConfigSchema
from plugcord.configuration.overrides import OverrideRuleSet
from plugcord.datatypes.evaluation_context import DEFAULT_CONTEXT, EvaluationContext
from plugcord.errors import ConfigValidationError, MalformedPredicateError, SchemaIssue
from plugcord.util.logger import get_logger

logger = get_logger("config_resolver")


def merge_into(target: Dict[str, Any], partial: Mapping[str, Any]) -> Dict[str, Any]:
    """Deep-merge ``partial`` into ``target`` in place and return ``target``.

    Values taken from ``partial`` are copied, so ``target`` never aliases it.
    """
    for key, value in partial.items():
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            merge_into(current, value)
        else:
            target[key] = copy.deepcopy(value)
    return target


def deep_merge(base: Mapping[str, Any], *partials: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a new mapping: ``base`` with each partial deep-merged over it in order."""
    result = copy.deepcopy(dict(base))
    for partial in partials:
        merge_into(result, partial)
    return result


@dataclass(frozen=True)
class PluginOptions:
    """Validated base config and override rules of one plugin in one guild."""

    plugin_name: str
    config: Mapping[str, Any]
    overrides: OverrideRuleSet

    @property
    def schema(self) -> ConfigSchema:
        return self.overrides.schema


def build_plugin_options(
    plugin_name: str,
    schema: ConfigSchema,
    default_options: Optional[Mapping[str, Any]] = None,
    guild_options: Optional[Mapping[str, Any]] = None,
) -> PluginOptions:
    """Combine a plugin's default options with a guild's configured options.

    The guild's ``config`` is deep-merged over the default config and the
    result validated against ``schema``. The guild's ``overrides`` are appended
    after the default overrides unless ``replace_default_overrides`` is set.

    Raises:
        ConfigValidationError: If the merged config or an override partial is invalid.
        MalformedPredicateError: If an override's criteria cannot be parsed.
    """
    default_options = default_options or {}
    guild_options = guild_options or {}

    for label, options in (("default options", default_options), ("guild options", guild_options)):
        if not isinstance(options, Mapping):
            raise ConfigValidationError(
                [SchemaIssue((), "object", type(options).__name__, f"{label} must be a mapping")],
                source=plugin_name,
            )

    default_config = default_options.get("config") or {}
    guild_config = guild_options.get("config") or {}
    for raw in (default_config, guild_config):
        if not isinstance(raw, Mapping):
            schema.validate(raw)
    config = schema.validate(deep_merge(default_config, guild_config))

    overrides = OverrideRuleSet(schema)
    if not guild_options.get("replace_default_overrides", False):
        overrides.extend(_override_list(plugin_name, default_options.get("overrides")))
    overrides.extend(_override_list(plugin_name, guild_options.get("overrides")))

    return PluginOptions(plugin_name=plugin_name, config=config, overrides=overrides)


def _override_list(plugin_name: str, overrides: Any) -> Iterable[Mapping[str, Any]]:
    if overrides is None:
        return []
    if not isinstance(overrides, (list, tuple)):
        raise MalformedPredicateError(f"{plugin_name} overrides must be a list", value=overrides)
    return overrides


def resolve(options: PluginOptions, context: EvaluationContext = DEFAULT_CONTEXT) -> Dict[str, Any]:
    """Compute the effective configuration of ``options`` for ``context`` (uncached)."""
    return deep_merge(options.config, *options.overrides.matches(context))


class ConfigResolver:
    """
    Caching front of :func:`resolve`.

    Entries are keyed by ``(plugin name, context signature)`` and kept in LRU
    order up to ``max_entries``. Every returned value is a fresh copy.
    """

    def __init__(self, max_entries: int = 4096) -> None:
        self._cache: "OrderedDict[Tuple[str, Hashable], Tuple[PluginOptions, int, Dict[str, Any]]]" = OrderedDict()
        self._max_entries = max_entries
        self._hits = 0
        self._misses = 0

    def resolve(self, options: PluginOptions, context: EvaluationContext = DEFAULT_CONTEXT) -> Dict[str, Any]:
        """Return the effective configuration of ``options`` for ``context``."""
        cache_key = (options.plugin_name, context.signature)
        revision = options.overrides.revision

        entry = self._cache.get(cache_key)
        if entry is not None and entry[0] is options and entry[1] == revision:
            self._cache.move_to_end(cache_key)
            self._hits += 1
            return copy.deepcopy(entry[2])

        self._misses += 1
        effective = resolve(options, context)
        self._cache[cache_key] = (options, revision, effective)
        self._cache.move_to_end(cache_key)
        while len(self._cache) > self._max_entries:
            self._cache.popitem(last=False)
        return copy.deepcopy(effective)

    def invalidate(self, plugin_name: Optional[str] = None) -> int:
        """
        Drop cached entries of one plugin, or of every plugin.

        Returns:
            Number of entries invalidated.
        """
        if plugin_name is None:
            count = len(self._cache)
            self._cache.clear()
        else:
            stale = [key for key in self._cache if key[0] == plugin_name]
            for key in stale:
                del self._cache[key]
            count = len(stale)
        logger.debug("[CONFIG RESOLVER] Invalidated %d cached entries (plugin=%s)", count, plugin_name or "*")
        return count

    def get_cache_stats(self) -> Dict[str, int]:
        return {
            "size": len(self._cache),
            "max_entries": self._max_entries,
            "hits": self._hits,
            "misses": self._misses,
        }
