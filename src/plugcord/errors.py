"""
Exception hierarchy for plugcord.

Registration-time errors (schema, predicate, graph) are fatal to the
registration that raised them. Activation-time errors are scoped to one guild:
the activation caller receives them and other guilds are unaffected.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence, Tuple


class PlugcordError(Exception):
    """Base class for every error raised by plugcord."""


# -------------------- Configuration --------------------

@dataclass(frozen=True, slots=True)
class SchemaIssue:
    """One problem found while validating a value against a config schema.

    Attributes:
        path: Key path to the offending value, e.g. ``("emojis", "member_joined")``.
        expected: What the schema expects at that path.
        actual: What was found instead.
        message: Human-readable description.
    """

    path: Tuple[Any, ...]
    expected: str
    actual: str
    message: str

    @property
    def dotted_path(self) -> str:
        return ".".join(str(part) for part in self.path) or "<root>"

    def __str__(self) -> str:
        return f"{self.dotted_path}: expected {self.expected}, got {self.actual}"


class ConfigValidationError(PlugcordError):
    """A configuration value does not match its schema.

    Carries every issue found, not only the first one.
    """

    def __init__(self, issues: Iterable[SchemaIssue], *, source: Optional[str] = None) -> None:
        self.issues: List[SchemaIssue] = list(issues)
        self.source = source
        prefix = f"{source}: " if source else ""
        summary = "; ".join(str(issue) for issue in self.issues)
        super().__init__(f"{prefix}invalid configuration ({len(self.issues)} issue(s)): {summary}")

    @property
    def paths(self) -> List[str]:
        return [issue.dotted_path for issue in self.issues]


class MalformedPredicateError(PlugcordError):
    """An override criteria mapping could not be parsed."""

    def __init__(self, message: str, *, value: Any = None) -> None:
        self.value = value
        super().__init__(message)


# -------------------- Registry / graph --------------------

class RegistrationError(PlugcordError):
    """A plugin could not be registered (duplicate name, sealed registry, bad declaration)."""


class UnknownPluginError(RegistrationError):
    """A plugin name does not resolve to a registered plugin."""

    def __init__(self, name: str, *, required_by: Optional[str] = None) -> None:
        self.name = name
        self.required_by = required_by
        if required_by:
            message = f"Plugin '{required_by}' depends on unregistered plugin '{name}'"
        else:
            message = f"Unknown plugin '{name}'"
        super().__init__(message)


class CycleError(PlugcordError):
    """The plugin dependency graph contains a cycle.

    ``cycle`` lists every plugin on the offending cycle, in dependency order,
    starting and ending with the same plugin.
    """

    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle: List[str] = list(cycle)
        super().__init__("Dependency cycle detected: " + " -> ".join(self.cycle))

    @property
    def members(self) -> List[str]:
        """Distinct plugin names on the cycle."""
        return list(dict.fromkeys(self.cycle))


class MissingDependencyError(PlugcordError):
    """A plugin asked for a handle to a plugin it did not declare as a dependency."""

    def __init__(self, requester: str, dependency: str) -> None:
        self.requester = requester
        self.dependency = dependency
        super().__init__(f"Plugin '{requester}' did not declare a dependency on '{dependency}'")


class DependencyNotReadyError(PlugcordError):
    """A declared dependency is not loaded for the requesting guild."""

    def __init__(self, requester: Optional[str], dependency: str, guild_id: Any) -> None:
        self.requester = requester
        self.dependency = dependency
        self.guild_id = guild_id
        if requester:
            message = f"Dependency '{dependency}' of '{requester}' is not ready in guild {guild_id}"
        else:
            message = f"Plugin '{dependency}' is not ready in guild {guild_id}"
        super().__init__(message)


# -------------------- Lifecycle --------------------

class InitializationError(PlugcordError):
    """A plugin's load hook failed for one guild."""

    def __init__(self, guild_id: Any, plugin_name: str, message: str = "") -> None:
        self.guild_id = guild_id
        self.plugin_name = plugin_name
        super().__init__(message or f"Plugin '{plugin_name}' failed to initialize in guild {guild_id}")


class InitializationTimeoutError(InitializationError):
    """A plugin's load hook did not complete within the activation timeout."""

    def __init__(self, guild_id: Any, plugin_name: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(
            guild_id,
            plugin_name,
            f"Plugin '{plugin_name}' did not initialize within {timeout:.2f}s in guild {guild_id}",
        )


class GuildNotActiveError(PlugcordError):
    """The guild has no active plugin state."""

    def __init__(self, guild_id: Any) -> None:
        self.guild_id = guild_id
        super().__init__(f"Guild {guild_id} is not active")
