"""
Evaluation context used to decide which config overrides apply.

An :class:`EvaluationContext` is an immutable snapshot of the attributes of
one config lookup: the caller's permission level plus the optional user,
channel, category, thread and role identifiers, and any custom named
attributes a plugin wants to match overrides against.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, FrozenSet, Iterable, Mapping, Optional, Tuple

from plugcord.datatypes.discord_datatypes import ChannelID, RoleID, UserID


def _freeze_extra(extra: Mapping[str, Any] | Iterable[Tuple[str, Any]] | None) -> Tuple[Tuple[str, Any], ...]:
    if not extra:
        return ()
    items = extra.items() if isinstance(extra, Mapping) else extra
    frozen = []
    for name, value in items:
        if isinstance(value, (list, set, frozenset, tuple)):
            value = frozenset(value)
        hash(value)
        frozen.append((str(name), value))
    return tuple(sorted(frozen, key=lambda item: item[0]))


@dataclass(frozen=True, slots=True)
class EvaluationContext:
    """Immutable set of attributes matched by override predicates.

    Attributes:
        level: Permission level of the acting member (0 when unknown).
        user_id: Acting user, if any.
        channel_id: Channel the action happens in, if any.
        category_id: Parent category of ``channel_id``, if any.
        thread_id: Thread the action happens in, if any.
        is_thread: Whether the action happens inside a thread.
        role_ids: Roles held by the acting member.
        extra: Custom named attributes, stored as sorted ``(name, value)`` pairs.
    """

    level: int = 0
    user_id: Optional[UserID] = None
    channel_id: Optional[ChannelID] = None
    category_id: Optional[ChannelID] = None
    thread_id: Optional[ChannelID] = None
    is_thread: bool = False
    role_ids: FrozenSet[RoleID] = field(default_factory=frozenset)
    extra: Tuple[Tuple[str, Any], ...] = ()

    def __post_init__(self) -> None:
        if isinstance(self.level, bool) or not isinstance(self.level, int):
            raise TypeError(f"level must be an int, got {type(self.level).__name__}")
        # Normalise identifiers so structurally equal contexts compare and hash equal.
        for name, wrapper in (("user_id", UserID), ("channel_id", ChannelID),
                              ("category_id", ChannelID), ("thread_id", ChannelID)):
            value = getattr(self, name)
            if value is not None and not isinstance(value, wrapper):
                object.__setattr__(self, name, wrapper(value))
        object.__setattr__(self, "role_ids", frozenset(RoleID(role) for role in self.role_ids))
        object.__setattr__(self, "extra", _freeze_extra(self.extra))

    @classmethod
    def create(cls, level: int = 0, **attributes: Any) -> "EvaluationContext":
        """Build a context, routing unknown keyword arguments into ``extra``."""
        known = {name: attributes.pop(name) for name in
                 ("user_id", "channel_id", "category_id", "thread_id", "is_thread", "role_ids")
                 if name in attributes}
        return cls(level=level, extra=attributes, **known)

    @property
    def signature(self) -> Tuple[Any, ...]:
        """Hashable key identifying this context's attribute values."""
        return (
            self.level,
            self.user_id,
            self.channel_id,
            self.category_id,
            self.thread_id,
            self.is_thread,
            tuple(sorted(self.role_ids)),
            self.extra,
        )

    def get_extra(self, name: str, default: Any = None) -> Any:
        for key, value in self.extra:
            if key == name:
                return value
        return default

    def has_extra(self, name: str) -> bool:
        return any(key == name for key, _ in self.extra)


DEFAULT_CONTEXT = EvaluationContext()
