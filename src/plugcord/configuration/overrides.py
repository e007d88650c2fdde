"""
Conditional config overrides.

An override pairs a set of criteria with a partial configuration::

    {"level": ">=50", "config": {"can_use": True}}
    {"channel": ["1234", "5678"], "role": "42", "config": {"log_channel": "99"}}
    {"any": [{"user": 7}, {"level": "100"}], "config": {...}}

Criteria are parsed once, when the override is added, into a tree of
predicate objects. Evaluating the tree against an
:class:`~plugcord.datatypes.evaluation_context.EvaluationContext` never
raises; a criterion that references an attribute the context does not carry
simply does not match.

Level patterns: ``">=N"``, ``">N"``, ``"<=N"``, ``"<N"``, ``"=N"``/``"==N"``,
``"!=N"``, ranges ``"N..M"`` / ``"N.."`` / ``"..M"`` (inclusive), and a bare
``N`` which means ``">=N"``. A list of patterns must all match.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from plugcord.configuration.config_schema import ConfigSchema
from plugcord.datatypes.discord_datatypes import ChannelID, RoleID, Snowflake, UserID
from plugcord.datatypes.evaluation_context import EvaluationContext
from plugcord.errors import MalformedPredicateError
from plugcord.util.logger import get_logger

logger = get_logger("overrides")

_LEVEL_PATTERN = re.compile(r"^\s*(>=|<=|==|!=|>|<|=)?\s*(-?\d+)\s*$")
_LEVEL_RANGE = re.compile(r"^\s*(-?\d+)?\s*\.\.\s*(-?\d+)?\s*$")


class Comparison(Enum):
    """Numeric comparison applied to the context's permission level."""

    GTE = ">="
    GT = ">"
    LTE = "<="
    LT = "<"
    EQ = "=="
    NE = "!="

    def compare(self, actual: int, expected: int) -> bool:
        if self is Comparison.GTE:
            return actual >= expected
        if self is Comparison.GT:
            return actual > expected
        if self is Comparison.LTE:
            return actual <= expected
        if self is Comparison.LT:
            return actual < expected
        if self is Comparison.EQ:
            return actual == expected
        return actual != expected


# -------------------- Predicates --------------------

class Predicate:
    """Base class of parsed override criteria."""

    __slots__ = ()

    def matches(self, context: EvaluationContext) -> bool:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class LevelPredicate(Predicate):
    comparison: Comparison
    value: int

    def matches(self, context: EvaluationContext) -> bool:
        return self.comparison.compare(context.level, self.value)


@dataclass(frozen=True, slots=True)
class AttributePredicate(Predicate):
    """Matches when a context identifier equals one of ``values``."""

    attribute: str
    values: FrozenSet[Snowflake]

    def matches(self, context: EvaluationContext) -> bool:
        actual = getattr(context, self.attribute, None)
        return actual is not None and actual in self.values


@dataclass(frozen=True, slots=True)
class RolePredicate(Predicate):
    """Matches when the context holds every listed role."""

    roles: FrozenSet[RoleID]

    def matches(self, context: EvaluationContext) -> bool:
        return self.roles <= context.role_ids


@dataclass(frozen=True, slots=True)
class ThreadPredicate(Predicate):
    is_thread: bool

    def matches(self, context: EvaluationContext) -> bool:
        return context.is_thread is self.is_thread


@dataclass(frozen=True, slots=True)
class ExtraPredicate(Predicate):
    """Matches a custom context attribute by equality or membership.

    Set-valued attributes match when they share at least one value with
    ``values``.
    """

    name: str
    values: FrozenSet[Any]

    def matches(self, context: EvaluationContext) -> bool:
        if not context.has_extra(self.name):
            return False
        actual = context.get_extra(self.name)
        if isinstance(actual, frozenset):
            return not actual.isdisjoint(self.values)
        return actual in self.values


@dataclass(frozen=True, slots=True)
class AllOf(Predicate):
    predicates: Tuple[Predicate, ...]

    def matches(self, context: EvaluationContext) -> bool:
        return all(predicate.matches(context) for predicate in self.predicates)


@dataclass(frozen=True, slots=True)
class AnyOf(Predicate):
    predicates: Tuple[Predicate, ...]

    def matches(self, context: EvaluationContext) -> bool:
        return any(predicate.matches(context) for predicate in self.predicates)


@dataclass(frozen=True, slots=True)
class Not(Predicate):
    predicate: Predicate

    def matches(self, context: EvaluationContext) -> bool:
        return not self.predicate.matches(context)


# -------------------- Parsing --------------------

def _combine(predicates: List[Predicate]) -> Predicate:
    return predicates[0] if len(predicates) == 1 else AllOf(tuple(predicates))


def _as_list(value: Any, criterion: str) -> List[Any]:
    values = list(value) if isinstance(value, (list, tuple, set, frozenset)) else [value]
    if not values:
        raise MalformedPredicateError(f"'{criterion}' criterion must not be empty", value=value)
    return values


def parse_level(pattern: Any) -> Predicate:
    """Parse one level pattern (or a list of patterns) into a predicate."""
    if isinstance(pattern, (list, tuple)):
        return _combine([parse_level(item) for item in _as_list(pattern, "level")])

    if isinstance(pattern, bool):
        raise MalformedPredicateError("level must be an integer or a level pattern, got a boolean", value=pattern)
    if isinstance(pattern, int):
        return LevelPredicate(Comparison.GTE, pattern)
    if not isinstance(pattern, str):
        raise MalformedPredicateError(f"level must be an integer or a string, got {type(pattern).__name__}", value=pattern)

    match = _LEVEL_PATTERN.match(pattern)
    if match:
        operator, value = match.groups()
        if operator is None:
            comparison = Comparison.GTE
        elif operator == "=":
            comparison = Comparison.EQ
        else:
            comparison = Comparison(operator)
        return LevelPredicate(comparison, int(value))

    match = _LEVEL_RANGE.match(pattern)
    if match:
        low, high = match.groups()
        if low is None and high is None:
            raise MalformedPredicateError(f"Level range {pattern!r} has no bounds", value=pattern)
        bounds: List[Predicate] = []
        if low is not None:
            bounds.append(LevelPredicate(Comparison.GTE, int(low)))
        if high is not None:
            bounds.append(LevelPredicate(Comparison.LTE, int(high)))
        if low is not None and high is not None and int(low) > int(high):
            raise MalformedPredicateError(f"Level range {pattern!r} is empty", value=pattern)
        return _combine(bounds)

    raise MalformedPredicateError(f"Invalid level pattern {pattern!r}", value=pattern)


def _snowflakes(value: Any, criterion: str, wrapper: type) -> FrozenSet[Snowflake]:
    try:
        return frozenset(wrapper(item) for item in _as_list(value, criterion))
    except (ValueError, TypeError) as exc:
        raise MalformedPredicateError(f"Invalid id in '{criterion}' criterion: {exc}", value=value) from exc


def _parse_attribute(attribute: str, wrapper: type) -> Callable[[Any, str], Predicate]:
    def parse(value: Any, criterion: str) -> Predicate:
        return AttributePredicate(attribute, _snowflakes(value, criterion, wrapper))
    return parse


def _parse_role(value: Any, criterion: str) -> Predicate:
    return RolePredicate(_snowflakes(value, criterion, RoleID))


def _parse_is_thread(value: Any, criterion: str) -> Predicate:
    if not isinstance(value, bool):
        raise MalformedPredicateError("'is_thread' criterion must be a boolean", value=value)
    return ThreadPredicate(value)


def _parse_extra(value: Any, criterion: str) -> Predicate:
    if not isinstance(value, Mapping) or not value:
        raise MalformedPredicateError("'extra' criterion must be a non-empty mapping", value=value)
    predicates: List[Predicate] = []
    for name, expected in value.items():
        try:
            values = frozenset(_as_list(expected, f"extra.{name}"))
        except TypeError as exc:
            raise MalformedPredicateError(f"Unhashable value in 'extra.{name}' criterion", value=expected) from exc
        predicates.append(ExtraPredicate(str(name), values))
    return _combine(predicates)


def _parse_group(value: Any, criterion: str) -> List[Predicate]:
    if not isinstance(value, (list, tuple)) or not value:
        raise MalformedPredicateError(f"'{criterion}' criterion must be a non-empty list of criteria", value=value)
    return [parse_criteria(item) for item in value]


def _parse_all(value: Any, criterion: str) -> Predicate:
    return AllOf(tuple(_parse_group(value, criterion)))


def _parse_any(value: Any, criterion: str) -> Predicate:
    return AnyOf(tuple(_parse_group(value, criterion)))


def _parse_not(value: Any, criterion: str) -> Predicate:
    return Not(parse_criteria(value))


CRITERIA_PARSERS: Dict[str, Callable[[Any, str], Predicate]] = {
    "level": lambda value, criterion: parse_level(value),
    "user": _parse_attribute("user_id", UserID),
    "channel": _parse_attribute("channel_id", ChannelID),
    "category": _parse_attribute("category_id", ChannelID),
    "thread": _parse_attribute("thread_id", ChannelID),
    "role": _parse_role,
    "is_thread": _parse_is_thread,
    "extra": _parse_extra,
    "all": _parse_all,
    "any": _parse_any,
    "not": _parse_not,
}


def parse_criteria(criteria: Any) -> Predicate:
    """Parse a criteria mapping into a predicate; every listed criterion must match.

    Raises:
        MalformedPredicateError: For unknown criteria, empty criteria or
            values of the wrong shape.
    """
    if not isinstance(criteria, Mapping):
        raise MalformedPredicateError(f"Override criteria must be a mapping, got {type(criteria).__name__}", value=criteria)
    if not criteria:
        raise MalformedPredicateError("Override criteria must not be empty", value=criteria)

    predicates: List[Predicate] = []
    for criterion, value in criteria.items():
        parser = CRITERIA_PARSERS.get(criterion)
        if parser is None:
            raise MalformedPredicateError(f"Unknown override criterion '{criterion}'", value=criteria)
        predicates.append(parser(value, criterion))
    return _combine(predicates)


# -------------------- Rule set --------------------

@dataclass(frozen=True, slots=True)
class OverrideRule:
    """A parsed predicate and the validated partial config it applies."""

    predicate: Predicate
    config: Dict[str, Any]
    criteria: Mapping[str, Any]

    def matches(self, context: EvaluationContext) -> bool:
        return self.predicate.matches(context)


class OverrideRuleSet:
    """Ordered override rules of one plugin.

    Rules are evaluated in declaration order and every matching rule applies;
    later rules take precedence over earlier ones when merged.
    ``revision`` increases on every mutation so cached resolutions can tell
    when they are stale.
    """

    def __init__(self, schema: ConfigSchema, rules: Iterable[OverrideRule] = ()) -> None:
        self._schema = schema
        self._rules: List[OverrideRule] = list(rules)
        self._revision = 0

    @property
    def schema(self) -> ConfigSchema:
        return self._schema

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def rules(self) -> Tuple[OverrideRule, ...]:
        return tuple(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def add_rule(self, criteria: Mapping[str, Any], partial: Mapping[str, Any]) -> OverrideRule:
        """Append a rule after validating its criteria and partial config.

        Raises:
            MalformedPredicateError: If ``criteria`` cannot be parsed.
            ConfigValidationError: If ``partial`` is not a valid subset of the schema.
        """
        predicate = parse_criteria(criteria)
        config = self._schema.validate_partial(partial)
        rule = OverrideRule(predicate=predicate, config=config, criteria=dict(criteria))
        self._rules.append(rule)
        self._revision += 1
        logger.debug(
            "[OVERRIDES] Added rule #%d for %s: %s -> %s",
            len(self._rules), self._schema.name, dict(criteria), sorted(config),
        )
        return rule

    def add_override(self, override: Mapping[str, Any]) -> OverrideRule:
        """Append a rule given in declarative form: criteria keys plus ``config``."""
        if not isinstance(override, Mapping):
            raise MalformedPredicateError(f"Override must be a mapping, got {type(override).__name__}", value=override)
        criteria = {key: value for key, value in override.items() if key != "config"}
        return self.add_rule(criteria, override.get("config", {}))

    def extend(self, overrides: Iterable[Mapping[str, Any]]) -> None:
        for override in overrides:
            self.add_override(override)

    def clear(self) -> None:
        self._rules.clear()
        self._revision += 1

    def copy(self) -> "OverrideRuleSet":
        """Return an independent rule set holding the same (immutable) rules."""
        return OverrideRuleSet(self._schema, self._rules)

    def matches(self, context: EvaluationContext) -> List[Dict[str, Any]]:
        """Return, in declaration order, the partial configs whose criteria match ``context``.

        The returned partials are shared with the rule set; callers must not
        mutate them.
        """
        return [rule.config for rule in self._rules if rule.matches(context)]

    def __repr__(self) -> str:
        return f"OverrideRuleSet(schema={self._schema.name!r}, rules={len(self._rules)}, revision={self._revision})"
