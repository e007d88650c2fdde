"""
Plugin configuration schemas.

Schemas are JSON Schema documents (validated with ``jsonschema``) describing
an object: its recognised keys, their types and default values. Unknown keys
are rejected through ``additionalProperties: false``, which
:class:`ConfigSchema` adds to every object level that does not set it.

Two validation modes are offered:

* :meth:`ConfigSchema.validate` checks a complete configuration and fills in
  schema defaults for absent keys;
* :meth:`ConfigSchema.validate_partial` checks an override partial: the same
  type and unknown-key rules apply, but no key is required and no default is
  filled, so a partial only carries the keys it overrides.
"""

from __future__ import annotations

import copy
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError as JsonSchemaValidationError

from plugcord.errors import ConfigValidationError, SchemaIssue
from plugcord.util.logger import get_logger

logger = get_logger("config_schema")


def describe_kind(value: Any) -> str:
    """Return the JSON type name of a Python value."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__


def _schema_types(schema: Mapping[str, Any]) -> List[str]:
    declared = schema.get("type")
    if declared is None:
        return []
    return [declared] if isinstance(declared, str) else list(declared)


def _is_object_schema(schema: Mapping[str, Any]) -> bool:
    return "object" in _schema_types(schema) or "properties" in schema


def _close_objects(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Default ``additionalProperties`` to false on every object level."""
    if _is_object_schema(schema):
        schema.setdefault("additionalProperties", False)
        for sub in schema.get("properties", {}).values():
            if isinstance(sub, dict):
                _close_objects(sub)
    items = schema.get("items")
    if isinstance(items, dict):
        _close_objects(items)
    return schema


def _strip_required(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Drop ``required`` from every object level reached through ``properties``.

    Array item schemas keep theirs: arrays are replaced wholesale on merge, so
    their items must always be complete.
    """
    schema.pop("required", None)
    for sub in schema.get("properties", {}).values():
        if isinstance(sub, dict):
            _strip_required(sub)
    return schema


def _to_plain(value: Any) -> Any:
    """Copy arbitrary mappings into plain dicts so the validator sees JSON types."""
    if isinstance(value, Mapping):
        return {key: _to_plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_to_plain(item) for item in value]
    return copy.deepcopy(value)


def fill_defaults(schema: Mapping[str, Any], value: Any) -> Any:
    """Fill absent object keys with their schema defaults, recursively.

    Absent nested objects without an explicit default are created from their
    own property defaults. ``value`` is modified in place and returned.
    """
    if not isinstance(value, dict):
        return value
    for key, sub in schema.get("properties", {}).items():
        if not isinstance(sub, Mapping):
            continue
        if key in value:
            value[key] = fill_defaults(sub, value[key])
        elif "default" in sub:
            value[key] = copy.deepcopy(sub["default"])
        elif _schema_types(sub) == ["object"] and "properties" in sub:
            value[key] = fill_defaults(sub, {})
    return value


def _issues_from_error(error: JsonSchemaValidationError) -> List[SchemaIssue]:
    path = tuple(error.absolute_path)
    instance = error.instance

    if error.validator == "additionalProperties" and isinstance(instance, Mapping):
        known = set(error.schema.get("properties", {}))
        patterns = list(error.schema.get("patternProperties", {}))
        unknown = [
            key for key in instance
            if key not in known and not any(re.search(pattern, str(key)) for pattern in patterns)
        ]
        return [
            SchemaIssue(
                path=path + (key,),
                expected="no such key",
                actual=describe_kind(instance[key]),
                message=f"unknown key '{key}'",
            )
            for key in unknown
        ]

    if error.validator == "required" and isinstance(instance, Mapping):
        return [
            SchemaIssue(
                path=path + (key,),
                expected="required key",
                actual="missing",
                message=f"'{key}' is a required key",
            )
            for key in error.validator_value
            if key not in instance
        ]

    if error.validator == "type":
        declared = error.validator_value
        expected = declared if isinstance(declared, str) else "|".join(declared)
        return [SchemaIssue(path=path, expected=expected, actual=describe_kind(instance), message=error.message)]

    if error.validator == "enum":
        expected = "one of " + ", ".join(repr(option) for option in error.validator_value)
        return [SchemaIssue(path=path, expected=expected, actual=repr(instance), message=error.message)]

    if error.validator in ("anyOf", "oneOf"):
        return [SchemaIssue(
            path=path,
            expected=f"a value matching {error.validator}",
            actual=describe_kind(instance),
            message=error.message,
        )]

    return [SchemaIssue(
        path=path,
        expected=f"{error.validator} {error.validator_value!r}",
        actual=repr(instance),
        message=error.message,
    )]


def _collect_issues(errors: Iterable[JsonSchemaValidationError]) -> List[SchemaIssue]:
    issues: List[SchemaIssue] = []
    seen = set()
    for error in errors:
        for issue in _issues_from_error(error):
            key = (issue.path, issue.expected)
            if key in seen:
                continue
            seen.add(key)
            issues.append(issue)
    issues.sort(key=lambda issue: [str(part) for part in issue.path])
    return issues


class ConfigSchema:
    """Validator for one plugin's configuration shape.

    Args:
        schema: JSON Schema document describing an object. Checked against the
            JSON Schema meta-schema on construction (``jsonschema.SchemaError``
            is raised for malformed documents).
        name: Label used in error messages, usually the plugin name.
    """

    def __init__(self, schema: Mapping[str, Any], *, name: Optional[str] = None) -> None:
        document = _close_objects(copy.deepcopy(dict(schema)))
        Draft202012Validator.check_schema(document)
        if not _is_object_schema(document):
            raise ValueError("A config schema must describe an object")

        self.name = name
        self._schema = document
        self._validator = Draft202012Validator(document)
        self._partial_validator = Draft202012Validator(_strip_required(copy.deepcopy(document)))

    @property
    def schema(self) -> Dict[str, Any]:
        """A copy of the underlying JSON Schema document."""
        return copy.deepcopy(self._schema)

    @property
    def keys(self) -> List[str]:
        """Top-level keys recognised by the schema."""
        return list(self._schema.get("properties", {}))

    def validate(self, raw: Any) -> Dict[str, Any]:
        """Validate a complete configuration.

        Args:
            raw: Candidate configuration; ``None`` is treated as an empty mapping.

        Returns:
            A new dict conforming to the schema with defaults filled in.

        Raises:
            ConfigValidationError: Listing every offending key path.
        """
        if raw is None:
            raw = {}
        if not isinstance(raw, Mapping):
            raise ConfigValidationError(
                [SchemaIssue((), "object", describe_kind(raw), "configuration must be a mapping")],
                source=self.name,
            )

        candidate = fill_defaults(self._schema, _to_plain(raw))
        issues = _collect_issues(self._validator.iter_errors(candidate))
        if issues:
            logger.debug("[CONFIG SCHEMA] %s config failed validation with %d issue(s)", self.name, len(issues))
            raise ConfigValidationError(issues, source=self.name)
        return candidate

    def validate_partial(self, raw: Any) -> Dict[str, Any]:
        """Validate an override partial without filling defaults.

        Raises:
            ConfigValidationError: If the partial has unknown keys or wrongly
                typed values.
        """
        if not isinstance(raw, Mapping):
            raise ConfigValidationError(
                [SchemaIssue((), "object", describe_kind(raw), "override config must be a mapping")],
                source=self.name,
            )

        candidate = _to_plain(raw)
        issues = _collect_issues(self._partial_validator.iter_errors(candidate))
        if issues:
            raise ConfigValidationError(issues, source=self.name)
        return candidate

    def __repr__(self) -> str:
        return f"ConfigSchema(name={self.name!r}, keys={self.keys!r})"


def validate(schema: ConfigSchema | Mapping[str, Any], raw: Any) -> Dict[str, Any]:
    """Validate ``raw`` against ``schema`` (a :class:`ConfigSchema` or a JSON Schema document)."""
    if not isinstance(schema, ConfigSchema):
        schema = ConfigSchema(schema)
    return schema.validate(raw)
