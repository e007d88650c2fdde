"""
Configuration management for plugcord.

This package handles application configuration and plugin config resolution:

- **app_configuration.py**: File-locked YAML loader for process settings and
  per-guild entries (permission levels, enabled plugins, plugin options).

- **config_schema.py**: JSON Schema validation of plugin configs and override
  partials, reporting every issue and filling defaults.

- **overrides.py**: Override criteria parsed once into predicates, and ordered
  override rule sets.

- **config_resolver.py**: Deep-merges matching overrides over the base config,
  with a revision-aware LRU cache.

- **permission_levels.py**: Maps members to permission levels and builds
  evaluation contexts from members and channels.
"""
