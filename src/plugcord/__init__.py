"""
plugcord - Per-guild plugin composition for Discord bots

plugcord loads a bot's features as guild plugins. Each guild gets its own
effective configuration for every plugin and its own plugin instances.

Core Components:

- **Configuration**: JSON Schema validated plugin configs with ordered
  override rules matched by permission level, channel, category, role, user,
  thread and custom attributes
- **Config Resolver**: Folds matching overrides over the base config, caching
  results per plugin and evaluation context
- **Plugin Registry**: Dependency graph of registered plugins with cycle
  detection and deterministic load order
- **Plugin Lifecycle**: Per-guild activation in dependency order with load
  timeouts and rollback on failure
- **Built-in Plugins**: Cases, logs, mutes, time and date, utility and context
  menu plugins

Usage:
    from plugcord.main import main
    main()  # Starts the bot
"""
