from __future__ import annotations
import os
from pathlib import Path
import fcntl
from typing import Any, Dict, List, Mapping
import yaml

from plugcord.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path(os.getenv("PLUGCORD_CONFIG", "./config/app_config.yml")).resolve()

DEFAULT_PLUGIN_INIT_TIMEOUT = 30.0


class AppConfig:
    """File-lock based accessor around the YAML application configuration.

    The file holds process-wide settings and the per-guild configuration::

        database:
          path: ./data/app.db
        plugins:
          init_timeout_seconds: 30
          default_enabled: [cases, utility]
        guilds:
          "123456789012345678":
            levels:
              "108552944961454080": 100
            plugins:
              context_menu:
                enabled: true
                config: {log_channel: "1234"}
                overrides:
                  - level: ">=25"
                    config: {can_use: true}

    Reads take an fcntl shared lock so a concurrent writer never hands us a
    half-written file.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
            return {}
        except (OSError, yaml.YAMLError) as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if data is None:
            return {}
        if not isinstance(data, dict):
            logger.error("[APP CONFIGURATION] Config %s must contain a mapping at the top level.", self.config_path)
            return {}
        return data

    def _section(self, key: str) -> Dict[str, Any]:
        value = self._data.get(key, {})
        return value if isinstance(value, dict) else {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns the raw mapping that was loaded (an empty dict on error).
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """The cached configuration mapping. Callers should not mutate it."""
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def database_path(self) -> Path:
        """Path of the SQLite case store. Default ``./data/app.db``."""
        return Path(self._section("database").get("path") or "./data/app.db").resolve()

    @property
    def plugin_init_timeout(self) -> float:
        """Seconds a plugin's load hook may run before activation is aborted."""
        value = self._section("plugins").get("init_timeout_seconds", DEFAULT_PLUGIN_INIT_TIMEOUT)
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning("[APP CONFIGURATION] Invalid plugins.init_timeout_seconds %r, using default", value)
            return DEFAULT_PLUGIN_INIT_TIMEOUT

    @property
    def default_plugins(self) -> List[str]:
        """Plugins enabled for every guild unless the guild disables them."""
        value = self._section("plugins").get("default_enabled", [])
        return [str(name) for name in value] if isinstance(value, list) else []

    @property
    def guild_ids(self) -> List[str]:
        """Ids of guilds that have an explicit configuration entry."""
        return [str(guild_id) for guild_id in self._section("guilds")]

    def guild_config(self, guild_id: Any) -> Dict[str, Any]:
        """Return the configuration entry of one guild (empty when absent)."""
        guilds = self._section("guilds")
        entry = guilds.get(str(guild_id))
        if entry is None:
            entry = guilds.get(int(guild_id), {}) if str(guild_id).isdigit() else {}
        return entry if isinstance(entry, dict) else {}

    def guild_levels(self, guild_id: Any) -> Mapping[Any, Any]:
        levels = self.guild_config(guild_id).get("levels", {})
        return levels if isinstance(levels, dict) else {}

    def plugin_options(self, guild_id: Any, plugin_name: str) -> Dict[str, Any]:
        """Return a guild's configured options for one plugin (empty when absent)."""
        plugins = self.guild_config(guild_id).get("plugins", {})
        options = plugins.get(plugin_name, {}) if isinstance(plugins, dict) else {}
        return options if isinstance(options, dict) else {}

    def enabled_plugins(self, guild_id: Any) -> List[str]:
        """Plugins to load for a guild: defaults plus guild-enabled, minus guild-disabled."""
        enabled = list(self.default_plugins)
        plugins = self.guild_config(guild_id).get("plugins", {})
        if not isinstance(plugins, dict):
            return enabled
        for name, options in plugins.items():
            flag = options.get("enabled", True) if isinstance(options, dict) else True
            if flag and name not in enabled:
                enabled.append(name)
            elif not flag and name in enabled:
                enabled.remove(name)
        return enabled


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
