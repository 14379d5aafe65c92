import copy
import logging
import pathlib
import shlex
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger("livedoc.config")

# Name of the per-project configuration file looked up in the project root
CONFIG_FILENAME = "livedoc.yaml"


class ConfigManager:
    """
    Central configuration manager for the live-reload documentation server.

    Values come from three layers, lowest precedence first: the built-in
    ``DEFAULT_CONFIG``, an optional YAML file, and explicit ``set()`` calls
    (used by the command line).
    """

    # Default configuration values
    DEFAULT_CONFIG = {
        "server": {
            "host": "0.0.0.0",
            "port": 8000,
            "open": False,
            "log_level": "warning",
        },
        "watch": {
            "debounce": 0.2,
            "ignore": [
                ".git",
                ".hg",
                ".svn",
                "target",
                "node_modules",
                "__pycache__",
                "*.swp",
                "*~",
                ".#*",
                "4913",
                "Cargo.lock",
            ],
            "queue_size": 1024,
            "health_interval": 1.0,
        },
        "build": {
            "command": None,
            "artifacts": None,
            "package": None,
            "stderr_tail": 20,
            "snapshots": None,
            "keep_snapshots": 3,
        },
        "reload": {
            "send_timeout": 2.0,
        },
    }

    def __init__(self, config_path: Optional[str] = None, project_root: Optional[str] = None):
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to a YAML configuration file. If None, looks for
                ``livedoc.yaml`` inside *project_root*.
            project_root: Project directory used to locate the default file
        """
        if config_path is None and project_root is not None:
            candidate = pathlib.Path(project_root) / CONFIG_FILENAME
            config_path = str(candidate) if candidate.exists() else None
        self.config_path = config_path
        self.config = self._load_config()
        self.validate()

    def _load_config(self) -> Dict[str, Any]:
        """
        Load configuration from file and merge with defaults.

        Returns:
            The merged configuration dictionary.
        """
        merged_config = copy.deepcopy(self.DEFAULT_CONFIG)
        if self.config_path is None:
            return merged_config

        config_path = pathlib.Path(self.config_path)
        if not config_path.exists():
            logger.warning("Configuration file %s not found. Using defaults.", self.config_path)
            return merged_config

        try:
            user_config = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            logger.warning("Error loading configuration %s: %s. Using defaults.", config_path, e)
            return merged_config

        if not isinstance(user_config, dict):
            logger.warning("Configuration file %s is not a mapping. Using defaults.", config_path)
            return merged_config

        for key, value in user_config.items():
            if isinstance(value, dict) and isinstance(merged_config.get(key), dict):
                # For sections, update rather than replace
                merged_config[key].update(value)
            else:
                merged_config[key] = value

        return merged_config

    def validate(self) -> None:
        """
        Validate configuration values, resetting invalid ones to their default.
        """
        checks = {
            "server.port": lambda v: isinstance(v, int) and 0 <= v <= 65535,
            "watch.debounce": lambda v: isinstance(v, (int, float)) and v >= 0,
            "watch.ignore": lambda v: isinstance(v, list) and all(isinstance(p, str) for p in v),
            "watch.queue_size": lambda v: isinstance(v, int) and v > 0,
            "watch.health_interval": lambda v: isinstance(v, (int, float)) and v > 0,
            "build.stderr_tail": lambda v: isinstance(v, int) and v > 0,
            "build.keep_snapshots": lambda v: isinstance(v, int) and v >= 1,
            "reload.send_timeout": lambda v: isinstance(v, (int, float)) and v > 0,
        }
        for key, is_valid in checks.items():
            value = self.get(key)
            if not is_valid(value):
                default = self._default(key)
                logger.warning("Invalid value %r for '%s'. Using %r.", value, key, default)
                self.set(key, copy.deepcopy(default))

        command = self.get("build.command")
        if isinstance(command, str):
            # A plain string is split like a shell would
            self.set("build.command", shlex.split(command))
        elif command is not None and not isinstance(command, list):
            logger.warning("Invalid value %r for 'build.command'. Using cargo.", command)
            self.set("build.command", None)

    def _default(self, key: str) -> Any:
        value: Any = self.DEFAULT_CONFIG
        for k in key.split("."):
            value = value[k]
        return value

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.

        Args:
            key: The configuration key (dot notation supported, e.g., 'server.port')
            default: The default value to return if the key is not found

        Returns:
            The configuration value, or the default if not found
        """
        keys = key.split(".")
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """
        Override a configuration value.

        Args:
            key: The configuration key in dot notation
            value: The new value
        """
        *parents, leaf = key.split(".")
        section = self.config
        for k in parents:
            section = section.setdefault(k, {})
        section[leaf] = value

    def get_path(self, key: str, base: Optional[pathlib.Path] = None) -> Optional[pathlib.Path]:
        """
        Get a path from the configuration.

        Args:
            key: The configuration key in dot notation
            base: Directory relative paths are resolved against

        Returns:
            The path as a pathlib.Path object, or None when unset
        """
        path_str = self.get(key)
        if path_str is None:
            return None
        path = pathlib.Path(path_str).expanduser()
        if base is not None and not path.is_absolute():
            path = base / path
        return path
