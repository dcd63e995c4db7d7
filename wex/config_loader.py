"""
Wex — Settings Loader

Harness settings (runner command, timeout, marker prefix, ...) layered
from lowest to highest precedence:

  Tier 0: Built-in defaults
  Tier 1: Settings file (wex.yaml in the working directory, or --settings)
  Tier 2: Environment variable overrides (WEX_* prefix)

CLI flags are applied on top by the caller via `override()`.
This is separate from the experiment suite, which is loaded by
wex.experiments.

Usage:
    from wex.config_loader import load_settings

    settings = load_settings(path="wex.yaml")
    timeout = settings.get("runner.timeout_seconds", 900)
"""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any

import yaml

from wex.errors import ConfigError
from wex.logging import get_logger

logger = get_logger("config")

DEFAULT_SETTINGS_FILE = "wex.yaml"

DEFAULTS: dict[str, Any] = {
    "runner": {
        "command": "act",
        "timeout_seconds": 900,
        "env_file": ".env",
        "input_file": ".input",
        "input_prefix": "INPUT_",
        "extra_args": [],
    },
    "markers": {
        "prefix": "⭐ Run Main ",
    },
    "outputs": {
        "protocol": "set-output",
    },
    "logging": {
        "level": "WARNING",
        "format": "json",
    },
}


class SettingsLoader:
    """
    Hierarchical settings loader with deep merge.

    An explicit settings path must exist; the implicit wex.yaml is
    optional.
    """

    def __init__(self, path: str | None = None, cwd: str = "."):
        self.path = path
        self.cwd = Path(cwd)
        self._data: dict[str, Any] = {}
        self._source_log: list[str] = []
        self._loaded = False

    def load(self) -> dict[str, Any]:
        """Load and merge all tiers. Returns the merged dict."""
        self._data = copy.deepcopy(DEFAULTS)
        self._source_log = ["defaults"]

        # Tier 1: settings file
        if self.path:
            file_path = Path(self.path)
            if not file_path.is_file():
                raise ConfigError(str(file_path), "settings file does not exist")
        else:
            file_path = self.cwd / DEFAULT_SETTINGS_FILE
        if file_path.is_file():
            try:
                with open(file_path, encoding="utf-8") as f:
                    file_data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigError(str(file_path), f"cannot load settings: {e}") from e
            if not isinstance(file_data, dict):
                raise ConfigError(str(file_path), "settings file must be a mapping")
            self._data = _deep_merge(self._data, file_data)
            self._source_log.append(f"file:{file_path}")

        # Tier 2: environment variables
        env_overrides = _load_env_overrides()
        if env_overrides:
            self._data = _deep_merge(self._data, env_overrides)
            self._source_log.append(f"env_vars({len(env_overrides)} keys)")

        self._loaded = True
        logger.debug("Settings loaded: sources=%s", self._source_log)
        return self._data

    def get(self, dotted_key: str, default: Any = None) -> Any:
        """
        Get a value by dotted key path.

        Example: settings.get("runner.timeout_seconds", 900)
        """
        if not self._loaded:
            self.load()

        current = self._data
        for k in dotted_key.split("."):
            if isinstance(current, dict) and k in current:
                current = current[k]
            else:
                return default
        return current

    def override(self, dotted_key: str, value: Any) -> None:
        """Set a value on top of every loaded tier (used for CLI flags)."""
        if not self._loaded:
            self.load()
        keys = dotted_key.split(".")
        current = self._data
        for k in keys[:-1]:
            current = current.setdefault(k, {})
        current[keys[-1]] = value
        self._source_log.append(f"override:{dotted_key}")

    @property
    def sources(self) -> list[str]:
        return list(self._source_log)


# ═══════════════════════════════════════════════════════════════════
# Deep Merge
# ═══════════════════════════════════════════════════════════════════

def _deep_merge(base: dict, overlay: dict) -> dict:
    """
    Deep merge overlay into base. Overlay values win.
    Dicts are merged recursively. Lists and scalars are replaced.
    """
    result = copy.deepcopy(base)
    for key, value in overlay.items():
        if (
            key in result
            and isinstance(result[key], dict)
            and isinstance(value, dict)
        ):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


# ═══════════════════════════════════════════════════════════════════
# Environment Variable Overrides
# ═══════════════════════════════════════════════════════════════════

_ENV_MAPPINGS: dict[str, str] = {
    "WEX_RUNNER_COMMAND": "runner.command",
    "WEX_RUNNER_TIMEOUT": "runner.timeout_seconds",
    "WEX_ENV_FILE": "runner.env_file",
    "WEX_INPUT_PREFIX": "runner.input_prefix",
    "WEX_MARKER_PREFIX": "markers.prefix",
    "WEX_OUTPUT_PROTOCOL": "outputs.protocol",
    "WEX_LOG_LEVEL": "logging.level",
    "WEX_LOG_FORMAT": "logging.format",
}

# Values that must stay strings even when they look numeric or boolean.
_STRING_KEYS = {"runner.command", "runner.env_file", "runner.input_prefix",
                "markers.prefix", "outputs.protocol", "logging.level", "logging.format"}


def _load_env_overrides() -> dict[str, Any]:
    """
    Load WEX_* environment variables and map to settings paths.
    Also supports arbitrary WEX_CONFIG__section__key=value overrides.
    """
    result: dict[str, Any] = {}

    def _put(config_path: str, value: str):
        keys = config_path.split(".")
        current = result
        for k in keys[:-1]:
            current = current.setdefault(k, {})
        current[keys[-1]] = value if config_path in _STRING_KEYS else _auto_convert(value)

    for env_key, config_path in _ENV_MAPPINGS.items():
        value = os.environ.get(env_key)
        if value is not None:
            _put(config_path, value)

    for key, value in os.environ.items():
        if key.startswith("WEX_CONFIG__"):
            _put(key[len("WEX_CONFIG__"):].lower().replace("__", "."), value)

    return result


def _auto_convert(value: str) -> Any:
    """Convert string values to appropriate types."""
    if value.lower() in ("true", "yes"):
        return True
    if value.lower() in ("false", "no"):
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value


# ═══════════════════════════════════════════════════════════════════
# Module-level Access
# ═══════════════════════════════════════════════════════════════════

def load_settings(path: str | None = None, cwd: str = ".") -> SettingsLoader:
    """Create a fresh (non-cached) settings loader."""
    loader = SettingsLoader(path=path, cwd=cwd)
    loader.load()
    return loader
