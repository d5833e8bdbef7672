"""
Shuttle Configuration Loader
Reads shuttle.yaml once per process. Missions and subsystems pull their
tuning values from it by section and key, with a default for everything
except the few values a match cannot run without (the time budget and
the round trip time), which go through require().
"""

import os
import logging
from pathlib import Path
from typing import Any, Optional

import yaml


logger: logging.Logger = logging.getLogger(__name__)

_PROJECT_ROOT: str = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
_DEFAULT_CONFIG_PATH: str = os.path.join(_PROJECT_ROOT, "config", "shuttle.yaml")


class ConfigError(Exception):
    """Raised when the config file is unreadable or a required value is missing or malformed."""
    pass


class ShuttleConfig:
    """
    Process-wide shuttle configuration.
    The first construction loads the file; later constructions return the
    same instance, so a mission built without a config sees the one the
    run script loaded.
    """

    _instance: Optional["ShuttleConfig"] = None
    _initialized: bool = False

    REQUIRED_SECTIONS: tuple[str, ...] = (
        "system", "mission", "field", "drivetrain", "intake", "arm", "vision"
    )

    def __new__(cls, config_path: Optional[str] = None) -> "ShuttleConfig":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, config_path: Optional[str] = None) -> None:
        if ShuttleConfig._initialized:
            return

        self._config_path: str = config_path or _DEFAULT_CONFIG_PATH
        self._data: dict[str, Any] = self._read(Path(self._config_path))

        missing: list[str] = [s for s in self.REQUIRED_SECTIONS if s not in self._data]
        if missing:
            raise ConfigError(f"Missing required config sections: {', '.join(missing)}")

        self._resolve_log_dir()

        ShuttleConfig._initialized = True
        logger.info("Configuration loaded from %s", self._config_path)

    @staticmethod
    def _read(path: Path) -> dict[str, Any]:
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        if not path.is_file():
            raise ConfigError(f"Config path is not a file: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                raw: Any = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"YAML parse error in {path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e

        if not isinstance(raw, dict):
            raise ConfigError("Config file must contain a YAML mapping at the root level")
        return raw

    def _resolve_log_dir(self) -> None:
        """Relative log directories are taken from the project root, not the working directory."""
        log_dir: Optional[str] = self.get("system", "log_dir")
        if log_dir and not os.path.isabs(log_dir):
            self._data["system"]["log_dir"] = os.path.join(_PROJECT_ROOT, log_dir)

    def get(self, *keys: str, default: Any = None) -> Any:
        """
        Walk nested sections; default when any key along the way is missing.

        Usage:
            config.get("mission", "alliance")
            config.get("intake", "pickup_power", default=1.0)
        """
        current: Any = self._data
        for key in keys:
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return default
        return current

    def require(self, *keys: str) -> Any:
        """Like get(), but a missing value is a ConfigError."""
        value: Any = self.get(*keys)
        if value is None:
            raise ConfigError(f"Required config value missing: {' -> '.join(keys)}")
        return value

    def number(self, *keys: str, default: float = 0.0) -> float:
        """A numeric tuning value as float. Present but non-numeric is a ConfigError."""
        value: Any = self.get(*keys, default=default)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"Config value {' -> '.join(keys)} must be a number, got {value!r}")
        return float(value)

    def section(self, name: str) -> dict[str, Any]:
        data: Any = self._data.get(name)
        if data is None:
            raise ConfigError(f"Config section not found: {name}")
        if not isinstance(data, dict):
            raise ConfigError(f"Config section '{name}' is not a mapping")
        return data

    def override(self, section: str, key: str, value: Any) -> None:
        """Replace one value after loading, e.g. from a command-line flag."""
        self.section(section)[key] = value
        logger.info("Config override %s.%s = %r", section, key, value)

    @property
    def config_path(self) -> str:
        return self._config_path

    @classmethod
    def reset(cls) -> None:
        """Reset singleton for testing. Not for production use."""
        cls._instance = None
        cls._initialized = False

    def __repr__(self) -> str:
        return f"ShuttleConfig(path='{self._config_path}', sections={list(self._data.keys())})"
