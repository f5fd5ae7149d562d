"""
Configuration management for gitstatus.

Handles reading/writing the INI configuration file with cross-platform
path handling and type-safe accessors.

I remember where the cache lives and how hard to hit your disks,
so every run doesn't have to ask.
"""

import configparser
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised for invalid configuration or caller options, before any work starts."""


def _find_base_path() -> Path:
    """Find the gitstatus base path.

    Resolution order:
    1. GITSTATUS_HOME environment variable
    2. ~/.gitstatus (user home directory)
    """
    env_path = os.environ.get("GITSTATUS_HOME")
    if env_path:
        return Path(env_path).resolve()

    return Path.home() / ".gitstatus"


class GitStatusConfig:
    """Configuration manager for gitstatus.

    Reads configuration from ``config/defaults.ini`` under the base path and
    provides type-safe accessors with default value fallbacks.
    """

    # Default configuration values
    DEFAULTS = {
        "general": {
            "database_path": "",
        },
        "collector": {
            "max_workers": "0",
            "command_timeout": "300",
            "fetch_timeout": "60",
        },
        "languages": {
            "skip_dirs": ".git,node_modules,__pycache__,.venv,venv,dist,build,.idea,.vscode,target,.gradle",
            "max_file_size_kb": "1024",
        },
    }

    def __init__(self, base_path: Optional[Path] = None):
        """Initialize configuration.

        Args:
            base_path: Root path for gitstatus. If None, auto-detected.
        """
        self.base_path = Path(base_path).resolve() if base_path else _find_base_path()

        self.config_dir = self.base_path / "config"
        self.config_file = self.config_dir / "defaults.ini"

        self._config = configparser.ConfigParser()
        self._load_defaults()
        self._load_user_config()

    def _load_defaults(self) -> None:
        for section, values in self.DEFAULTS.items():
            if not self._config.has_section(section):
                self._config.add_section(section)
            for key, value in values.items():
                self._config.set(section, key, value)

    def _load_user_config(self) -> None:
        if self.config_file.exists():
            logger.debug("Loading configuration from %s", self.config_file)
            self._config.read(str(self.config_file))

    def _getint(self, section: str, key: str, fallback: int) -> int:
        try:
            value = self._config.getint(section, key, fallback=fallback)
        except ValueError:
            raise ConfigurationError(
                f"[{section}] {key} must be an integer, "
                f"got {self._config.get(section, key)!r}"
            ) from None
        if value < 0:
            raise ConfigurationError(f"[{section}] {key} must not be negative")
        return value

    def ensure_directories(self) -> None:
        """Create all required directories."""
        for d in (self.config_dir, self.database_dir):
            d.mkdir(parents=True, exist_ok=True)

    def save(self) -> None:
        """Save current configuration to defaults.ini."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w") as f:
            self._config.write(f)

    # --- Type-safe property accessors ---

    @property
    def database_dir(self) -> Path:
        raw = self._config.get("general", "database_path", fallback="").strip()
        if raw:
            return Path(os.path.expanduser(raw))
        return self.base_path / "db"

    @property
    def max_workers(self) -> Optional[int]:
        """Upper bound on concurrent repositories; None means one per repository."""
        value = self._getint("collector", "max_workers", fallback=0)
        return value or None

    @property
    def command_timeout(self) -> int:
        return self._getint("collector", "command_timeout", fallback=300)

    @property
    def fetch_timeout(self) -> int:
        return self._getint("collector", "fetch_timeout", fallback=60)

    @property
    def skip_dirs(self) -> List[str]:
        raw = self._config.get("languages", "skip_dirs", fallback="")
        return [d.strip() for d in raw.split(",") if d.strip()]

    @property
    def max_file_size_kb(self) -> int:
        return self._getint("languages", "max_file_size_kb", fallback=1024)

    def get(self, section: str, key: str, fallback: str = "") -> str:
        return self._config.get(section, key, fallback=fallback)

    def set(self, section: str, key: str, value: str) -> None:
        if not self._config.has_section(section):
            self._config.add_section(section)
        self._config.set(section, key, value)

    def get_status(self) -> Dict[str, Any]:
        return {
            "base_path": str(self.base_path),
            "config_exists": self.config_file.exists(),
            "database_path": str(self.database_dir),
            "max_workers": self.max_workers,
            "command_timeout": self.command_timeout,
            "fetch_timeout": self.fetch_timeout,
        }
