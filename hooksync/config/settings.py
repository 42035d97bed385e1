"""
Hook Settings — Load sync configuration from a YAML file and env vars.

Settings file (optional, default config/hooksync.yaml):

    git_command: /usr/bin/git
    credentials: "bot:ghp_xxxxx"
    basedir: /var/lib/mirrors
    registry: state/registry.json
    command_timeout: 600
    workers: 1
    indexer_url: https://redmine.example.com
    indexer_key: xxxxx

Environment variables override the file:

    HOOKSYNC_CONFIG          path of the settings file
    HOOKSYNC_GIT_COMMAND     git executable (default: git)
    HOOKSYNC_CREDENTIALS     "user:token" injected into http(s) clone URLs
    HOOKSYNC_BASEDIR         relocate http(s) mirrors under this directory
    HOOKSYNC_REGISTRY        registry JSON file (default: state/registry.json)
    HOOKSYNC_COMMAND_TIMEOUT seconds per git command, 0 disables (default: 600)
    HOOKSYNC_WORKERS         repositories synchronised in parallel (default: 1)
    HOOKSYNC_INDEXER_URL     Redmine base URL for fetch_changesets
    HOOKSYNC_INDEXER_KEY     Redmine repository WS key
    HOOKSYNC_INDEXER_TIMEOUT seconds per indexer request (default: 30)

Empty values count as unset.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config") / "hooksync.yaml"

# settings-file key -> (env var, dataclass field)
_KEYS = {
    "git_command": ("HOOKSYNC_GIT_COMMAND", "git_command"),
    "credentials": ("HOOKSYNC_CREDENTIALS", "credentials"),
    "basedir": ("HOOKSYNC_BASEDIR", "base_dir"),
    "registry": ("HOOKSYNC_REGISTRY", "registry_path"),
    "command_timeout": ("HOOKSYNC_COMMAND_TIMEOUT", "command_timeout"),
    "workers": ("HOOKSYNC_WORKERS", "workers"),
    "indexer_url": ("HOOKSYNC_INDEXER_URL", "indexer_url"),
    "indexer_key": ("HOOKSYNC_INDEXER_KEY", "indexer_key"),
    "indexer_timeout": ("HOOKSYNC_INDEXER_TIMEOUT", "indexer_timeout"),
}


@dataclass
class HookSettings:
    """Everything the sync core reads from configuration."""

    git_command: str = "git"
    credentials: Optional[str] = None
    base_dir: Optional[str] = None
    registry_path: Path = field(default_factory=lambda: Path("state") / "registry.json")
    command_timeout: Optional[float] = 600
    workers: int = 1
    indexer_url: Optional[str] = None
    indexer_key: Optional[str] = None
    indexer_timeout: float = 30

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "HookSettings":
        """Load settings file (if any), then apply environment overrides."""
        if config_path is None:
            config_path = Path(os.environ.get("HOOKSYNC_CONFIG") or DEFAULT_CONFIG_PATH)

        raw: Dict[str, Any] = {}
        if config_path.exists():
            raw.update(_read_settings_file(config_path))
            logger.debug(f"Loaded settings from {config_path}")

        for key, (env_var, _) in _KEYS.items():
            value = os.environ.get(env_var)
            if value is not None and value.strip() != "":
                raw[key] = value

        return cls.from_dict(raw)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "HookSettings":
        unknown = set(raw) - set(_KEYS)
        if unknown:
            logger.warning(f"Ignoring unknown settings: {', '.join(sorted(unknown))}")

        values: Dict[str, Any] = {}
        for key, (_, attr) in _KEYS.items():
            value = raw.get(key)
            if value is None or (isinstance(value, str) and value.strip() == ""):
                continue
            values[attr] = value

        settings = cls(**values)
        settings._coerce()
        return settings

    def _coerce(self) -> None:
        self.git_command = str(self.git_command)
        self.credentials = str(self.credentials) if self.credentials else None
        self.base_dir = str(self.base_dir) if self.base_dir else None
        self.registry_path = Path(self.registry_path)

        if self.command_timeout is not None:
            timeout = _number("command_timeout", self.command_timeout)
            self.command_timeout = timeout if timeout > 0 else None

        workers = int(_number("workers", self.workers))
        if workers < 1:
            raise ConfigurationError(f"workers must be at least 1, got {workers}")
        self.workers = workers

        self.indexer_timeout = _number("indexer_timeout", self.indexer_timeout)

    def describe(self) -> Dict[str, Any]:
        """Settings safe for display (credentials and keys masked)."""
        return {
            "git_command": self.git_command,
            "credentials": "***" if self.credentials else None,
            "basedir": self.base_dir,
            "registry": str(self.registry_path),
            "command_timeout": self.command_timeout,
            "workers": self.workers,
            "indexer_url": self.indexer_url,
            "indexer_key": "***" if self.indexer_key else None,
        }


def _read_settings_file(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read settings file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings file {path} must contain a mapping")
    return data


def _number(name: str, value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a number, got {value!r}")
