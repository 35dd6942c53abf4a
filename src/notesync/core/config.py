"""Configuration management for notesync.

This module handles loading and saving application configuration to/from
a JSON file. The config directory can be customized via CLI argument.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .validation import ValidationError

logger = logging.getLogger(__name__)

__all__ = ["Config", "DEFAULT_CONFIG_DIR", "EXECUTION_CONTEXT_NAMES"]

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "notesync"

EXECUTION_CONTEXT_NAMES = ("immediate", "deferred")

DEFAULT_CONTEXTS: Dict[str, str] = {
    "create": "deferred",
    "update": "immediate",
    "soft_delete": "immediate",
    "merge_from_server": "deferred",
    "mark_synced": "deferred",
    "purge_expired_tombstones": "deferred",
}


def _default_config(config_dir: Path) -> Dict[str, Any]:
    return {
        "database_file": str(config_dir / "notes.db"),
        "remote_url": "http://127.0.0.1:8384",
        "sync": {
            "max_retries": 3,
            "backoff_base": 2.0,
            "tombstone_retention_days": 30,
            "connectivity_interval": 5.0,
            "connectivity_timeout": 3.0,
            "contexts": dict(DEFAULT_CONTEXTS),
        },
        "server": {
            "host": "127.0.0.1",
            "port": 8384,
            "authority_db": str(config_dir / "authority.db"),
        },
    }


def _merge_defaults(defaults: Dict[str, Any], loaded: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(defaults)
    for key, value in loaded.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_defaults(merged[key], value)
        else:
            merged[key] = value
    return merged


class Config:
    """Manages application configuration stored in JSON format.

    Attributes:
        config_dir: Path to the configuration directory
        config_file: Path to config.json inside config_dir
    """

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        """Initialize configuration manager.

        Args:
            config_dir: Custom config directory path. If None, uses ~/.config/notesync/
        """
        self.config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_file = self.config_dir / "config.json"
        self.config_data = self.load_config()

    def load_config(self) -> Dict[str, Any]:
        """Load configuration from file, creating it with defaults if missing."""
        defaults = _default_config(self.config_dir)
        if not self.config_file.exists():
            self.save_config(defaults)
            return defaults

        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                loaded = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read {self.config_file}: {e}. Using defaults.")
            return defaults

        if not isinstance(loaded, dict):
            logger.warning(f"Ignoring malformed config in {self.config_file}")
            return defaults
        return _merge_defaults(defaults, loaded)

    def save_config(self, config: Dict[str, Any]) -> None:
        """Write configuration to file."""
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value.

        Dotted keys ("sync.max_retries") read nested values.
        """
        node: Any = self.config_data
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value and save to file."""
        parts = key.split(".")
        node = self.config_data
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value
        self.save_config(self.config_data)

    def get_config_dir(self) -> Path:
        """Get the configuration directory path."""
        return self.config_dir

    # ===== Sync Configuration Methods =====

    def get_database_file(self) -> Path:
        """Get the local database path."""
        return Path(self.get("database_file"))

    def get_remote_url(self) -> str:
        """Get the base URL of the remote authority."""
        return str(self.get("remote_url")).rstrip("/")

    def set_remote_url(self, url: str) -> None:
        """Set the base URL of the remote authority."""
        self.set("remote_url", url)

    def get_max_retries(self) -> int:
        return int(self.get("sync.max_retries", 3))

    def get_backoff_base(self) -> float:
        return float(self.get("sync.backoff_base", 2.0))

    def get_tombstone_retention_days(self) -> int:
        return int(self.get("sync.tombstone_retention_days", 30))

    def get_connectivity_interval(self) -> float:
        return float(self.get("sync.connectivity_interval", 5.0))

    def get_connectivity_timeout(self) -> float:
        return float(self.get("sync.connectivity_timeout", 3.0))

    def get_execution_contexts(self) -> Dict[str, str]:
        """Get the per-operation execution context names.

        Raises:
            ValidationError: If an operation or context name is unknown
        """
        contexts = dict(DEFAULT_CONTEXTS)
        configured = self.get("sync.contexts", {}) or {}
        if not isinstance(configured, dict):
            raise ValidationError("sync.contexts", "must be an object")
        for operation, name in configured.items():
            if operation not in DEFAULT_CONTEXTS:
                raise ValidationError("sync.contexts", f"unknown operation '{operation}'")
            if name not in EXECUTION_CONTEXT_NAMES:
                raise ValidationError(
                    "sync.contexts",
                    f"'{operation}' must be one of {', '.join(EXECUTION_CONTEXT_NAMES)}",
                )
            contexts[operation] = name
        return contexts

    def get_server_host(self) -> str:
        return str(self.get("server.host", "127.0.0.1"))

    def get_server_port(self) -> int:
        return int(self.get("server.port", 8384))

    def get_authority_db(self) -> Path:
        return Path(self.get("server.authority_db"))
