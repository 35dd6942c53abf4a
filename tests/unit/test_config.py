"""Unit tests for configuration management.

Tests notesync/core/config.py including:
- Config initialization and defaults
- Loading, merging and saving config
- Dotted get/set
- Execution context validation
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from notesync.core.config import DEFAULT_CONTEXTS, Config
from notesync.core.validation import ValidationError


class TestConfigInit:
    """Test configuration initialization."""

    def test_creates_custom_config_dir(self, tmp_path: Path) -> None:
        config_dir = tmp_path / "nested" / "config"
        config = Config(config_dir=config_dir)
        assert config.config_dir == config_dir
        assert config_dir.is_dir()

    def test_creates_config_file(self, test_config_dir: Path) -> None:
        """Config file is written with defaults on first use."""
        config = Config(config_dir=test_config_dir)
        assert config.config_file.exists()
        saved = json.loads(config.config_file.read_text())
        assert saved["sync"]["max_retries"] == 3

    def test_default_values(self, test_config: Config, test_config_dir: Path) -> None:
        assert test_config.get_database_file() == test_config_dir / "notes.db"
        assert test_config.get_remote_url() == "http://127.0.0.1:8384"
        assert test_config.get_max_retries() == 3
        assert test_config.get_backoff_base() == 2.0
        assert test_config.get_tombstone_retention_days() == 30
        assert test_config.get_server_port() == 8384
        assert test_config.get_authority_db() == test_config_dir / "authority.db"
        assert test_config.get_execution_contexts() == DEFAULT_CONTEXTS


class TestLoadConfig:
    """Test configuration loading."""

    def test_partial_file_merged_over_defaults(self, test_config_dir: Path) -> None:
        (test_config_dir / "config.json").write_text(
            json.dumps({"sync": {"max_retries": 5}, "remote_url": "http://example:9000/"})
        )
        config = Config(config_dir=test_config_dir)
        assert config.get_max_retries() == 5
        assert config.get_backoff_base() == 2.0
        assert config.get_remote_url() == "http://example:9000"

    def test_corrupt_file_falls_back_to_defaults(self, test_config_dir: Path) -> None:
        (test_config_dir / "config.json").write_text("{not json")
        config = Config(config_dir=test_config_dir)
        assert config.get_max_retries() == 3

    def test_non_object_file_falls_back_to_defaults(self, test_config_dir: Path) -> None:
        (test_config_dir / "config.json").write_text("[1, 2, 3]")
        config = Config(config_dir=test_config_dir)
        assert config.get_server_port() == 8384


class TestGetSet:
    """Test dotted get/set."""

    def test_get_missing_returns_default(self, test_config: Config) -> None:
        assert test_config.get("sync.nope", "fallback") == "fallback"
        assert test_config.get("remote_url.deeper") is None

    def test_set_persists(self, test_config_dir: Path) -> None:
        config = Config(config_dir=test_config_dir)
        config.set("sync.max_retries", 7)
        config.set_remote_url("http://other:1234")

        reloaded = Config(config_dir=test_config_dir)
        assert reloaded.get_max_retries() == 7
        assert reloaded.get_remote_url() == "http://other:1234"

    def test_set_creates_nested_sections(self, test_config: Config) -> None:
        test_config.set("extra.section.value", 1)
        assert test_config.get("extra.section.value") == 1


class TestExecutionContexts:
    """Test per-operation execution context configuration."""

    def test_override_single_operation(self, test_config: Config) -> None:
        test_config.set("sync.contexts", {"create": "immediate"})
        contexts = test_config.get_execution_contexts()
        assert contexts["create"] == "immediate"
        assert contexts["merge_from_server"] == "deferred"

    def test_unknown_context_name_rejected(self, test_config: Config) -> None:
        test_config.set("sync.contexts", {"update": "eventually"})
        with pytest.raises(ValidationError) as exc:
            test_config.get_execution_contexts()
        assert exc.value.field == "sync.contexts"

    def test_unknown_operation_rejected(self, test_config: Config) -> None:
        test_config.set("sync.contexts", {"rename": "immediate"})
        with pytest.raises(ValidationError) as exc:
            test_config.get_execution_contexts()
        assert "unknown operation" in exc.value.message
