"""Pytest fixtures for CLI tests.

The CLI is exercised as a subprocess, the same way a user invokes it.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path
from typing import Callable, Optional

import pytest

SRC_DIR = Path(__file__).parent.parent.parent / "src"

RunCli = Callable[..., subprocess.CompletedProcess]


@pytest.fixture
def remote_db(tmp_path: Path) -> Path:
    """Authority database shared by --local-remote invocations."""
    return tmp_path / "remote" / "authority.db"


@pytest.fixture
def run_cli(test_config_dir: Path) -> RunCli:
    """Run `notesync -d <config_dir> cli ...` and capture its output."""
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(
        p for p in (str(SRC_DIR), env.get("PYTHONPATH")) if p
    )

    def run(*args: str, input: Optional[str] = None) -> subprocess.CompletedProcess:
        return subprocess.run(
            [sys.executable, "-m", "notesync", "-d", str(test_config_dir), "cli", *args],
            capture_output=True,
            text=True,
            input=input if input is not None else "",
            env=env,
            timeout=60,
        )

    return run


@pytest.fixture
def new_note(run_cli: RunCli) -> Callable[..., str]:
    """Create a note through the CLI and return its id."""

    def create(title: str, *extra: str) -> str:
        result = run_cli("--format", "json", "new-note", title, *extra)
        assert result.returncode == 0, result.stderr
        return json.loads(result.stdout)["id"]

    return create
