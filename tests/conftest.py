from __future__ import annotations

import json
import shlex
import sys
from pathlib import Path
from typing import Any

import pytest

from packchain.ui.console import Console, set_console

PY = shlex.quote(sys.executable)


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> dict[str, Path]:
    config = tmp_path / "config"
    state = tmp_path / "state"
    monkeypatch.setenv("PACKCHAIN_CONFIG_DIR", str(config))
    monkeypatch.setenv("PACKCHAIN_STATE_DIR", str(state))
    set_console(Console())
    return {"config": config, "state": state}


def write_json(path: Path, data: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    return path


def write_manifest(directory: Path, **fields: Any) -> Path:
    return write_json(directory / "package.json", fields)


def py_cmd(code: str) -> str:
    """A command line running `code` with the current interpreter."""
    return f"{PY} -c {shlex.quote(code)}"
