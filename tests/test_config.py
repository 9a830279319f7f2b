from __future__ import annotations

from pathlib import Path

import pytest

from conftest import write_json
from packchain.config import config_path, load_config, resolve_path
from packchain.errors import ConfigError
from packchain.model import ItemType


def _write_config(config_dir: Path, name: str, items) -> Path:
    return write_json(config_dir / f"pack-{name}.json", items)


def test_load_config_parses_items_and_defaults(isolated_dirs) -> None:
    _write_config(
        isolated_dirs["config"],
        "demo",
        [
            {"name": "lib", "type": "package", "dir": "~/lib", "commands": ["pnpm build"]},
            {
                "name": "app",
                "type": "app",
                "dir": "/srv/app",
                "commands": ["pnpm install", ["pnpm lint", "pnpm test"]],
                "depends_on": "lib",
            },
        ],
    )

    lib, app = load_config("demo")

    assert lib.type is ItemType.PACKAGE
    assert lib.auto_pack is True
    assert lib.clean_modules is True
    assert lib.depends_on is None
    assert app.type is ItemType.APP
    assert app.auto_pack is False
    assert app.depends_on == "lib"
    assert app.commands == ["pnpm install", ("pnpm lint", "pnpm test")]


def test_load_config_honours_explicit_auto_pack_and_pack_command(isolated_dirs) -> None:
    _write_config(
        isolated_dirs["config"],
        "demo",
        [
            {
                "name": "lib",
                "type": "package",
                "dir": "/x",
                "commands": [],
                "auto_pack": False,
                "pack_command": "npm pack",
                "clean_modules": False,
            }
        ],
    )

    (lib,) = load_config("demo")

    assert lib.auto_pack is False
    assert lib.pack_command == "npm pack"
    assert lib.clean_modules is False
    assert lib.commands == []


def test_load_config_creates_directory_and_reports_missing_file(isolated_dirs) -> None:
    with pytest.raises(ConfigError, match="Configuration file not found"):
        load_config("nothing")
    assert isolated_dirs["config"].is_dir()


def test_load_config_rejects_invalid_json(isolated_dirs) -> None:
    path = config_path("broken")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("[{", encoding="utf-8")

    with pytest.raises(ConfigError, match="Invalid JSON"):
        load_config("broken")


def test_load_config_requires_array(isolated_dirs) -> None:
    _write_config(isolated_dirs["config"], "obj", {"name": "lib"})

    with pytest.raises(ConfigError, match="must be an array"):
        load_config("obj")


@pytest.mark.parametrize(
    "item, message",
    [
        ({"type": "package", "dir": "/x", "commands": []}, "missing required fields: name"),
        ({"name": "a", "type": "package", "dir": "", "commands": []}, "missing required fields: dir"),
        ({"name": "a", "type": "library", "dir": "/x", "commands": []}, 'must be "package" or "app"'),
        ({"name": "a", "type": "app", "dir": "/x", "commands": "build"}, "commands must be an array"),
        ({"name": "a", "type": "app", "dir": "/x", "commands": [[]]}, "command #1"),
        ({"name": "a", "type": "app", "dir": "/x", "commands": ["ok", ["x", ""]]}, "command #2"),
        ({"name": "a", "type": "app", "dir": "/x", "commands": [], "auto_pack": "yes"}, "auto_pack"),
    ],
)
def test_load_config_rejects_invalid_items(isolated_dirs, item, message) -> None:
    _write_config(isolated_dirs["config"], "bad", [item])

    with pytest.raises(ConfigError, match=message):
        load_config("bad")


def test_load_config_rejects_duplicate_names(isolated_dirs) -> None:
    item = {"name": "a", "type": "app", "dir": "/x", "commands": []}
    _write_config(isolated_dirs["config"], "dup", [item, dict(item)])

    with pytest.raises(ConfigError, match='Duplicate item name: "a"'):
        load_config("dup")


def test_resolve_path_expands_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))

    assert resolve_path("$HOME/code/lib") == tmp_path / "code" / "lib"
    assert resolve_path("~/code") == tmp_path / "code"
    assert resolve_path("/abs/path") == Path("/abs/path")


def test_load_config_rejects_non_utf8_file(isolated_dirs) -> None:
    path = config_path("garbled")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"[\xff]")

    with pytest.raises(ConfigError, match="not valid UTF-8"):
        load_config("garbled")
