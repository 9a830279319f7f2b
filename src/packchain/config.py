# config.py
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, List, Optional

from .errors import ConfigError
from .model import BuildItem, CommandStage, ItemType
from .settings import CONFIG_FILE_PREFIX, config_dir as default_config_dir

REQUIRED_FIELDS = ("name", "type", "dir", "commands")


def config_path(config_name: str, config_dir: Optional[Path] = None) -> Path:
    root = Path(config_dir) if config_dir is not None else default_config_dir()
    return root / f"{CONFIG_FILE_PREFIX}{config_name}.json"


def resolve_path(path: str) -> Path:
    """Expand $HOME and ~ in a configured directory."""
    if not path:
        return Path(path)
    home = os.environ.get("HOME")
    if home:
        path = path.replace("$HOME", home)
    return Path(os.path.expanduser(path))


def load_config(config_name: str, config_dir: Optional[Path] = None) -> List[BuildItem]:
    """
    Load and validate pack-<config_name>.json.

    The config directory is created if it does not exist yet, so a first run
    tells the user where to put the file instead of failing on the directory.

    Raises:
        ConfigError: for any missing file, malformed JSON or invalid item
    """
    path = config_path(config_name, config_dir)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigError(f"Failed to create config directory: {path.parent} ({e})") from e

    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except UnicodeDecodeError as e:
        raise ConfigError(f"Configuration file {path} is not valid UTF-8: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in configuration file {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Could not read configuration file {path}: {e}") from e

    if not isinstance(raw, list):
        raise ConfigError("Configuration must be an array")

    items: List[BuildItem] = []
    seen: set[str] = set()
    for index, entry in enumerate(raw):
        item = _parse_item(index, entry)
        if item.name in seen:
            raise ConfigError(f'Duplicate item name: "{item.name}"')
        seen.add(item.name)
        items.append(item)
    return items


def _parse_item(index: int, entry: Any) -> BuildItem:
    if not isinstance(entry, dict):
        raise ConfigError(f"Item {index + 1} must be an object")

    missing = [f for f in REQUIRED_FIELDS if entry.get(f) in (None, "")]
    if missing:
        raise ConfigError(f"Item {index + 1} is missing required fields: {', '.join(missing)}")

    name = entry["name"]
    if not isinstance(name, str):
        raise ConfigError(f"Item {index + 1} has a non-string name")

    try:
        item_type = ItemType(entry["type"])
    except ValueError:
        raise ConfigError(
            f'Item "{name}" has invalid type: "{entry["type"]}" (must be "package" or "app")'
        ) from None

    if not isinstance(entry["dir"], str):
        raise ConfigError(f'Item "{name}" has a non-string dir')

    depends_on = entry.get("depends_on")
    if depends_on is not None and not isinstance(depends_on, str):
        raise ConfigError(f'Item "{name}" has a non-string depends_on')

    auto_pack = entry.get("auto_pack")
    if auto_pack is None:
        auto_pack = item_type is ItemType.PACKAGE
    elif not isinstance(auto_pack, bool):
        raise ConfigError(f'Item "{name}" has a non-boolean auto_pack')

    pack_command = entry.get("pack_command")
    if pack_command is not None and (not isinstance(pack_command, str) or not pack_command.strip()):
        raise ConfigError(f'Item "{name}" has an empty pack_command')

    clean_modules = entry.get("clean_modules", True)
    if not isinstance(clean_modules, bool):
        raise ConfigError(f'Item "{name}" has a non-boolean clean_modules')

    return BuildItem(
        name=name,
        type=item_type,
        dir=entry["dir"],
        commands=_parse_commands(name, entry["commands"]),
        depends_on=depends_on or None,
        auto_pack=auto_pack,
        pack_command=pack_command,
        clean_modules=clean_modules,
    )


def _parse_commands(name: str, commands: Any) -> List[CommandStage]:
    if not isinstance(commands, list):
        raise ConfigError(f'Item "{name}": commands must be an array')

    stages: List[CommandStage] = []
    for pos, stage in enumerate(commands):
        if isinstance(stage, str) and stage.strip():
            stages.append(stage)
            continue
        if (
            isinstance(stage, list)
            and stage
            and all(isinstance(c, str) and c.strip() for c in stage)
        ):
            stages.append(tuple(stage))
            continue
        raise ConfigError(
            f'Item "{name}": command #{pos + 1} must be a non-empty string '
            f"or a non-empty array of non-empty strings"
        )
    return stages

