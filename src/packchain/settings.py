from __future__ import annotations

import os
from pathlib import Path

CONFIG_FILE_PREFIX = "pack-"
ARTIFACT_SUFFIX = ".tgz"
MANIFEST_NAME = "package.json"

KILL_GRACE_SECONDS = float(os.environ.get("PACKCHAIN_KILL_GRACE", "3"))
DEFAULT_PACK_COMMAND = os.environ.get("PACKCHAIN_PACK_COMMAND", "pnpm pack")


def config_dir() -> Path:
    """Directory holding pack-<name>.json files."""
    override = os.environ.get("PACKCHAIN_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "packchain"


def state_dir() -> Path:
    """Directory holding one session JSON document per configuration name."""
    override = os.environ.get("PACKCHAIN_STATE_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".local" / "state" / "packchain" / "pack-processes"
