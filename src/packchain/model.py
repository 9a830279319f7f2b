# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple, Union

# A stage is either one command (serial) or a tuple of commands run together (parallel group).
CommandStage = Union[str, Tuple[str, ...]]


class ItemType(str, Enum):
    PACKAGE = "package"
    APP = "app"


@dataclass(frozen=True)
class BuildItem:
    """
    One entry of a pack configuration.

    Single-parent dependency model: `depends_on` names at most one other item.
    """
    name: str
    type: ItemType
    dir: str
    commands: list[CommandStage] = field(default_factory=list)
    depends_on: str | None = None

    # Package only; the loader defaults it to True for packages
    auto_pack: bool = False
    pack_command: str | None = None

    # Remove node_modules before pointing the manifest at a fresh dependency tarball
    clean_modules: bool = True

    @property
    def is_package(self) -> bool:
        return self.type is ItemType.PACKAGE


@dataclass(frozen=True)
class DependencyOutput:
    """What a finished package item hands to the items that depend on it."""
    tarball_path: str
    package_name: str
