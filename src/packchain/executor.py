# executor.py
from __future__ import annotations

import re
import shlex
from pathlib import Path
from typing import List, Mapping, Sequence

from .errors import CommandError, PlaceholderError
from .model import CommandStage, DependencyOutput
from .session.process_manager import ParallelResult, ProcessManager
from .settings import ARTIFACT_SUFFIX
from .ui.console import get_console

PLACEHOLDER_RE = re.compile(r"\{\{\s*([^{}\s]+)\s*\}\}")

# "<program> <verb> ..." pairs that install dependencies
INSTALL_PROGRAMS = ("pnpm", "npm", "yarn")
INSTALL_VERBS = ("install", "i", "add")

FORCE_FLAG = "--force"
IGNORE_WORKSPACE_FLAG = "--ignore-workspace"

Outputs = Mapping[str, DependencyOutput]


def is_install_command(command: str) -> bool:
    parts = command.split()
    return len(parts) >= 2 and parts[0] in INSTALL_PROGRAMS and parts[1] in INSTALL_VERBS


def resolve_placeholders(command: str, outputs: Outputs) -> str:
    """
    Replace every {{item}} with that item's tarball path.

    Install commands get `<package>@file:<path>` instead, which makes the
    package manager take the tarball as-is rather than consulting a lockfile
    entry that still points at the previous build.
    """
    install = is_install_command(command)

    def _sub(m: re.Match) -> str:
        token = m.group(1)
        out = outputs.get(token)
        if out is None:
            raise PlaceholderError(token, command)
        value = f"{out.package_name}@file:{out.tarball_path}" if install else out.tarball_path
        return shlex.quote(value)

    return PLACEHOLDER_RE.sub(_sub, command)


def rewrite_install_command(command: str) -> str:
    """
    pnpm install: add --force when a tarball is referenced, and always
    --ignore-workspace so an enclosing workspace does not hijack resolution.
    """
    parts = command.split()
    if len(parts) < 2 or parts[0] != "pnpm" or parts[1] not in ("install", "i"):
        return command
    if ARTIFACT_SUFFIX in command and FORCE_FLAG not in parts:
        command += f" {FORCE_FLAG}"
    if IGNORE_WORKSPACE_FLAG not in parts:
        command += f" {IGNORE_WORKSPACE_FLAG}"
    return command


def prepare_command(command: str, outputs: Outputs) -> str:
    return rewrite_install_command(resolve_placeholders(command, outputs))


def split_command(command: str) -> List[str]:
    """Shell-style tokenizing (quotes honoured); nothing is run through a shell."""
    try:
        argv = shlex.split(command)
    except ValueError as e:
        raise CommandError(command=command, exit_code=None, reason=f"cannot parse command: {e}") from e
    if not argv:
        raise CommandError(command=command, exit_code=None, reason="empty command")
    return argv


def run_one(command: str, cwd: str | Path, outputs: Outputs, manager: ProcessManager) -> None:
    resolved = prepare_command(command, outputs)
    get_console().print_item_step(f"Execute: {resolved}")
    manager.execute_command(split_command(resolved), cwd)


def run_parallel(
    commands: Sequence[str],
    cwd: str | Path,
    outputs: Outputs,
    manager: ProcessManager,
) -> ParallelResult:
    # Resolve everything first so a bad placeholder fails before anything starts
    resolved = [prepare_command(c, outputs) for c in commands]
    argvs = [split_command(c) for c in resolved]

    console = get_console()
    console.print_item_step(f"Execute in parallel ({len(resolved)}):")
    for c in resolved:
        console.print_item_step(f"  - {c}")

    result = manager.execute_commands_parallel(argvs, cwd, kill_on_fail=True)
    if not result.success:
        first = result.failures[0] if result.failures else None
        raise CommandError(
            command=first.command if first else " & ".join(resolved),
            exit_code=first.exit_code if first else None,
            reason=f"{result.failed_count} of {len(resolved)} parallel command(s) failed",
        )
    return result


def run_sequence(
    stages: Sequence[CommandStage],
    cwd: str | Path,
    outputs: Outputs,
    manager: ProcessManager,
) -> None:
    """Run stages strictly in order; the first failing stage aborts the rest."""
    for stage in stages:
        if isinstance(stage, str):
            run_one(stage, cwd, outputs, manager)
        else:
            run_parallel(list(stage), cwd, outputs, manager)
