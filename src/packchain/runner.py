# runner.py
from __future__ import annotations

import shutil
from pathlib import Path
from typing import Dict, List, Optional

from .config import resolve_path
from .dag import build_graph, topological_sort, validate_dependencies
from .errors import ChainItemError, PackchainError
from .executor import run_one, run_sequence
from .manifest import (
    clean_artifacts,
    find_artifact,
    generate_alpha_version,
    manifest_path,
    manifest_snapshot,
    read_version,
    resolve_actual_package_name,
    write_dependency_path,
    write_version,
)
from .model import BuildItem, DependencyOutput
from .session.process_manager import ProcessManager
from .settings import DEFAULT_PACK_COMMAND
from .ui.console import get_console

# ----------------------------------------------------------------------
# Per-item execution
#
# Every manifest mutation of an item happens inside manifest_snapshot(), so
# package.json is back to its original bytes when the item ends, whether it
# succeeded, failed, or was interrupted.
# ----------------------------------------------------------------------


def _link_dependency(item: BuildItem, directory: Path, outputs: Dict[str, DependencyOutput]) -> None:
    """Point this item's manifest at the tarball its dependency just produced."""
    if not item.depends_on or item.depends_on not in outputs:
        return

    console = get_console()
    dep = outputs[item.depends_on]

    if item.clean_modules:
        modules = directory / "node_modules"
        if modules.exists():
            console.print_item_step("Clear node_modules")
            shutil.rmtree(modules)

    if write_dependency_path(directory, dep.package_name, dep.tarball_path):
        console.print_item_step(f"Update {dep.package_name} dependency to {Path(dep.tarball_path).name}")
    else:
        console.print_debug(f"{item.name}: {dep.package_name} is not listed in any dependency section")


def execute_package_item(
    item: BuildItem,
    outputs: Dict[str, DependencyOutput],
    manager: ProcessManager,
) -> DependencyOutput:
    """Stamp an alpha version, build, pack, and report the produced tarball."""
    console = get_console()
    directory = resolve_path(item.dir)

    original_version = read_version(directory)
    alpha_version = generate_alpha_version(original_version)

    with manifest_snapshot(directory):
        package_name = resolve_actual_package_name(directory)
        console.print_item_step(f"Package: {package_name}")
        console.print_item_step(f"Version: {original_version} -> {alpha_version}")

        write_version(directory, alpha_version)

        cleaned = clean_artifacts(directory)
        if cleaned.removed:
            console.print_item_step(f"Cleaned {len(cleaned.removed)} old tarball(s)")
        for path, reason in cleaned.failed:
            console.print_warning(f"Could not remove {path}: {reason}")

        _link_dependency(item, directory, outputs)
        run_sequence(item.commands, directory, outputs, manager)

        if item.auto_pack:
            run_one(item.pack_command or DEFAULT_PACK_COMMAND, directory, outputs, manager)

        tarball = find_artifact(directory, package_name, alpha_version, legacy_name=item.name)
        console.print_item_step(f"Generated: {tarball}")

    console.print_item_step(f"{manifest_path(directory).name} restored for {item.name}")
    return DependencyOutput(tarball_path=str(tarball.resolve()), package_name=package_name)


def execute_app_item(
    item: BuildItem,
    outputs: Dict[str, DependencyOutput],
    manager: ProcessManager,
) -> None:
    console = get_console()
    directory = resolve_path(item.dir)

    with manifest_snapshot(directory, required=False) as original:
        if original is not None:
            _link_dependency(item, directory, outputs)
        elif item.depends_on in outputs:
            console.print_warning(
                f"{item.name}: no {manifest_path(directory).name} in {directory}; "
                f"dependency {item.depends_on} is only available through placeholders"
            )
        run_sequence(item.commands, directory, outputs, manager)

    if original is not None:
        console.print_item_step(f"{manifest_path(directory).name} restored for {item.name}")


def execute_item(
    item: BuildItem,
    outputs: Dict[str, DependencyOutput],
    manager: ProcessManager,
) -> Optional[DependencyOutput]:
    if item.is_package:
        return execute_package_item(item, outputs, manager)
    execute_app_item(item, outputs, manager)
    return None


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def plan_chain(items: List[BuildItem]) -> List[BuildItem]:
    """Validate dependencies and return the execution order."""
    validate_dependencies(items)
    return topological_sort(build_graph(items), items)


def execute_chain(items: List[BuildItem], manager: ProcessManager) -> Dict[str, DependencyOutput]:
    """
    Run every item in dependency order, feeding each package's tarball to
    the items after it. Stops at the first failing item.

    Raises:
        DependencyError / SortError: before anything runs
        ChainItemError: wrapping the first item failure
    """
    console = get_console()
    ordered = plan_chain(items)
    console.print_execution_order(ordered)

    outputs: Dict[str, DependencyOutput] = {}
    for item in ordered:
        console.print_item_started(item.name, item.type.value)
        try:
            output = execute_item(item, outputs, manager)
        except PackchainError as e:
            console.print_item_failed(item.name, str(e))
            raise ChainItemError(item=item.name, cause=e) from e
        except OSError as e:
            console.print_item_failed(item.name, str(e))
            raise ChainItemError(item=item.name, cause=e) from e

        if output is not None:
            outputs[item.name] = output
        console.print_item_done(item.name, Path(output.tarball_path).name if output else None)

    console.print_chain_completed(len(ordered))
    return outputs
