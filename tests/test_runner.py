from __future__ import annotations

import json
import re
import shlex
from pathlib import Path

import pytest

from conftest import PY, py_cmd, write_manifest
from packchain.errors import ChainItemError, CommandError, DependencyError
from packchain.model import BuildItem, ItemType
from packchain.runner import execute_chain, plan_chain
from packchain.session.process_manager import ProcessManager
from packchain.session.store import SessionStore

# Stands in for `pnpm pack`: writes <flattened-name>-<version>.tgz from package.json
PACK_SCRIPT = """\
import json, pathlib
m = json.loads(pathlib.Path("package.json").read_text())
name = m["name"].lstrip("@").replace("/", "-")
pathlib.Path(f"{name}-{m['version']}.tgz").write_bytes(b"tgz")
"""

# Records what the manifest looked like while the app's command ran
RECORD_SCRIPT = """\
import pathlib, sys
pathlib.Path("seen.json").write_text(pathlib.Path("package.json").read_text())
pathlib.Path("arg.txt").write_text(sys.argv[1])
"""


@pytest.fixture
def manager(isolated_dirs) -> ProcessManager:
    return ProcessManager(SessionStore(), grace=2.0, poll_interval=0.02)


@pytest.fixture
def workspace(tmp_path: Path) -> dict[str, Path]:
    scripts = tmp_path / "scripts"
    scripts.mkdir()
    (scripts / "pack.py").write_text(PACK_SCRIPT)
    (scripts / "record.py").write_text(RECORD_SCRIPT)

    lib = tmp_path / "lib"
    lib.mkdir()
    write_manifest(lib, name="@acme/lib", version="1.0.0")
    (lib / "acme-lib-0.0.1.tgz").write_bytes(b"stale")

    app = tmp_path / "app"
    (app / "node_modules" / "@acme").mkdir(parents=True)
    write_manifest(app, name="app", version="0.0.0", dependencies={"@acme/lib": "^1.0.0"})
    return {"scripts": scripts, "lib": lib, "app": app}


def _pack_command(workspace: dict[str, Path]) -> str:
    return f"{PY} {shlex.quote(str(workspace['scripts'] / 'pack.py'))}"


def _items(workspace: dict[str, Path], lib_commands=None) -> list[BuildItem]:
    record = f"{PY} {shlex.quote(str(workspace['scripts'] / 'record.py'))} {{{{lib}}}}"
    return [
        BuildItem(
            name="app",
            type=ItemType.APP,
            dir=str(workspace["app"]),
            commands=[record],
            depends_on="lib",
        ),
        BuildItem(
            name="lib",
            type=ItemType.PACKAGE,
            dir=str(workspace["lib"]),
            commands=lib_commands if lib_commands is not None else [py_cmd("open('built', 'w')")],
            auto_pack=True,
            pack_command=_pack_command(workspace),
        ),
    ]


def test_chain_builds_package_and_links_app(workspace, manager: ProcessManager) -> None:
    lib_manifest = (workspace["lib"] / "package.json").read_bytes()
    app_manifest = (workspace["app"] / "package.json").read_bytes()

    outputs = execute_chain(_items(workspace), manager)

    out = outputs["lib"]
    tarball = Path(out.tarball_path)
    assert out.package_name == "@acme/lib"
    assert tarball.is_absolute() and tarball.exists()
    assert re.fullmatch(r"acme-lib-1\.0\.0-alpha\.\d{14}\.tgz", tarball.name)
    assert not (workspace["lib"] / "acme-lib-0.0.1.tgz").exists()
    assert (workspace["lib"] / "built").exists()

    seen = json.loads((workspace["app"] / "seen.json").read_text())
    assert seen["dependencies"]["@acme/lib"] == f"file:{out.tarball_path}"
    assert (workspace["app"] / "arg.txt").read_text() == out.tarball_path
    assert not (workspace["app"] / "node_modules").exists()

    assert (workspace["lib"] / "package.json").read_bytes() == lib_manifest
    assert (workspace["app"] / "package.json").read_bytes() == app_manifest
    assert "app" not in outputs


def test_failing_item_stops_chain_and_restores_manifest(workspace, manager: ProcessManager) -> None:
    lib_manifest = (workspace["lib"] / "package.json").read_bytes()
    items = _items(workspace, lib_commands=[py_cmd("import sys; sys.exit(9)")])

    with pytest.raises(ChainItemError) as exc:
        execute_chain(items, manager)

    assert exc.value.item == "lib"
    assert isinstance(exc.value.cause, CommandError)
    assert str(exc.value).startswith('Failed to execute "lib"')
    assert (workspace["lib"] / "package.json").read_bytes() == lib_manifest
    assert not (workspace["app"] / "seen.json").exists()


def test_app_without_manifest_still_runs(tmp_path: Path, manager: ProcessManager) -> None:
    app = tmp_path / "plain"
    app.mkdir()
    items = [BuildItem(name="plain", type=ItemType.APP, dir=str(app), commands=[py_cmd("open('ok', 'w')")])]

    assert execute_chain(items, manager) == {}
    assert (app / "ok").exists()
    assert not (app / "package.json").exists()


def test_package_without_pack_step_reports_missing_artifact(tmp_path: Path, manager: ProcessManager) -> None:
    lib = tmp_path / "lib"
    lib.mkdir()
    write_manifest(lib, name="lib", version="1.0.0")
    items = [BuildItem(name="lib", type=ItemType.PACKAGE, dir=str(lib), commands=[], auto_pack=False)]

    with pytest.raises(ChainItemError, match="No .tgz file found"):
        execute_chain(items, manager)
    assert json.loads((lib / "package.json").read_text())["version"] == "1.0.0"


def test_invalid_dependencies_fail_before_anything_runs(tmp_path: Path, manager: ProcessManager) -> None:
    marker = tmp_path / "ran"
    items = [
        BuildItem(name="a", type=ItemType.APP, dir=str(tmp_path), commands=[py_cmd(f"open({str(marker)!r}, 'w')")]),
        BuildItem(name="b", type=ItemType.APP, dir=str(tmp_path), commands=[], depends_on="ghost"),
    ]

    with pytest.raises(DependencyError):
        execute_chain(items, manager)
    assert not marker.exists()


def test_plan_chain_orders_items(workspace) -> None:
    assert [i.name for i in plan_chain(_items(workspace))] == ["lib", "app"]


def test_non_utf8_manifest_names_failing_item(tmp_path: Path, manager: ProcessManager) -> None:
    lib = tmp_path / "lib"
    lib.mkdir()
    (lib / "package.json").write_bytes(b'{"name": "lib", "version": "1.0.0\xff"}')
    items = [BuildItem(name="lib", type=ItemType.PACKAGE, dir=str(lib), commands=[])]

    with pytest.raises(ChainItemError, match="not valid UTF-8") as exc:
        execute_chain(items, manager)
    assert exc.value.item == "lib"
