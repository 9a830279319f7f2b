# manifest.py
# package.json reads/writes, alpha version stamping and tarball lookup.
from __future__ import annotations

import json
import re
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from .errors import ArtifactError, ManifestError
from .settings import ARTIFACT_SUFFIX, MANIFEST_NAME
from .ui.console import get_console

DEPENDENCY_SECTIONS = ("dependencies", "devDependencies", "peerDependencies")
TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"

_ALPHA_RE = re.compile(r"^(?P<base>.*-alpha\.)(?P<stamp>\d+)$")


# ----------------------------------------------------------------------
# Manifest I/O
# ----------------------------------------------------------------------

def manifest_path(directory: str | Path) -> Path:
    return Path(directory) / MANIFEST_NAME


def _load_manifest(directory: str | Path) -> Dict[str, Any]:
    path = manifest_path(directory)
    if not path.exists():
        raise ManifestError(f"{MANIFEST_NAME} not found in {directory}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except UnicodeDecodeError as e:
        raise ManifestError(f"{MANIFEST_NAME} in {directory} is not valid UTF-8: {e}") from e
    except json.JSONDecodeError as e:
        raise ManifestError(f"Invalid {MANIFEST_NAME} in {directory}: {e}") from e
    if not isinstance(data, dict):
        raise ManifestError(f"Invalid {MANIFEST_NAME} in {directory}: top-level value is not an object")
    return data


def _dump_manifest(directory: str | Path, data: Dict[str, Any]) -> None:
    # Same layout npm/pnpm write: 2-space indent, trailing newline
    text = json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    manifest_path(directory).write_text(text, encoding="utf-8")


def read_version(directory: str | Path) -> str:
    version = _load_manifest(directory).get("version")
    if not version or not isinstance(version, str):
        raise ManifestError(f'{MANIFEST_NAME} in {directory} is missing "version" field')
    return version


def resolve_actual_package_name(directory: str | Path) -> str:
    """The name package.json declares, which may differ from the config item name."""
    name = _load_manifest(directory).get("name")
    if not name or not isinstance(name, str):
        raise ManifestError(f'{MANIFEST_NAME} in {directory} is missing "name" field')
    return name


def write_version(directory: str | Path, version: str) -> None:
    data = _load_manifest(directory)
    data["version"] = version
    _dump_manifest(directory, data)


def write_dependency_path(directory: str | Path, dep_name: str, path: str | Path) -> bool:
    """
    Point dep_name at file:<path> in every dependency section that lists it.

    Returns True if the manifest was rewritten; a dependency that appears in
    no section leaves the file untouched.
    """
    data = _load_manifest(directory)
    modified = False
    for section in DEPENDENCY_SECTIONS:
        deps = data.get(section)
        if isinstance(deps, dict) and dep_name in deps:
            deps[dep_name] = f"file:{path}"
            modified = True
    if modified:
        _dump_manifest(directory, data)
    return modified


@contextmanager
def manifest_snapshot(directory: str | Path, *, required: bool = True) -> Iterator[Optional[bytes]]:
    """
    Snapshot package.json's raw bytes and put them back on exit, on every
    exit path. Restoring the bytes (not re-serializing) keeps the user's
    formatting and key order exactly.

    With required=False a missing manifest yields None and nothing is restored.
    """
    path = manifest_path(directory)
    if path.exists():
        original: Optional[bytes] = path.read_bytes()
    elif required:
        raise ManifestError(f"{MANIFEST_NAME} not found in {directory}")
    else:
        original = None

    try:
        yield original
    finally:
        if original is not None:
            path.write_bytes(original)


# ----------------------------------------------------------------------
# Alpha versions
# ----------------------------------------------------------------------

class _MonotonicStamp:
    """
    Hands out YYYYMMDDHHmmss stamps that never repeat within this process:
    a request in an already-used second is pushed one second past the last stamp.
    """

    def __init__(self) -> None:
        self._last: Optional[datetime] = None
        self._lock = threading.Lock()

    def next(self, now: Optional[datetime] = None) -> str:
        with self._lock:
            current = (now or datetime.now()).replace(microsecond=0)
            if self._last is not None and current <= self._last:
                current = self._last + timedelta(seconds=1)
            self._last = current
            return current.strftime(TIMESTAMP_FORMAT)


_stamps = _MonotonicStamp()


def generate_timestamp() -> str:
    """Local time as a fixed-width 14 digit string."""
    return _stamps.next()


def generate_alpha_version(base: str) -> str:
    """
    1.2.3           -> 1.2.3-alpha.<stamp>
    1.2.3-alpha.<n> -> 1.2.3-alpha.<fresh stamp>
    """
    stamp = generate_timestamp()
    m = _ALPHA_RE.match(base)
    if m:
        return f"{m.group('base')}{stamp}"
    return f"{base}-alpha.{stamp}"


# ----------------------------------------------------------------------
# Artifacts
# ----------------------------------------------------------------------

@dataclass
class CleanResult:
    removed: List[Path] = field(default_factory=list)
    failed: List[tuple[Path, str]] = field(default_factory=list)


def _artifacts(directory: Path) -> List[Path]:
    return sorted(p for p in directory.glob(f"*{ARTIFACT_SUFFIX}") if p.is_file())


def clean_artifacts(directory: str | Path) -> CleanResult:
    """
    Best-effort removal of stale tarballs. Individual failures are collected
    in the result instead of raised.
    """
    result = CleanResult()
    d = Path(directory)
    if not d.is_dir():
        return result
    for p in _artifacts(d):
        try:
            p.unlink()
            result.removed.append(p)
        except OSError as e:
            result.failed.append((p, str(e)))
    return result


def artifact_filename_prefix(package_name: str) -> str:
    """@scope/name flattens to scope--name; unscoped names are unchanged."""
    if package_name.startswith("@") and "/" in package_name:
        scope, _, name = package_name[1:].partition("/")
        return f"{scope}--{name}"
    return package_name


def _newest(paths: List[Path]) -> Path:
    return max(paths, key=lambda p: p.stat().st_mtime)


def find_artifact(
    directory: str | Path,
    package_name: str,
    version: str,
    *,
    legacy_name: Optional[str] = None,
) -> Path:
    """
    Locate the tarball a pack step produced.

    Resolution order:
      1. exact <prefix>-<version>.tgz
      2. tarballs containing the version, preferring the prefix, else newest
      3. tarballs with the prefix, newest first
      4. tarballs named after the legacy (config item) name
      5. the newest tarball in the directory, with a warning
    """
    d = Path(directory)
    if not d.is_dir():
        raise ArtifactError(f"Directory not found: {d}")

    prefix = artifact_filename_prefix(package_name)
    exact = d / f"{prefix}-{version}{ARTIFACT_SUFFIX}"
    if exact.is_file():
        return exact

    candidates = _artifacts(d)
    if not candidates:
        raise ArtifactError(f"No {ARTIFACT_SUFFIX} file found for {package_name} in {d}")

    with_version = [p for p in candidates if version in p.name]
    if with_version:
        prefixed = [p for p in with_version if p.name.startswith(f"{prefix}-")]
        return _newest(prefixed or with_version)

    prefixed = [p for p in candidates if p.name.startswith(f"{prefix}-")]
    if prefixed:
        return _newest(prefixed)

    if legacy_name:
        legacy = [p for p in candidates if p.name.startswith(f"{legacy_name}-")]
        if legacy:
            return _newest(legacy)

    fallback = _newest(candidates)
    get_console().print_warning(
        f"No {ARTIFACT_SUFFIX} matched {package_name}@{version} in {d}; using newest file {fallback.name}"
    )
    return fallback
