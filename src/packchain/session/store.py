# session/store.py
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from ..errors import MalformedSessionError, SessionError
from ..settings import state_dir
from .models import ProcessRecord, Session, now_utc

# ---------------------------------------------------------------------
# File-based session store:
#   root/
#     <config_name>.json
#
# Every write rewrites the whole file through a temp file + rename, so a
# concurrent reader (the watch command) sees either the old or the new
# document, never a half-appended one. There is no locking.
# ---------------------------------------------------------------------

_FIELD_BY_KEY = {
    **{name: name for name in Session.model_fields},
    **{f.alias: name for name, f in Session.model_fields.items() if f.alias},
}


@dataclass
class SessionListing:
    sessions: List[Session] = field(default_factory=list)
    skipped: List[Tuple[Path, str]] = field(default_factory=list)


class SessionStore:
    """Persistence for pack sessions, one JSON document per configuration name."""

    def __init__(self, root: str | Path | None = None):
        self.root = Path(root) if root is not None else state_dir()

    def ensure_root(self) -> Path:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SessionError(f"Failed to create state directory {self.root}: {e}") from e
        return self.root

    def session_path(self, config_name: str) -> Path:
        return self.root / f"{config_name}.json"

    # ---- CRUD ----

    def create_session(self, config_name: str) -> Session:
        self.ensure_root()
        now = now_utc()
        session = Session(
            config_name=config_name,
            session_id=_session_id(now),
            started_at=now,
            ended_at=None,
            last_updated=now,
            processes=[],
        )
        self._write(session)
        return session

    def read_session(self, config_name: str) -> Optional[Session]:
        """None when no session file exists for this name."""
        return self._read_path(self.session_path(config_name))

    def update_session(self, config_name: str, data: Mapping[str, Any]) -> Session:
        """
        Shallow-merge `data` over the stored session. A `processes` key replaces
        the whole array; use add_process / update_process to touch one record.
        """
        session = self._require(config_name)
        merged = session.model_dump()
        for key, value in data.items():
            try:
                merged[_FIELD_BY_KEY[key]] = value
            except KeyError:
                raise SessionError(f"Unknown session field: {key!r}") from None
        merged["last_updated"] = _next_stamp(session.last_updated)
        try:
            updated = Session.model_validate(merged)
        except ValidationError as e:
            raise SessionError(f"Invalid session update for {config_name}: {e}") from e
        self._write(updated)
        return updated

    def add_process(self, config_name: str, record: ProcessRecord) -> Session:
        session = self._require(config_name)
        session.processes.append(record)
        session.last_updated = _next_stamp(session.last_updated)
        self._write(session)
        return session

    def update_process(self, config_name: str, pid: int, **changes: Any) -> Session:
        """Rewrite the (latest) record for `pid`, leaving every other record as stored."""
        session = self._require(config_name)
        processes = list(session.processes)
        for index in range(len(processes) - 1, -1, -1):
            if processes[index].pid == pid:
                processes[index] = processes[index].model_copy(update=changes)
                break
        else:
            raise SessionError(f"Process {pid} not found in session {config_name}")
        return self.update_session(config_name, {"processes": processes})

    def end_session(self, config_name: str) -> Session:
        return self.update_session(config_name, {"endedAt": now_utc()})

    def delete_session(self, config_name: str) -> bool:
        path = self.session_path(config_name)
        if not path.exists():
            return False
        path.unlink()
        return True

    # ---- listing ----

    def scan_sessions(self) -> SessionListing:
        """Read every session file; unreadable ones are reported, not raised."""
        listing = SessionListing()
        if not self.root.is_dir():
            return listing
        for path in sorted(self.root.glob("*.json")):
            try:
                session = self._read_path(path)
            except (SessionError, OSError) as e:
                listing.skipped.append((path, str(e)))
                continue
            if session is not None:
                listing.sessions.append(session)
        return listing

    def list_sessions(self) -> List[Session]:
        return self.scan_sessions().sessions

    # ---- internals ----

    def _require(self, config_name: str) -> Session:
        session = self.read_session(config_name)
        if session is None:
            raise SessionError(f"Session not found: {config_name}")
        return session

    def _read_path(self, path: Path) -> Optional[Session]:
        if not path.exists():
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except UnicodeDecodeError as e:
            raise MalformedSessionError(f"Session file is not valid UTF-8: {path}") from e
        except json.JSONDecodeError as e:
            raise MalformedSessionError(f"Invalid JSON in session file: {path}") from e
        try:
            return Session.model_validate(raw)
        except ValidationError as e:
            raise MalformedSessionError(f"Invalid session document in {path}: {e}") from e

    def _write(self, session: Session) -> None:
        path = self.session_path(session.config_name)
        tmp = path.with_suffix(".json.tmp")
        try:
            tmp.write_text(json.dumps(session.to_json_dict(), indent=2) + "\n", encoding="utf-8")
            tmp.replace(path)
        finally:
            if tmp.exists():
                tmp.unlink(missing_ok=True)


def _session_id(created: datetime) -> str:
    return created.astimezone().strftime("%Y%m%d-%H%M%S")


def _next_stamp(previous: datetime) -> datetime:
    # lastUpdated never moves backwards, even if the wall clock does
    now = now_utc()
    return now if now >= previous else previous
