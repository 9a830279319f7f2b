# watch/display.py
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..session.models import Session
from ..session.store import SessionListing
from .probe import ProcessView, annotate, is_process_alive

COLUMNS = (("PID", 8), ("Command", 30), ("Status", 12), ("Directory", 0))


def format_time(value: Optional[datetime]) -> str:
    if value is None:
        return "N/A"
    return value.astimezone().strftime("%Y-%m-%d %H:%M")


def truncate(text: str, width: int) -> str:
    if len(text) <= width:
        return text
    return text[: width - 3] + "..."


def _statistics(views: List[ProcessView]) -> Dict[str, int]:
    running = sum(1 for v in views if v.alive)
    return {"total": len(views), "running": running, "stopped": len(views) - running}


def render_session(session: Session, views: Optional[List[ProcessView]] = None, *, hints: bool = True) -> str:
    """Human-readable table of a session with OS-derived process status."""
    views = annotate(session) if views is None else views
    stats = _statistics(views)
    name = session.config_name

    lines = [
        f"Pack session: {name}",
        f"Started: {format_time(session.started_at)}",
        f"Ended:   {format_time(session.ended_at)}",
        f"Processes: {stats['total']} total, {stats['stopped']} stopped, {stats['running']} running",
        "",
    ]

    if not views:
        lines.append("No processes recorded")
        return "\n".join(lines)

    lines.append("  " + "".join(title.ljust(width) if width else title for title, width in COLUMNS))
    lines.append("  " + " ".join("-" * (width - 1 if width else 20) for _, width in COLUMNS))
    for view in views:
        rec = view.record
        lines.append(
            "  "
            + str(rec.pid).ljust(8)
            + truncate(rec.command, 28).ljust(30)
            + f"[{view.actual_status.value}]".ljust(12)
            + truncate(rec.cwd, 20)
        )
        if view.alive:
            lines.append("      ! orphan process still running")
        elif view.stale:
            lines.append(f"      (recorded as {rec.status.value}; process is gone)")
    lines.append("")

    if not hints:
        return "\n".join(lines)

    if stats["running"]:
        lines += [
            f"Found {stats['running']} orphan process(es).",
            "To terminate:",
            f"  packchain watch {name} --once --kill              # all",
            f"  packchain watch {name} --once --kill --pid <pid>  # one",
        ]
    else:
        lines += [
            "All processes have stopped.",
            "Remove the session file with:",
            f"  packchain watch {name} --clean",
        ]
    return "\n".join(lines)


def render_session_json(session: Session, views: Optional[List[ProcessView]] = None) -> str:
    views = annotate(session) if views is None else views
    payload: Dict[str, Any] = {
        "configName": session.config_name,
        "startedAt": session.started_at.isoformat(),
        "endedAt": session.ended_at.isoformat() if session.ended_at else None,
        "processes": [
            {
                "pid": v.record.pid,
                "command": v.record.command,
                "cwd": v.record.cwd,
                "status": v.actual_status.value,
                "startTime": v.record.start_time.isoformat(),
                "endTime": v.record.end_time.isoformat() if v.record.end_time else None,
            }
            for v in views
        ],
        "statistics": _statistics(views),
    }
    return json.dumps(payload, indent=2)


def render_sessions_overview(listing: SessionListing) -> str:
    """One line per session: name, recorded process count, and how many are actually alive."""
    if not listing.sessions:
        lines = ["No sessions found"]
    else:
        lines = [f"All pack sessions ({len(listing.sessions)})", ""]
        for session in listing.sessions:
            alive = sum(1 for p in session.processes if is_process_alive(p.pid))
            marker = "*" if alive else " "
            state = "ended" if session.ended_at else "open"
            lines.append(
                f" {marker} {session.config_name} - {len(session.processes)} processes, "
                f"{alive} alive ({state}, started {format_time(session.started_at)})"
            )
        lines += ["", "To view a specific session:", "  packchain watch <config-name>"]

    if listing.skipped:
        lines += ["", f"Skipped {len(listing.skipped)} unreadable session file(s)"]
    return "\n".join(lines)


def render_sessions_json(listing: SessionListing) -> str:
    return json.dumps(
        {
            "sessions": [
                {
                    "configName": s.config_name,
                    "startedAt": s.started_at.isoformat(),
                    "endedAt": s.ended_at.isoformat() if s.ended_at else None,
                    "processes": len(s.processes),
                    "running": sum(1 for p in s.processes if is_process_alive(p.pid)),
                    "recordedRunning": len(s.recorded_running()),
                }
                for s in listing.sessions
            ],
            "skipped": [str(path) for path, _ in listing.skipped],
        },
        indent=2,
    )
