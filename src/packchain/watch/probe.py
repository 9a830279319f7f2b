# watch/probe.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List

from ..session.models import ProcessRecord, ProcessStatus, Session


def is_process_alive(pid: int) -> bool:
    """
    Signal-0 probe. EPERM means the pid exists but belongs to someone else,
    which still counts as alive.
    """
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


@dataclass
class ProcessView:
    """A stored record next to what the OS says about its pid right now."""
    record: ProcessRecord
    actual_status: ProcessStatus

    @property
    def pid(self) -> int:
        return self.record.pid

    @property
    def alive(self) -> bool:
        return self.actual_status is ProcessStatus.RUNNING

    @property
    def stale(self) -> bool:
        # Stored status disagrees with the OS
        return self.record.status is not self.actual_status


def annotate(session: Session) -> List[ProcessView]:
    return [
        ProcessView(
            record=record,
            actual_status=ProcessStatus.RUNNING if is_process_alive(record.pid) else ProcessStatus.STOPPED,
        )
        for record in session.processes
    ]


def alive_pids(session: Session) -> List[int]:
    """Distinct pids of the session that are actually alive, in record order."""
    seen: List[int] = []
    for view in annotate(session):
        if view.alive and view.pid not in seen:
            seen.append(view.pid)
    return seen
