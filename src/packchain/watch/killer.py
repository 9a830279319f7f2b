# watch/killer.py
from __future__ import annotations

import os
import signal
import time
from enum import Enum
from typing import Callable, Dict

from ..errors import PackchainError, SessionError, SignalPermissionError
from ..session.models import ProcessStatus, now_utc
from ..session.store import SessionStore
from ..ui.console import get_console
from .probe import alive_pids, is_process_alive

# SIGTERM, then up to MAX_POLLS * POLL_INTERVAL seconds before SIGKILL
POLL_INTERVAL = 0.5
MAX_POLLS = 10


class KillOutcome(str, Enum):
    ALREADY_STOPPED = "already-stopped"
    TERMINATED = "terminated"
    KILLED = "killed"


def _signal(pid: int, sig: signal.Signals) -> bool:
    """Deliver sig. False when the pid is already gone."""
    try:
        os.kill(pid, sig)
    except ProcessLookupError:
        return False
    except PermissionError as e:
        raise SignalPermissionError(f"Permission denied to terminate process {pid}") from e
    return True


def _wait_gone(pid: int, polls: int, interval: float, sleep: Callable[[float], None]) -> bool:
    for _ in range(polls):
        sleep(interval)
        if not is_process_alive(pid):
            return True
    return False


def _mark_stopped(store: SessionStore, config_name: str, pid: int) -> None:
    store.update_process(config_name, pid, status=ProcessStatus.STOPPED, end_time=now_utc())


def terminate_process(
    store: SessionStore,
    config_name: str,
    pid: int,
    *,
    poll_interval: float = POLL_INTERVAL,
    max_polls: int = MAX_POLLS,
    sleep: Callable[[float], None] = time.sleep,
) -> KillOutcome:
    """
    Stop one pid recorded in a session: SIGTERM, poll, SIGKILL, verify.

    The record is marked stopped once the pid is gone.

    Raises:
        SessionError: no such session, or pid not recorded in it
        SignalPermissionError: the pid belongs to another user
        PackchainError: the pid survived SIGKILL
    """
    console = get_console()
    session = store.read_session(config_name)
    if session is None:
        raise SessionError(f"Session not found: {config_name}")
    record = session.find(pid)
    if record is None:
        raise SessionError(f"Process {pid} not found in session {config_name}")

    if not is_process_alive(pid) or not _signal(pid, signal.SIGTERM):
        console.print_info(f"Process {pid} has already stopped")
        if record.status is ProcessStatus.RUNNING:
            _mark_stopped(store, config_name, pid)
        return KillOutcome.ALREADY_STOPPED

    console.print_info(f"Terminating process {pid}: {record.command}")
    console.print_debug(f"Sent SIGTERM to {pid}")

    outcome = KillOutcome.TERMINATED
    if not _wait_gone(pid, max_polls, poll_interval, sleep):
        console.print_warning(f"Process {pid} did not respond to SIGTERM, sending SIGKILL")
        _signal(pid, signal.SIGKILL)
        outcome = KillOutcome.KILLED
        if not _wait_gone(pid, 1, poll_interval, sleep):
            raise PackchainError(f"Failed to terminate process {pid}")

    console.print_info(f"Process {pid} terminated ({outcome.value})")
    _mark_stopped(store, config_name, pid)
    return outcome


def terminate_processes(store: SessionStore, config_name: str, **kwargs) -> Dict[int, KillOutcome]:
    """Stop every recorded pid of the session that is actually alive."""
    console = get_console()
    session = store.read_session(config_name)
    if session is None:
        raise SessionError(f"Session not found: {config_name}")

    targets = alive_pids(session)
    if not targets:
        console.print_info("No running processes to terminate")
        return {}

    console.print_info(f"Terminating {len(targets)} process(es)...")
    outcomes = {pid: terminate_process(store, config_name, pid, **kwargs) for pid in targets}
    console.print_info("All processes terminated")
    return outcomes
