# session/process_manager.py
from __future__ import annotations

import itertools
import subprocess
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

from ..errors import CommandError, SessionError
from ..settings import KILL_GRACE_SECONDS
from ..signals import raise_on_signals
from ..ui.console import get_console
from .models import ProcessRecord, ProcessStatus, now_utc
from .store import SessionStore


@dataclass
class TrackedProcess:
    popen: subprocess.Popen
    command: str
    cwd: str
    group_id: Optional[str] = None
    prefix: str = ""

    @property
    def pid(self) -> int:
        return self.popen.pid


@dataclass
class CommandResult:
    index: int
    command: str
    success: bool
    exit_code: Optional[int] = None
    pid: Optional[int] = None
    error: Optional[str] = None
    # Stopped by us because a sibling failed
    terminated: bool = False
    # Never launched because a sibling failed first
    skipped: bool = False


@dataclass
class ParallelResult:
    success: bool
    group_id: str
    results: List[CommandResult] = field(default_factory=list)

    @property
    def failures(self) -> List[CommandResult]:
        """Members that failed on their own (not the siblings we stopped)."""
        return [r for r in self.results if not r.success and not r.terminated and not r.skipped]

    @property
    def failed_count(self) -> int:
        return len(self.failures)


class ProcessManager:
    """
    Registry of the child processes spawned by one CLI invocation.

    Owned by the entry point and passed down explicitly. While a session is
    started, every spawn and exit is mirrored into the SessionStore so a later,
    independent `watch` run can find anything this process failed to reap.
    """

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        *,
        grace: float = KILL_GRACE_SECONDS,
        poll_interval: float = 0.05,
    ):
        self.store = store if store is not None else SessionStore()
        self.grace = grace
        self.poll_interval = poll_interval
        self.config_name: Optional[str] = None
        self.session_started = False
        self._procs: Dict[int, TrackedProcess] = {}
        self._groups: Dict[str, set[int]] = {}
        self._group_seq = itertools.count(1)

    @property
    def active_count(self) -> int:
        return len(self._procs)

    def active_pids(self) -> List[int]:
        return list(self._procs)

    # ------------------------------------------------------------------
    # Session bracketing
    # ------------------------------------------------------------------

    def start_session(self, config_name: str) -> None:
        self.store.create_session(config_name)
        self.config_name = config_name
        self.session_started = True
        get_console().print_info(f"Session started: {config_name} ({self.store.session_path(config_name)})")

    def end_session(self) -> None:
        if self.config_name and self.session_started:
            try:
                self.store.end_session(self.config_name)
                get_console().print_info(f"Session ended: {self.config_name}")
            except SessionError as e:
                get_console().print_warning(f"Could not finalize session {self.config_name}: {e}")
        self.config_name = None
        self.session_started = False

    @contextmanager
    def shutdown_guard(self) -> Iterator["ProcessManager"]:
        """
        Turn SIGINT/SIGTERM into ShutdownRequested for the duration of the block.

        The caller catches it after the stack has unwound and then calls
        shutdown(), so no cleanup I/O runs inside the signal handler itself.
        """
        with raise_on_signals():
            yield self

    def shutdown(self) -> None:
        self.cleanup()
        self.end_session()

    # ------------------------------------------------------------------
    # Spawning and bookkeeping
    # ------------------------------------------------------------------

    def spawn(
        self,
        argv: Sequence[str],
        cwd: str | Path,
        *,
        group_id: Optional[str] = None,
        prefix: str = "",
    ) -> TrackedProcess:
        """Start argv with inherited stdio, register it and record it as running."""
        command = " ".join(argv)
        try:
            popen = subprocess.Popen(list(argv), cwd=str(cwd))
        except OSError as e:
            raise CommandError(command=command, exit_code=None, reason=str(e)) from e

        tracked = TrackedProcess(popen=popen, command=command, cwd=str(cwd), group_id=group_id, prefix=prefix)
        self._procs[tracked.pid] = tracked
        if group_id is not None:
            self._groups.setdefault(group_id, set()).add(tracked.pid)

        get_console().print_process_started(tracked.pid, command, prefix=prefix)
        if self._tracking:
            self._mirror(
                self.store.add_process,
                ProcessRecord(pid=tracked.pid, command=command, cwd=str(cwd)),
            )
        return tracked

    def wait(self, tracked: TrackedProcess) -> int:
        code = tracked.popen.wait()
        self._finish(tracked, code)
        return code

    def execute_command(self, argv: Sequence[str], cwd: str | Path) -> int:
        """Run one command to completion. Raises CommandError on spawn failure or non-zero exit."""
        tracked = self.spawn(argv, cwd)
        code = self.wait(tracked)
        if code != 0:
            raise CommandError(command=tracked.command, exit_code=code)
        return code

    def execute_commands_parallel(
        self,
        commands: Sequence[Sequence[str]],
        cwd: str | Path,
        *,
        kill_on_fail: bool = True,
        group_id: Optional[str] = None,
    ) -> ParallelResult:
        """
        Launch every command back to back, then poll until all have settled.

        With kill_on_fail, the first member to fail (non-zero exit or spawn
        error) gets every still-running sibling terminated, graceful first,
        forced after the grace window.
        """
        group_id = group_id or f"parallel-{next(self._group_seq)}-{int(time.time() * 1000)}"
        console = get_console()
        results: List[Optional[CommandResult]] = [None] * len(commands)

        if not commands:
            return ParallelResult(success=True, group_id=group_id, results=[])

        console.print_info(f"Starting {len(commands)} commands in parallel (group: {group_id})")

        pending: Dict[int, TrackedProcess] = {}
        stopped: set[int] = set()
        tripped = False

        try:
            for index, argv in enumerate(commands):
                command = " ".join(argv)
                if tripped:
                    results[index] = CommandResult(index=index, command=command, success=False, skipped=True)
                    continue
                try:
                    pending[index] = self.spawn(argv, cwd, group_id=group_id, prefix=f"[{index + 1}] ")
                except CommandError as e:
                    results[index] = CommandResult(index=index, command=command, success=False, error=str(e))
                    if kill_on_fail:
                        tripped = True
                        stopped.update(self.kill_group(group_id))

            while pending:
                for index, tracked in list(pending.items()):
                    code = tracked.popen.poll()
                    if code is None:
                        continue
                    del pending[index]
                    self._finish(tracked, code)
                    was_stopped = tracked.pid in stopped
                    results[index] = CommandResult(
                        index=index,
                        command=tracked.command,
                        success=code == 0 and not was_stopped,
                        exit_code=code,
                        pid=tracked.pid,
                        terminated=was_stopped,
                    )
                    if code != 0 and not was_stopped and kill_on_fail and not tripped:
                        tripped = True
                        console.print_warning(
                            f"Command {index + 1} failed (exit {code}); stopping the rest of {group_id}"
                        )
                        stopped.update(self.kill_group(group_id))
                if pending:
                    time.sleep(self.poll_interval)
        finally:
            self._groups.pop(group_id, None)

        outcome = ParallelResult(
            success=all(r is not None and r.success for r in results),
            group_id=group_id,
            results=[r for r in results if r is not None],
        )
        if outcome.success:
            console.print_info(f"All {len(commands)} commands completed successfully")
        else:
            console.print_error(
                "Parallel stage failed",
                f"{outcome.failed_count} command(s) failed in {group_id}",
                details=[r.command for r in outcome.failures],
            )
        return outcome

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    def kill_group(self, group_id: str) -> List[int]:
        """Terminate every still-running member of a group. Returns the pids signalled."""
        members = [self._procs[pid] for pid in self._groups.get(group_id, ()) if pid in self._procs]
        return self._terminate(members)

    def cleanup(self) -> None:
        """Best-effort termination of everything still registered."""
        console = get_console()
        tracked = list(self._procs.values())
        if not tracked:
            console.print_info("No child processes to clean up")
            return

        console.print_info(f"Cleaning up {len(tracked)} child process(es)...")
        self._terminate(tracked)
        for t in tracked:
            if t.popen.returncode is not None and t.pid in self._procs:
                self._finish(t, t.popen.returncode)

        remaining = [t for t in tracked if t.popen.poll() is None]
        if remaining:
            console.print_warning(f"{len(remaining)} process(es) may still be running")
        else:
            console.print_info("All child processes cleaned up")
        self._groups.clear()

    def _terminate(self, tracked: List[TrackedProcess]) -> List[int]:
        console = get_console()
        live = [t for t in tracked if t.popen.poll() is None]
        for t in live:
            console.print_info(f"{t.prefix}Terminating process {t.pid}...")
            try:
                t.popen.terminate()
            except OSError as e:
                console.print_warning(f"Failed to signal process {t.pid}: {e}")

        deadline = time.monotonic() + self.grace
        for t in live:
            try:
                t.popen.wait(timeout=max(0.0, deadline - time.monotonic()))
            except subprocess.TimeoutExpired:
                console.print_info(f"{t.prefix}Force killing process {t.pid}...")
                t.popen.kill()
                t.popen.wait()
        return [t.pid for t in live]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @property
    def _tracking(self) -> bool:
        return bool(self.config_name and self.session_started)

    def _finish(self, tracked: TrackedProcess, exit_code: Optional[int]) -> None:
        self._procs.pop(tracked.pid, None)
        get_console().print_process_finished(tracked.pid, exit_code, prefix=tracked.prefix)
        if self._tracking:
            self._mirror(
                self.store.update_process,
                tracked.pid,
                status=ProcessStatus.STOPPED,
                end_time=now_utc(),
                exit_code=exit_code,
            )

    def _mirror(self, fn, *args, **kwargs) -> None:
        # The session file is bookkeeping for `watch`; losing it must not break the build
        try:
            fn(self.config_name, *args, **kwargs)
        except SessionError as e:
            get_console().print_warning(f"Session bookkeeping failed for {self.config_name}: {e}")
