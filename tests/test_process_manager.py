from __future__ import annotations

import os
import signal
import sys
import time
from pathlib import Path

import pytest

from packchain.errors import CommandError, ShutdownRequested
from packchain.session.models import ProcessStatus
from packchain.session.process_manager import ProcessManager
from packchain.session.store import SessionStore

SLEEP = [sys.executable, "-c", "import time; time.sleep(30)"]


@pytest.fixture
def store(isolated_dirs) -> SessionStore:
    return SessionStore()


@pytest.fixture
def manager(store: SessionStore) -> ProcessManager:
    return ProcessManager(store, grace=2.0, poll_interval=0.02)


def test_commands_are_recorded_in_session(tmp_path: Path, store: SessionStore, manager: ProcessManager) -> None:
    manager.start_session("demo")
    manager.execute_command([sys.executable, "-c", "pass"], tmp_path)
    with pytest.raises(CommandError) as exc:
        manager.execute_command([sys.executable, "-c", "import sys; sys.exit(4)"], tmp_path)
    manager.end_session()

    assert exc.value.exit_code == 4
    session = store.read_session("demo")
    assert session.ended_at is not None
    assert [p.exit_code for p in session.processes] == [0, 4]
    assert all(p.status is ProcessStatus.STOPPED for p in session.processes)
    assert all(p.end_time is not None for p in session.processes)
    assert session.processes[0].cwd == str(tmp_path)


def test_untracked_manager_writes_no_session(tmp_path: Path, store: SessionStore, manager: ProcessManager) -> None:
    manager.execute_command([sys.executable, "-c", "pass"], tmp_path)

    assert store.list_sessions() == []


def test_cleanup_terminates_registered_children(tmp_path: Path, store: SessionStore, manager: ProcessManager) -> None:
    manager.start_session("demo")
    tracked = manager.spawn(SLEEP, tmp_path)
    assert manager.active_pids() == [tracked.pid]

    manager.shutdown()

    assert tracked.popen.returncode is not None
    assert manager.active_count == 0
    session = store.read_session("demo")
    assert session.ended_at is not None
    assert session.processes[0].status is ProcessStatus.STOPPED


def test_cleanup_escalates_to_kill(tmp_path: Path, store: SessionStore) -> None:
    manager = ProcessManager(store, grace=0.5, poll_interval=0.02)
    stubborn = [
        sys.executable,
        "-c",
        "import signal, time\n"
        "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
        "time.sleep(30)",
    ]
    tracked = manager.spawn(stubborn, tmp_path)
    # give the child time to install its handler
    time.sleep(0.5)
    manager.cleanup()

    assert tracked.popen.returncode == -signal.SIGKILL


def test_kill_group_only_touches_members(tmp_path: Path, manager: ProcessManager) -> None:
    member = manager.spawn(SLEEP, tmp_path, group_id="g1")
    outsider = manager.spawn(SLEEP, tmp_path)

    assert manager.kill_group("g1") == [member.pid]
    assert member.popen.returncode is not None
    assert outsider.popen.poll() is None

    manager.cleanup()
    assert outsider.popen.returncode is not None


def test_spawn_failure_in_parallel_skips_the_rest(tmp_path: Path, manager: ProcessManager) -> None:
    result = manager.execute_commands_parallel(
        [SLEEP, ["definitely-not-a-real-program-xyz"], [sys.executable, "-c", "pass"]],
        tmp_path,
    )

    assert not result.success
    sleeper, missing, skipped = result.results
    assert sleeper.terminated
    assert missing.exit_code is None and missing.error
    assert skipped.skipped
    assert result.failed_count == 1
    assert manager.active_count == 0


def test_shutdown_guard_turns_signals_into_exception(manager: ProcessManager) -> None:
    before = signal.getsignal(signal.SIGTERM)

    with pytest.raises(ShutdownRequested) as exc:
        with manager.shutdown_guard():
            os.kill(os.getpid(), signal.SIGTERM)
            time.sleep(1)

    assert exc.value.signal_name == "SIGTERM"
    assert signal.getsignal(signal.SIGTERM) is before
