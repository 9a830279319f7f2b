# watch/cleaner.py
from __future__ import annotations

from enum import Enum
from typing import Callable

import click

from ..session.store import SessionStore
from ..ui.console import get_console
from .probe import alive_pids


class CleanOutcome(str, Enum):
    MISSING = "missing"
    REFUSED = "refused"
    CANCELLED = "cancelled"
    REMOVED = "removed"


def _ask(prompt: str) -> bool:
    return click.confirm(prompt, default=False)


def clean_session(
    store: SessionStore,
    config_name: str,
    force: bool = False,
    confirm: Callable[[str], bool] = _ask,
) -> CleanOutcome:
    """
    Delete a session file after confirmation.

    Without force, refuses while any recorded pid is still alive, since
    the file is then the only way to find those processes again.
    """
    console = get_console()
    session = store.read_session(config_name)
    if session is None:
        console.print_info(f"Session {config_name} does not exist")
        return CleanOutcome.MISSING

    alive = alive_pids(session)
    if alive and not force:
        console.print_error(
            f"Cannot clean session {config_name}",
            f"{len(alive)} process(es) are still running: {', '.join(map(str, alive))}",
            suggestion=f"Terminate them first:\n  packchain watch {config_name} --once --kill",
        )
        return CleanOutcome.REFUSED
    if alive:
        console.print_warning(f"{len(alive)} process(es) will become untracked")

    console.print_info(f"Removing session file: {store.session_path(config_name)}")
    question = "Force remove this session?" if force else "Remove this session?"
    if not confirm(question):
        console.print_info("Cancelled")
        return CleanOutcome.CANCELLED

    store.delete_session(config_name)
    console.print_info(f"Session {config_name} {'force ' if force else ''}cleaned")
    return CleanOutcome.REMOVED
