# watch/loop.py
from __future__ import annotations

import time
from typing import Callable, Optional

import click

from ..errors import ShutdownRequested
from ..session.store import SessionStore
from ..signals import raise_on_signals
from ..ui.console import get_console
from .display import render_session, render_session_json
from .probe import annotate


def no_session_message(config_name: str) -> str:
    return "\n".join(
        [
            f"No session found for: {config_name}",
            "Either `packchain pack` has not been run with this configuration,",
            "or the session file has been cleaned up.",
        ]
    )


def show_session(store: SessionStore, config_name: str, *, as_json: bool = False) -> bool:
    """Print the session once. False when there is no session file."""
    session = store.read_session(config_name)
    if session is None:
        click.echo(no_session_message(config_name))
        return False
    views = annotate(session)
    click.echo(render_session_json(session, views) if as_json else render_session(session, views))
    return True


def watch_session(
    store: SessionStore,
    config_name: str,
    *,
    interval: float = 1.0,
    as_json: bool = False,
    max_iterations: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """
    Redraw the session every `interval` seconds until interrupted, the
    session file disappears, or max_iterations refreshes have been shown.

    SIGINT/SIGTERM only stop the loop; recorded processes are left alone.
    Returns the number of refreshes shown.
    """
    iteration = 0
    try:
        with raise_on_signals():
            while max_iterations is None or iteration < max_iterations:
                session = store.read_session(config_name)
                if not as_json:
                    click.clear()
                if iteration:
                    click.echo(f"Refresh: {iteration} | Press Ctrl+C to stop")
                if session is None:
                    click.echo(no_session_message(config_name))
                    break

                views = annotate(session)
                if as_json:
                    click.echo(render_session_json(session, views))
                else:
                    click.echo(render_session(session, views, hints=False))
                    if not any(v.alive for v in views):
                        click.echo("All processes have stopped. Use --once to exit immediately.")

                iteration += 1
                if max_iterations is None or iteration < max_iterations:
                    sleep(interval)
    except (ShutdownRequested, KeyboardInterrupt):
        get_console().print_info("\nStopped watching")
    return iteration
