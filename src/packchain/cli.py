# cli.py
from __future__ import annotations

import sys

import click

from packchain.config import config_path, load_config
from packchain.errors import PackchainError, ShutdownRequested
from packchain.runner import execute_chain, plan_chain
from packchain.session.process_manager import ProcessManager
from packchain.session.store import SessionStore
from packchain.ui.console import Console, get_console, set_console
from packchain.watch.cleaner import CleanOutcome, clean_session
from packchain.watch.display import render_sessions_json, render_sessions_overview
from packchain.watch.killer import terminate_process, terminate_processes
from packchain.watch.loop import show_session, watch_session


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """packchain: build interdependent packages in dependency order."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.argument("config_name")
@click.option("--dry-run", is_flag=True, default=False, help="Validate and print the execution order only")
@click.pass_context
def pack(ctx, config_name, dry_run):
    """Build every item of pack-CONFIG_NAME.json in dependency order."""
    console = get_console()

    try:
        items = load_config(config_name)
    except PackchainError as e:
        console.print_error(
            "Invalid configuration",
            str(e),
            suggestion=f"Configuration files live in {config_path(config_name).parent}",
        )
        sys.exit(1)

    console.print_run_started(config_name, str(config_path(config_name)), len(items))

    if dry_run:
        try:
            ordered = plan_chain(items)
        except PackchainError as e:
            console.print_error("Invalid dependencies", str(e))
            sys.exit(1)
        console.print_execution_order(ordered)
        return

    manager = ProcessManager()
    try:
        with manager.shutdown_guard():
            manager.start_session(config_name)
            execute_chain(items, manager)
    except (ShutdownRequested, KeyboardInterrupt) as e:
        name = e.signal_name if isinstance(e, ShutdownRequested) else "SIGINT"
        console.print_info(f"\nReceived {name}, cleaning up...")
        manager.shutdown()
        sys.exit(1)
    except PackchainError as e:
        console.print_error("Pack failed", str(e))
        manager.shutdown()
        sys.exit(1)
    except Exception as e:
        console.print_exception(e)
        manager.shutdown()
        sys.exit(1)

    manager.end_session()


@cli.command()
@click.argument("config_name", required=False)
@click.option("--all", "show_all", is_flag=True, default=False, help="List every recorded session")
@click.option("--once", is_flag=True, default=False, help="Show status once (no auto-refresh)")
@click.option(
    "--interval",
    default=1.0,
    type=click.FloatRange(min=0.1),
    show_default=True,
    help="Refresh interval in seconds",
)
@click.option("--json", "as_json", is_flag=True, default=False, help="Output in JSON format")
@click.option("--kill", is_flag=True, default=False, help="Terminate every recorded pid that is still alive")
@click.option(
    "--pid",
    type=click.IntRange(min=1),
    default=None,
    help="With --kill, terminate only this recorded pid",
)
@click.option("--clean", is_flag=True, default=False, help="Remove the session file (only if nothing is alive)")
@click.option("--force-clean", is_flag=True, default=False, help="Remove the session file regardless")
@click.pass_context
def watch(ctx, config_name, show_all, once, interval, as_json, kill, pid, clean, force_clean):
    """Inspect and reap processes recorded by earlier pack runs."""
    console = get_console()
    store = SessionStore()

    if not show_all and not config_name:
        raise click.UsageError("Provide a configuration name or use --all")
    if pid is not None and not kill:
        raise click.UsageError("--pid is only valid together with --kill")

    try:
        if show_all:
            listing = store.scan_sessions()
            click.echo(render_sessions_json(listing) if as_json else render_sessions_overview(listing))
            return

        if kill:
            if pid is None:
                terminate_processes(store, config_name)
            else:
                terminate_process(store, config_name, pid)
            show_session(store, config_name, as_json=as_json)
        elif clean or force_clean:
            outcome = clean_session(store, config_name, force=force_clean)
            if outcome is CleanOutcome.REFUSED:
                sys.exit(1)
        elif once:
            show_session(store, config_name, as_json=as_json)
        else:
            watch_session(store, config_name, interval=interval, as_json=as_json)
    except PackchainError as e:
        console.print_error("Watch failed", str(e))
        sys.exit(1)


if __name__ == "__main__":
    cli()
