"""Console output formatting utilities for packchain."""

from __future__ import annotations

import sys
from typing import Iterable, Optional


class Console:
    """All human-facing output of the pack and watch commands."""

    def __init__(self, debug: bool = False):
        """
        Create the console.

        Args:
            debug: also print [DEBUG] lines and full tracebacks
        """
        self.debug = debug

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_run_started(self, config_name: str, config_file: str, item_count: int) -> None:
        """Print chain start information."""
        print("\nCHAIN STARTED")
        print(f"Configuration: {config_name}")
        print(f"File: {config_file}")
        print(f"Items: {item_count}")
        print()

    def print_execution_order(self, items: Iterable) -> None:
        """Print the topologically sorted chain."""
        self.print_header("Execution order")
        for index, item in enumerate(items, start=1):
            dep = f" (depends on: {item.depends_on})" if item.depends_on else ""
            print(f"  {index}. [{item.type.value}] {item.name}{dep}")
        print()

    def print_item_started(self, name: str, kind: str) -> None:
        print(f"\nITEM STARTED: {name} [{kind}]")

    def print_item_step(self, message: str) -> None:
        print(f"  {message}")

    def print_item_done(self, name: str, detail: Optional[str] = None) -> None:
        suffix = f" ({detail})" if detail else ""
        print(f"ITEM DONE: {name}{suffix}")

    def print_item_failed(self, name: str, reason: str) -> None:
        """Print the offending item and the first line of the error."""
        print(f"\nITEM FAILED: {name}", file=sys.stderr)
        if self.debug:
            print(f"Error details: {reason}", file=sys.stderr)
        else:
            error_line = reason.split("\n")[0] if reason else "Unknown error"
            print(f"Error: {error_line}", file=sys.stderr)

    def print_chain_completed(self, count: int) -> None:
        print(f"\nCHAIN COMPLETED: {count} item(s)")

    def print_process_started(self, pid: int, command: str, prefix: str = "") -> None:
        print(f"{prefix}PROCESS STARTED: pid={pid} {command}")

    def print_process_finished(self, pid: int, exit_code: Optional[int], prefix: str = "") -> None:
        print(f"{prefix}PROCESS FINISHED: pid={pid} exit={exit_code}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print an error block to stderr.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_warning(self, message: str) -> None:
        print(f"WARNING: {message}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Installed by the CLI group; library code falls back to a default Console
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
