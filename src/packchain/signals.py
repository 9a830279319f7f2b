# signals.py
from __future__ import annotations

import signal
from contextlib import contextmanager
from typing import Iterator

from .errors import ShutdownRequested

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def _raise(signum, frame):
    raise ShutdownRequested(signum)


@contextmanager
def raise_on_signals() -> Iterator[None]:
    """
    Turn SIGINT/SIGTERM into ShutdownRequested for the duration of the block,
    restoring the previous handlers on exit. The handler only raises; callers
    do their cleanup after catching it.
    """
    previous = {}
    for sig in HANDLED_SIGNALS:
        try:
            previous[sig] = signal.signal(sig, _raise)
        except ValueError:
            # not the main thread; leave signal handling alone
            continue
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
