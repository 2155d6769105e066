"""Shared progress bar utility for RARity.

Block workers finish gene blocks concurrently, so the bar is driven by a
lock-guarded counter rather than by wrapping a single iterator. Writes to
stdout alongside the loguru console handler.
"""

import sys
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager

import progressbar


@contextmanager
def block_progress(
    total: int, desc: str = "", enabled: bool = True
) -> Iterator[Callable[[], None]]:
    """Yield a thread-safe callback that advances a progressbar2 bar by one.

    The bar is finalized in a try/finally block so that exceptions raised
    by the caller don't leave terminal output corrupted.

    Args:
        total: Total number of items.
        desc: Optional description prefix.
        enabled: If False, yield a no-op callback and draw nothing.

    Yields:
        Callable taking no arguments; call it once per finished item.
    """
    if not enabled:
        yield lambda: None
        return

    widgets = [
        f"{desc}: " if desc else "",
        progressbar.Counter(),
        f"/{total} ",
        progressbar.Percentage(),
        " ",
        progressbar.Bar(),
        " ",
        progressbar.Timer(),
        " ",
        progressbar.ETA(),
    ]
    bar = progressbar.ProgressBar(max_value=total, widgets=widgets, fd=sys.stdout)
    lock = threading.Lock()
    done = 0

    def advance() -> None:
        nonlocal done
        with lock:
            done += 1
            bar.update(min(done, total))

    bar.start()
    try:
        yield advance
    finally:
        bar.finish()
