"""Thread management for the compute pool and numpy BLAS.

RARity runs two levels of Python threads (block workers and a compute pool).
The regression kernel calls into LAPACK through scipy, which would otherwise
start its own BLAS threads inside every compute task. This module sizes the
compute pool and provides scoped BLAS thread control so the two do not
oversubscribe the machine.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import contextmanager

import psutil
from loguru import logger
from threadpoolctl import threadpool_limits


def get_compute_thread_count(requested: int | None = None) -> int:
    """Determine the number of compute pool threads.

    Args:
        requested: Explicit thread count (e.g. from RARITY_NUM_THREADS),
            clamped to [1, os.cpu_count()]. None means all logical cores
            as reported by psutil.

    Returns:
        Positive integer thread count, capped at os.cpu_count().
    """
    max_threads = os.cpu_count() or 64

    if requested is not None:
        n = max(1, min(requested, max_threads))
        logger.debug(f"Compute threads requested: {requested}, using {n}")
        return n

    n = psutil.cpu_count(logical=True) or max_threads
    n = max(1, min(n, max_threads))
    logger.debug(f"Compute threads from logical core count: {n}")
    return n


@contextmanager
def blas_threads(n_threads: int = 1) -> Generator[None, None, None]:
    """Context manager for scoped BLAS thread control.

    threadpool_limits is process-wide, so it is entered once around a whole
    run rather than inside individual compute tasks.

    Args:
        n_threads: Number of BLAS threads per LAPACK call.

    Example:
        >>> with blas_threads(1):
        ...     records = scheduler.run(jobs)
    """
    with threadpool_limits(limits=n_threads, user_api="blas"):
        yield
