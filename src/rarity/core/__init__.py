"""Core runtime modules for RARity.

This package contains the run-level infrastructure:
- config: Immutable run configuration and process defaults
- threading: Compute pool sizing and BLAS thread control
- progress: Thread-safe progress bar over processed blocks
"""

from rarity.core.config import (
    RarityConfig,
    get_default_config,
    reset_default_config,
    set_log_level,
    set_min_sum,
    set_num_threads,
    set_worker_count,
)
from rarity.core.progress import block_progress
from rarity.core.threading import blas_threads, get_compute_thread_count

__all__ = [
    "RarityConfig",
    "get_default_config",
    "reset_default_config",
    "set_log_level",
    "set_min_sum",
    "set_num_threads",
    "set_worker_count",
    "block_progress",
    "blas_threads",
    "get_compute_thread_count",
]
