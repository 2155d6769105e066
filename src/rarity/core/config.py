"""Run configuration for RARity.

A run is parameterized by a frozen RarityConfig. The process keeps one default
configuration, seeded from environment variables, which the module-level
setters replace. A run snapshots its configuration when it starts, so setters
only affect runs started afterwards.
"""

from __future__ import annotations

import math
import os
import threading
from dataclasses import dataclass, replace

from loguru import logger

from rarity.core.threading import get_compute_thread_count

LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")

_LEVEL_ALIASES = {"WARN": "WARNING", "ERR": "ERROR"}


def normalize_log_level(level: str) -> str:
    """Return the loguru level name for a case-insensitive level string.

    Raises:
        ValueError: If the level is not a known loguru level.
    """
    name = level.strip().upper()
    name = _LEVEL_ALIASES.get(name, name)
    if name not in LOG_LEVELS:
        raise ValueError(
            f"log_level must be one of {', '.join(LOG_LEVELS)}, got {level!r}"
        )
    return name


@dataclass(frozen=True)
class RarityConfig:
    """Configuration for a RARity run.

    Attributes:
        min_sum: Minimum column sum for a variant to be kept in a block
            (minor-allele-count proxy). Columns with a sum strictly below
            this are dropped.
        worker_count: Number of block workers, i.e. gene blocks resident in
            memory at once. Clamped to the number of jobs at run time.
        compute_pool_size: Threads in the shared compute pool, or None for
            all available cores.
        log_level: Console log level applied at run entry, or None to leave
            the current loguru configuration untouched.
        include_root: Also scan the flat root directory as chromosome 0.
        blas_threads: BLAS threads per LAPACK call inside compute tasks.
        show_progress: Show a progress bar over processed blocks.
    """

    min_sum: float = 2.0
    worker_count: int = 16
    compute_pool_size: int | None = None
    log_level: str | None = None
    include_root: bool = False
    blas_threads: int = 1
    show_progress: bool = False

    def __post_init__(self) -> None:
        if not math.isfinite(self.min_sum):
            raise ValueError(f"min_sum must be finite, got {self.min_sum}")
        if self.worker_count < 1:
            raise ValueError(f"worker_count must be >= 1, got {self.worker_count}")
        if self.compute_pool_size is not None and self.compute_pool_size < 1:
            raise ValueError(
                f"compute_pool_size must be >= 1 or None, "
                f"got {self.compute_pool_size}"
            )
        if self.blas_threads < 1:
            raise ValueError(f"blas_threads must be >= 1, got {self.blas_threads}")
        if self.log_level is not None:
            object.__setattr__(self, "log_level", normalize_log_level(self.log_level))

    def resolved_compute_pool_size(self) -> int:
        """Compute pool size, defaulting to all available cores."""
        if self.compute_pool_size is not None:
            return self.compute_pool_size
        return get_compute_thread_count()

    @classmethod
    def from_env(cls) -> RarityConfig:
        """Build a configuration from RARITY_* environment variables.

        Reads RARITY_MIN_SUM, RARITY_BLOCKS_PER_CHUNK (worker count),
        RARITY_NUM_THREADS (compute pool size) and RARITY_LOG (log level).
        Invalid values are logged and the default is kept.
        """
        kwargs: dict = {}

        raw = os.environ.get("RARITY_MIN_SUM")
        if raw is not None:
            try:
                value = float(raw)
                if not math.isfinite(value):
                    raise ValueError(raw)
                kwargs["min_sum"] = value
            except ValueError:
                logger.warning(f"RARITY_MIN_SUM={raw!r} is not a valid number, ignoring")

        for var, key in (
            ("RARITY_BLOCKS_PER_CHUNK", "worker_count"),
            ("RARITY_NUM_THREADS", "compute_pool_size"),
        ):
            raw = os.environ.get(var)
            if raw is None:
                continue
            try:
                value = int(raw)
            except ValueError:
                logger.warning(f"{var}={raw!r} is not a valid integer, ignoring")
                continue
            if value < 1:
                logger.warning(f"{var}={raw!r} must be >= 1, ignoring")
                continue
            if key == "compute_pool_size":
                value = get_compute_thread_count(value)
            kwargs[key] = value

        raw = os.environ.get("RARITY_LOG")
        if raw is not None:
            try:
                kwargs["log_level"] = normalize_log_level(raw)
            except ValueError:
                logger.warning(f"RARITY_LOG={raw!r} is not a valid log level, ignoring")

        return cls(**kwargs)


_default_lock = threading.Lock()
_default_config: RarityConfig | None = None


def get_default_config() -> RarityConfig:
    """Return the process default configuration, seeding it from env on first use."""
    global _default_config
    with _default_lock:
        if _default_config is None:
            _default_config = RarityConfig.from_env()
        return _default_config


def _update_default(**changes) -> RarityConfig:
    global _default_config
    with _default_lock:
        base = _default_config if _default_config is not None else RarityConfig.from_env()
        _default_config = replace(base, **changes)
        return _default_config


def set_worker_count(worker_count: int) -> RarityConfig:
    """Set the number of block workers for subsequent runs."""
    return _update_default(worker_count=int(worker_count))


def set_min_sum(min_sum: float) -> RarityConfig:
    """Set the variant column-sum threshold for subsequent runs."""
    return _update_default(min_sum=float(min_sum))


def set_log_level(level: str) -> RarityConfig:
    """Set the console log level applied by subsequent runs."""
    return _update_default(log_level=normalize_log_level(level))


def set_num_threads(num_threads: int) -> RarityConfig:
    """Set the compute pool size for subsequent runs."""
    return _update_default(compute_pool_size=int(num_threads))


def reset_default_config() -> None:
    """Forget the process default; it is re-read from env on next use."""
    global _default_config
    with _default_lock:
        _default_config = None
