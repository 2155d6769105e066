"""Logging utilities for RARity.

Console logging goes through loguru. A run also leaves a plain-text run log
next to the result table (``<prefix>.log.txt``), every line prefixed with
``##`` so it can be concatenated with other tool logs and grepped.
"""

import sys
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path

from loguru import logger

import rarity

CONSOLE_FORMAT = "{time:HH:mm:ss} | <level>{level: <8}</level> | {message}"


def setup_logging(level: str = "INFO", log_file: Path | None = None) -> None:
    """Replace all loguru handlers with a stdout handler at ``level``.

    Args:
        level: Console log level (loguru level name).
        log_file: Optional file that additionally receives every DEBUG
            record serialized as JSON, one per line.
    """
    logger.remove()
    logger.add(sys.stdout, level=level, format=CONSOLE_FORMAT, colorize=True)
    if log_file is not None:
        logger.add(log_file, level="DEBUG", serialize=True)


def _write_section(f, title: str, items: Mapping[str, object]) -> None:
    f.write(f"## {title}:\n")
    for key, value in items.items():
        f.write(f"## {key} = {value}\n")
    f.write("##\n")


def _seconds(value: object) -> str:
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def write_run_log(
    log_path: Path,
    params: Mapping[str, object],
    timing: Mapping[str, object],
    command_line: str,
) -> Path:
    """Write the ``##`` run log for one RARity run.

    Args:
        log_path: Destination file; parent directories are created.
        params: Run inputs, settings and summary counts, in display order.
        timing: Phase durations in seconds, e.g. ``{"total": 12.5}``.
        command_line: The invocation, as typed.

    Returns:
        The written path.

    Example output:
        ##
        ## RARity Version = 0.1.0
        ## Date = 2024-01-31T10:30:00
        ## Command Line Input = rarity run data -p pheno.csv
        ##
        ## Run Parameters:
        ## n_blocks = 18000
        ##
        ## Computation Time:
        ## total time = 1.23 seconds
        ##
    """
    log_path = Path(log_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    header = [
        "##",
        f"## RARity Version = {rarity.__version__}",
        f"## Date = {datetime.now().isoformat(timespec='seconds')}",
        f"## Command Line Input = {command_line}",
        "##",
    ]
    with open(log_path, "w") as f:
        f.write("\n".join(header) + "\n")
        _write_section(f, "Run Parameters", params)
        f.write("## Computation Time:\n")
        for phase, value in timing.items():
            f.write(f"## {phase} time = {_seconds(value)} seconds\n")
        f.write("##\n")

    return log_path


def log_rss_memory(phase: str, checkpoint: str) -> float:
    """Log resident memory at a run checkpoint.

    The record is bound with ``phase`` and ``checkpoint`` extras so sinks can
    filter on them. Available system memory is included because the number
    of resident gene blocks, not their count on disk, drives peak usage.

    Returns:
        Current RSS in GB.
    """
    import psutil

    rss_gb = psutil.Process().memory_info().rss / 1e9
    available_gb = psutil.virtual_memory().available / 1e9
    logger.bind(phase=phase, checkpoint=checkpoint).info(
        f"RSS memory: {rss_gb:.2f}GB, {available_gb:.2f}GB available "
        f"(phase={phase}, checkpoint={checkpoint})"
    )
    return rss_gb
